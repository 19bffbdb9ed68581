"""
Kinematic chain discovery.

Identifies the base link, the end-effector link and the joint path between them
using a two-pass scan: index every link and joint, then classify links by
whether a joint points at them.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .model import Joint, Link, RobotModel

logger = logging.getLogger(__name__)

DEFAULT_TOOL_FRAME_NAMES: Tuple[str, ...] = ("tcp", "tool0", "tool_frame")


@dataclass(frozen=True)
class ChainAnalysis:
    """Result of chain analysis for one robot."""

    base_link: str
    end_effector_link: str
    joint_path: Tuple[str, ...] = field(default_factory=tuple)
    movable_joints: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def dof(self) -> int:
        return len(self.movable_joints)


def _index_tree(links: Sequence[Link], joints: Sequence[Joint]):
    link_names = [link.name for link in links]
    child_links = set()
    children_of: Dict[str, List[Joint]] = {name: [] for name in link_names}
    parent_joint_of: Dict[str, Joint] = {}
    for joint in joints:
        child_links.add(joint.child)
        parent_joint_of[joint.child] = joint
        if joint.parent in children_of:
            children_of[joint.parent].append(joint)
    return link_names, child_links, children_of, parent_joint_of


def analyze_chain(model: RobotModel,
                  tool_frame_names: Sequence[str] = DEFAULT_TOOL_FRAME_NAMES) -> Optional[ChainAnalysis]:
    """
    Resolve base link, end-effector link and the joint path of a robot.

    End-effector preference: a link named like a tool frame, then the first leaf
    link other than the base, then the base link itself. Returns None for a tree
    without links or without a link free of incoming joints.
    """
    links = list(model.links.values())
    joints = list(model.joints.values())
    if not links:
        logger.warning(f"Robot '{model.name}' has no links; no kinematic chain")
        return None

    link_names, child_links, children_of, parent_joint_of = _index_tree(links, joints)

    roots = [name for name in link_names if name not in child_links]
    if not roots:
        logger.warning(f"Robot '{model.name}' has no base link (every link is a joint child)")
        return None
    if len(roots) > 1:
        logger.warning(f"Robot '{model.name}' has {len(roots)} root links {roots}; using '{roots[0]}'")
    base_link = roots[0]

    end_effector = _resolve_end_effector(base_link, link_names, children_of, tool_frame_names)
    joint_path = _joint_path(base_link, end_effector, parent_joint_of)
    if joint_path is None:
        # A tool-frame link outside the base's tree; fall back to the leaf rule.
        end_effector = _resolve_end_effector(base_link, link_names, children_of, ())
        joint_path = _joint_path(base_link, end_effector, parent_joint_of) or ()

    movable = tuple(name for name in joint_path if model.joints[name].is_movable)
    return ChainAnalysis(
        base_link=base_link,
        end_effector_link=end_effector,
        joint_path=tuple(joint_path),
        movable_joints=movable,
    )


def _resolve_end_effector(base_link: str, link_names: List[str], children_of: Dict[str, List[Joint]],
                          tool_frame_names: Sequence[str]) -> str:
    for tool_name in tool_frame_names:
        if tool_name in children_of:
            return tool_name
    # Multi-branch trees resolve to the first leaf in index order.
    leaves = [name for name in link_names if not children_of[name] and name != base_link]
    if leaves:
        return leaves[0]
    return base_link


def _joint_path(base_link: str, end_effector: str, parent_joint_of: Dict[str, Joint]) -> Optional[List[str]]:
    path: List[str] = []
    current = end_effector
    visited = set()
    while current != base_link:
        joint = parent_joint_of.get(current)
        if joint is None or current in visited:
            return None
        visited.add(current)
        path.append(joint.name)
        current = joint.parent
    path.reverse()
    return path
