"""
Robot model for the kinematics engine.

A RobotModel is the link/joint tree of one robot instance together with the
current joint values. It is the only place joint values are written, and it
propagates world transforms along the tree on demand.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from ..errors import StructuralError
from .geometry import normalize, rotation_about_axis, transform_point, translation_along_axis

logger = logging.getLogger(__name__)


class JointType(Enum):
    """Joint types supported by the engine."""

    REVOLUTE = "revolute"
    PRISMATIC = "prismatic"
    CONTINUOUS = "continuous"
    FIXED = "fixed"

    @property
    def is_movable(self) -> bool:
        return self is not JointType.FIXED

    @property
    def is_rotational(self) -> bool:
        return self in (JointType.REVOLUTE, JointType.CONTINUOUS)


@dataclass
class JointLimit:
    """Position range and motion limits of a joint (radians or meters)."""

    lower: float = -math.pi
    upper: float = math.pi
    velocity: float = 1.0
    acceleration: Optional[float] = None
    jerk: Optional[float] = None


@dataclass
class VisualGeometry:
    """Visual geometry of a link, reduced to its vertices in the geometry frame."""

    vertices: np.ndarray
    origin: np.ndarray = field(default_factory=lambda: np.eye(4))

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=float).reshape(-1, 3)
        self.origin = np.asarray(self.origin, dtype=float)

    @classmethod
    def box(cls, size: Sequence[float], origin: Optional[np.ndarray] = None) -> "VisualGeometry":
        """Axis-aligned box of the given size centered on the geometry origin."""
        half = np.asarray(size, dtype=float).reshape(3) / 2.0
        corners = np.array([[sx, sy, sz] for sx in (-1, 1) for sy in (-1, 1) for sz in (-1, 1)], dtype=float)
        return cls(vertices=corners * half, origin=np.eye(4) if origin is None else origin)

    def bounding_center(self) -> np.ndarray:
        """Center of the axis-aligned bounding box, expressed in the link frame."""
        if len(self.vertices) == 0:
            return self.origin[:3, 3].copy()
        center = (self.vertices.min(axis=0) + self.vertices.max(axis=0)) / 2.0
        return transform_point(self.origin, center)


@dataclass
class Link:
    name: str
    parent_joint: Optional[str] = None
    visual: Optional[VisualGeometry] = None


@dataclass
class Joint:
    name: str
    joint_type: JointType
    parent: str
    child: str
    origin: np.ndarray = field(default_factory=lambda: np.eye(4))
    axis: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0]))
    value: float = 0.0
    limit: JointLimit = field(default_factory=JointLimit)
    ignore_limits: bool = False

    def __post_init__(self):
        self.origin = np.asarray(self.origin, dtype=float)
        axis = normalize(self.axis)
        if not np.any(axis):
            axis = np.array([1.0, 0.0, 0.0])
        self.axis = axis

    @property
    def is_movable(self) -> bool:
        return self.joint_type.is_movable

    def clamp(self, value: float) -> float:
        """Clamp a candidate value to this joint's position limits."""
        if self.ignore_limits or self.joint_type in (JointType.CONTINUOUS, JointType.FIXED):
            return value
        return min(self.limit.upper, max(self.limit.lower, value))

    def motion_transform(self) -> np.ndarray:
        """Transform contributed by the current joint value."""
        if self.joint_type.is_rotational:
            return rotation_about_axis(self.axis, self.value)
        if self.joint_type is JointType.PRISMATIC:
            return translation_along_axis(self.axis, self.value)
        return np.eye(4)


class RobotModel:
    """Link/joint tree of a single robot with world transform propagation."""

    def __init__(self, name: str, links: Iterable[Link], joints: Iterable[Joint],
                 world_transform: Optional[np.ndarray] = None):
        self.name = name
        self.links: Dict[str, Link] = {}
        self.joints: Dict[str, Joint] = {}
        self.world_transform = np.eye(4) if world_transform is None else np.asarray(world_transform, dtype=float)

        for link in links:
            if link.name in self.links:
                raise StructuralError(f"Duplicate link name '{link.name}' in robot '{name}'")
            link.parent_joint = None
            self.links[link.name] = link

        self._children: Dict[str, List[str]] = {link_name: [] for link_name in self.links}
        for joint in joints:
            if joint.name in self.joints:
                raise StructuralError(f"Duplicate joint name '{joint.name}' in robot '{name}'")
            for role, link_name in (("parent", joint.parent), ("child", joint.child)):
                if link_name not in self.links:
                    raise StructuralError(f"Joint '{joint.name}' references unknown {role} link '{link_name}'")
            child = self.links[joint.child]
            if child.parent_joint is not None:
                raise StructuralError(
                    f"Link '{child.name}' is the child of both '{child.parent_joint}' and '{joint.name}'"
                )
            child.parent_joint = joint.name
            joint.value = joint.clamp(joint.value)
            self.joints[joint.name] = joint
            self._children[joint.parent].append(joint.name)

        self._link_world: Dict[str, np.ndarray] = {}
        self._joint_frame_world: Dict[str, np.ndarray] = {}
        self._dirty = True

    def __repr__(self) -> str:
        return f"RobotModel(name={self.name!r}, links={len(self.links)}, joints={len(self.joints)})"

    # --- Topology ---

    def child_joints(self, link_name: str) -> List[Joint]:
        return [self.joints[name] for name in self._children.get(link_name, [])]

    def movable_joints(self) -> List[Joint]:
        return [joint for joint in self.joints.values() if joint.is_movable]

    # --- Joint values ---

    def set_joint_value(self, joint_name: str, value: float, enforce_limits: bool = True) -> bool:
        """
        Write a joint value.

        Returns True when the stored value changed. Unknown and fixed joints are
        rejected with False; the write is never silently redirected.
        """
        joint = self.joints.get(joint_name)
        if joint is None:
            logger.warning(f"Robot '{self.name}': cannot set unknown joint '{joint_name}'")
            return False
        if not joint.is_movable:
            return False
        value = float(value)
        if enforce_limits:
            value = joint.clamp(value)
        if value == joint.value:
            return False
        joint.value = value
        self._dirty = True
        return True

    def set_joint_values(self, values: Dict[str, float], enforce_limits: bool = True) -> bool:
        """Write several joint values; returns False if any joint name was unknown."""
        ok = True
        for joint_name, value in values.items():
            if joint_name not in self.joints:
                logger.warning(f"Robot '{self.name}': cannot set unknown joint '{joint_name}'")
                ok = False
                continue
            self.set_joint_value(joint_name, value, enforce_limits=enforce_limits)
        return ok

    def get_joint_values(self) -> Dict[str, float]:
        return {joint.name: joint.value for joint in self.joints.values() if joint.is_movable}

    # --- World transforms ---

    def set_world_transform(self, transform: np.ndarray):
        """Place the robot in the world (moves the base link)."""
        self.world_transform = np.asarray(transform, dtype=float)
        self._dirty = True

    def update_world_transforms(self, force: bool = False):
        """Recompute world transforms of every link reachable from a root link."""
        if not self._dirty and not force:
            return
        self._link_world.clear()
        self._joint_frame_world.clear()
        stack = [name for name, link in self.links.items() if link.parent_joint is None]
        stack.reverse()
        for root in stack:
            self._link_world[root] = self.world_transform.copy()
        while stack:
            link_name = stack.pop()
            parent_world = self._link_world[link_name]
            for joint in reversed(self.child_joints(link_name)):
                frame_world = parent_world @ joint.origin
                self._joint_frame_world[joint.name] = frame_world
                self._link_world[joint.child] = frame_world @ joint.motion_transform()
                stack.append(joint.child)
        self._dirty = False

    def link_world_transform(self, link_name: str) -> np.ndarray:
        self.update_world_transforms()
        return self._link_world.get(link_name, self.world_transform).copy()

    def joint_world_position(self, joint_name: str) -> np.ndarray:
        self.update_world_transforms()
        return self._joint_frame_world[joint_name][:3, 3].copy()

    def joint_world_axis(self, joint_name: str) -> np.ndarray:
        """Joint axis expressed in world coordinates."""
        self.update_world_transforms()
        frame = self._joint_frame_world[joint_name]
        return normalize(frame[:3, :3] @ self.joints[joint_name].axis)
