"""
End-effector pose tracking.

Computes the pose of each robot's effective end point (kinematic tip adjusted by
any mounted tool) and publishes a new PoseSnapshot only when the pose changed by
more than a small epsilon. Polling runs at a fixed cadence, decoupled from the
high-frequency joint update stream.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from ..errors import StaleRobotReference
from .chain import DEFAULT_TOOL_FRAME_NAMES, ChainAnalysis, analyze_chain
from .geometry import transform2quaternion, transform_point
from .model import RobotModel
from .tool_offset import ToolOffset, ToolOffsetStore

logger = logging.getLogger(__name__)

POSE_EPSILON = 1e-4
POSE_POLL_INTERVAL = 0.1  # 10 Hz


@dataclass(frozen=True, eq=False)
class PoseSnapshot:
    """Base-relative end-effector position and world orientation (x, y, z, w)."""

    position: np.ndarray
    orientation: np.ndarray
    timestamp: float

    def approx_equal(self, other: Optional["PoseSnapshot"], epsilon: float = POSE_EPSILON) -> bool:
        if other is None:
            return False
        # q and -q are the same orientation
        orientation_delta = min(
            np.max(np.abs(self.orientation - other.orientation)),
            np.max(np.abs(self.orientation + other.orientation)),
        )
        return bool(np.all(np.abs(self.position - other.position) <= epsilon) and orientation_delta <= epsilon)


PoseListener = Callable[[str, PoseSnapshot], None]


class _TrackedRobot:
    """Cache entry for one tracked robot."""

    def __init__(self, model: RobotModel):
        self.model = model
        self.analysis: Optional[ChainAnalysis] = None
        self.snapshot: Optional[PoseSnapshot] = None
        self.busy = False
        self.refresh_pending = False


class PoseTracker:
    """Owns the per-robot chain and pose caches and the pose-changed notifications."""

    def __init__(self, tool_store: ToolOffsetStore, clock: Callable[[], float] = time.monotonic,
                 poll_interval: float = POSE_POLL_INTERVAL, epsilon: float = POSE_EPSILON,
                 tool_frame_names: Sequence[str] = DEFAULT_TOOL_FRAME_NAMES):
        self.tool_store = tool_store
        self.clock = clock
        self.poll_interval = poll_interval
        self.epsilon = epsilon
        self.tool_frame_names = tuple(tool_frame_names)

        self._robots: Dict[str, _TrackedRobot] = {}
        self._listeners: List[PoseListener] = []
        self._unsubscribe_tools = tool_store.subscribe(self._on_tool_changed)
        self.is_running = False

    # --- Robot table ---

    def track(self, robot_id: str, model: RobotModel):
        """Start tracking a robot. Tracking an id again counts as a reload."""
        if robot_id in self._robots:
            logger.info(f"Robot '{robot_id}' reloaded; chain and pose caches invalidated")
        self._robots[robot_id] = _TrackedRobot(model)

    def untrack(self, robot_id: str):
        self._robots.pop(robot_id, None)

    def is_tracked(self, robot_id: str) -> bool:
        return robot_id in self._robots

    @property
    def robot_ids(self) -> List[str]:
        return list(self._robots)

    def model(self, robot_id: str) -> RobotModel:
        return self._entry(robot_id).model

    def invalidate(self, robot_id: str):
        """Drop the cached chain analysis so the next computation resolves it again."""
        self._entry(robot_id).analysis = None

    def _entry(self, robot_id: str) -> _TrackedRobot:
        entry = self._robots.get(robot_id)
        if entry is None:
            raise StaleRobotReference(robot_id)
        return entry

    # --- Pose computation ---

    def chain(self, robot_id: str) -> Optional[ChainAnalysis]:
        entry = self._entry(robot_id)
        if entry.analysis is None:
            entry.analysis = analyze_chain(entry.model, self.tool_frame_names)
        return entry.analysis

    def effective_tip(self, robot_id: str) -> Optional[np.ndarray]:
        """World-space position of the end point, including the mounted tool."""
        analysis = self.chain(robot_id)
        if analysis is None:
            return None
        model = self._entry(robot_id).model
        model.update_world_transforms()
        ee_world = model.link_world_transform(analysis.end_effector_link)
        return self._tip_point(model, analysis.end_effector_link, ee_world, self.tool_store.get(robot_id))

    def base_position(self, robot_id: str) -> Optional[np.ndarray]:
        analysis = self.chain(robot_id)
        if analysis is None:
            return None
        return self._entry(robot_id).model.link_world_transform(analysis.base_link)[:3, 3]

    def compute_pose(self, robot_id: str) -> Optional[PoseSnapshot]:
        """
        Compute the current pose of a robot's effective end point.

        Position is the end point minus the base link position, in world axes.
        Orientation is the end-effector link's world quaternion (x, y, z, w).
        Returns None when the robot has no usable chain.
        """
        analysis = self.chain(robot_id)
        if analysis is None:
            return None
        model = self._entry(robot_id).model
        model.update_world_transforms()
        base_world = model.link_world_transform(analysis.base_link)
        ee_world = model.link_world_transform(analysis.end_effector_link)
        tip = self._tip_point(model, analysis.end_effector_link, ee_world, self.tool_store.get(robot_id))
        return PoseSnapshot(
            position=tip - base_world[:3, 3],
            orientation=transform2quaternion(ee_world),
            timestamp=self.clock(),
        )

    @staticmethod
    def _tip_point(model: RobotModel, link_name: str, link_world: np.ndarray,
                   tool: Optional[ToolOffset]) -> np.ndarray:
        link = model.links[link_name]
        if link.visual is not None:
            tip = transform_point(link_world, link.visual.bounding_center())
        else:
            tip = link_world[:3, 3].copy()
        if tool is not None:
            tip = tip + link_world[:3, :3] @ tool.offset
        return tip

    def latest(self, robot_id: str) -> Optional[PoseSnapshot]:
        """Last published snapshot, without recomputing."""
        return self._entry(robot_id).snapshot

    # --- Change detection ---

    def subscribe(self, listener: PoseListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def refresh(self, robot_id: str, force: bool = False) -> bool:
        """
        Recompute one robot's pose and notify if it changed.

        A refresh requested while the robot is already being recomputed is
        deferred and runs as soon as the current one finishes.
        """
        entry = self._entry(robot_id)
        if entry.busy:
            entry.refresh_pending = True
            return False
        entry.busy = True
        changed = False
        try:
            while True:
                entry.refresh_pending = False
                changed = self._recompute(robot_id, entry, force) or changed
                if not entry.refresh_pending or robot_id not in self._robots:
                    break
                force = True
        finally:
            entry.busy = False
        return changed

    def poll(self) -> List[str]:
        """Recompute every tracked robot once; returns the ids whose pose changed."""
        changed = []
        for robot_id in list(self._robots):
            entry = self._robots.get(robot_id)
            if entry is None:
                continue
            if entry.busy:
                logger.debug(f"Robot '{robot_id}' busy, pose poll deferred")
                continue
            if self.refresh(robot_id):
                changed.append(robot_id)
        return changed

    def _recompute(self, robot_id: str, entry: _TrackedRobot, force: bool) -> bool:
        snapshot = self.compute_pose(robot_id)
        if snapshot is None:
            return False
        if not force and snapshot.approx_equal(entry.snapshot, self.epsilon):
            return False
        entry.snapshot = snapshot
        self._notify(robot_id, snapshot)
        return True

    def _notify(self, robot_id: str, snapshot: PoseSnapshot):
        for listener in list(self._listeners):
            try:
                listener(robot_id, snapshot)
            except Exception as e:
                logger.error(f"Error in pose listener for robot '{robot_id}': {e}")

    def _on_tool_changed(self, robot_id: str, tool: Optional[ToolOffset]):
        entry = self._robots.get(robot_id)
        if entry is None:
            return
        entry.analysis = None
        self.refresh(robot_id, force=True)

    # --- Background cadence ---

    async def run(self):
        """Poll all tracked robots at the configured interval until stopped."""
        self.is_running = True
        logger.info(f"Pose tracker started ({1.0 / self.poll_interval:.0f} Hz)")
        while self.is_running:
            try:
                self.poll()
            except Exception as e:
                logger.error(f"Error in pose polling: {e}")
            await asyncio.sleep(self.poll_interval)
        logger.info("Pose tracker stopped")

    def stop(self):
        self.is_running = False

    def close(self):
        self._unsubscribe_tools()
