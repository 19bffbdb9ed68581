"""
Kinematics engine: owns the robot table and runs the cooperative tick loop.
Move requests (joint targets or Cartesian positions) are planned into
synchronized profiles and played back by the animation driver.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .config import EngineConfig
from .core.animation import Animation, AnimationDriver, AnimationOutcome, CompleteCallback, TickCallback
from .core.chain import ChainAnalysis
from .core.clock import MonotonicClock
from .core.description import robot_from_dict
from .core.kinematics import IKResult, IKSolver
from .core.model import RobotModel
from .core.motion_profile import MotionLimits, MotionProfiler, ProfileSet, ProfileType
from .core.pose_tracker import PoseListener, PoseSnapshot, PoseTracker
from .core.tool_offset import ToolOffset, ToolOffsetStore
from .errors import StaleRobotReference, StructuralError

logger = logging.getLogger(__name__)


class EngineStatus(Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    STRUCTURAL_ERROR = "structural_error"
    BUSY = "busy"
    UNREACHABLE = "unreachable"
    INVALID_ARGUMENT = "invalid_argument"


@dataclass
class EngineResult:
    status: EngineStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is EngineStatus.OK


@dataclass
class ChainResult(EngineResult):
    analysis: Optional[ChainAnalysis] = None


@dataclass
class PoseResult(EngineResult):
    pose: Optional[PoseSnapshot] = None


@dataclass
class ToolResult(EngineResult):
    tool: Optional[ToolOffset] = None


@dataclass
class SolveResult(EngineResult):
    """IK outcome; UNREACHABLE still carries the best solution found."""

    ik: Optional[IKResult] = None

    @property
    def joint_values(self) -> Dict[str, float]:
        return self.ik.joint_values if self.ik is not None else {}

    @property
    def converged(self) -> bool:
        return self.ik is not None and self.ik.converged

    @property
    def final_error(self) -> Optional[float]:
        return self.ik.final_error if self.ik is not None else None


@dataclass
class MoveResult(EngineResult):
    profile_set: Optional[ProfileSet] = None
    animation: Optional[Animation] = None
    ik: Optional[IKResult] = None


def _not_found(robot_id: str) -> str:
    return f"Robot '{robot_id}' is not loaded"


class KinematicsEngine:
    """Facade over chain analysis, tool offsets, pose tracking, IK and motion playback."""

    def __init__(self, config: Optional[EngineConfig] = None, clock: Optional[Callable[[], float]] = None):
        self.config = config or EngineConfig()
        self.clock = clock or MonotonicClock()

        # Components
        self.tools = ToolOffsetStore(clock=time.time)
        self.tracker = PoseTracker(
            self.tools,
            clock=self.clock,
            poll_interval=self.config.pose.poll_interval,
            epsilon=self.config.pose.epsilon,
            tool_frame_names=self.config.pose.tool_frame_names,
        )
        self.ik_solver = IKSolver(self.tracker, self.config.ik)
        motion = self.config.motion
        self.profiler = MotionProfiler(
            profile_type=ProfileType.parse(motion.profile_type),
            default_limits=MotionLimits(
                velocity=motion.default_velocity,
                acceleration=motion.default_acceleration,
                jerk=motion.default_jerk,
            ),
        )
        self.animations = AnimationDriver(
            clock=self.clock,
            position_tolerance=self.config.animation.position_tolerance,
            max_duration=self.config.animation.max_duration,
        )

        # Timing
        self._last_poll: Optional[float] = None
        self.last_log_time = 0.0
        self.log_interval = 1.0

        self.is_running = False

    # --- Robot table ---

    def load_robot(self, robot_id: str, model: Union[RobotModel, Mapping[str, Any]]) -> EngineResult:
        """Load (or reload) a robot from a RobotModel or a description dict."""
        if not isinstance(model, RobotModel):
            try:
                model = robot_from_dict(dict(model))
            except StructuralError as e:
                logger.error(f"Robot '{robot_id}' failed to load: {e}")
                return EngineResult(EngineStatus.STRUCTURAL_ERROR, str(e))

        if self.tracker.is_tracked(robot_id):
            self.animations.cancel(robot_id)
        self.tracker.track(robot_id, model)
        logger.info(f"Robot '{robot_id}' loaded ({model!r})")
        return EngineResult(EngineStatus.OK)

    def unload_robot(self, robot_id: str) -> EngineResult:
        if not self.tracker.is_tracked(robot_id):
            return EngineResult(EngineStatus.NOT_FOUND, _not_found(robot_id))
        self.animations.cancel(robot_id)
        self.tools.discard(robot_id)
        self.tracker.untrack(robot_id)
        logger.info(f"Robot '{robot_id}' unloaded")
        return EngineResult(EngineStatus.OK)

    @property
    def robot_ids(self) -> List[str]:
        return self.tracker.robot_ids

    def model(self, robot_id: str) -> Optional[RobotModel]:
        if not self.tracker.is_tracked(robot_id):
            return None
        return self.tracker.model(robot_id)

    # --- Chain, tools and pose ---

    def analyze_chain(self, robot_id: str) -> ChainResult:
        try:
            analysis = self.tracker.chain(robot_id)
        except StaleRobotReference as e:
            return ChainResult(EngineStatus.NOT_FOUND, str(e))
        if analysis is None:
            return ChainResult(EngineStatus.STRUCTURAL_ERROR, f"Robot '{robot_id}' has no resolvable chain")
        return ChainResult(EngineStatus.OK, analysis=analysis)

    def mount_tool(self, robot_id: str, offset: Sequence[float], name: str = "tool", **display: Any) -> ToolResult:
        if not self.tracker.is_tracked(robot_id):
            return ToolResult(EngineStatus.NOT_FOUND, _not_found(robot_id))
        try:
            tool = self.tools.mount(robot_id, offset, name=name, **display)
        except (TypeError, ValueError) as e:
            logger.error(f"Robot '{robot_id}': invalid tool: {e}")
            return ToolResult(EngineStatus.INVALID_ARGUMENT, str(e))
        return ToolResult(EngineStatus.OK, tool=tool)

    def update_tool(self, robot_id: str, offset: Optional[Sequence[float]] = None, **display: Any) -> ToolResult:
        if not self.tracker.is_tracked(robot_id):
            return ToolResult(EngineStatus.NOT_FOUND, _not_found(robot_id))
        try:
            tool = self.tools.update(robot_id, offset, **display)
        except (TypeError, ValueError) as e:
            logger.error(f"Robot '{robot_id}': invalid tool update: {e}")
            return ToolResult(EngineStatus.INVALID_ARGUMENT, str(e))
        if tool is None:
            return ToolResult(EngineStatus.NOT_FOUND, f"Robot '{robot_id}' has no mounted tool")
        return ToolResult(EngineStatus.OK, tool=tool)

    def unmount_tool(self, robot_id: str) -> ToolResult:
        if not self.tracker.is_tracked(robot_id):
            return ToolResult(EngineStatus.NOT_FOUND, _not_found(robot_id))
        return ToolResult(EngineStatus.OK, tool=self.tools.unmount(robot_id))

    def compute_pose(self, robot_id: str) -> PoseResult:
        try:
            pose = self.tracker.compute_pose(robot_id)
        except StaleRobotReference as e:
            return PoseResult(EngineStatus.NOT_FOUND, str(e))
        if pose is None:
            return PoseResult(EngineStatus.STRUCTURAL_ERROR, f"Robot '{robot_id}' has no resolvable chain")
        return PoseResult(EngineStatus.OK, pose=pose)

    def subscribe_pose(self, listener: PoseListener) -> Callable[[], None]:
        """Register for pose-changed notifications; returns an unsubscribe callable."""
        return self.tracker.subscribe(listener)

    # --- Inverse kinematics ---

    def solve_ik(self, robot_id: str, target_position: Sequence[float]) -> SolveResult:
        """Solve IK for a base-relative target. The robot's joints are left untouched."""
        try:
            result = self.ik_solver.solve(robot_id, target_position)
        except StaleRobotReference as e:
            return SolveResult(EngineStatus.NOT_FOUND, str(e))
        except (TypeError, ValueError) as e:
            return SolveResult(EngineStatus.INVALID_ARGUMENT, f"Invalid target position: {e}")
        if result is None:
            return SolveResult(EngineStatus.STRUCTURAL_ERROR, f"Robot '{robot_id}' has no resolvable chain")
        if not result.reachable:
            return SolveResult(EngineStatus.UNREACHABLE, "Target beyond maximum reach", ik=result)
        return SolveResult(EngineStatus.OK, ik=result)

    # --- Motion ---

    def plan_motion(self, start_values: Mapping[str, float], target_values: Mapping[str, float],
                    joint_limits: Optional[Mapping[str, MotionLimits]] = None,
                    profile_type=None) -> ProfileSet:
        return self.profiler.compute_synchronized_profiles(start_values, target_values, joint_limits, profile_type)

    def joint_limits_for(self, robot_id: str) -> Optional[Dict[str, MotionLimits]]:
        model = self.model(robot_id)
        if model is None:
            logger.warning(_not_found(robot_id))
            return None
        return self.profiler.limits_for(model)

    def start_animation(self, robot_id: str, profile_set: ProfileSet,
                        on_tick: Optional[TickCallback] = None,
                        on_complete: Optional[CompleteCallback] = None) -> MoveResult:
        """Play a profile set on a robot. A running animation on that robot is cancelled first."""
        model = self.model(robot_id)
        if model is None:
            return MoveResult(EngineStatus.NOT_FOUND, _not_found(robot_id))
        unknown = [name for name in profile_set.profiles
                   if name not in model.joints or not model.joints[name].is_movable]
        if unknown:
            return MoveResult(
                EngineStatus.NOT_FOUND,
                f"Robot '{robot_id}' has no movable joints named {unknown}",
                profile_set=profile_set,
            )
        animation = self.animations.start(robot_id, model, profile_set, on_tick, on_complete)
        return MoveResult(EngineStatus.OK, profile_set=profile_set, animation=animation)

    def cancel_animation(self, robot_id: str) -> EngineResult:
        """Stop a robot's running animation where it is. Idempotent."""
        if not self.tracker.is_tracked(robot_id):
            return EngineResult(EngineStatus.NOT_FOUND, _not_found(robot_id))
        if not self.animations.cancel(robot_id):
            return EngineResult(EngineStatus.OK, "No animation running")
        return EngineResult(EngineStatus.OK)

    def is_animating(self, robot_id: str) -> bool:
        return self.animations.is_animating(robot_id)

    def set_joint_values(self, robot_id: str, values: Mapping[str, float],
                         enforce_limits: bool = True) -> EngineResult:
        """Write joint values directly. Rejected while the robot is animating."""
        model = self.model(robot_id)
        if model is None:
            return EngineResult(EngineStatus.NOT_FOUND, _not_found(robot_id))
        if self.animations.is_animating(robot_id):
            return EngineResult(EngineStatus.BUSY, f"Robot '{robot_id}' is animating")
        unknown = [name for name in values if name not in model.joints]
        if unknown:
            return EngineResult(EngineStatus.NOT_FOUND, f"Robot '{robot_id}' has no joints named {unknown}")
        model.set_joint_values(dict(values), enforce_limits=enforce_limits)
        model.update_world_transforms()
        return EngineResult(EngineStatus.OK)

    def move_joints(self, robot_id: str, target_values: Mapping[str, float], profile_type=None,
                    on_tick: Optional[TickCallback] = None,
                    on_complete: Optional[CompleteCallback] = None) -> MoveResult:
        """Plan a synchronized move from the current joint values and start playing it."""
        model = self.model(robot_id)
        if model is None:
            return MoveResult(EngineStatus.NOT_FOUND, _not_found(robot_id))
        unknown = [name for name in target_values
                   if name not in model.joints or not model.joints[name].is_movable]
        if unknown:
            return MoveResult(EngineStatus.NOT_FOUND, f"Robot '{robot_id}' has no movable joints named {unknown}")

        try:
            # Targets outside the limits would never be reached by the clamped writes
            targets = {name: model.joints[name].clamp(float(value)) for name, value in target_values.items()}
            profile_set = self.plan_motion(model.get_joint_values(), targets, self.profiler.limits_for(model),
                                           profile_type)
        except (TypeError, ValueError) as e:
            logger.error(f"Robot '{robot_id}': move rejected: {e}")
            return MoveResult(EngineStatus.INVALID_ARGUMENT, str(e))
        logger.info(f"Robot '{robot_id}': moving {len(targets)} joints over {profile_set.total_time:.3f}s")
        return self.start_animation(robot_id, profile_set, on_tick, on_complete)

    def move_to_position(self, robot_id: str, target_position: Sequence[float], profile_type=None,
                         on_tick: Optional[TickCallback] = None,
                         on_complete: Optional[CompleteCallback] = None) -> MoveResult:
        """
        Move the end point to a base-relative position.

        Solves IK, then animates to the best solution found. An unreachable
        target still moves the robot as close as it gets and reports UNREACHABLE.
        """
        solved = self.solve_ik(robot_id, target_position)
        if solved.ik is None:
            return MoveResult(solved.status, solved.message)
        move = self.move_joints(robot_id, solved.ik.joint_values, profile_type, on_tick, on_complete)
        move.ik = solved.ik
        if move.ok and solved.status is EngineStatus.UNREACHABLE:
            move.status = EngineStatus.UNREACHABLE
            move.message = solved.message
        return move

    # --- Tick loop ---

    def tick(self) -> List[AnimationOutcome]:
        """
        Advance the engine one step.

        Animations run first so the pose poll sees this tick's joint values.
        Pose polling only happens once its interval has elapsed.
        """
        outcomes = self.animations.tick()
        now = self.clock()
        if self._last_poll is None or now - self._last_poll >= self.tracker.poll_interval:
            self._last_poll = now
            self.tracker.poll()
        return outcomes

    async def run(self):
        """Run the tick loop until stop() is called."""
        self.is_running = True
        logger.info(f"Kinematics engine started ({1.0 / self.config.tick_interval:.0f} Hz)")

        while self.is_running:
            try:
                self.tick()
                self._periodic_logging()
            except Exception as e:
                logger.error(f"Error in engine tick: {e}")
            await asyncio.sleep(self.config.tick_interval)

        logger.info("Kinematics engine stopped")

    def stop(self):
        """Stop the tick loop and cancel any running animations."""
        self.is_running = False
        self.animations.cancel_all()

    def close(self):
        self.stop()
        self.tracker.close()

    def _periodic_logging(self):
        current_time = time.time()
        if current_time - self.last_log_time >= self.log_interval:
            self.last_log_time = current_time
            if self.animations.running_count:
                logger.debug(f"Active animations: {self.animations.running_count}")

    @property
    def status(self) -> Dict:
        """Get current engine status."""
        return {
            "running": self.is_running,
            "robots": self.robot_ids,
            "animating": [robot_id for robot_id in self.robot_ids if self.animations.is_animating(robot_id)],
            "tools": {robot_id: tool.name for robot_id in self.robot_ids
                      for tool in [self.tools.get(robot_id)] if tool is not None},
        }
