"""
Animation driver: steps planned moves forward on an injected clock.

Each robot has at most one running animation. Starting a new one cancels the
previous one (last request wins). Ticks apply interpolated joint values to the
robot model and report progress to the caller's callbacks.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from .model import RobotModel
from .motion_profile import ProfileSet, get_joint_values, get_joint_velocities, get_progress

logger = logging.getLogger(__name__)


class AnimationState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class AnimationFrame:
    """Per-tick report of a running animation."""

    robot_id: str
    elapsed: float
    progress: float
    values: Dict[str, float]
    velocities: Dict[str, float]


@dataclass
class AnimationOutcome:
    robot_id: str
    success: bool
    state: AnimationState
    reason: str
    elapsed: float


TickCallback = Callable[[AnimationFrame], None]
CompleteCallback = Callable[[AnimationOutcome], None]


class Animation:
    """A single move being played back on one robot."""

    def __init__(self, robot_id: str, model: RobotModel, profile_set: ProfileSet, started_at: float,
                 on_tick: Optional[TickCallback] = None, on_complete: Optional[CompleteCallback] = None):
        self.robot_id = robot_id
        self.model = model
        self.profile_set = profile_set
        self.started_at = started_at
        self.on_tick = on_tick
        self.on_complete = on_complete
        self.state = AnimationState.RUNNING
        self.elapsed = 0.0
        self.progress = 0.0
        self.outcome: Optional[AnimationOutcome] = None

    @property
    def is_running(self) -> bool:
        return self.state is AnimationState.RUNNING


class AnimationDriver:
    """Owns the table of running animations, one per robot."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, position_tolerance: float = 1e-6,
                 max_duration: float = 30.0):
        self.clock = clock
        self.position_tolerance = position_tolerance
        self.max_duration = max_duration
        self._active: Dict[str, Animation] = {}

    def start(self, robot_id: str, model: RobotModel, profile_set: ProfileSet,
              on_tick: Optional[TickCallback] = None,
              on_complete: Optional[CompleteCallback] = None) -> Animation:
        """Start playing a profile set on a robot, cancelling whatever was running there."""
        if robot_id in self._active:
            logger.info(f"Robot '{robot_id}': new move requested, cancelling running animation")
            self.cancel(robot_id)
        animation = Animation(robot_id, model, profile_set, self.clock(), on_tick, on_complete)
        self._active[robot_id] = animation
        logger.debug(f"Robot '{robot_id}': animation started ({profile_set.total_time:.3f}s)")
        return animation

    def cancel(self, robot_id: str) -> bool:
        """
        Cancel the running animation of a robot.

        The joints stay at the last applied values. Cancelling a robot with no
        running animation is a no-op and returns False.
        """
        animation = self._active.pop(robot_id, None)
        if animation is None:
            return False
        self._finish(animation, AnimationState.CANCELLED, success=False, reason="cancelled")
        return True

    def cancel_all(self):
        for robot_id in list(self._active):
            self.cancel(robot_id)

    def state(self, robot_id: str) -> AnimationState:
        return AnimationState.RUNNING if robot_id in self._active else AnimationState.IDLE

    def is_animating(self, robot_id: str) -> bool:
        return robot_id in self._active

    def active(self, robot_id: str) -> Optional[Animation]:
        return self._active.get(robot_id)

    @property
    def running_count(self) -> int:
        return len(self._active)

    def tick(self) -> List[AnimationOutcome]:
        """Advance every running animation to the current clock time."""
        finished = []
        now = self.clock()
        for robot_id, animation in list(self._active.items()):
            if self._active.get(robot_id) is not animation:
                continue
            outcome = self._step(animation, now)
            if outcome is not None:
                finished.append(outcome)
        return finished

    def _step(self, animation: Animation, now: float) -> Optional[AnimationOutcome]:
        profile_set = animation.profile_set
        elapsed = max(0.0, now - animation.started_at)
        values = get_joint_values(elapsed, profile_set)
        animation.model.set_joint_values(values)
        animation.elapsed = elapsed
        animation.progress = get_progress(elapsed, profile_set)

        if animation.on_tick is not None:
            frame = AnimationFrame(
                robot_id=animation.robot_id,
                elapsed=elapsed,
                progress=animation.progress,
                values=values,
                velocities=get_joint_velocities(elapsed, profile_set),
            )
            try:
                animation.on_tick(frame)
            except Exception as e:
                logger.error(f"Error in animation tick callback for robot '{animation.robot_id}': {e}")

        # The tick callback may have cancelled or replaced this animation
        if not animation.is_running:
            return None

        if animation.progress >= 1.0:
            reason = "completed"
        elif self._position_error(animation) <= self.position_tolerance:
            reason = "within_tolerance"
        elif elapsed >= self.max_duration:
            self._active.pop(animation.robot_id, None)
            logger.warning(f"Robot '{animation.robot_id}': animation exceeded {self.max_duration:.1f}s, stopped")
            return self._finish(animation, AnimationState.COMPLETED, success=False, reason="timeout")
        else:
            return None

        # Final correction removes residual interpolation error
        animation.model.set_joint_values(profile_set.target_values)
        self._active.pop(animation.robot_id, None)
        return self._finish(animation, AnimationState.COMPLETED, success=True, reason=reason)

    @staticmethod
    def _position_error(animation: Animation) -> float:
        joints = animation.model.joints
        errors = [
            abs(joints[name].value - target)
            for name, target in animation.profile_set.target_values.items()
            if name in joints
        ]
        return max(errors, default=0.0)

    def _finish(self, animation: Animation, state: AnimationState, success: bool, reason: str) -> AnimationOutcome:
        animation.state = state
        outcome = AnimationOutcome(
            robot_id=animation.robot_id,
            success=success,
            state=state,
            reason=reason,
            elapsed=animation.elapsed,
        )
        animation.outcome = outcome
        logger.debug(f"Robot '{animation.robot_id}': animation {state.value} ({reason})")
        if animation.on_complete is not None:
            try:
                animation.on_complete(outcome)
            except Exception as e:
                logger.error(f"Error in animation completion callback for robot '{animation.robot_id}': {e}")
        return outcome
