"""
Motion profiles for smooth multi-joint moves.

Provides trapezoidal and jerk-limited S-curve velocity profiles. Each joint gets
its own minimum-time profile; the slowest joint sets the move duration and every
other joint is time-stretched to finish at exactly the same instant.

A profile is a list of constant-jerk phases, so both profile shapes are
evaluated by the same code and stretching a profile is a per-phase rescale.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from .model import RobotModel

logger = logging.getLogger(__name__)

# Joints travelling less than this are held in place
STATIC_TRAVEL = 1e-9


class ProfileType(Enum):
    TRAPEZOIDAL = "trapezoidal"
    S_CURVE = "s-curve"

    @classmethod
    def parse(cls, value) -> "ProfileType":
        if isinstance(value, ProfileType):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        if normalized in ("scurve", "s-curve"):
            return cls.S_CURVE
        if normalized in ("trapezoid", "trapezoidal"):
            return cls.TRAPEZOIDAL
        raise ValueError(f"Unknown profile type: {value}")


@dataclass(frozen=True)
class MotionLimits:
    """Per-joint velocity, acceleration and jerk limits."""

    velocity: float = 1.0
    acceleration: float = 2.0
    jerk: float = 10.0


@dataclass(frozen=True)
class Phase:
    """Constant-jerk segment of a profile, in travelled distance along the move."""

    name: str
    duration: float
    position: float
    velocity: float
    acceleration: float
    jerk: float = 0.0

    def sample(self, tau: float) -> Tuple[float, float, float]:
        """Distance, velocity and acceleration `tau` seconds into the phase."""
        position = (self.position + self.velocity * tau + 0.5 * self.acceleration * tau ** 2
                    + self.jerk * tau ** 3 / 6.0)
        velocity = self.velocity + self.acceleration * tau + 0.5 * self.jerk * tau ** 2
        acceleration = self.acceleration + self.jerk * tau
        return position, velocity, acceleration

    def end(self) -> Tuple[float, float, float]:
        return self.sample(self.duration)

    def stretched(self, factor: float) -> "Phase":
        """Same path covered `factor` times slower."""
        return replace(
            self,
            duration=self.duration * factor,
            velocity=self.velocity / factor,
            acceleration=self.acceleration / factor ** 2,
            jerk=self.jerk / factor ** 3,
        )


def _chain_phases(specs: Iterable[Tuple[str, float, float, float]]) -> Tuple[Phase, ...]:
    phases = []
    position, velocity = 0.0, 0.0
    for name, duration, acceleration, jerk in specs:
        if duration <= 0.0:
            continue
        phase = Phase(name, duration, position, velocity, acceleration, jerk)
        position, velocity, _ = phase.end()
        phases.append(phase)
    return tuple(phases)


def trapezoidal_phases(distance: float, limits: MotionLimits) -> Tuple[Phase, ...]:
    """
    Minimum-time trapezoidal profile over an absolute distance.

    Falls back to a triangular profile (no cruise) when the distance is too
    short to reach the velocity limit.
    """
    d = abs(distance)
    v_max = limits.velocity
    a_max = limits.acceleration

    if v_max * v_max / a_max <= d:
        t_acc = v_max / a_max
        t_cruise = (d - v_max * v_max / a_max) / v_max
    else:
        v_peak = math.sqrt(a_max * d)
        t_acc = v_peak / a_max
        t_cruise = 0.0

    return _chain_phases([
        ("accelerate", t_acc, a_max, 0.0),
        ("cruise", t_cruise, 0.0, 0.0),
        ("decelerate", t_acc, -a_max, 0.0),
    ])


def s_curve_phases(distance: float, limits: MotionLimits) -> Tuple[Phase, ...]:
    """
    Minimum-time seven-segment S-curve over an absolute distance.

    Segments: jerk up, constant acceleration, jerk down, cruise, and the mirrored
    deceleration. Short moves drop the cruise and, if needed, never reach the
    acceleration limit.
    """
    d = abs(distance)
    v_max = limits.velocity
    a_max = limits.acceleration
    j_max = limits.jerk

    # Ramp from rest up to v_max
    if v_max * j_max >= a_max * a_max:
        a_peak = a_max
        t_j = a_max / j_max
        t_a = v_max / a_max - t_j
    else:
        a_peak = math.sqrt(v_max * j_max)
        t_j = a_peak / j_max
        t_a = 0.0
    d_ramp = v_max * (2.0 * t_j + t_a) / 2.0

    if 2.0 * d_ramp <= d:
        t_v = (d - 2.0 * d_ramp) / v_max
    else:
        t_v = 0.0
        # Peak velocity below v_max: solve v^2/a + v*a/j = d for the full-acceleration case
        jerk_knee = a_max * a_max / j_max
        v_peak = (-jerk_knee + math.sqrt(jerk_knee ** 2 + 4.0 * a_max * d)) / 2.0
        if v_peak >= jerk_knee:
            a_peak = a_max
            t_j = a_max / j_max
            t_a = v_peak / a_max - t_j
        else:
            v_peak = (d * d * j_max / 4.0) ** (1.0 / 3.0)
            a_peak = math.sqrt(v_peak * j_max)
            t_j = a_peak / j_max
            t_a = 0.0

    return _chain_phases([
        ("jerk_up", t_j, 0.0, j_max),
        ("accelerate", t_a, a_peak, 0.0),
        ("jerk_down", t_j, a_peak, -j_max),
        ("cruise", t_v, 0.0, 0.0),
        ("jerk_down_decel", t_j, 0.0, -j_max),
        ("decelerate", t_a, -a_peak, 0.0),
        ("jerk_up_decel", t_j, -a_peak, j_max),
    ])


@dataclass(frozen=True)
class JointProfile:
    """Time-parameterized move of one joint from start to target."""

    joint: str
    start: float
    target: float
    phases: Tuple[Phase, ...]
    minimum_time: float
    duration: float
    limits: MotionLimits

    @property
    def distance(self) -> float:
        return self.target - self.start

    @property
    def direction(self) -> float:
        return math.copysign(1.0, self.distance) if self.distance else 0.0

    @property
    def is_static(self) -> bool:
        return abs(self.distance) < STATIC_TRAVEL

    def _sample(self, t: float) -> Tuple[float, float, float]:
        elapsed = t
        for phase in self.phases:
            if elapsed <= phase.duration:
                return phase.sample(elapsed)
            elapsed -= phase.duration
        return abs(self.distance), 0.0, 0.0

    def position(self, t: float) -> float:
        if t <= 0.0:
            return self.start
        if t >= self.duration or self.is_static:
            return self.target
        travelled = min(self._sample(t)[0], abs(self.distance))
        return self.start + self.direction * travelled

    def velocity(self, t: float) -> float:
        if t <= 0.0 or t >= self.duration or self.is_static:
            return 0.0
        return self.direction * self._sample(t)[1]

    def acceleration(self, t: float) -> float:
        if t < 0.0 or t > self.duration or self.is_static:
            return 0.0
        return self.direction * self._sample(t)[2]

    def synchronized(self, duration: float) -> "JointProfile":
        """This profile stretched to last exactly `duration` seconds."""
        if self.is_static or self.minimum_time <= 0.0:
            return replace(self, duration=duration)
        factor = duration / self.minimum_time
        if factor < 1.0:
            raise ValueError(
                f"Joint '{self.joint}' cannot finish in {duration:.4f}s (minimum {self.minimum_time:.4f}s)"
            )
        return replace(self, phases=tuple(phase.stretched(factor) for phase in self.phases), duration=duration)


@dataclass(frozen=True)
class ProfileSet:
    """Synchronized profiles of one move; every joint finishes at total_time."""

    profiles: Dict[str, JointProfile]
    total_time: float
    profile_type: ProfileType = ProfileType.TRAPEZOIDAL

    @property
    def start_values(self) -> Dict[str, float]:
        return {name: profile.start for name, profile in self.profiles.items()}

    @property
    def target_values(self) -> Dict[str, float]:
        return {name: profile.target for name, profile in self.profiles.items()}


def _sanitize_limits(joint: str, limits: Optional[MotionLimits], defaults: MotionLimits) -> MotionLimits:
    if limits is None:
        return defaults
    velocity = limits.velocity if limits.velocity and limits.velocity > 0 else defaults.velocity
    acceleration = limits.acceleration if limits.acceleration and limits.acceleration > 0 else defaults.acceleration
    jerk = limits.jerk if limits.jerk and limits.jerk > 0 else defaults.jerk
    if (velocity, acceleration, jerk) != (limits.velocity, limits.acceleration, limits.jerk):
        logger.warning(f"Joint '{joint}': non-positive motion limits replaced by defaults")
    return MotionLimits(velocity=velocity, acceleration=acceleration, jerk=jerk)


def compute_profile(joint: str, start: float, target: float, limits: MotionLimits,
                    profile_type: ProfileType = ProfileType.TRAPEZOIDAL) -> JointProfile:
    """Minimum-time profile of a single joint under its own limits."""
    distance = target - start
    if abs(distance) < STATIC_TRAVEL:
        phases: Tuple[Phase, ...] = ()
    elif profile_type is ProfileType.S_CURVE:
        phases = s_curve_phases(distance, limits)
    else:
        phases = trapezoidal_phases(distance, limits)
    minimum_time = sum(phase.duration for phase in phases)
    return JointProfile(
        joint=joint,
        start=start,
        target=target,
        phases=phases,
        minimum_time=minimum_time,
        duration=minimum_time,
        limits=limits,
    )


def compute_synchronized_profiles(start_values: Mapping[str, float], target_values: Mapping[str, float],
                                  joint_limits: Optional[Mapping[str, MotionLimits]] = None,
                                  profile_type=ProfileType.TRAPEZOIDAL,
                                  default_limits: Optional[MotionLimits] = None) -> ProfileSet:
    """
    Plan a synchronized move of several joints.

    Args:
        start_values: Current joint values; joints missing here start at 0.0
        target_values: Goal joint values; only these joints are planned
        joint_limits: Per-joint limits; joints without an entry use default_limits
        profile_type: Trapezoidal or S-curve
        default_limits: Fallback limits (velocity 1.0, acceleration 2.0, jerk 10.0)

    Returns:
        ProfileSet whose profiles all last exactly total_time
    """
    profile_type = ProfileType.parse(profile_type)
    default_limits = default_limits or MotionLimits()
    joint_limits = joint_limits or {}

    minimum = {}
    for joint, target in target_values.items():
        start = float(start_values.get(joint, 0.0))
        limits = _sanitize_limits(joint, joint_limits.get(joint), default_limits)
        minimum[joint] = compute_profile(joint, start, float(target), limits, profile_type)

    total_time = max((profile.minimum_time for profile in minimum.values()), default=0.0)
    profiles = {joint: profile.synchronized(total_time) for joint, profile in minimum.items()}
    logger.debug(f"Planned {profile_type.value} move of {len(profiles)} joints over {total_time:.3f}s")
    return ProfileSet(profiles=profiles, total_time=total_time, profile_type=profile_type)


def get_joint_values(t: float, profile_set: ProfileSet) -> Dict[str, float]:
    """Joint values `t` seconds into the move. Pure function of t."""
    return {name: profile.position(t) for name, profile in profile_set.profiles.items()}


def get_joint_velocities(t: float, profile_set: ProfileSet) -> Dict[str, float]:
    return {name: profile.velocity(t) for name, profile in profile_set.profiles.items()}


def get_progress(t: float, profile_set: ProfileSet) -> float:
    """Fraction of the move completed at time t, in [0, 1]."""
    if profile_set.total_time <= 0.0:
        return 1.0
    return min(max(t / profile_set.total_time, 0.0), 1.0)


def limits_from_model(model: RobotModel, defaults: Optional[MotionLimits] = None) -> Dict[str, MotionLimits]:
    """Motion limits of every movable joint, filling gaps from the defaults."""
    defaults = defaults or MotionLimits()
    limits = {}
    for joint in model.movable_joints():
        limits[joint.name] = MotionLimits(
            velocity=joint.limit.velocity or defaults.velocity,
            acceleration=joint.limit.acceleration or defaults.acceleration,
            jerk=joint.limit.jerk or defaults.jerk,
        )
    return limits


@dataclass
class MotionProfiler:
    """Multi-axis profiler holding the default profile type and fallback limits."""

    profile_type: ProfileType = ProfileType.TRAPEZOIDAL
    default_limits: MotionLimits = field(default_factory=MotionLimits)

    def compute_synchronized_profiles(self, start_values: Mapping[str, float],
                                      target_values: Mapping[str, float],
                                      joint_limits: Optional[Mapping[str, MotionLimits]] = None,
                                      profile_type=None) -> ProfileSet:
        return compute_synchronized_profiles(
            start_values,
            target_values,
            joint_limits,
            profile_type=self.profile_type if profile_type is None else profile_type,
            default_limits=self.default_limits,
        )

    def limits_for(self, model: RobotModel) -> Dict[str, MotionLimits]:
        return limits_from_model(model, self.default_limits)

    get_joint_values = staticmethod(get_joint_values)
    get_joint_velocities = staticmethod(get_joint_velocities)
    get_progress = staticmethod(get_progress)
