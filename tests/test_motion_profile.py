import numpy as np
import pytest

from conftest import make_planar_arm
from kinemotion.core.motion_profile import (
    MotionLimits,
    MotionProfiler,
    ProfileType,
    compute_synchronized_profiles,
    get_joint_values,
    get_joint_velocities,
    get_progress,
    limits_from_model,
    s_curve_phases,
    trapezoidal_phases,
)


def sample_times(total_time, count=400):
    return np.linspace(0.0, total_time, count)


def test_triangular_profile_when_velocity_limit_not_reached():
    phases = trapezoidal_phases(1.0, MotionLimits(velocity=2.0, acceleration=4.0))
    assert [phase.name for phase in phases] == ["accelerate", "decelerate"]
    assert sum(phase.duration for phase in phases) == pytest.approx(1.0)
    assert phases[0].end()[1] == pytest.approx(2.0)


def test_trapezoid_with_cruise():
    phases = trapezoidal_phases(3.0, MotionLimits(velocity=1.0, acceleration=2.0))
    assert [phase.name for phase in phases] == ["accelerate", "cruise", "decelerate"]
    assert sum(phase.duration for phase in phases) == pytest.approx(3.5)


def test_single_joint_scenario():
    profile_set = compute_synchronized_profiles(
        {"j": 0.0}, {"j": 1.0}, {"j": MotionLimits(velocity=2.0, acceleration=4.0)}
    )
    assert profile_set.total_time == pytest.approx(1.0)
    assert get_joint_values(0.0, profile_set)["j"] == 0.0
    assert get_joint_values(0.5, profile_set)["j"] == pytest.approx(0.5)
    assert get_joint_values(profile_set.total_time, profile_set)["j"] == 1.0
    assert get_joint_velocities(0.5, profile_set)["j"] == pytest.approx(2.0)


def test_synchronized_joints_finish_together():
    limits = {
        "fast": MotionLimits(velocity=2.0, acceleration=4.0),
        "slow": MotionLimits(velocity=0.5, acceleration=1.0),
    }
    profile_set = compute_synchronized_profiles({"fast": 0.0, "slow": 0.0}, {"fast": 2.0, "slow": -1.0}, limits)
    slow_alone = compute_synchronized_profiles({"slow": 0.0}, {"slow": -1.0}, limits)
    assert profile_set.total_time == pytest.approx(max(2.0 / 2.0 + 2.0 / 4.0, slow_alone.total_time))
    for profile in profile_set.profiles.values():
        assert profile.duration == profile_set.total_time
    end = get_joint_values(profile_set.total_time, profile_set)
    assert end == {"fast": 2.0, "slow": -1.0}


@pytest.mark.parametrize("profile_type", [ProfileType.TRAPEZOIDAL, ProfileType.S_CURVE])
def test_limits_never_exceeded(profile_type):
    limits = {
        "a": MotionLimits(velocity=1.5, acceleration=3.0, jerk=20.0),
        "b": MotionLimits(velocity=0.4, acceleration=0.8, jerk=5.0),
        "c": MotionLimits(velocity=1.0, acceleration=1.0, jerk=2.0),
    }
    start = {"a": 0.0, "b": 1.0, "c": -0.5}
    target = {"a": 2.5, "b": 0.2, "c": 0.05}
    profile_set = compute_synchronized_profiles(start, target, limits, profile_type)
    for name, profile in profile_set.profiles.items():
        for t in sample_times(profile_set.total_time):
            assert abs(profile.velocity(t)) <= limits[name].velocity + 1e-9
            assert abs(profile.acceleration(t)) <= limits[name].acceleration + 1e-9


@pytest.mark.parametrize("distance", [0.001, 0.05, 0.3, 1.0, 4.0])
def test_s_curve_reaches_target(distance):
    limits = MotionLimits(velocity=1.0, acceleration=2.0, jerk=10.0)
    phases = s_curve_phases(distance, limits)
    position, velocity, acceleration = phases[-1].end()
    assert position == pytest.approx(distance, rel=1e-6, abs=1e-12)
    assert velocity == pytest.approx(0.0, abs=1e-9)
    assert acceleration == pytest.approx(0.0, abs=1e-9)


def test_positions_monotonic_toward_target():
    profile_set = compute_synchronized_profiles({"j": 0.5}, {"j": -0.7}, profile_type="s-curve")
    values = [get_joint_values(t, profile_set)["j"] for t in sample_times(profile_set.total_time)]
    assert all(later <= earlier + 1e-12 for earlier, later in zip(values, values[1:]))


def test_boundaries_and_progress():
    profile_set = compute_synchronized_profiles({"j": 0.2}, {"j": 0.9})
    assert get_joint_values(-1.0, profile_set) == {"j": 0.2}
    assert get_joint_values(profile_set.total_time + 5.0, profile_set) == {"j": 0.9}
    assert get_progress(-1.0, profile_set) == 0.0
    assert get_progress(profile_set.total_time / 2, profile_set) == pytest.approx(0.5)
    assert get_progress(profile_set.total_time * 2, profile_set) == 1.0


def test_zero_length_move():
    profile_set = compute_synchronized_profiles({"j": 0.3}, {"j": 0.3})
    assert profile_set.total_time == 0.0
    assert get_progress(0.0, profile_set) == 1.0
    assert get_joint_values(0.0, profile_set) == {"j": 0.3}
    assert profile_set.profiles["j"].is_static


def test_static_joint_holds_while_others_move():
    profile_set = compute_synchronized_profiles({"moving": 0.0, "still": 0.4}, {"moving": 1.0, "still": 0.4})
    for t in sample_times(profile_set.total_time, 20):
        assert get_joint_values(t, profile_set)["still"] == 0.4


def test_missing_start_defaults_to_zero():
    profile_set = compute_synchronized_profiles({}, {"j": 0.5})
    assert profile_set.profiles["j"].start == 0.0


def test_default_limits_used_without_joint_limits():
    profile_set = compute_synchronized_profiles({"j": 0.0}, {"j": 2.0})
    # v=1.0, a=2.0: 0.5 s ramps, 1.5 s cruise
    assert profile_set.total_time == pytest.approx(2.5)


def test_non_positive_limits_replaced_by_defaults():
    profile_set = compute_synchronized_profiles({"j": 0.0}, {"j": 2.0}, {"j": MotionLimits(0.0, -1.0, 0.0)})
    assert profile_set.total_time == pytest.approx(2.5)


def test_profile_type_parsing():
    assert ProfileType.parse("s-curve") is ProfileType.S_CURVE
    assert ProfileType.parse("S_CURVE") is ProfileType.S_CURVE
    assert ProfileType.parse("trapezoidal") is ProfileType.TRAPEZOIDAL
    with pytest.raises(ValueError):
        ProfileType.parse("cubic")


def test_synchronizing_below_minimum_time_rejected():
    profile_set = compute_synchronized_profiles({"j": 0.0}, {"j": 1.0})
    with pytest.raises(ValueError):
        profile_set.profiles["j"].synchronized(profile_set.total_time / 2)


def test_profiler_uses_model_limits():
    model = make_planar_arm()
    profiler = MotionProfiler(default_limits=MotionLimits(velocity=1.0, acceleration=2.0, jerk=10.0))
    limits = profiler.limits_for(model)
    assert limits == limits_from_model(model, profiler.default_limits)
    assert limits["joint1"] == MotionLimits(velocity=2.0, acceleration=4.0, jerk=10.0)
    assert set(limits) == {"joint1", "joint2"}

    profile_set = profiler.compute_synchronized_profiles({"joint1": 0.0}, {"joint1": 1.0}, limits)
    assert profile_set.total_time == pytest.approx(1.0)
    assert profile_set.profile_type is ProfileType.TRAPEZOIDAL
