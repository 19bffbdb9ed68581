import pytest

from conftest import make_planar_arm

from kinemotion.core.animation import AnimationDriver, AnimationState
from kinemotion.core.motion_profile import MotionLimits, compute_synchronized_profiles


def plan(start, target, velocity=2.0, acceleration=4.0):
    limits = {name: MotionLimits(velocity=velocity, acceleration=acceleration) for name in target}
    return compute_synchronized_profiles(start, target, limits)


def test_runs_to_completion_and_snaps_target(planar_arm, clock):
    driver = AnimationDriver(clock=clock)
    frames, outcomes = [], []
    profile_set = plan(planar_arm.get_joint_values(), {"joint1": 1.0})
    driver.start("arm", planar_arm, profile_set, on_tick=frames.append, on_complete=outcomes.append)
    assert driver.state("arm") is AnimationState.RUNNING

    clock.advance(0.5)
    assert driver.tick() == []
    assert planar_arm.joints["joint1"].value == pytest.approx(0.5)
    assert frames[-1].progress == pytest.approx(0.5)
    assert frames[-1].velocities["joint1"] == pytest.approx(2.0)

    clock.advance(0.6)
    finished = driver.tick()
    assert len(finished) == 1
    assert finished[0].success
    assert finished[0].reason == "completed"
    assert planar_arm.joints["joint1"].value == 1.0
    assert outcomes == finished
    assert driver.state("arm") is AnimationState.IDLE


def test_start_cancels_running_animation(planar_arm, clock):
    driver = AnimationDriver(clock=clock)
    first, second = [], []
    driver.start("arm", planar_arm, plan({"joint1": 0.0}, {"joint1": 1.0}), on_complete=first.append)
    clock.advance(0.25)
    driver.tick()
    reached = planar_arm.joints["joint1"].value

    driver.start("arm", planar_arm, plan({"joint1": reached}, {"joint1": -0.5}), on_complete=second.append)
    assert len(first) == 1
    assert not first[0].success
    assert first[0].state is AnimationState.CANCELLED
    assert driver.running_count == 1

    clock.advance(10.0)
    driver.tick()
    assert second[0].success
    assert planar_arm.joints["joint1"].value == -0.5


def test_cancel_leaves_joints_in_place(planar_arm, clock):
    driver = AnimationDriver(clock=clock)
    outcomes = []
    driver.start("arm", planar_arm, plan({"joint1": 0.0}, {"joint1": 1.0}), on_complete=outcomes.append)
    clock.advance(0.3)
    driver.tick()
    value = planar_arm.joints["joint1"].value

    assert driver.cancel("arm")
    assert not driver.cancel("arm")
    assert planar_arm.joints["joint1"].value == value
    assert [outcome.reason for outcome in outcomes] == ["cancelled"]
    assert not driver.is_animating("arm")


def test_zero_length_move_completes_on_first_tick(planar_arm, clock):
    driver = AnimationDriver(clock=clock)
    profile_set = plan({"joint1": 0.0}, {"joint1": 0.0})
    driver.start("arm", planar_arm, profile_set)
    finished = driver.tick()
    assert finished[0].success
    assert finished[0].reason == "completed"


def test_timeout_stops_without_snapping(planar_arm, clock):
    driver = AnimationDriver(clock=clock, max_duration=1.0)
    outcomes = []
    profile_set = plan({"joint1": 0.0}, {"joint1": 3.0}, velocity=0.5, acceleration=1.0)
    driver.start("arm", planar_arm, profile_set, on_complete=outcomes.append)

    clock.advance(1.5)
    driver.tick()
    assert outcomes[0].reason == "timeout"
    assert not outcomes[0].success
    assert planar_arm.joints["joint1"].value < 3.0
    assert not driver.is_animating("arm")


def test_within_tolerance_completes_early(planar_arm, clock):
    driver = AnimationDriver(clock=clock, position_tolerance=0.01)
    profile_set = plan({"joint1": 0.0}, {"joint1": 1.0})
    driver.start("arm", planar_arm, profile_set)
    clock.advance(0.96)
    finished = driver.tick()
    assert finished[0].reason == "within_tolerance"
    assert planar_arm.joints["joint1"].value == 1.0


def test_robots_animate_independently(clock):
    left, right = make_planar_arm("left"), make_planar_arm("right")
    driver = AnimationDriver(clock=clock)
    driver.start("left", left, plan({"joint1": 0.0}, {"joint1": 1.0}))
    driver.start("right", right, plan({"joint2": 0.0}, {"joint2": -1.0}, velocity=1.0, acceleration=1.0))
    clock.advance(1.0)
    finished = driver.tick()
    assert [outcome.robot_id for outcome in finished] == ["left"]
    assert driver.is_animating("right")
    driver.cancel_all()
    assert driver.running_count == 0


def test_callback_errors_do_not_stop_animation(planar_arm, clock):
    driver = AnimationDriver(clock=clock)

    def broken(frame):
        raise RuntimeError("display failure")

    driver.start("arm", planar_arm, plan({"joint1": 0.0}, {"joint1": 1.0}), on_tick=broken)
    clock.advance(2.0)
    assert driver.tick()[0].success


def test_tick_callback_may_cancel(planar_arm, clock):
    driver = AnimationDriver(clock=clock)
    driver.start("arm", planar_arm, plan({"joint1": 0.0}, {"joint1": 1.0}),
                 on_tick=lambda frame: driver.cancel(frame.robot_id))
    clock.advance(2.0)
    assert driver.tick() == []
    assert not driver.is_animating("arm")
