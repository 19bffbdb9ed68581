import asyncio
import math

import numpy as np
import pytest

from conftest import make_planar_arm
from kinemotion.config import EngineConfig
from kinemotion.core.motion_profile import MotionLimits, ProfileType
from kinemotion.engine import EngineStatus, KinematicsEngine


@pytest.fixture
def engine(clock):
    engine = KinematicsEngine(clock=clock)
    engine.load_robot("arm", make_planar_arm())
    yield engine
    engine.close()


def run_until_idle(engine, clock, robot_id="arm", step=1.0 / 60.0, limit=2000):
    for _ in range(limit):
        if not engine.is_animating(robot_id):
            return
        clock.advance(step)
        engine.tick()
    raise AssertionError("animation did not finish")


def test_unknown_robot_reports_not_found(engine):
    assert engine.analyze_chain("ghost").status is EngineStatus.NOT_FOUND
    assert engine.compute_pose("ghost").status is EngineStatus.NOT_FOUND
    assert engine.solve_ik("ghost", [0, 0, 0]).status is EngineStatus.NOT_FOUND
    assert engine.mount_tool("ghost", [0, 0, 0]).status is EngineStatus.NOT_FOUND
    assert engine.unmount_tool("ghost").status is EngineStatus.NOT_FOUND
    assert engine.cancel_animation("ghost").status is EngineStatus.NOT_FOUND
    assert engine.set_joint_values("ghost", {}).status is EngineStatus.NOT_FOUND
    assert engine.move_joints("ghost", {"joint1": 1.0}).status is EngineStatus.NOT_FOUND
    assert engine.unload_robot("ghost").status is EngineStatus.NOT_FOUND
    assert engine.joint_limits_for("ghost") is None


def test_chain_and_pose(engine):
    chain = engine.analyze_chain("arm")
    assert chain.ok
    assert chain.analysis.end_effector_link == "tip"
    pose = engine.compute_pose("arm")
    np.testing.assert_allclose(pose.pose.position, [2.0, 0.0, 0.0], atol=1e-12)


def test_empty_robot_is_structural_error(engine):
    assert engine.load_robot("empty", {"name": "empty"}).ok
    assert engine.analyze_chain("empty").status is EngineStatus.STRUCTURAL_ERROR
    assert engine.compute_pose("empty").status is EngineStatus.STRUCTURAL_ERROR
    assert engine.solve_ik("empty", [0, 0, 0]).status is EngineStatus.STRUCTURAL_ERROR


def test_malformed_description_rejected(engine):
    result = engine.load_robot("bad", {"links": [{"name": "a"}], "joints": [
        {"name": "j", "type": "revolute", "parent": "a", "child": "missing"}
    ]})
    assert result.status is EngineStatus.STRUCTURAL_ERROR
    assert "bad" not in engine.robot_ids


def test_invalid_description_values_rejected(engine):
    result = engine.load_robot("bad", {"links": [{"name": "a"}, {"name": "b"}], "joints": [
        {"name": "j", "type": "revolute", "parent": "a", "child": "b", "limit": {"lower": "abc"}}
    ]})
    assert result.status is EngineStatus.STRUCTURAL_ERROR
    assert engine.load_robot("boxed", {"links": [{"name": "a", "visual": {"box": [0.1, 0.2]}}]}).status \
        is EngineStatus.STRUCTURAL_ERROR
    assert engine.robot_ids == ["arm"]


def test_invalid_arguments_reported(engine):
    assert engine.mount_tool("arm", [0.0, 0.1]).status is EngineStatus.INVALID_ARGUMENT
    assert engine.mount_tool("arm", [0.0, 0.0, 0.1], colour="blue").status is EngineStatus.INVALID_ARGUMENT
    assert engine.tools.get("arm") is None

    engine.mount_tool("arm", [0.0, 0.0, 0.1], name="pen")
    assert engine.update_tool("arm", offset=[1.0]).status is EngineStatus.INVALID_ARGUMENT
    assert engine.update_tool("arm", colour="blue").status is EngineStatus.INVALID_ARGUMENT
    np.testing.assert_allclose(engine.tools.get("arm").offset, [0.0, 0.0, 0.1])

    assert engine.move_joints("arm", {"joint1": 1.0}, profile_type="cubic").status is EngineStatus.INVALID_ARGUMENT
    assert engine.move_joints("arm", {"joint1": "far"}).status is EngineStatus.INVALID_ARGUMENT
    assert engine.move_to_position("arm", [1.0, 1.0, 0.0], profile_type="cubic").status \
        is EngineStatus.INVALID_ARGUMENT
    assert engine.solve_ik("arm", [1.0, 1.0]).status is EngineStatus.INVALID_ARGUMENT
    assert not engine.is_animating("arm")


def test_tool_mount_changes_pose(engine):
    assert engine.mount_tool("arm", [0.0, 0.0, 0.3], name="stylus").ok
    np.testing.assert_allclose(engine.compute_pose("arm").pose.position, [2.0, 0.0, 0.3], atol=1e-12)
    assert engine.update_tool("arm", offset=[0.1, 0.0, 0.0]).ok
    np.testing.assert_allclose(engine.compute_pose("arm").pose.position, [2.1, 0.0, 0.0], atol=1e-12)
    assert engine.unmount_tool("arm").tool.name == "stylus"
    assert engine.unmount_tool("arm").tool is None
    assert engine.update_tool("arm", size=0.1).status is EngineStatus.NOT_FOUND


def test_solve_ik_does_not_move_robot(engine):
    result = engine.solve_ik("arm", [1.0, 1.0, 0.0])
    assert result.ok
    assert result.ik is not None
    assert set(result.joint_values) == {"joint1", "joint2"}
    assert engine.model("arm").get_joint_values() == {"joint1": 0.0, "joint2": 0.0}


def test_unreachable_is_soft(engine):
    result = engine.solve_ik("arm", [0.0, 4.0, 0.0])
    assert result.status is EngineStatus.UNREACHABLE
    assert not result.converged
    assert result.final_error is not None


def test_move_joints_runs_to_target(engine, clock):
    outcomes = []
    move = engine.move_joints("arm", {"joint1": 1.0, "joint2": -0.5}, on_complete=outcomes.append)
    assert move.ok
    # joint1 (v=2, a=4) needs 1.0 s; joint2 (v=1, a=2) needs 1.0 s for 0.5 rad
    assert move.profile_set.total_time == pytest.approx(1.0)
    run_until_idle(engine, clock)
    assert outcomes[0].success
    assert engine.model("arm").get_joint_values() == {"joint1": 1.0, "joint2": -0.5}


def test_move_targets_clamped_to_limits(engine, clock):
    move = engine.move_joints("arm", {"joint1": 10.0})
    assert move.profile_set.target_values == {"joint1": pytest.approx(math.pi)}
    run_until_idle(engine, clock)
    assert engine.model("arm").joints["joint1"].value == pytest.approx(math.pi)


def test_move_to_unknown_or_fixed_joint_rejected(engine):
    assert engine.move_joints("arm", {"nope": 1.0}).status is EngineStatus.NOT_FOUND
    assert engine.move_joints("arm", {"tip_joint": 1.0}).status is EngineStatus.NOT_FOUND
    assert not engine.is_animating("arm")


def test_joint_writes_rejected_while_animating(engine, clock):
    engine.move_joints("arm", {"joint1": 1.0})
    assert engine.set_joint_values("arm", {"joint1": 0.2}).status is EngineStatus.BUSY
    assert engine.cancel_animation("arm").ok
    assert engine.cancel_animation("arm").ok
    assert engine.set_joint_values("arm", {"joint1": 0.2}).ok
    assert engine.model("arm").joints["joint1"].value == 0.2


def test_move_to_position(clock):
    engine = KinematicsEngine(clock=clock)
    engine.load_robot("arm", make_planar_arm())
    target = np.array([1.2, 0.9, 0.0])
    move = engine.move_to_position("arm", target)
    assert move.ok
    assert move.ik.converged
    run_until_idle(engine, clock)
    pose = engine.compute_pose("arm").pose
    np.testing.assert_allclose(pose.position, target, atol=move.ik.parameters.tolerance)


def test_move_to_unreachable_position_still_moves(engine, clock):
    move = engine.move_to_position("arm", [0.0, 3.0, 0.0])
    assert move.status is EngineStatus.UNREACHABLE
    assert move.animation is not None
    run_until_idle(engine, clock)
    position = engine.compute_pose("arm").pose.position
    assert position[1] > 1.5


def test_tick_polls_pose_at_interval(engine, clock):
    events = []
    engine.subscribe_pose(lambda robot_id, pose: events.append(pose))
    engine.tick()
    assert len(events) == 1

    engine.move_joints("arm", {"joint1": 1.0})
    clock.advance(0.05)
    engine.tick()
    assert len(events) == 1
    clock.advance(0.05)
    engine.tick()
    assert len(events) == 2
    # The poll after a tick observes that tick's joint values
    expected = 2.0 * np.array([math.cos(engine.model("arm").joints["joint1"].value),
                               math.sin(engine.model("arm").joints["joint1"].value), 0.0])
    np.testing.assert_allclose(events[-1].position, expected, atol=1e-9)


def test_reload_cancels_animation(engine):
    outcomes = []
    engine.move_joints("arm", {"joint1": 1.0}, on_complete=outcomes.append)
    assert engine.load_robot("arm", make_planar_arm()).ok
    assert not engine.is_animating("arm")
    assert outcomes[0].reason == "cancelled"


def test_unload_forgets_robot(engine):
    engine.mount_tool("arm", [0.0, 0.0, 0.1])
    engine.move_joints("arm", {"joint1": 1.0})
    assert engine.unload_robot("arm").ok
    assert engine.robot_ids == []
    assert engine.tools.get("arm") is None
    assert engine.compute_pose("arm").status is EngineStatus.NOT_FOUND


def test_plan_motion_and_limits(engine):
    limits = engine.joint_limits_for("arm")
    assert limits["joint2"] == MotionLimits(velocity=1.0, acceleration=2.0, jerk=10.0)
    profile_set = engine.plan_motion({"joint2": 0.0}, {"joint2": 1.0}, limits, profile_type="s-curve")
    assert profile_set.profile_type is ProfileType.S_CURVE


def test_configured_profile_type_used(clock):
    config = EngineConfig.from_dict({"motion": {"profile_type": "s-curve"}})
    engine = KinematicsEngine(config, clock=clock)
    engine.load_robot("arm", make_planar_arm())
    assert engine.move_joints("arm", {"joint1": 0.5}).profile_set.profile_type is ProfileType.S_CURVE


def test_run_loop_completes_move():
    config = EngineConfig.from_dict({"engine": {"tick_interval": 0.005}})
    engine = KinematicsEngine(config)
    engine.load_robot("arm", make_planar_arm())
    poses = []
    engine.subscribe_pose(lambda robot_id, pose: poses.append(pose))

    async def scenario():
        done = asyncio.Event()
        engine.move_joints("arm", {"joint1": 0.2}, on_complete=lambda outcome: done.set())
        task = asyncio.create_task(engine.run())
        await asyncio.wait_for(done.wait(), timeout=5.0)
        engine.stop()
        await task

    asyncio.run(scenario())
    assert engine.model("arm").joints["joint1"].value == 0.2
    assert poses
    assert not engine.status["running"]


def test_status(engine):
    engine.mount_tool("arm", [0.0, 0.0, 0.1], name="pen")
    engine.move_joints("arm", {"joint1": 1.0})
    status = engine.status
    assert status["robots"] == ["arm"]
    assert status["animating"] == ["arm"]
    assert status["tools"] == {"arm": "pen"}
