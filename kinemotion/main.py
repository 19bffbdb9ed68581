"""
Command line entry point for the kinematics engine.
Loads a robot description, runs one move (IK target or joint targets) on the
async tick loop and logs the pose notifications until the move finishes.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Dict, List, Optional

import numpy as np

from .config import EngineConfig, load_engine_config
from .core.animation import AnimationFrame, AnimationOutcome
from .core.description import load_robot_description
from .core.pose_tracker import PoseSnapshot
from .engine import EngineStatus, KinematicsEngine
from .errors import StructuralError

logger = logging.getLogger(__name__)


def setup_signal_handlers():
    """Setup signal handlers for graceful shutdown."""
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        # The main loop will catch KeyboardInterrupt
        raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def parse_joint_targets(items: List[str]) -> Dict[str, float]:
    """Parse NAME=VALUE pairs."""
    targets = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got '{item}'")
        try:
            targets[name] = float(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Joint '{name}' value is not a number: '{value}'")
    return targets


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Kinematics and motion-control engine")

    parser.add_argument("robot", help="Path to the robot description (YAML)")
    parser.add_argument("--config", default="kinemotion.yaml", help="Path to the engine configuration file")
    parser.add_argument("--robot-id", default="robot", help="Id to load the robot under")

    # Move request
    move = parser.add_mutually_exclusive_group()
    move.add_argument("--target", nargs=3, type=float, metavar=("X", "Y", "Z"),
                      help="Move the end point to this base-relative position")
    move.add_argument("--joints", nargs="+", metavar="NAME=VALUE", help="Move joints to these values")

    # Motion and tool settings
    parser.add_argument("--profile", choices=["trapezoidal", "s-curve"], help="Motion profile type")
    parser.add_argument("--tool", nargs=3, type=float, metavar=("X", "Y", "Z"), help="Mount a tool with this offset")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    return parser.parse_args(argv)


def create_config_from_args(args) -> EngineConfig:
    """Create configuration from the config file and command line overrides."""
    config = load_engine_config(args.config)
    if args.profile:
        config.motion.profile_type = args.profile
    return config


def log_pose(robot_id: str, pose: PoseSnapshot):
    logger.info(f"Pose '{robot_id}': position={np.round(pose.position, 4)} "
                f"orientation={np.round(pose.orientation, 4)}")


async def run_move(engine: KinematicsEngine, args) -> bool:
    """Start the requested move and tick the engine until it finishes."""
    done = asyncio.Event()
    outcome: Dict[str, AnimationOutcome] = {}

    def on_tick(frame: AnimationFrame):
        logger.debug(f"Move progress {frame.progress:.2f} ({frame.elapsed:.3f}s)")

    def on_complete(result: AnimationOutcome):
        outcome["result"] = result
        done.set()

    if args.target is not None:
        move = engine.move_to_position(args.robot_id, args.target, on_tick=on_tick, on_complete=on_complete)
        if move.ik is not None:
            logger.info(f"IK {'converged' if move.ik.converged else 'did not converge'}: "
                        f"error {move.ik.final_error:.4f} after {move.ik.iterations} iterations")
    elif args.joints:
        move = engine.move_joints(args.robot_id, parse_joint_targets(args.joints),
                                  on_tick=on_tick, on_complete=on_complete)
    else:
        return True

    if move.status not in (EngineStatus.OK, EngineStatus.UNREACHABLE):
        logger.error(f"Move rejected: {move.message}")
        return False
    if move.status is EngineStatus.UNREACHABLE:
        logger.warning(f"{move.message}; moving to the closest solution")

    engine_task = asyncio.create_task(engine.run())
    try:
        await done.wait()
        # One more poll so the final pose is published
        engine.tracker.refresh(args.robot_id)
    finally:
        engine.stop()
        await engine_task

    result = outcome["result"]
    logger.info(f"Move {result.reason} after {result.elapsed:.3f}s")
    return result.success


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    config = create_config_from_args(args)

    try:
        model = load_robot_description(args.robot)
    except (FileNotFoundError, StructuralError) as e:
        logger.error(f"Failed to load robot: {e}")
        return 1

    engine = KinematicsEngine(config)
    engine.load_robot(args.robot_id, model)
    chain = engine.analyze_chain(args.robot_id)
    if not chain.ok:
        logger.error(chain.message)
        return 1
    logger.info(f"Chain: base '{chain.analysis.base_link}' -> end effector "
                f"'{chain.analysis.end_effector_link}' ({chain.analysis.dof} DOF)")

    if args.tool is not None:
        engine.mount_tool(args.robot_id, args.tool)

    engine.subscribe_pose(log_pose)
    log_pose(args.robot_id, engine.compute_pose(args.robot_id).pose)

    try:
        success = await run_move(engine, args)
    finally:
        engine.close()
    return 0 if success else 1


def main_cli():
    """Console script entry point for pip-installed package."""
    setup_signal_handlers()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutdown complete.")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main_cli()
