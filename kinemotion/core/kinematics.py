"""
Inverse kinematics for the tracked robots.
Contains a cyclic coordinate descent (CCD) solver whose parameters are tuned
per robot from its kinematic structure.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..config import IKConfig
from .chain import ChainAnalysis
from .geometry import signed_angle_about_axis
from .model import JointType, RobotModel
from .pose_tracker import PoseTracker

logger = logging.getLogger(__name__)

# Joint-to-tip or joint-to-target vectors shorter than this give no usable direction
MIN_LEVER_LENGTH = 1e-3


@dataclass
class IKParameters:
    max_iterations: int
    tolerance: float
    damping: float
    max_reach: float
    dof: int


@dataclass
class IKResult:
    """Outcome of one solve: goal joint values and how close they get."""

    joint_values: Dict[str, float]
    converged: bool
    final_error: float
    iterations: int = 0
    reachable: bool = True
    parameters: Optional[IKParameters] = None
    error_history: List[float] = field(default_factory=list)


def default_parameters() -> IKParameters:
    return IKParameters(max_iterations=25, tolerance=0.01, damping=0.8, max_reach=2.0, dof=0)


def calculate_max_reach(model: RobotModel, joint_names: Sequence[str], tip_world: np.ndarray,
                        base_world: Optional[np.ndarray] = None) -> float:
    """
    Upper bound on the distance from the base the end point can reach.

    Sums the distances between consecutive joints, the distance from the last
    joint to the current end point, and the travel of prismatic joints.
    """
    if not joint_names:
        if base_world is None:
            return 0.0
        return float(np.linalg.norm(tip_world - base_world))

    positions = [model.joint_world_position(name) for name in joint_names]
    total = 0.0
    if base_world is not None:
        total += float(np.linalg.norm(positions[0] - base_world))
    for first, second in zip(positions, positions[1:]):
        total += float(np.linalg.norm(second - first))
    total += float(np.linalg.norm(tip_world - positions[-1]))

    for name in joint_names:
        joint = model.joints[name]
        if joint.joint_type is JointType.PRISMATIC:
            total += max(abs(joint.limit.lower), abs(joint.limit.upper))
    return total


def analyze_structure(model: RobotModel, analysis: ChainAnalysis, tip_world: np.ndarray,
                      base_world: Optional[np.ndarray] = None, max_step: float = 0.2) -> IKParameters:
    """
    Tune iteration count, tolerance and damping from the chain's degrees of freedom.

    The iteration budget lets a joint clamped to max_step per sweep turn half a
    revolution, plus two sweeps per degree of freedom.
    """
    dof = analysis.dof
    if dof == 0:
        return default_parameters()

    max_reach = calculate_max_reach(model, analysis.movable_joints, tip_world, base_world)

    # More joints means a more complex chain: more iterations, lower damping
    complexity = min(1.0, dof / 7.0)
    return IKParameters(
        max_iterations=max(10, min(30, math.ceil(math.pi / max_step) + dof * 2)),
        tolerance=max(0.001, min(0.02, 0.01 / complexity)),
        damping=max(0.2, min(0.8, 0.7 - complexity * 0.4)),
        max_reach=max_reach,
        dof=dof,
    )


class IKSolver:
    """CCD inverse kinematics solver using the pose tracker for the live end point."""

    def __init__(self, tracker: PoseTracker, config: Optional[IKConfig] = None):
        self.tracker = tracker
        self.config = config or IKConfig()

    def parameters_for(self, robot_id: str) -> Optional[IKParameters]:
        """Solver parameters for a robot after applying configured overrides."""
        analysis = self.tracker.chain(robot_id)
        if analysis is None:
            return None
        model = self.tracker.model(robot_id)
        params = analyze_structure(
            model, analysis, self.tracker.effective_tip(robot_id), self.tracker.base_position(robot_id),
            max_step=self.config.max_step,
        )
        if self.config.max_iterations is not None:
            params.max_iterations = int(self.config.max_iterations)
        if self.config.tolerance is not None:
            params.tolerance = float(self.config.tolerance)
        if self.config.damping is not None:
            params.damping = float(self.config.damping)
        return params

    def solve(self, robot_id: str, target_position: Sequence[float]) -> Optional[IKResult]:
        """
        Solve for joint values that bring the end point to a target.

        Args:
            robot_id: Tracked robot to solve for
            target_position: Target position relative to the base link (same frame
                as PoseTracker.compute_pose)

        Returns:
            IKResult with the best joint values found, or None when the robot has
            no usable chain. The robot's joint values are restored before returning.
        """
        analysis = self.tracker.chain(robot_id)
        if analysis is None:
            return None
        model = self.tracker.model(robot_id)
        params = self.parameters_for(robot_id)

        base = self.tracker.base_position(robot_id)
        target = base + np.asarray(target_position, dtype=float).reshape(3)

        reachable = True
        target_distance = float(np.linalg.norm(target - base))
        if params.dof and target_distance > params.max_reach:
            reachable = False
            logger.warning(
                f"Robot '{robot_id}': target may be unreachable "
                f"(distance {target_distance:.3f} > max reach {params.max_reach:.3f})"
            )

        start_values = model.get_joint_values()
        chain_joints = analysis.movable_joints
        damping = params.damping
        best_error = math.inf
        best_values = {name: model.joints[name].value for name in chain_joints}
        error_history: List[float] = []
        iterations = 0
        converged = False

        try:
            for iteration in range(params.max_iterations + 1):
                error = float(np.linalg.norm(target - self.tracker.effective_tip(robot_id)))
                error_history.append(error)
                logger.debug(f"IK iteration {iteration}: error = {error:.5f}")
                if error < best_error:
                    best_error = error
                    best_values = {name: model.joints[name].value for name in chain_joints}
                if error < params.tolerance:
                    converged = True
                    break
                if iteration == params.max_iterations:
                    break

                # Stalled: grow the damping factor so corrections get bolder
                if iteration >= self.config.stall_iterations and len(error_history) > 1 \
                        and error >= error_history[-2]:
                    damping = min(1.0, damping * self.config.damping_growth)

                if error > self.config.far_error:
                    step_damping = min(1.0, damping * self.config.far_damping_boost)
                elif self.config.near_damping is not None:
                    step_damping = self.config.near_damping
                else:
                    step_damping = damping

                for joint_name in reversed(chain_joints):
                    self._adjust_joint(robot_id, model, joint_name, target, step_damping)
                iterations += 1
        finally:
            model.set_joint_values(start_values, enforce_limits=False)
            model.update_world_transforms()

        if converged:
            logger.debug(f"IK converged after {iterations} iterations (error {best_error:.5f})")
        else:
            logger.info(
                f"Robot '{robot_id}': IK did not converge in {iterations} iterations "
                f"(best error {best_error:.4f}, tolerance {params.tolerance:.4f})"
            )

        return IKResult(
            joint_values=best_values,
            converged=best_error < params.tolerance,
            final_error=best_error,
            iterations=iterations,
            reachable=reachable,
            parameters=params,
            error_history=error_history,
        )

    def _adjust_joint(self, robot_id: str, model: RobotModel, joint_name: str,
                      target: np.ndarray, damping: float):
        joint = model.joints[joint_name]
        tip = self.tracker.effective_tip(robot_id)
        joint_position = model.joint_world_position(joint_name)
        axis = model.joint_world_axis(joint_name)

        if joint.joint_type is JointType.PRISMATIC:
            delta = float(np.dot(target - tip, axis))
        else:
            to_tip = tip - joint_position
            to_target = target - joint_position
            if np.linalg.norm(to_tip) < MIN_LEVER_LENGTH or np.linalg.norm(to_target) < MIN_LEVER_LENGTH:
                return
            delta = signed_angle_about_axis(to_tip, to_target, axis)

        delta = float(np.clip(delta * damping, -self.config.max_step, self.config.max_step))
        enforce_limits = not (self.config.ignore_limits or joint.ignore_limits)
        model.set_joint_value(joint_name, joint.value + delta, enforce_limits=enforce_limits)
        model.update_world_transforms()
