"""
Core modules for the kinematics engine.
Contains the robot model, chain analysis, pose tracking, IK and motion playback.
"""

from .animation import AnimationDriver, AnimationState
from .chain import ChainAnalysis, analyze_chain
from .kinematics import IKResult, IKSolver
from .model import Joint, JointLimit, JointType, Link, RobotModel
from .motion_profile import (
    MotionLimits,
    MotionProfiler,
    ProfileSet,
    ProfileType,
    compute_synchronized_profiles,
    get_joint_values,
    get_progress,
)
from .pose_tracker import PoseSnapshot, PoseTracker
from .tool_offset import ToolOffset, ToolOffsetStore

__all__ = [
    "AnimationDriver",
    "AnimationState",
    "ChainAnalysis",
    "analyze_chain",
    "IKResult",
    "IKSolver",
    "Joint",
    "JointLimit",
    "JointType",
    "Link",
    "RobotModel",
    "MotionLimits",
    "MotionProfiler",
    "ProfileSet",
    "ProfileType",
    "compute_synchronized_profiles",
    "get_joint_values",
    "get_progress",
    "PoseSnapshot",
    "PoseTracker",
    "ToolOffset",
    "ToolOffsetStore",
]
