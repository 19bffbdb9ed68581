"""
Kinematics and motion-control engine for articulated robot models.

Discovers the kinematic chain of a loaded robot, tracks its end-effector pose
(tool offsets included), solves inverse kinematics with cyclic coordinate
descent and plays back synchronized multi-joint moves.
"""

__version__ = "0.1.0"

from .config import EngineConfig, load_engine_config
from .engine import EngineStatus, KinematicsEngine
from .errors import KinematicsError, StaleRobotReference, StructuralError

__all__ = [
    "EngineConfig",
    "load_engine_config",
    "EngineStatus",
    "KinematicsEngine",
    "KinematicsError",
    "StaleRobotReference",
    "StructuralError",
]
