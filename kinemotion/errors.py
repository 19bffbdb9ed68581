"""
Exception types for the kinematics engine.

These are raised inside the package (model construction, description loading,
robot lookups). The engine facade converts them into EngineStatus values so
that nothing crosses its boundary as an exception.
"""


class KinematicsError(Exception):
    """Base class for all engine errors."""


class StructuralError(KinematicsError, ValueError):
    """The link/joint tree is malformed or has no resolvable chain."""


class StaleRobotReference(KinematicsError, KeyError):
    """An operation referenced a robot id that is not (or no longer) tracked."""

    def __init__(self, robot_id: str):
        super().__init__(robot_id)
        self.robot_id = robot_id

    def __str__(self) -> str:
        return f"Robot '{self.robot_id}' is not loaded"
