"""
Homogeneous transform helpers shared by the robot model, pose tracker and IK solver.
"""

import math
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation as R


def xyzrpy2transform(x, y, z, roll, pitch, yaw) -> np.ndarray:
    """Build a 4x4 transform from a translation and fixed-axis roll/pitch/yaw (URDF convention)."""
    transform = np.eye(4)
    transform[:3, :3] = R.from_euler("xyz", [roll, pitch, yaw]).as_matrix()
    transform[:3, 3] = [x, y, z]
    return transform


def transform_from_origin(xyz: Sequence[float] = (0.0, 0.0, 0.0), rpy: Sequence[float] = (0.0, 0.0, 0.0)) -> np.ndarray:
    return xyzrpy2transform(*xyz, *rpy)


def rotation_about_axis(axis: np.ndarray, angle: float) -> np.ndarray:
    """4x4 pure rotation of `angle` radians about a unit axis."""
    transform = np.eye(4)
    transform[:3, :3] = R.from_rotvec(np.asarray(axis, dtype=float) * angle).as_matrix()
    return transform


def translation_along_axis(axis: np.ndarray, distance: float) -> np.ndarray:
    transform = np.eye(4)
    transform[:3, 3] = np.asarray(axis, dtype=float) * distance
    return transform


def transform_point(transform: np.ndarray, point: Sequence[float]) -> np.ndarray:
    return transform[:3, :3] @ np.asarray(point, dtype=float) + transform[:3, 3]


def transform2quaternion(transform: np.ndarray) -> np.ndarray:
    """Orientation of a 4x4 transform as a unit quaternion (x, y, z, w) with w >= 0."""
    quaternion = R.from_matrix(transform[:3, :3]).as_quat()
    if quaternion[3] < 0:
        quaternion = -quaternion
    return quaternion


def normalize(vector: Sequence[float]) -> np.ndarray:
    """Unit vector, or a zero vector when the input has no length."""
    vector = np.asarray(vector, dtype=float)
    norm = np.linalg.norm(vector)
    if norm == 0.0:
        return np.zeros_like(vector)
    return vector / norm


def signed_angle_about_axis(from_vec: np.ndarray, to_vec: np.ndarray, axis: np.ndarray) -> float:
    """
    Signed rotation about `axis` that turns `from_vec` towards `to_vec`.

    Both vectors are projected onto the plane normal to the axis first, so the
    result is the rotation a revolute joint about that axis can actually make.
    Returns 0.0 when either projection degenerates.
    """
    axis = normalize(axis)
    from_proj = from_vec - np.dot(from_vec, axis) * axis
    to_proj = to_vec - np.dot(to_vec, axis) * axis
    if np.linalg.norm(from_proj) < 1e-9 or np.linalg.norm(to_proj) < 1e-9:
        return 0.0
    sin_term = np.dot(axis, np.cross(from_proj, to_proj))
    cos_term = np.dot(from_proj, to_proj)
    return math.atan2(sin_term, cos_term)
