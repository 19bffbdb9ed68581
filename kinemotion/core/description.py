"""
Robot description loading.

Builds a RobotModel from the engine's compact description format, given as a
dict or a YAML file:

    name: planar_arm
    links:
      - name: base_link
      - name: link1
        visual: {box: [1.0, 0.1, 0.1], xyz: [0.5, 0, 0]}
    joints:
      - name: joint1
        type: revolute
        parent: base_link
        child: link1
        origin: {xyz: [0, 0, 0], rpy: [0, 0, 0]}
        axis: [0, 0, 1]
        limit: {lower: -3.14, upper: 3.14, velocity: 2.0, acceleration: 4.0}
"""

import logging
import os
from typing import Any, Dict, Optional

import numpy as np
import yaml

from ..errors import StructuralError
from .geometry import transform_from_origin
from .model import Joint, JointLimit, JointType, Link, RobotModel, VisualGeometry

logger = logging.getLogger(__name__)


def _origin(data: Optional[Dict[str, Any]]) -> np.ndarray:
    data = data or {}
    return transform_from_origin(data.get("xyz", (0.0, 0.0, 0.0)), data.get("rpy", (0.0, 0.0, 0.0)))


def _visual(data: Optional[Dict[str, Any]]) -> Optional[VisualGeometry]:
    if not data:
        return None
    origin = _origin(data)
    if "box" in data:
        return VisualGeometry.box(data["box"], origin=origin)
    if "vertices" in data:
        return VisualGeometry(vertices=np.asarray(data["vertices"], dtype=float).reshape(-1, 3), origin=origin)
    raise StructuralError(f"Visual geometry needs 'box' or 'vertices': {data}")


def _limit(data: Optional[Dict[str, Any]]) -> JointLimit:
    if not data:
        return JointLimit()
    return JointLimit(
        lower=float(data.get("lower", JointLimit.lower)),
        upper=float(data.get("upper", JointLimit.upper)),
        velocity=float(data.get("velocity", JointLimit.velocity)),
        acceleration=None if data.get("acceleration") is None else float(data["acceleration"]),
        jerk=None if data.get("jerk") is None else float(data["jerk"]),
    )


def robot_from_dict(description: Dict[str, Any]) -> RobotModel:
    """Build a RobotModel from a description dict; raises StructuralError when malformed."""
    if not isinstance(description, dict):
        raise StructuralError("Robot description must be a mapping")
    name = description.get("name", "robot")

    try:
        links = [
            Link(name=str(entry["name"]), visual=_visual(entry.get("visual")))
            for entry in description.get("links") or []
        ]
        joints = []
        for entry in description.get("joints") or []:
            try:
                joint_type = JointType(str(entry.get("type", "fixed")).lower())
            except ValueError:
                raise StructuralError(f"Joint '{entry.get('name')}' has unsupported type '{entry.get('type')}'")
            joints.append(Joint(
                name=str(entry["name"]),
                joint_type=joint_type,
                parent=str(entry["parent"]),
                child=str(entry["child"]),
                origin=_origin(entry.get("origin")),
                axis=np.asarray(entry.get("axis", (1.0, 0.0, 0.0)), dtype=float).reshape(3),
                value=float(entry.get("value", 0.0)),
                limit=_limit(entry.get("limit")),
                ignore_limits=bool(entry.get("ignore_limits", False)),
            ))
        world = _origin(description.get("world"))
    except StructuralError:
        raise
    except KeyError as e:
        raise StructuralError(f"Robot '{name}': missing field {e} in description")
    except (AttributeError, TypeError, ValueError) as e:
        raise StructuralError(f"Robot '{name}': invalid value in description ({e})")

    model = RobotModel(name, links, joints, world_transform=world)
    logger.info(f"Loaded robot '{name}': {len(model.links)} links, {len(model.joints)} joints")
    return model


def load_robot_description(path: str) -> RobotModel:
    """Load a robot description from a YAML file."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Robot description not found: {path}")
    with open(path, "r") as f:
        try:
            description = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise StructuralError(f"Robot description {path} is not valid YAML: {e}")
    return robot_from_dict(description or {})
