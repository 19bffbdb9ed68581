import math

import numpy as np
import pytest

from kinemotion.core.clock import ManualClock
from kinemotion.core.geometry import transform_from_origin
from kinemotion.core.model import Joint, JointLimit, JointType, Link, RobotModel


def make_planar_arm(name="planar_arm", tip_name="tip", limit=math.pi):
    """Two unit links rotating about z, straight along +x at zero."""
    links = [Link("base_link"), Link("link1"), Link("link2"), Link(tip_name)]
    joints = [
        Joint("joint1", JointType.REVOLUTE, "base_link", "link1", axis=np.array([0.0, 0.0, 1.0]),
              limit=JointLimit(-limit, limit, velocity=2.0, acceleration=4.0)),
        Joint("joint2", JointType.REVOLUTE, "link1", "link2", origin=transform_from_origin((1.0, 0.0, 0.0)),
              axis=np.array([0.0, 0.0, 1.0]), limit=JointLimit(-limit, limit, velocity=1.0, acceleration=2.0)),
        Joint("tip_joint", JointType.FIXED, "link2", tip_name, origin=transform_from_origin((1.0, 0.0, 0.0))),
    ]
    return RobotModel(name, links, joints)


@pytest.fixture
def planar_arm():
    return make_planar_arm()


@pytest.fixture
def clock():
    return ManualClock()
