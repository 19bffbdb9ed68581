"""
Configuration module for the kinematics engine.
Loads configuration from a YAML file with fallback to default values.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

# Default configuration values (fallback if YAML file doesn't exist)
DEFAULT_CONFIG = {
    "engine": {
        "tick_interval": 1.0 / 60.0,
    },
    "pose": {
        "poll_interval": 0.1,
        "epsilon": 1e-4,
        "tool_frame_names": ["tcp", "tool0", "tool_frame"],
    },
    "ik": {
        "max_step": 0.2,
        "stall_iterations": 10,
        "damping_growth": 1.1,
        "far_error": 0.1,
        "far_damping_boost": 1.5,
        # Step scale once the error is within far_error; None keeps the tuned damping
        "near_damping": 1.0,
        "ignore_limits": False,
        # None lets the structural analysis pick the value per robot
        "max_iterations": None,
        "tolerance": None,
        "damping": None,
    },
    "motion": {
        "profile_type": "trapezoidal",
        "default_velocity": 1.0,
        "default_acceleration": 2.0,
        "default_jerk": 10.0,
    },
    "animation": {
        "position_tolerance": 1e-6,
        "max_duration": 30.0,
    },
}


def load_config(config_path: str = "kinemotion.yaml") -> dict:
    """Load configuration from YAML file with fallback to defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    _deep_merge(config, yaml_config)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load config from {config_path}: {e}")
            logger.warning("Using default configuration")
    else:
        logger.info(f"Config file {config_path} not found, using defaults")

    return config


def save_config(config: dict, config_path: str = "kinemotion.yaml") -> bool:
    """Save configuration to YAML file."""
    try:
        with open(config_path, "w") as f:
            yaml.dump(config, f, default_flow_style=False, indent=2)
        return True
    except OSError as e:
        logger.error(f"Error saving config to {config_path}: {e}")
        return False


def _deep_merge(base: dict, update: dict):
    """Deep merge update dict into base dict."""
    for key, value in update.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


@dataclass
class PoseConfig:
    poll_interval: float = 0.1
    epsilon: float = 1e-4
    tool_frame_names: Tuple[str, ...] = ("tcp", "tool0", "tool_frame")


@dataclass
class IKConfig:
    """CCD solver settings. The optional fields override the per-robot tuning."""

    max_step: float = 0.2
    stall_iterations: int = 10
    damping_growth: float = 1.1
    far_error: float = 0.1
    far_damping_boost: float = 1.5
    near_damping: Optional[float] = 1.0
    ignore_limits: bool = False
    max_iterations: Optional[int] = None
    tolerance: Optional[float] = None
    damping: Optional[float] = None


@dataclass
class MotionConfig:
    profile_type: str = "trapezoidal"
    default_velocity: float = 1.0
    default_acceleration: float = 2.0
    default_jerk: float = 10.0


@dataclass
class AnimationConfig:
    position_tolerance: float = 1e-6
    max_duration: float = 30.0


@dataclass
class EngineConfig:
    """Main configuration class for the kinematics engine."""

    tick_interval: float = 1.0 / 60.0
    pose: PoseConfig = field(default_factory=PoseConfig)
    ik: IKConfig = field(default_factory=IKConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    animation: AnimationConfig = field(default_factory=AnimationConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        merged = copy.deepcopy(DEFAULT_CONFIG)
        _deep_merge(merged, data or {})
        pose = dict(merged["pose"])
        pose["tool_frame_names"] = tuple(pose["tool_frame_names"])
        return cls(
            tick_interval=merged["engine"]["tick_interval"],
            pose=PoseConfig(**pose),
            ik=IKConfig(**merged["ik"]),
            motion=MotionConfig(**merged["motion"]),
            animation=AnimationConfig(**merged["animation"]),
        )


def load_engine_config(config_path: str = "kinemotion.yaml") -> EngineConfig:
    return EngineConfig.from_dict(load_config(config_path))
