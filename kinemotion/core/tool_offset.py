"""
Per-robot tool offset (TCP) storage.

Each robot carries at most one mounted tool. Mounting replaces the previous
tool, unmounting restores the raw kinematic tip. Listeners are called after
every change so the pose tracker can refresh against the new state.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

ToolListener = Callable[[str, Optional["ToolOffset"]], None]


@dataclass(frozen=True, eq=False)
class ToolOffset:
    """A mounted tool: translation beyond the kinematic tip plus display attributes."""

    offset: np.ndarray
    name: str = "tool"
    visible: bool = True
    size: float = 0.03
    color: str = "#ff0000"
    mounted_at: float = field(default_factory=time.time)

    def __post_init__(self):
        object.__setattr__(self, "offset", np.array(self.offset, dtype=float).reshape(3))


class ToolOffsetStore:
    """Mount/unmount table of tool offsets keyed by robot id."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._tools: Dict[str, ToolOffset] = {}
        self._listeners: List[ToolListener] = []
        self._clock = clock

    def mount(self, robot_id: str, offset: Sequence[float], name: str = "tool", **display: Any) -> ToolOffset:
        """Mount a tool on a robot, replacing any tool already mounted."""
        tool = ToolOffset(offset=offset, name=name, mounted_at=self._clock(), **display)
        previous = self._tools.get(robot_id)
        self._tools[robot_id] = tool
        if previous is not None:
            logger.info(f"Robot '{robot_id}': replaced tool '{previous.name}' with '{name}'")
        else:
            logger.info(f"Robot '{robot_id}': mounted tool '{name}' offset={tool.offset.round(4)}")
        self._notify(robot_id, tool)
        return tool

    def unmount(self, robot_id: str) -> Optional[ToolOffset]:
        """Remove the mounted tool. Unmounting a robot without a tool is a no-op."""
        tool = self._tools.pop(robot_id, None)
        if tool is None:
            return None
        logger.info(f"Robot '{robot_id}': unmounted tool '{tool.name}'")
        self._notify(robot_id, None)
        return tool

    def update(self, robot_id: str, offset: Optional[Sequence[float]] = None, **display: Any) -> Optional[ToolOffset]:
        """Change the offset or display attributes of the mounted tool."""
        tool = self._tools.get(robot_id)
        if tool is None:
            logger.warning(f"Robot '{robot_id}': no tool mounted, update ignored")
            return None
        changes = dict(display)
        if offset is not None:
            changes["offset"] = offset
        tool = replace(tool, **changes)
        self._tools[robot_id] = tool
        self._notify(robot_id, tool)
        return tool

    def get(self, robot_id: str) -> Optional[ToolOffset]:
        return self._tools.get(robot_id)

    def discard(self, robot_id: str):
        """Forget a robot's tool without notifying (robot unloaded)."""
        self._tools.pop(robot_id, None)

    def subscribe(self, listener: ToolListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, robot_id: str, tool: Optional[ToolOffset]):
        for listener in list(self._listeners):
            try:
                listener(robot_id, tool)
            except Exception as e:
                logger.error(f"Error in tool listener for robot '{robot_id}': {e}")
