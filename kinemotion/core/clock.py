"""
Clock sources used to drive pose polling and animations.
"""

import time


class MonotonicClock:
    """Wall-clock time source in seconds, unaffected by system clock changes."""

    def __call__(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock advanced explicitly; used for deterministic stepping and replay."""

    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now
