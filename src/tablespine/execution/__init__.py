"""Concurrent execution helpers."""

from tablespine.execution.fanout import BoundedFanOut, FanOutItem, FanOutResult

__all__ = ["BoundedFanOut", "FanOutItem", "FanOutResult"]
