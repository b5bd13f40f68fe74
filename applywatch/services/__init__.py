"""Service orchestration helpers."""

from .monitor import Monitor, RescheduleSignal
from .scheduler import DelayQueue, QueueNode

__all__ = ["DelayQueue", "Monitor", "QueueNode", "RescheduleSignal"]
