"""
Polling engine for update-stream.

This package contains the long-poll loop, its control context and the
subscriber registry it fans results out through.
"""

from .control import ControlLoop
from .metrics import PollMetrics
from .poll_loop import LoopState, PollLoop
from .registry import SubscriberRegistry, Subscription

__all__ = [
    "ControlLoop",
    "LoopState",
    "PollLoop",
    "PollMetrics",
    "SubscriberRegistry",
    "Subscription",
]
