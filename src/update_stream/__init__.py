"""
update-stream

Turns a bot API's long-poll ``getUpdates`` endpoint into a live update
stream shared by any number of subscribers.
"""

__version__ = "0.1.0"

from .bot import Bot
from .config import Settings
from .exceptions import (
    ApiError,
    ConfigurationError,
    DecodeError,
    RequestConstructionError,
    TransportError,
    UpdateStreamError,
)
from .models import Update
from .polling import LoopState, PollLoop, Subscription
from .result import Failure, Result, Success

__all__ = [
    "ApiError",
    "Bot",
    "ConfigurationError",
    "DecodeError",
    "Failure",
    "LoopState",
    "PollLoop",
    "RequestConstructionError",
    "Result",
    "Settings",
    "Subscription",
    "Success",
    "TransportError",
    "Update",
    "UpdateStreamError",
]
