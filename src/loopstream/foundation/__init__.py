"""Foundation layer: configuration and error types."""

from .config import LoggingSettings, LoopstreamSettings, StreamSettings, clear_settings_cache, get_settings
from .errors import ErrorCode, InvalidResourceError, StreamError, StreamException, classify_exception

__all__ = [
    "ErrorCode",
    "InvalidResourceError",
    "LoggingSettings",
    "LoopstreamSettings",
    "StreamError",
    "StreamException",
    "StreamSettings",
    "classify_exception",
    "clear_settings_cache",
    "get_settings",
]
