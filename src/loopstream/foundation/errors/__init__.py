"""Unified error handling for loopstream.

- ErrorCode: Standard error codes for stream failures
- StreamError/StreamException: Structured errors and exceptions
- InvalidResourceError: Construction-time failures
- JsonValue/JsonDict: Shared JSON aliases
"""

from .errors import (
    ErrorCode,
    InvalidResourceError,
    StreamError,
    StreamException,
    classify_exception,
)
from .types import JsonDict, JsonPrimitive, JsonValue

__all__ = [
    # Core errors
    "ErrorCode", "StreamError", "StreamException", "InvalidResourceError", "classify_exception",
    # JSON aliases
    "JsonDict", "JsonPrimitive", "JsonValue",
]
