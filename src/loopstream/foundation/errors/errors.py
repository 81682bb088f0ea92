"""Standardized error handling for stream I/O.

Provides error codes and structured error payloads that travel with
``error`` events. Uses Pydantic for validation and serialization.
"""

from __future__ import annotations

import errno
import traceback
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


class ErrorCode(StrEnum):
    """Standard error codes for stream failures.

    Used for programmatic error handling and retry decisions by consumers.
    """
    INVALID_RESOURCE = "INVALID_RESOURCE"
    BROKEN_PIPE = "BROKEN_PIPE"
    CONNECTION_RESET = "CONNECTION_RESET"
    WOULD_BLOCK = "WOULD_BLOCK"
    BAD_DESCRIPTOR = "BAD_DESCRIPTOR"
    IO_ERROR = "IO_ERROR"
    UNKNOWN = "UNKNOWN"


_ERRNO_CODES: dict[int, ErrorCode] = {
    errno.EPIPE: ErrorCode.BROKEN_PIPE,
    errno.ECONNRESET: ErrorCode.CONNECTION_RESET,
    errno.ECONNABORTED: ErrorCode.CONNECTION_RESET,
    errno.EAGAIN: ErrorCode.WOULD_BLOCK,
    errno.EWOULDBLOCK: ErrorCode.WOULD_BLOCK,
    errno.EBADF: ErrorCode.BAD_DESCRIPTOR,
}

# Fallback when no errno is attached (e.g. ValueError on a closed file)
_PATTERN_CODES: dict[str, ErrorCode] = {
    "brokenpipe": ErrorCode.BROKEN_PIPE,
    "reset": ErrorCode.CONNECTION_RESET,
    "blocking": ErrorCode.WOULD_BLOCK,
    "closed file": ErrorCode.BAD_DESCRIPTOR,
    "descriptor": ErrorCode.BAD_DESCRIPTOR,
    "resource": ErrorCode.INVALID_RESOURCE,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    """Cached classification by exception signature."""
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map exception to error code via errno, then name/message matching."""
    if isinstance(exc, StreamException):
        return exc.error.code
    if isinstance(exc, OSError):
        if exc.errno in _ERRNO_CODES:
            return _ERRNO_CODES[exc.errno]
        code = _classify_cached(f"{type(exc).__name__} {exc}")
        return ErrorCode.IO_ERROR if code is ErrorCode.UNKNOWN else code
    return _classify_cached(f"{type(exc).__name__} {exc}")


class StreamError(BaseModel):
    """Structured error payload for stream failures.

    Attributes:
        operation: Stream operation that failed (e.g. "write", "read", "construct")
        message: Human-readable error message
        code: Machine-readable error code for programmatic handling
        recoverable: Whether the consumer might succeed by retrying
        details: Optional detailed information (e.g., stack trace)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Stream Error",
            "description": "Structured error from stream I/O",
            "examples": [{
                "operation": "write",
                "message": "[Errno 32] Broken pipe",
                "code": "BROKEN_PIPE",
                "recoverable": False,
            }],
        },
    )

    operation: Annotated[str, Field(
        min_length=1,
        description="Stream operation that produced the error",
    )]
    message: Annotated[str, Field(
        min_length=1,
        description="Human-readable error message",
    )]
    code: ErrorCode = Field(
        default=ErrorCode.UNKNOWN,
        description="Machine-readable error classification",
    )
    recoverable: bool = Field(
        default=False,
        description="Whether retry might succeed",
    )
    details: str | None = Field(
        default=None,
        description="Optional detailed error info (e.g., stack trace)",
    )

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | BaseException) -> str:
        """Accept Exception objects and extract message."""
        if isinstance(v, BaseException):
            return str(v) or type(v).__name__
        return v

    @computed_field
    @property
    def is_disconnect(self) -> bool:
        """Whether the peer went away (broken pipe, reset)."""
        return self.code in _DISCONNECT_CODES

    @classmethod
    def from_exception(
        cls,
        operation: str,
        exc: BaseException,
        context: str = "",
        *,
        include_trace: bool = False,
    ) -> Self:
        """Create from exception with auto-classification."""
        code = classify_exception(exc)
        return cls(
            operation=operation,
            message=f"{context}: {exc}" if context else (str(exc) or type(exc).__name__),
            code=code,
            recoverable=code is ErrorCode.WOULD_BLOCK,
            details="".join(traceback.format_exception(exc)) if include_trace else None,
        )

    def render(self) -> str:
        """Format error for display."""
        return f"[{self.code}] {self.operation} failed: {self.message}"

    __str__ = render


_DISCONNECT_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.BROKEN_PIPE,
    ErrorCode.CONNECTION_RESET,
})


class StreamException(Exception):
    """Exception wrapping a StreamError for raising or emitting."""

    def __init__(self, error: StreamError) -> None:
        self.error = error
        super().__init__(error.message)

    @property
    def code(self) -> ErrorCode:
        return self.error.code

    @classmethod
    def create(cls, operation: str, message: str, code: ErrorCode = ErrorCode.UNKNOWN, *, recoverable: bool = False) -> Self:
        """Create stream exception."""
        return cls(StreamError(operation=operation, message=message, code=code, recoverable=recoverable))

    @classmethod
    def from_exc(cls, operation: str, exc: BaseException, context: str = "") -> Self:
        """Wrap a low-level exception, keeping it as ``__cause__``."""
        wrapped = cls(StreamError.from_exception(operation, exc, context))
        wrapped.__cause__ = exc
        return wrapped


class InvalidResourceError(StreamException, ValueError):
    """Raised when a resource cannot back a stream."""

    @classmethod
    def for_resource(cls, resource: object, reason: str) -> Self:
        return cls.create(
            "construct",
            f"{reason} (got {type(resource).__name__})",
            ErrorCode.INVALID_RESOURCE,
        )
