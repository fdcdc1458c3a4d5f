"""
Error types shared by the Komga client, the Discord channel and the poll loop.

Failures are classified once, where they happen (HTTP status check, IPC call),
into an ErrorKind. The poll loop only looks at that kind.
"""
import enum
import errno
from typing import Optional

from pypresence.exceptions import PipeClosed

# EPIPE on POSIX, ERROR_NO_DATA on Windows named pipes
_PIPE_ERROR_CODES = {errno.EPIPE, 32, 232}


class ErrorKind(enum.Enum):
    AUTH = "auth"
    PIPE = "pipe"
    OTHER = "other"


class KomRPCError(Exception):
    """Base class for classified failures."""

    kind = ErrorKind.OTHER


class AuthError(KomRPCError):
    """Komga rejected the API key (HTTP 401)."""

    kind = ErrorKind.AUTH


class UpstreamUnavailable(KomRPCError):
    """A primary Komga listing returned a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(KomRPCError):
    """Network or local IPC failure."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.OTHER):
        super().__init__(message)
        self.kind = kind


class DataError(KomRPCError):
    """A JSON object is missing a field we cannot do without."""


class UnsupportedQuery(KomRPCError):
    """The server does not understand the in-progress books filter."""


def is_broken_pipe(exc: Optional[BaseException]) -> bool:
    """True if exc, or anything it was raised from, means the IPC pipe is gone."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, (PipeClosed, BrokenPipeError, ConnectionResetError)):
            return True
        if isinstance(exc, OSError):
            if exc.errno in _PIPE_ERROR_CODES or getattr(exc, "winerror", None) in _PIPE_ERROR_CODES:
                return True
        exc = exc.__cause__ or exc.__context__
    return False


def classify(exc: BaseException) -> ErrorKind:
    if isinstance(exc, KomRPCError):
        return exc.kind
    return ErrorKind.OTHER
