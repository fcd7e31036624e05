"""Exception hierarchy for npm-readfile.

All exceptions inherit from :class:`ReadfileError`, which carries a
``status_code`` attribute mapped to a constant from
:mod:`npmreadfile.status_codes`.  Parsing and resolution errors are raised
directly by the buffered API; the streaming API funnels them into the
returned :class:`~npmreadfile.stream.ReadStream` instead.

Subclass hierarchy::

    ReadfileError              (500)
    +-- BadRequestError        (400)
    +-- ForbiddenError         (403)
    +-- NotFoundError          (404)
    |   +-- VersionResolutionError (404)
    +-- UpstreamError          (502)
    +-- RequestCancelledError  (499)
    +-- ConfigError            (500)
"""

from npmreadfile.status_codes import (
    STATUS_BAD_GATEWAY,
    STATUS_BAD_REQUEST,
    STATUS_CLIENT_CLOSED_REQUEST,
    STATUS_FORBIDDEN,
    STATUS_INTERNAL_ERROR,
    STATUS_NOT_FOUND,
)


class ReadfileError(Exception):
    """Base exception for all npm-readfile errors.

    Every subclass sets a class-level ``status_code`` corresponding to one
    of the constants in :mod:`npmreadfile.status_codes`.

    Args:
        message: Human-readable error description.
        status_code: Optional override for the class-level status code.
    """

    status_code: int = STATUS_INTERNAL_ERROR

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(ReadfileError):
    """Raised for a missing or malformed address, or a missing version specifier."""

    status_code = STATUS_BAD_REQUEST


class ForbiddenError(ReadfileError):
    """Raised when a resolved file path escapes its cache directory."""

    status_code = STATUS_FORBIDDEN


class NotFoundError(ReadfileError):
    """Raised when the package, the requested file, or the registry record is missing."""

    status_code = STATUS_NOT_FOUND


class VersionResolutionError(NotFoundError):
    """Raised when no published version matches the requested tag, version, or range."""


class UpstreamError(ReadfileError):
    """Raised on transport, decompression, or filesystem failures while fetching."""

    status_code = STATUS_BAD_GATEWAY


class RequestCancelledError(ReadfileError):
    """Raised into a stream that was cancelled or timed out."""

    status_code = STATUS_CLIENT_CLOSED_REQUEST


class ConfigError(ReadfileError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    status_code = STATUS_INTERNAL_ERROR
