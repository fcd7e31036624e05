"""HTTP status codes carried by npm-readfile errors.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~npmreadfile.exceptions.ReadfileError` subclass.
Callers embedding npm-readfile behind an HTTP endpoint can answer with
``exc.status_code`` directly instead of mapping error types themselves.

Example::

    try:
        path = await readfile.download_file(address)
    except ReadfileError as exc:
        return Response(status_code=exc.status_code)
"""

STATUS_BAD_REQUEST = 400
"""The address was missing, malformed, or carried no version specifier."""

STATUS_FORBIDDEN = 403
"""The requested file path escapes the package's cache directory."""

STATUS_NOT_FOUND = 404
"""The package, version, tag, or file does not exist."""

STATUS_CLIENT_CLOSED_REQUEST = 499
"""The request was cancelled or timed out before it completed."""

STATUS_INTERNAL_ERROR = 500
"""An unclassified error occurred."""

STATUS_BAD_GATEWAY = 502
"""The registry, the tarball download, or the extraction failed."""
