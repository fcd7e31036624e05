"""Parse ``registry/{package}@{version}/{file}`` addresses.

:func:`parse_address` is pure and deterministic: the same address always
yields the same :class:`~npmreadfile.models.Address`.  Both plain and
scoped package names are supported::

    >>> parse_address("https://registry.npmjs.org/@babel/core@7.1.2/lib/index.js")
    Address(name='@babel/core', version='7.1.2', file_path='lib/index.js', ...)

The registry document URL is built the way registries expect it: the name
is percent-encoded but a scoped name keeps its literal leading ``@``
(``@babel%2Fcore``).
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

from npmreadfile.config import normalize_registry_url
from npmreadfile.exceptions import BadRequestError
from npmreadfile.models import Address

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^(?:@[^/@]+/)?[^/@]+$")


def index_url(registry: str, name: str) -> str:
    """Return the registry document URL for package *name*."""
    encoded = quote(name, safe="")
    if encoded.startswith("%40"):
        encoded = "@" + encoded[3:]
    return f"{normalize_registry_url(registry)}{encoded}"


def _split_name_and_version(segment: str) -> tuple[str, Optional[str]]:
    """Split ``name@version`` (or ``@scope/name@version``) at the version separator."""
    if segment.startswith("@"):
        bare, sep, version = segment[1:].partition("@")
        name = "@" + bare
    else:
        name, sep, version = segment.partition("@")
    return name, (version if sep else None)


def parse_address(address: str, registry: Optional[str] = None) -> Address:
    """Parse *address* into its package name, version specifier, and file path.

    Args:
        address: An absolute URL such as
            ``https://registry.npmjs.org/lodash@4.17.21/package.json``.
        registry: Registry base URL used for the package document.  When
            ``None`` the address's own origin is used.

    Returns:
        The parsed :class:`~npmreadfile.models.Address`.

    Raises:
        BadRequestError: If the address is empty, is not an absolute URL,
            has fewer than two path segments, or names no package.
    """
    if not address:
        raise BadRequestError("An address is required")

    try:
        parts = urlsplit(address)
    except ValueError as exc:
        raise BadRequestError(f"Malformed address {address!r}: {exc}") from exc
    if not parts.scheme or not parts.netloc:
        raise BadRequestError(f"Address must be an absolute URL: {address!r}")

    segments = [unquote(seg) for seg in parts.path.split("/") if seg]
    if len(segments) < 2:
        raise BadRequestError(
            f"Address must contain a package and a file path: {address!r}"
        )

    name_with_version = segments.pop(0)
    # "@scope%2Fpkg@1.0.0" already carries its scope after decoding.
    if name_with_version.startswith("@") and "/" not in name_with_version:
        name_with_version += "/" + segments.pop(0)

    name, version = _split_name_and_version(name_with_version)
    if not _NAME_RE.match(name):
        raise BadRequestError(f"Address does not name a package: {address!r}")
    if version and "/" in version:
        raise BadRequestError(f"Malformed version in address: {address!r}")

    base = registry or f"{parts.scheme}://{parts.netloc}/"
    result = Address(
        name=name,
        version=version or None,
        file_path="/".join(segments),
        index_url=index_url(base, name),
    )
    logger.debug(
        "Parsed %s -> name=%s version=%s file=%s index=%s",
        address, result.name, result.version, result.file_path, result.index_url,
    )
    return result
