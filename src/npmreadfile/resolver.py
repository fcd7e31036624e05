"""Resolve a version specifier against a package document.

The resolution order is:

1. A dist-tag (``latest``, ``next``, ...) resolves to the tag's target.
2. A published exact version resolves to itself.
3. Anything else is an npm semver range, resolved to the highest published
   version that satisfies it (``^1.0.0`` over ``1.0.0, 1.2.0, 2.0.0`` is
   ``1.2.0``).

Range matching and version validity use :mod:`nodesemver`, which follows
the node-semver grammar npm itself uses.
"""

from __future__ import annotations

from typing import Optional

import nodesemver

from npmreadfile.exceptions import BadRequestError, VersionResolutionError
from npmreadfile.models import PackageIndexDocument, ResolvedVersion


def is_exact_version(specifier: Optional[str]) -> bool:
    """Return True if *specifier* is a syntactically valid semantic version."""
    if not specifier:
        return False
    try:
        return nodesemver.valid(specifier, False) is not None
    except ValueError:
        return False


def _max_satisfying(versions: list[str], range_: str) -> Optional[str]:
    # Old packages publish loose keys such as "0.9.0beta"; they never match a range.
    candidates = [v for v in versions if is_exact_version(v)]
    if not candidates:
        return None
    try:
        return nodesemver.max_satisfying(candidates, range_, False)
    except ValueError:
        # Not a parseable range either.
        return None


def resolve_version(document: PackageIndexDocument, specifier: Optional[str]) -> ResolvedVersion:
    """Resolve *specifier* to one published version of *document*.

    Args:
        document: The package document.
        specifier: A dist-tag, an exact version, or a semver range.

    Returns:
        The :class:`~npmreadfile.models.ResolvedVersion`.

    Raises:
        BadRequestError: If *specifier* is empty.
        VersionResolutionError: If nothing in *document* matches.
    """
    if not specifier:
        raise BadRequestError("A version or tag is required")

    is_dist_tag = False
    if specifier in document.dist_tags:
        exact: Optional[str] = document.dist_tags[specifier]
        is_dist_tag = True
    elif specifier in document.versions:
        exact = specifier
    else:
        exact = _max_satisfying(list(document.versions), specifier)

    record = document.versions.get(exact) if exact else None
    if record is None:
        raise VersionResolutionError(
            f"Version doesn't exist: {document.name or 'package'}@{specifier}"
        )
    return ResolvedVersion(exact_version=exact, record=record, is_dist_tag=is_dist_tag)
