"""Canonical Pydantic models shared across all npm-readfile modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ReadfileConfig`.

**Registry and request models** -- produced while resolving an address:
    :class:`Address`, :class:`DistInfo`, :class:`VersionRecord`,
    :class:`PackageIndexDocument`, and :class:`ResolvedVersion`.

Registry documents carry many more fields than the resolver needs; those
models use ``extra="allow"`` so a cached document round-trips without loss.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_STALENESS_MS = 30_000


# --- Configuration ---


class ReadfileConfig(BaseModel):
    """Settings for a :class:`~npmreadfile.retrieval.Readfile` instance.

    Loaded from ``config.json`` in the config directory and layered with
    environment variables and explicit arguments by
    :func:`~npmreadfile.config.resolve_config`.
    """

    registry: Optional[str] = Field(
        default=None,
        description="Registry base URL. When unset the address's own origin is used.",
    )
    cache_dir: Optional[Path] = Field(
        default=None, description="Cache root. Defaults to the XDG cache directory."
    )
    staleness_ms: int = Field(
        default=DEFAULT_STALENESS_MS,
        ge=0,
        description="Maximum age of a cached package document before it is refetched",
    )
    timeout: float = Field(default=30.0, gt=0, description="Per-request HTTP timeout in seconds")
    verify_ssl: bool = True
    chunk_size: int = Field(default=65_536, gt=0, description="Read size for streamed files")
    background_refresh: bool = Field(
        default=True,
        description="Run the network path after a streaming cache hit to keep the cache warm",
    )


# --- Addresses ---


class Address(BaseModel):
    """A parsed ``registry/{package}@{version}/{file}`` address.

    Attributes:
        name: Package name, including the ``@scope/`` prefix for scoped
            packages.
        version: The version specifier (exact version, dist-tag, or range),
            or ``None`` when the address carried none.
        file_path: Path of the file inside the package; empty for the
            package root.
        index_url: URL of the package's registry document.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: Optional[str] = None
    file_path: str = ""
    index_url: str


# --- Registry documents ---


class DistInfo(BaseModel):
    """The ``dist`` section of a version record."""

    model_config = ConfigDict(extra="allow")

    tarball: str
    shasum: Optional[str] = None
    integrity: Optional[str] = None


class VersionRecord(BaseModel):
    """One published version inside a :class:`PackageIndexDocument`."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    version: Optional[str] = None
    dist: DistInfo


class PackageIndexDocument(BaseModel):
    """The full registry record of a package.

    Only ``dist-tags`` and ``versions`` are interpreted; everything else the
    registry sends is preserved in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: Optional[str] = None
    dist_tags: dict[str, str] = Field(default_factory=dict, alias="dist-tags")
    versions: dict[str, VersionRecord] = Field(default_factory=dict)


class ResolvedVersion(BaseModel):
    """Outcome of resolving a specifier against a :class:`PackageIndexDocument`."""

    exact_version: str
    record: VersionRecord
    is_dist_tag: bool = False

    @property
    def tarball_url(self) -> str:
        return self.record.dist.tarball
