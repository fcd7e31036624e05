"""Read-through cache of registry package documents.

A package document is stored verbatim at
``<root>/index/<package-name>/index.json`` and reused until it is older
than the staleness window (30 seconds by default), measured from the
file's last-write time.  A stale document is refetched and replaced
wholesale; it is never patched.

:meth:`PackageIndexCache.load_cached` returns a cached document regardless
of its age, which the streaming API uses for cache-preferring decisions.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Optional

from pydantic import ValidationError

from npmreadfile.client import REGISTRY_ACCEPT, RegistryClient
from npmreadfile.exceptions import NotFoundError, UpstreamError
from npmreadfile.layout import CacheLayout
from npmreadfile.models import DEFAULT_STALENESS_MS, PackageIndexDocument
from npmreadfile.store import CacheStore

logger = logging.getLogger(__name__)


class PackageIndexCache:
    """Disk-backed cache of package documents with time-based revalidation.

    Args:
        store: Where documents are persisted.
        layout: Maps package names to document paths.
        client: Fetches documents from the registry.
        staleness_ms: Maximum age of a cached document before refetching.
        clock: Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        store: CacheStore,
        layout: CacheLayout,
        client: RegistryClient,
        staleness_ms: int = DEFAULT_STALENESS_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._layout = layout
        self._client = client
        self._staleness_ms = staleness_ms
        self._clock = clock

    def is_fresh(self, name: str) -> bool:
        """Whether a cached document for *name* exists and is within the window."""
        mtime = self._store.mtime(self._layout.index_file(name))
        if mtime is None:
            return False
        return self._clock() < mtime + self._staleness_ms / 1000

    def load_cached(self, name: str) -> Optional[PackageIndexDocument]:
        """Return the cached document for *name* regardless of age.

        A missing, unreadable, or corrupt cache file yields ``None``.
        """
        path = self._layout.index_file(name)
        try:
            raw = self._store.read_bytes(path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read cached document %s: %s", path, exc)
            return None
        try:
            return PackageIndexDocument.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Ignoring corrupt cached document %s: %s", path, exc)
            return None

    async def get(self, name: str, index_url: str) -> PackageIndexDocument:
        """Return the document for *name*, fetching it if missing or stale.

        Args:
            name: Package name, used as the cache key.
            index_url: Registry URL of the document.

        Raises:
            NotFoundError: If the registry reports the package missing.
            UpstreamError: On transport failures, a malformed document, or
                a failure to persist it.
        """
        if self.is_fresh(name):
            cached = self.load_cached(name)
            if cached is not None:
                logger.debug("Using cached document for %s", name)
                return cached

        logger.debug("Fetching document for %s from %s", name, index_url)
        data = await self._client.get_json(index_url, accept=REGISTRY_ACCEPT)
        document = self._parse(name, data)

        path = self._layout.index_file(name)
        try:
            self._store.write_bytes(path, json.dumps(data).encode("utf-8"))
        except OSError as exc:
            raise UpstreamError(f"Cannot write {path}: {exc}") from exc
        return document

    @staticmethod
    def _parse(name: str, data: Any) -> PackageIndexDocument:
        if not isinstance(data, dict):
            raise UpstreamError(f"Malformed registry document for {name}")
        error = data.get("error")
        if error:
            # Registries answer unknown packages with {"error": "Not found"}.
            raise NotFoundError(f"Package {name} not found: {error}")
        try:
            return PackageIndexDocument.model_validate(data)
        except ValidationError as exc:
            raise UpstreamError(f"Malformed registry document for {name}: {exc}") from exc
