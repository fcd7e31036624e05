"""Top-level retrieval: buffered and streaming reads of one package file.

:class:`Readfile` composes address parsing, the package document cache,
version resolution, and tarball extraction into two strategies:

**Buffered** (:meth:`Readfile.download_file`, :meth:`Readfile.read_file`)
    An exact version whose file is already extracted is served straight
    from the cache with no network traffic.  Anything else goes through
    the network path: package document, version resolution,
    fetch-and-extract, then locate the file.

**Streaming** (:meth:`Readfile.create_read_stream`)
    Returns a :class:`~npmreadfile.stream.ReadStream` immediately and
    decides how to fill it in a background task:

    1. Load the cached package document, stale or not, without touching
       the network.
    2. With ``prefer_cache`` and a non-exact specifier, resolve against
       that cached document and serve the file if it is extracted.
    3. With an exact specifier (and a cached document), serve the file if
       it is extracted.
    4. Run the network path.  If step 2 or 3 already served the caller,
       the result only refreshes the cache and any failure is logged, never
       delivered to the stream.

Concurrent requests for the same ``(name, exact_version)`` share one
download-and-extract (:meth:`Readfile._ensure_extracted`).
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Union

from npmreadfile.address import parse_address
from npmreadfile.archive import ArchiveFetcher
from npmreadfile.client import RegistryClient
from npmreadfile.config import get_cache_dir, resolve_config
from npmreadfile.exceptions import (
    BadRequestError,
    NotFoundError,
    ReadfileError,
    RequestCancelledError,
)
from npmreadfile.index_cache import PackageIndexCache
from npmreadfile.layout import CacheLayout
from npmreadfile.models import Address, ReadfileConfig, ResolvedVersion
from npmreadfile.resolver import is_exact_version, resolve_version
from npmreadfile.store import CacheStore, DiskCacheStore
from npmreadfile.stream import ReadStream

logger = logging.getLogger(__name__)


class Readfile:
    """Resolve package addresses to files, backed by a disk cache.

    Args:
        config: Effective configuration.  Resolved with
            :func:`~npmreadfile.config.resolve_config` when omitted.
        store: Cache persistence.  Defaults to a
            :class:`~npmreadfile.store.DiskCacheStore` at
            ``config.cache_dir``.
        client: Registry transport.  Defaults to a
            :class:`~npmreadfile.client.RegistryClient` built from
            ``config``.
        clock: Returns the current time in epoch seconds; drives the
            staleness window.

    Example::

        readfile = Readfile()
        text = await readfile.read_file(
            "https://registry.npmjs.org/@babel/core@7.1.2/lib/index.js",
            encoding="utf-8",
        )
    """

    def __init__(
        self,
        config: Optional[ReadfileConfig] = None,
        store: Optional[CacheStore] = None,
        client: Optional[RegistryClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if config is None:
            config = resolve_config()
        self.config = config
        if store is None:
            store = DiskCacheStore(config.cache_dir or get_cache_dir())
        self.store = store
        self.layout = CacheLayout(store.root)
        self.client = client or RegistryClient(
            timeout=config.timeout, verify_ssl=config.verify_ssl
        )
        self.index_cache = PackageIndexCache(
            store, self.layout, self.client, staleness_ms=config.staleness_ms, clock=clock
        )
        self.fetcher = ArchiveFetcher(self.client, store, self.layout)
        # Lookup and insert happen with no await in between, so the
        # event loop serialises access.
        self._inflight: dict[tuple[str, str], asyncio.Future] = {}

    # ------------------------------------------------------------------ #
    # Buffered strategy
    # ------------------------------------------------------------------ #

    async def download_file(self, address: str) -> Path:
        """Make sure the addressed file is extracted and return its path.

        Raises:
            BadRequestError: Missing or malformed address, or no version.
            NotFoundError: Unknown package, version, tag, or file.
            ForbiddenError: The file path escapes the cache directory.
            UpstreamError: Download or extraction failed.
        """
        if not address:
            raise BadRequestError("An address is required")
        parsed = parse_address(address, self.config.registry)

        if is_exact_version(parsed.version):
            cached = self._cached_file(parsed.name, parsed.version, parsed.file_path)
            if cached is not None:
                logger.debug("Cache hit for %s@%s/%s", parsed.name, parsed.version, parsed.file_path)
                return cached

        return await self._fetch_file(parsed)

    async def read_file(self, address: str, encoding: Optional[str] = None) -> Union[bytes, str]:
        """Return the contents of the addressed file.

        Args:
            address: The package file address.
            encoding: Decode the bytes with this codec and return ``str``.

        Raises:
            Everything :meth:`download_file` raises, plus :class:`OSError`
            when the located path cannot be read (e.g. it is a directory).
        """
        path = await self.download_file(address)
        data = await asyncio.to_thread(self.store.read_bytes, path)
        if encoding:
            return data.decode(encoding)
        return data

    # ------------------------------------------------------------------ #
    # Streaming strategy
    # ------------------------------------------------------------------ #

    def create_read_stream(
        self,
        address: str,
        prefer_cache: bool = False,
        encoding: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ReadStream:
        """Return a stream that will carry the addressed file.

        Must be called from a running event loop.  Only an empty address
        raises here; every other failure is delivered through the stream.
        The file is pushed in ``config.chunk_size`` pieces as it is read.

        Args:
            address: The package file address.
            prefer_cache: Resolve tags and ranges against a cached, possibly
                stale, package document and serve an extracted file from
                the cache without waiting for the registry.
            encoding: Yield ``str`` chunks decoded with this codec.
            timeout: Seconds after which the request is abandoned and the
                stream fails with :class:`RequestCancelledError`.

        Raises:
            BadRequestError: If *address* is empty.
        """
        if not address:
            raise BadRequestError("An address is required")
        stream = ReadStream(encoding=encoding)
        task = asyncio.get_running_loop().create_task(
            self._run_stream(stream, address, prefer_cache, timeout)
        )
        stream._attach(task)
        return stream

    async def _run_stream(
        self,
        stream: ReadStream,
        address: str,
        prefer_cache: bool,
        timeout: Optional[float],
    ) -> None:
        try:
            if timeout is None:
                await self._fill_stream(stream, address, prefer_cache)
            else:
                await asyncio.wait_for(self._fill_stream(stream, address, prefer_cache), timeout)
        except asyncio.TimeoutError:
            if not stream._fail(RequestCancelledError(f"Request timed out after {timeout}s")):
                logger.warning("Request for %s timed out after the stream was settled", address)
        except asyncio.CancelledError:
            stream._fail(RequestCancelledError("Request was cancelled"))
            raise

    async def _fill_stream(self, stream: ReadStream, address: str, prefer_cache: bool) -> None:
        used_cache = False
        try:
            parsed = parse_address(address, self.config.registry)
            exact = is_exact_version(parsed.version)
            cached_doc = self.index_cache.load_cached(parsed.name)

            if prefer_cache and cached_doc is not None and not exact:
                try:
                    resolved: Optional[ResolvedVersion] = resolve_version(cached_doc, parsed.version)
                except ReadfileError as exc:
                    logger.debug("Cached document cannot resolve %s: %s", parsed.version, exc)
                    resolved = None
                if resolved is not None:
                    used_cache = await self._serve_cached(
                        stream, parsed.name, resolved.exact_version, parsed.file_path
                    )
            elif cached_doc is not None and exact:
                used_cache = await self._serve_cached(
                    stream, parsed.name, parsed.version, parsed.file_path
                )

            stream.used_cache = used_cache
            if used_cache and not self.config.background_refresh:
                return

            path = await self._fetch_file(parsed)
            if not used_cache:
                await self._pipe(stream, path)
        except Exception as exc:
            if used_cache:
                logger.warning("Background refresh for %s failed: %s", address, exc)
            else:
                stream._fail(exc)

    async def _serve_cached(
        self, stream: ReadStream, name: str, exact_version: str, file_path: str
    ) -> bool:
        """Fulfil *stream* from an extracted file.  Returns False on a miss."""
        path = self._cached_file(name, exact_version, file_path)
        if path is None:
            return False
        try:
            served = await self._pipe(stream, path)
        except OSError as exc:
            logger.debug("Cannot serve %s from cache: %s", path, exc)
            return False
        if served:
            logger.debug("Served %s@%s/%s from cache", name, exact_version, file_path)
        return served

    async def _pipe(self, stream: ReadStream, path: Path) -> bool:
        """Feed the file at *path* into *stream* one chunk at a time.

        The first chunk is read before the stream is settled, so a file that
        cannot be opened raises :class:`OSError` and leaves *stream* free.
        A read failure after that ends the stream with the error.

        Returns:
            False, reading nothing further, if *stream* was already settled.
        """
        chunks = self.store.iter_bytes(path, self.config.chunk_size)
        chunk = await asyncio.to_thread(next, chunks, None)
        if not stream._begin():
            return False
        try:
            while chunk is not None:
                stream._push(chunk)
                chunk = await asyncio.to_thread(next, chunks, None)
        except asyncio.CancelledError:
            stream._end(RequestCancelledError("Request was cancelled"))
            raise
        except OSError as exc:
            stream._end(ReadfileError(f"Cannot read {path}: {exc}"))
        else:
            stream._end()
        return True

    # ------------------------------------------------------------------ #
    # Shared steps
    # ------------------------------------------------------------------ #

    def _cached_file(self, name: str, exact_version: str, file_path: str) -> Optional[Path]:
        """Path of an already-extracted file, or ``None``.

        Raises:
            ForbiddenError: If *file_path* escapes the version's directory.
        """
        directory = self.layout.download_dir(name, exact_version)
        path = self.layout.resolve_file(directory, file_path)
        return path if self.store.exists(path) else None

    async def _fetch_file(self, parsed: Address) -> Path:
        """Network path: document, version, fetch-and-extract, locate."""
        document = await self.index_cache.get(parsed.name, parsed.index_url)
        resolved = resolve_version(document, parsed.version)
        logger.debug(
            "Resolved %s@%s to %s%s",
            parsed.name, parsed.version, resolved.exact_version,
            " (dist-tag)" if resolved.is_dist_tag else "",
        )
        directory = await self._ensure_extracted(parsed.name, resolved)
        path = self.layout.resolve_file(directory, parsed.file_path)
        if not self.store.exists(path):
            raise NotFoundError(
                f"{parsed.file_path} not found in {parsed.name}@{resolved.exact_version}"
            )
        return path

    async def _ensure_extracted(self, name: str, resolved: ResolvedVersion) -> Path:
        """Download and extract *resolved* once per concurrent burst of requests.

        A second caller for the same ``(name, exact_version)`` while an
        extraction is running waits for that extraction instead of starting
        its own.  Finished entries are dropped, so a later request
        re-extracts (idempotently) as usual.
        """
        key = (name, resolved.exact_version)
        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug("Joining in-flight extraction of %s@%s", *key)
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The owning request was cancelled; extract on our own.
                if key in self._inflight:
                    return await self._ensure_extracted(name, resolved)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        # Mark the exception retrieved even when nobody joined.
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._inflight[key] = future
        try:
            directory = self.layout.download_dir(name, resolved.exact_version)
            await self.fetcher.fetch_and_extract(resolved.tarball_url, directory)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(directory)
            return directory
        finally:
            self._inflight.pop(key, None)


# ------------------------------------------------------------------ #
# Default instance and module-level API
# ------------------------------------------------------------------ #

_readfile: Optional[Readfile] = None


def get_readfile() -> Readfile:
    """Return the process-wide :class:`Readfile`, creating it on first use."""
    global _readfile
    if _readfile is None:
        _readfile = Readfile()
    return _readfile


def set_readfile(readfile: Readfile) -> None:
    """Install *readfile* as the process-wide instance."""
    global _readfile
    _readfile = readfile


def reset_readfile() -> None:
    """Drop the process-wide instance.  Primarily useful in test suites."""
    global _readfile
    _readfile = None


async def download_file(address: str) -> Path:
    """:meth:`Readfile.download_file` on the process-wide instance."""
    return await get_readfile().download_file(address)


async def read_file(address: str, encoding: Optional[str] = None) -> Union[bytes, str]:
    """:meth:`Readfile.read_file` on the process-wide instance."""
    return await get_readfile().read_file(address, encoding=encoding)


def create_read_stream(
    address: str,
    prefer_cache: bool = False,
    encoding: Optional[str] = None,
    timeout: Optional[float] = None,
) -> ReadStream:
    """:meth:`Readfile.create_read_stream` on the process-wide instance."""
    return get_readfile().create_read_stream(
        address, prefer_cache=prefer_cache, encoding=encoding, timeout=timeout
    )
