"""Download a package tarball and extract it into a cache directory.

Published tarballs wrap everything in a single top-level directory
(conventionally ``package/``), which is stripped on extraction so that
``package/lib/index.js`` lands at ``<target>/lib/index.js``.

The download is streamed into a :class:`tempfile.SpooledTemporaryFile`
(in memory up to a threshold, on disk beyond it) and then read with
:mod:`tarfile` in stream mode.  Entries are processed strictly one at a
time, each entry's content fully drained before the next header is read,
so memory stays bounded whatever the archive size.  Extraction runs in a
worker thread so the event loop is not blocked by decompression.

On failure the target directory is left as-is; extracting again into it is
safe and is the recovery path.
"""

from __future__ import annotations

import asyncio
import logging
import tarfile
import tempfile
import zlib
from pathlib import Path
from typing import IO

from npmreadfile.client import RegistryClient
from npmreadfile.exceptions import ForbiddenError, UpstreamError
from npmreadfile.layout import CacheLayout
from npmreadfile.store import CacheStore

logger = logging.getLogger(__name__)

SPOOL_MAX_SIZE = 8 * 1024 * 1024


def strip_first_component(member_name: str) -> str:
    """Drop the archive's top-level directory from *member_name*.

    Returns an empty string for the top-level directory itself.
    """
    parts = [part for part in member_name.split("/") if part and part != "."]
    return "/".join(parts[1:])


class ArchiveFetcher:
    """Fetch-and-extract for package tarballs.

    Args:
        client: Streams the tarball body.
        store: Receives the extracted files.
        layout: Used to keep every entry inside the target directory.
    """

    def __init__(self, client: RegistryClient, store: CacheStore, layout: CacheLayout) -> None:
        self._client = client
        self._store = store
        self._layout = layout

    async def fetch_and_extract(self, tarball_url: str, target_dir: Path) -> int:
        """Download *tarball_url* and extract it into *target_dir*.

        Returns:
            The number of regular files written.

        Raises:
            NotFoundError: If the tarball URL answers 404.
            UpstreamError: On transport, decompression, or filesystem errors.
        """
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as spool:
            async with self._client.stream(tarball_url) as response:
                async for chunk in response.aiter_bytes():
                    spool.write(chunk)
            size = spool.tell()
            spool.seek(0)
            logger.debug("Downloaded %s (%d bytes)", tarball_url, size)
            try:
                written = await asyncio.to_thread(self._extract, spool, target_dir)
            except (tarfile.TarError, zlib.error, EOFError) as exc:
                raise UpstreamError(f"Cannot decompress {tarball_url}: {exc}") from exc
            except OSError as exc:
                raise UpstreamError(f"Cannot extract {tarball_url} into {target_dir}: {exc}") from exc
        logger.debug("Extracted %d files from %s into %s", written, tarball_url, target_dir)
        return written

    def _extract(self, fileobj: IO[bytes], target_dir: Path) -> int:
        self._store.mkdir(target_dir)
        written = 0
        with tarfile.open(fileobj=fileobj, mode="r|gz") as archive:
            for member in archive:
                relative = strip_first_component(member.name)
                if not relative:
                    continue
                try:
                    destination = self._layout.resolve_file(target_dir, relative)
                except ForbiddenError:
                    logger.warning("Skipping archive entry outside target: %s", member.name)
                    continue

                if member.isdir():
                    self._store.mkdir(destination)
                elif member.isfile():
                    source = archive.extractfile(member)
                    data = source.read() if source is not None else b""
                    self._store.write_bytes(destination, data)
                    written += 1
                else:
                    logger.debug("Skipping non-regular archive entry: %s", member.name)
        return written
