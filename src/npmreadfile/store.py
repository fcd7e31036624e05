"""Byte stores backing the on-disk cache.

Everything npm-readfile persists -- package documents and extracted
tarball contents -- goes through a :class:`CacheStore`.  Two
implementations are provided:

* :class:`DiskCacheStore` -- the real filesystem rooted at the cache
  directory.  Writes use an atomic temp-file-then-rename strategy
  (:func:`_atomic_write`) so two requests extracting the same version
  never expose a half-written file to a reader.
* :class:`MemoryCacheStore` -- a dict-backed store with an injectable
  clock, used for hermetic tests.

Paths passed to a store are absolute paths beneath ``store.root``;
:class:`~npmreadfile.layout.CacheLayout` computes them.
"""

from __future__ import annotations

import os
import tempfile
import threading
import time
from pathlib import Path, PurePath
from typing import Callable, Iterator, Optional, Protocol


class CacheStore(Protocol):
    """Capability interface for cache persistence."""

    root: Path

    def exists(self, path: PurePath) -> bool: ...

    def mtime(self, path: PurePath) -> Optional[float]:
        """Return the last-write time in epoch seconds, or ``None`` if missing."""
        ...

    def read_bytes(self, path: PurePath) -> bytes: ...

    def iter_bytes(self, path: PurePath, chunk_size: int) -> Iterator[bytes]: ...

    def write_bytes(self, path: PurePath, data: bytes) -> None: ...

    def mkdir(self, path: PurePath) -> None: ...


# --- Atomic file writes ---


def _atomic_write(path: Path, data: bytes) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On success the temp file is renamed over *path*; on any failure the temp
    file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


class DiskCacheStore:
    """:class:`CacheStore` backed by the local filesystem.

    Args:
        root: Cache root directory.  Created on first write.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def exists(self, path: PurePath) -> bool:
        return Path(path).exists()

    def mtime(self, path: PurePath) -> Optional[float]:
        try:
            return Path(path).stat().st_mtime
        except FileNotFoundError:
            return None

    def read_bytes(self, path: PurePath) -> bytes:
        return Path(path).read_bytes()

    def iter_bytes(self, path: PurePath, chunk_size: int) -> Iterator[bytes]:
        with open(path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    return
                yield chunk

    def write_bytes(self, path: PurePath, data: bytes) -> None:
        _atomic_write(Path(path), data)

    def mkdir(self, path: PurePath) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)


class MemoryCacheStore:
    """In-memory :class:`CacheStore` for tests.

    Files are kept in a dict keyed by path together with the clock reading
    at write time, so staleness checks can be driven by a fake clock.

    Args:
        root: Nominal cache root.  Nothing is created on disk.
        clock: Returns the current time in epoch seconds.
    """

    def __init__(self, root: str | Path = "/cache", clock: Callable[[], float] = time.time) -> None:
        self.root = Path(root)
        self._clock = clock
        self._files: dict[Path, tuple[bytes, float]] = {}
        self._dirs: dict[Path, float] = {}
        self._lock = threading.Lock()
        self.writes: list[Path] = []

    def exists(self, path: PurePath) -> bool:
        key = Path(path)
        with self._lock:
            return key in self._files or key in self._dirs

    def mtime(self, path: PurePath) -> Optional[float]:
        key = Path(path)
        with self._lock:
            if key in self._files:
                return self._files[key][1]
            return self._dirs.get(key)

    def read_bytes(self, path: PurePath) -> bytes:
        key = Path(path)
        with self._lock:
            if key in self._dirs:
                raise IsADirectoryError(str(key))
            try:
                return self._files[key][0]
            except KeyError:
                raise FileNotFoundError(str(key)) from None

    def iter_bytes(self, path: PurePath, chunk_size: int) -> Iterator[bytes]:
        data = self.read_bytes(path)
        for offset in range(0, len(data), chunk_size):
            yield data[offset:offset + chunk_size]

    def write_bytes(self, path: PurePath, data: bytes) -> None:
        key = Path(path)
        self.mkdir(key.parent)
        with self._lock:
            self._files[key] = (bytes(data), self._clock())
            self.writes.append(key)

    def mkdir(self, path: PurePath) -> None:
        key = Path(path)
        now = self._clock()
        with self._lock:
            for directory in (key, *key.parents):
                if directory in self._files:
                    raise NotADirectoryError(str(directory))
                self._dirs.setdefault(directory, now)
