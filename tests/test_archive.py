"""Tests for npmreadfile.archive -- tarball download and extraction."""

from __future__ import annotations

import io
import os
import tarfile
from pathlib import Path

import pytest

from npmreadfile.archive import ArchiveFetcher, strip_first_component
from npmreadfile.exceptions import NotFoundError, UpstreamError
from npmreadfile.layout import CacheLayout
from npmreadfile.store import DiskCacheStore, MemoryCacheStore

TARGET = Path("/cache/files/pkg/1.0.0")
URL = "https://registry.test/custom.tgz"


def _serve(registry, content: bytes, url: str = URL) -> None:
    registry.routes[url] = (200, content, {"content-type": "application/octet-stream"})


def _raw_tarball(entries: list[tuple[tarfile.TarInfo, bytes | None]]) -> bytes:
    """Build a tarball from explicit headers, for entries make_tarball cannot express."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for info, data in entries:
            if data is None:
                archive.addfile(info)
            else:
                info.size = len(data)
                archive.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _entry(name: str, kind: bytes = tarfile.REGTYPE, linkname: str = "") -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = kind
    info.linkname = linkname
    return info


@pytest.fixture()
def fetcher(registry, store: MemoryCacheStore) -> ArchiveFetcher:
    return ArchiveFetcher(registry.client(), store, CacheLayout(store.root))


class TestStripFirstComponent:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("package/lib/x.js", "lib/x.js"),
            ("package/README.md", "README.md"),
            ("package", ""),
            ("package/", ""),
            ("./package/lib/x.js", "lib/x.js"),
            ("node-fetch/index.js", "index.js"),
        ],
    )
    def test_strip(self, name: str, expected: str) -> None:
        assert strip_first_component(name) == expected


class TestFetchAndExtract:
    async def test_extracts_with_top_level_stripped(self, fetcher, registry, store) -> None:
        written = await fetcher.fetch_and_extract(registry.tarball_url("pkg", "1.0.0"), TARGET)
        assert written == 2
        assert store.read_bytes(TARGET / "README.md") == b"# pkg 1.0.0\n"
        assert store.read_bytes(TARGET / "lib" / "index.js") == b"module.exports = 1\n"
        assert not store.exists(TARGET / "package")

    async def test_any_wrapper_directory_is_stripped(self, fetcher, registry, store, tarball) -> None:
        _serve(registry, tarball({"index.js": b"1"}, prefix="node-fetch"))
        await fetcher.fetch_and_extract(URL, TARGET)
        assert store.read_bytes(TARGET / "index.js") == b"1"

    async def test_directories_created_before_files(self, fetcher, registry, store, tarball) -> None:
        # No explicit directory entries for a/b/c.
        _serve(registry, tarball({"a/b/c/d.txt": b"deep"}))
        await fetcher.fetch_and_extract(URL, TARGET)
        assert store.exists(TARGET / "a" / "b" / "c")
        assert store.read_bytes(TARGET / "a" / "b" / "c" / "d.txt") == b"deep"

    async def test_entries_written_in_archive_order(self, fetcher, registry, store, tarball) -> None:
        _serve(registry, tarball({"one.txt": b"1", "two.txt": b"2", "three.txt": b"3"}))
        await fetcher.fetch_and_extract(URL, TARGET)
        names = [p.name for p in store.writes]
        assert names == ["one.txt", "two.txt", "three.txt"]

    async def test_re_extraction_is_idempotent(self, fetcher, registry, store) -> None:
        url = registry.tarball_url("pkg", "1.0.0")
        await fetcher.fetch_and_extract(url, TARGET)
        await fetcher.fetch_and_extract(url, TARGET)
        assert store.read_bytes(TARGET / "README.md") == b"# pkg 1.0.0\n"

    async def test_empty_file(self, fetcher, registry, store, tarball) -> None:
        _serve(registry, tarball({"empty.txt": b""}))
        await fetcher.fetch_and_extract(URL, TARGET)
        assert store.read_bytes(TARGET / "empty.txt") == b""

    async def test_escaping_entries_skipped(self, fetcher, registry, store) -> None:
        _serve(
            registry,
            _raw_tarball(
                [
                    (_entry("package/ok.txt"), b"ok"),
                    (_entry("package/../../evil.txt"), b"evil"),
                ]
            ),
        )
        written = await fetcher.fetch_and_extract(URL, TARGET)
        assert written == 1
        assert store.read_bytes(TARGET / "ok.txt") == b"ok"
        assert not store.exists(Path("/cache/files/pkg/evil.txt"))

    async def test_links_skipped(self, fetcher, registry, store) -> None:
        _serve(
            registry,
            _raw_tarball(
                [
                    (_entry("package/real.txt"), b"real"),
                    (_entry("package/link.txt", tarfile.SYMTYPE, "/etc/passwd"), None),
                ]
            ),
        )
        written = await fetcher.fetch_and_extract(URL, TARGET)
        assert written == 1
        assert not store.exists(TARGET / "link.txt")

    async def test_large_file_spills_and_extracts(self, fetcher, registry, store, tarball) -> None:
        payload = bytes(range(256)) * 40_000  # ~10 MB uncompressed
        _serve(registry, tarball({"big.bin": payload}))
        await fetcher.fetch_and_extract(URL, TARGET)
        assert store.read_bytes(TARGET / "big.bin") == payload

    async def test_extracts_to_disk(self, registry, tmp_path: Path) -> None:
        disk = DiskCacheStore(tmp_path)
        layout = CacheLayout(disk.root)
        target = layout.download_dir("pkg", "1.0.0")
        fetcher = ArchiveFetcher(registry.client(), disk, layout)
        await fetcher.fetch_and_extract(registry.tarball_url("pkg", "1.0.0"), target)
        assert (target / "lib" / "index.js").read_bytes() == b"module.exports = 1\n"


class TestFailures:
    async def test_missing_tarball(self, fetcher) -> None:
        with pytest.raises(NotFoundError):
            await fetcher.fetch_and_extract("https://registry.test/nope.tgz", TARGET)

    async def test_server_error(self, fetcher, registry) -> None:
        registry.routes[URL] = (503, b"unavailable", {})
        with pytest.raises(UpstreamError, match="503"):
            await fetcher.fetch_and_extract(URL, TARGET)

    async def test_not_gzip(self, fetcher, registry) -> None:
        _serve(registry, b"this is not a tarball")
        with pytest.raises(UpstreamError, match="decompress"):
            await fetcher.fetch_and_extract(URL, TARGET)

    async def test_truncated_archive(self, fetcher, registry, tarball) -> None:
        data = tarball({"a.txt": os.urandom(50_000)})
        _serve(registry, data[: len(data) // 2])
        with pytest.raises(UpstreamError):
            await fetcher.fetch_and_extract(URL, TARGET)

    async def test_connection_error(self, fetcher, registry) -> None:
        registry.failing.add(URL)
        with pytest.raises(UpstreamError):
            await fetcher.fetch_and_extract(URL, TARGET)

    async def test_filesystem_error(self, registry, tarball) -> None:
        class ReadOnlyStore(MemoryCacheStore):
            def write_bytes(self, path, data) -> None:
                raise PermissionError(f"read-only: {path}")

        store = ReadOnlyStore("/cache")
        fetcher = ArchiveFetcher(registry.client(), store, CacheLayout(store.root))
        _serve(registry, tarball({"a.txt": b"a"}))
        with pytest.raises(UpstreamError, match="Cannot extract"):
            await fetcher.fetch_and_extract(URL, TARGET)
