"""Shared test fixtures for npm-readfile.

Provides a fake clock, an in-memory cache store, an in-memory registry
served through :class:`httpx.MockTransport`, and a :class:`Readfile`
wired to all three, so that no test touches the network or the real
cache directory.
"""

from __future__ import annotations

import io
import json
import tarfile
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from npmreadfile.address import index_url
from npmreadfile.client import RegistryClient
from npmreadfile.models import ReadfileConfig
from npmreadfile.retrieval import Readfile, reset_readfile
from npmreadfile.store import MemoryCacheStore

REGISTRY = "https://registry.test/"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_tarball(files: dict[str, bytes], prefix: str = "package") -> bytes:
    """Build a gzipped tarball with every file under a single *prefix* directory."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        root = tarfile.TarInfo(prefix)
        root.type = tarfile.DIRTYPE
        archive.addfile(root)
        for path, data in files.items():
            info = tarfile.TarInfo(f"{prefix}/{path}")
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeRegistry:
    """In-memory npm registry answering through :class:`httpx.MockTransport`.

    Every request URL is recorded in :attr:`requests`.  Unknown URLs are
    answered the way npm does: HTTP 404 with ``{"error": "Not found"}``.
    URLs listed in :attr:`failing` raise a connection error.
    """

    def __init__(self, base: str = REGISTRY) -> None:
        self.base = base
        self.routes: dict[str, tuple[int, bytes, dict[str, str]]] = {}
        self.requests: list[str] = []
        self.failing: set[str] = set()

    def add_package(
        self,
        name: str,
        versions: dict[str, dict[str, bytes]],
        dist_tags: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """Publish *name* with the given file trees per version.  Returns the document."""
        document: dict[str, Any] = {
            "name": name,
            "dist-tags": dict(dist_tags or {}),
            "versions": {},
        }
        for version, files in versions.items():
            url = self.tarball_url(name, version)
            document["versions"][version] = {
                "name": name,
                "version": version,
                "dist": {"tarball": url},
            }
            self.routes[url] = (200, make_tarball(files), {"content-type": "application/octet-stream"})
        self.set_document(name, document)
        return document

    def set_document(self, name: str, document: Any) -> None:
        self.routes[self.index_url(name)] = (
            200,
            json.dumps(document).encode("utf-8"),
            {"content-type": "application/json"},
        )

    def index_url(self, name: str) -> str:
        return index_url(self.base, name)

    def tarball_url(self, name: str, version: str) -> str:
        basename = name.rsplit("/", 1)[-1]
        return f"{self.base}{name}/-/{basename}-{version}.tgz"

    def count(self, fragment: str) -> int:
        """Number of recorded requests whose URL contains *fragment*."""
        return sum(1 for url in self.requests if fragment in url)

    def document_requests(self, name: str) -> int:
        """Number of requests for the package document of *name*."""
        url = self.index_url(name)
        return sum(1 for requested in self.requests if requested == url)

    @property
    def tarball_requests(self) -> int:
        return self.count(".tgz")

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.failing:
            raise httpx.ConnectError("connection refused", request=request)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, json={"error": "Not found"})
        status, content, headers = route
        return httpx.Response(status, headers=headers, content=content)

    def client(self) -> RegistryClient:
        return RegistryClient(timeout=5, transport=httpx.MockTransport(self.handler))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_default_readfile() -> None:
    """Drop the process-wide Readfile after every test."""
    yield
    reset_readfile()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryCacheStore:
    return MemoryCacheStore("/cache", clock=clock)


@pytest.fixture
def registry() -> FakeRegistry:
    """A registry publishing ``pkg`` (three versions) and ``@scope/pkg``."""
    reg = FakeRegistry()
    reg.add_package(
        "pkg",
        {
            "1.0.0": {"README.md": b"# pkg 1.0.0\n", "lib/index.js": b"module.exports = 1\n"},
            "1.2.0": {"README.md": b"# pkg 1.2.0\n", "lib/index.js": b"module.exports = 12\n"},
            "2.0.0": {"README.md": b"# pkg 2.0.0\n", "lib/index.js": b"module.exports = 2\n"},
        },
        dist_tags={"latest": "1.2.0", "next": "2.0.0"},
    )
    reg.add_package(
        "@scope/pkg",
        {"3.1.4": {"lib/x.js": b"export const x = 314\n"}},
        dist_tags={"latest": "3.1.4"},
    )
    return reg


@pytest.fixture
def config() -> ReadfileConfig:
    return ReadfileConfig(registry=REGISTRY, cache_dir=Path("/cache"), chunk_size=4)


@pytest.fixture
def readfile(
    config: ReadfileConfig,
    store: MemoryCacheStore,
    registry: FakeRegistry,
    clock: FakeClock,
) -> Readfile:
    return Readfile(config=config, store=store, client=registry.client(), clock=clock)


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_CACHE_HOME beneath tmp_path, forces the
    XDG code path, and clears all NPM_READFILE_* environment variables.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setattr("npmreadfile.config._is_xdg_platform", lambda: True)
    for var in ("NPM_READFILE_REGISTRY", "NPM_READFILE_CACHE_DIR", "NPM_READFILE_STALENESS_MS"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture
def tarball():
    """The :func:`make_tarball` builder, for tests that need custom archives."""
    return make_tarball
