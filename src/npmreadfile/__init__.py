"""npm-readfile -- read one file out of a published npm package version.

Resolves an address of the form
``<registry>/{package}@{version-or-tag}/{path/inside/package}`` to the bytes
of a single file in that package's tarball, caching both the registry
documents and the extracted tarball contents on disk::

    import npmreadfile

    text = await npmreadfile.read_file(
        "https://registry.npmjs.org/lodash@^4.17.0/package.json", encoding="utf-8"
    )

    stream = npmreadfile.create_read_stream(
        "https://registry.npmjs.org/@babel/core@latest/lib/index.js", prefer_cache=True
    )
    async for chunk in stream:
        ...

Modules:
    retrieval: :class:`Readfile`, the buffered and streaming entry points.
    address: Address parsing and registry URL construction.
    resolver: Dist-tag, exact version, and semver range resolution.
    index_cache: Read-through cache of registry package documents.
    archive: Tarball download and extraction.
    layout: Cache directory layout and path containment.
    store: Disk and in-memory cache stores.
    stream: The write-once :class:`ReadStream`.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with HTTP status codes.
"""

__version__ = "0.3.0"

from npmreadfile.exceptions import (  # noqa: E402
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    ReadfileError,
    RequestCancelledError,
    UpstreamError,
    VersionResolutionError,
)
from npmreadfile.retrieval import (  # noqa: E402
    Readfile,
    create_read_stream,
    download_file,
    get_readfile,
    read_file,
    reset_readfile,
    set_readfile,
)
from npmreadfile.stream import ReadStream  # noqa: E402

__all__ = [
    "BadRequestError",
    "ForbiddenError",
    "NotFoundError",
    "ReadStream",
    "Readfile",
    "ReadfileError",
    "RequestCancelledError",
    "UpstreamError",
    "VersionResolutionError",
    "create_read_stream",
    "download_file",
    "get_readfile",
    "read_file",
    "reset_readfile",
    "set_readfile",
]
