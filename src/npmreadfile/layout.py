"""Cache directory layout.

All paths are rooted under a single cache root::

    <root>/index/<package-name>/index.json      # cached package document
    <root>/files/<package-name>/<exactVersion>/  # extracted tarball contents

Scoped names keep their slash, so ``@babel/core`` lives under
``files/@babel/core/<version>/``.  Every computed path is checked to stay
inside its parent directory; :meth:`CacheLayout.resolve_file` is the guard
against ``..`` segments smuggled in through an address's file path.
"""

from __future__ import annotations

import os
from pathlib import Path

from npmreadfile.exceptions import ForbiddenError

INDEX_DIRNAME = "index"
FILES_DIRNAME = "files"
INDEX_FILENAME = "index.json"


def _is_within(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory.rstrip(os.sep) + os.sep)


class CacheLayout:
    """Pure mapping from packages and versions to cache paths.

    Args:
        root: The cache root.  Should be absolute; it is normalised but
            never touched on disk.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(os.path.normpath(os.path.abspath(root)))

    def download_dir(self, name: str, exact_version: str) -> Path:
        """Directory holding the extracted contents of ``name@exact_version``.

        Raises:
            ForbiddenError: If *name* or *exact_version* would place the
                directory outside ``<root>/files``.
        """
        files_root = self.root / FILES_DIRNAME
        return self.resolve_file(files_root, f"{name}/{exact_version}")

    def index_file(self, name: str) -> Path:
        """Path of the cached registry document for *name*.

        Raises:
            ForbiddenError: If *name* would place the file outside
                ``<root>/index``.
        """
        package_dir = self.resolve_file(self.root / INDEX_DIRNAME, name)
        return package_dir / INDEX_FILENAME

    def resolve_file(self, directory: str | Path, relative_path: str) -> Path:
        """Join *relative_path* onto *directory* and normalise the result.

        Args:
            directory: The containing directory.
            relative_path: A ``/``-separated path; may be empty.

        Returns:
            The normalised absolute path.

        Raises:
            ForbiddenError: If the normalised path is not *directory* itself
                or a path beneath it.
        """
        base = os.path.normpath(str(directory))
        joined = os.path.normpath(os.path.join(base, *relative_path.split("/")))
        if not _is_within(joined, base):
            raise ForbiddenError(f"Path {relative_path!r} escapes {base}")
        return Path(joined)
