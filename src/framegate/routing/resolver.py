"""Sandboxed path resolution for the local resource tree.

Request paths are percent-decoded, joined under the sandbox root and
normalized. A path whose normalized form is not inside the root is treated
exactly like a missing file.

Resolution order:
1. The exact file at the joined path
2. The joined path with the resolver extension appended
   (``/game`` -> ``static/game.html``, ``/foo/bar/`` -> ``static/foo/bar.html``)

Directories never satisfy a resolution.
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import unquote

import structlog

from framegate.core.exceptions import PathTraversalRejected

logger = structlog.get_logger()


def is_regular_file(path: str | Path) -> bool:
    """Like Path.is_file, but any stat error (ENAMETOOLONG, EACCES) means no."""
    return os.path.isfile(path)


class PathResolver:
    """Maps request paths to regular files under a sandbox root."""

    def __init__(self, root: str | Path, extension: str = ".html") -> None:
        self._root = os.path.normpath(os.path.abspath(root))
        self._extension = extension

    @property
    def root(self) -> Path:
        return Path(self._root)

    def resolve(self, request_path: str) -> Path | None:
        """Return the file a request path names, or None when not found."""
        try:
            decoded = unquote(request_path, errors="strict")
        except UnicodeDecodeError:
            return None
        if "\x00" in decoded:
            return None

        candidates = (decoded, decoded.rstrip("/") + self._extension)
        for candidate in candidates:
            try:
                target = self.safe_join(candidate)
            except PathTraversalRejected:
                logger.debug("Rejected path outside sandbox", path=request_path)
                return None
            if is_regular_file(target):
                return target
        return None

    def safe_join(self, relative: str) -> Path:
        """Join a decoded path under the root and normalize it.

        Raises:
            PathTraversalRejected: If the normalized path leaves the root.
        """
        full = os.path.normpath(os.path.join(self._root, relative.lstrip("/")))
        if full != self._root and not full.startswith(self._root + os.sep):
            raise PathTraversalRejected(f"{relative!r} escapes the sandbox")
        return Path(full)
