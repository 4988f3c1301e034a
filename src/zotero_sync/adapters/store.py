"""``DocumentStore`` backed by a directory on disk."""

from __future__ import annotations

import logging
from pathlib import Path

from ..core.async_utils import run_sync
from ..file_handler import (
    read_file_with_encoding,
    resolve_under_root,
    write_bytes_atomic,
    write_file,
)

logger = logging.getLogger(__name__)


class FileDocumentStore:
    """Notes and images under *root*, addressed by ``/``-separated paths.

    Paths that resolve outside *root* are rejected with ``ValueError``.
    """

    def __init__(self, root: Path):
        self.root = root

    def _path(self, relative: str) -> Path:
        return resolve_under_root(self.root, relative)

    async def read(self, path: str) -> str | None:
        resolved = self._path(path)
        try:
            content, encoding = await run_sync(read_file_with_encoding, resolved)
        except FileNotFoundError:
            return None
        if encoding != "utf-8":
            logger.info("Read %s as %s; it will be rewritten as UTF-8", path, encoding)
        return content

    async def write(self, path: str, text: str) -> None:
        count = await run_sync(write_file, self._path(path), text)
        logger.debug("Wrote %d bytes to %s", count, path)

    async def exists(self, path: str) -> bool:
        return await run_sync(self._path(path).is_file)

    async def write_bytes(self, path: str, data: bytes) -> None:
        count = await run_sync(write_bytes_atomic, self._path(path), data)
        logger.debug("Wrote %d bytes to %s", count, path)
