"""File handler module: path validation and encoding-aware read/write.

Provides the blocking file I/O behind ``FileDocumentStore``.  Writes are
atomic (temp file + ``os.replace``) so a note is never left half written.
"""

import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# Path Validation
# =============================================================================


def resolve_under_root(root: Path, relative: str) -> Path:
    """Resolve a store-relative path, refusing anything outside *root*.

    Args:
        root: Store root directory.
        relative: Path relative to *root*, ``/``-separated.

    Returns:
        Resolved absolute path.

    Raises:
        ValueError: If *relative* is absolute or escapes *root*.
    """
    if not relative or Path(relative).is_absolute():
        raise ValueError(f"Path must be relative to the store root: {relative!r}")
    root_resolved = root.resolve()
    resolved = (root_resolved / relative).resolve()
    if not resolved.is_relative_to(root_resolved):
        raise ValueError(
            f"Path is outside store root: {resolved} not under {root_resolved}"
        )
    return resolved


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    return (str(result), result.encoding)


def write_bytes_atomic(path: Path, data: bytes) -> int:
    """Write *data* via a temp file in the same directory, then rename.

    Creates parent directories as needed.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write text atomically; see ``write_bytes_atomic``."""
    return write_bytes_atomic(path, content.encode(encoding))
