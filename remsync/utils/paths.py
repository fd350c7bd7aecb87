# remsync Path Utilities
# File helpers shared by the node store and the directory server

import os
import tempfile
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create ``path`` and its parents if missing; return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def remove_file(path: Path) -> bool:
    """
    Remove a file if present.

    Returns:
        False when there was nothing to remove.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def atomic_write(path: Path, content: str | bytes, *, encoding: str = "utf-8") -> None:
    """
    Replace ``path`` with ``content`` in one step.

    Readers see either the previous file or the complete new one, never a
    partially written file. Metadata files and blobs both go through here.

    Args:
        path: File to replace.
        content: Text (encoded with ``encoding``) or raw bytes.
        encoding: Text encoding.
    """
    ensure_dir(path.parent)
    data = content.encode(encoding) if isinstance(content, str) else content

    # the scratch file must live on the same filesystem for os.replace
    fd, scratch = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".part")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(scratch, path)
    except BaseException:
        Path(scratch).unlink(missing_ok=True)
        raise
