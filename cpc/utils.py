"""
CLI Utilities

Small filesystem helpers shared by the config store and the cache.
"""

import os
import tempfile
from pathlib import Path


def atomic_write_text(path: Path, text: str, mode: int = 0o644) -> Path:
    """
    Write a file so readers see either the old or the new content.

    The data goes to a temp file in the same directory, is fsynced, then
    renamed over the target with os.replace.

    Args:
        path: Target file
        text: Full new content
        mode: Permission bits for the new file

    Returns:
        The target path
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def read_text_or_empty(path: Path) -> str:
    """Stripped file content, or '' when the file does not exist."""
    try:
        return path.read_text().strip()
    except FileNotFoundError:
        return ""
