"""
Filesystem helpers for writing generated files without exposing partial content.
"""
import contextlib
import os
import tempfile
from typing import Optional

def atomic_write(path: str, content: str, mode: Optional[int] = None):
    """
    Writes content to path through a temp file in the same directory and os.replace.

    A reader sees either the previous file or the complete new one.

    :param path: Target file path; its parent directory is created if absent.
    :param content: Text to write.
    :param mode: Permission bits applied before the file becomes visible.
    """
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=parent)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(temp_name, mode)
        os.replace(temp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise
