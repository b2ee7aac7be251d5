from __future__ import annotations

import os
import tempfile
from pathlib import Path

from .util import ensure_dir

FILE_MODE = 0o644


def _fsync_dir(path: Path) -> None:
    if os.name != "posix":
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_file(directory: Path, name: str, data: bytes) -> Path:
    """Replace directory/name with data; readers see the old file or the new one, never a mix."""
    ensure_dir(directory)
    target = directory / name
    fd, tmp = tempfile.mkstemp(dir=str(directory), prefix=f".{name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, FILE_MODE)

        # leftover working file from an interrupted run
        try:
            os.unlink(directory / f"{name}.tmp")
        except FileNotFoundError:
            pass

        os.replace(tmp, target)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
    _fsync_dir(directory)
    return target
