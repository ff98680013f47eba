# services/api/core/fsutil.py
"""Crash-safe file writes: temp file in the same directory, fsync, then os.replace."""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from core.errors import StorageUnavailable

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def atomic_write_bytes(path: PathLike, data: bytes) -> Path:
    """
    Write `data` to `path` so readers see either the old file or the new one,
    never a partial write. Creates the parent directory if needed.

    Raises StorageUnavailable on any OS-level failure; the temp file is removed.
    """
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create directory {target.parent}: {e}")
        raise StorageUnavailable(f"cannot create {target.parent}: {e}") from e

    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
        )
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as e:
        logger.error(f"Atomic write to {target} failed: {e}")
        raise StorageUnavailable(f"cannot write {target.name}: {e}") from e
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
    return target


def atomic_write_text(path: PathLike, text: str) -> Path:
    return atomic_write_bytes(path, text.encode("utf-8"))


def remove_quietly(path: PathLike) -> bool:
    """Delete a file if it exists. Returns True when something was removed."""
    try:
        os.unlink(path)
        return True
    except FileNotFoundError:
        return False
