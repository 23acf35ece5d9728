"""Crash-safe file writes (temp file + rename)."""

import os
import secrets
import time
from pathlib import Path


def temp_path_for(path: Path) -> Path:
    """Unique temporary sibling of `path` (same directory, same filesystem)."""
    return path.with_name(f"{path.name}.{time.time_ns()}.{secrets.token_hex(4)}.tmp")


def atomic_write(path: str | Path, data: bytes) -> None:
    """Write `data` to `path` so readers see either the old or the new file.

    The payload goes to a temporary file in the destination directory, is
    flushed to disk, then renamed over the destination with os.replace.
    On any failure before the rename the temporary file is removed and the
    destination is left untouched.

    Args:
        path: Destination file path (its directory must exist)
        data: Full file content

    Raises:
        OSError: If writing or renaming fails
    """
    dest = Path(path)
    tmp = temp_path_for(dest)

    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, dest)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
