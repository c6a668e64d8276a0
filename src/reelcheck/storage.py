"""Storage layout and atomic file helpers."""

from __future__ import annotations

import fcntl
import hashlib
import os
import re
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

_SAFE_KEY = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]{0,127}")

SESSIONS_DIR = "Sessions"
FRAMES_DIR = "Frames"
MANIFESTS_DIR = "Manifests"
NOTES_DIR = "Notes"
LOGS_DIR = "Logs"


def utc_timestamp(dt: datetime | None = None) -> str:
    now = dt or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%SZ")


def path_key(value: str) -> str:
    """Map an opaque identifier to a file-name-safe key.

    Plain identifiers are used as-is; anything else is hashed so two
    distinct ids never share a path.
    """
    if _SAFE_KEY.fullmatch(value) and not value.endswith(".tmp"):
        return value
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return f"h-{digest[:40]}"


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def ensure_structure(base_dir: str) -> dict:
    root = base_dir or os.getcwd()
    paths = {
        "root": root,
        "sessions": os.path.join(root, SESSIONS_DIR),
        "frames": os.path.join(root, FRAMES_DIR),
        "manifests": os.path.join(root, MANIFESTS_DIR),
        "notes": os.path.join(root, NOTES_DIR),
        "logs": os.path.join(root, LOGS_DIR),
    }
    for path in paths.values():
        ensure_dir(path)
    return paths


def _write_temp(directory: str, basename: str, data: bytes) -> str:
    fd, tmp_path = tempfile.mkstemp(prefix=f".{basename}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
    except BaseException:
        os.unlink(tmp_path)
        raise
    return tmp_path


def atomic_write_bytes(path: str, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temporary sibling and a rename."""
    directory = os.path.dirname(path) or "."
    ensure_dir(directory)
    tmp_path = _write_temp(directory, os.path.basename(path), data)
    try:
        os.replace(tmp_path, path)
    except BaseException:
        os.unlink(tmp_path)
        raise


def exclusive_write_bytes(path: str, data: bytes) -> None:
    """Publish ``data`` at ``path`` only if nothing is there yet.

    The content is complete before it becomes visible; raises
    FileExistsError when ``path`` already exists.
    """
    directory = os.path.dirname(path) or "."
    ensure_dir(directory)
    tmp_path = _write_temp(directory, os.path.basename(path), data)
    try:
        os.link(tmp_path, path)
    finally:
        os.unlink(tmp_path)


@contextmanager
def locked_file(path: str) -> Iterator[None]:
    """Hold an exclusive advisory lock on ``path`` for the block.

    The lock file is created on first use and left in place.
    """
    ensure_dir(os.path.dirname(path) or ".")
    with open(path, "a+") as handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
