"""Local persistence of session records."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

from .errors import (
    AlreadyExistsError,
    CorruptRecordError,
    FrameNotFoundError,
    SessionNotFoundError,
)
from .models import Session, SessionStatus
from .session_io import FormatError, dump_session, parse_session
from .storage import (
    FRAMES_DIR,
    SESSIONS_DIR,
    atomic_write_bytes,
    ensure_dir,
    exclusive_write_bytes,
    locked_file,
    path_key,
)

logger = logging.getLogger("reelcheck")

RECORD_SUFFIX = ".session.json"


class ResultStore:
    """One immutable JSON record per session under ``<root>/Sessions``."""

    def __init__(self, root: str) -> None:
        self.root = Path(root or os.getcwd())
        self.sessions_dir = self.root / SESSIONS_DIR
        self.frames_dir = self.root / FRAMES_DIR

    def record_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{path_key(session_id)}{RECORD_SUFFIX}"

    def frame_dir(self, session_id: str) -> Path:
        return self.frames_dir / path_key(session_id)

    def resolve(self, local_path: str) -> Path:
        path = Path(local_path)
        return path if path.is_absolute() else self.root / path

    def relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return str(path)

    def exists(self, session_id: str) -> bool:
        return self.record_path(session_id).is_file()

    def save(self, session: Session) -> Path:
        if session.status == SessionStatus.FAILED:
            raise ValueError("Failed sessions are never persisted.")
        path = self.record_path(session.session_id)
        ensure_dir(str(self.sessions_dir))
        try:
            exclusive_write_bytes(str(path), dump_session(session))
        except FileExistsError:
            raise AlreadyExistsError(session.session_id) from None
        logger.info("Saved session %s to %s", session.session_id, path)
        return path

    def load(self, session_id: str) -> Session:
        path = self.record_path(session_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            raise SessionNotFoundError(session_id) from None
        try:
            session = parse_session(raw)
        except FormatError as exc:
            raise CorruptRecordError(str(path), str(exc)) from exc
        if session.session_id != session_id:
            raise CorruptRecordError(
                str(path), f"record belongs to session {session.session_id!r}"
            )
        return session

    def list_sessions(self) -> List[str]:
        if not self.sessions_dir.is_dir():
            return []
        ids = []
        for path in sorted(self.sessions_dir.glob(f"*{RECORD_SUFFIX}")):
            if path.name.startswith("."):
                continue
            try:
                ids.append(parse_session(path.read_bytes()).session_id)
            except FormatError as exc:
                logger.warning("Skipping unreadable record %s: %s", path, exc)
        return sorted(ids)

    def lock_path(self, session_id: str) -> Path:
        return self.sessions_dir / f".{path_key(session_id)}{RECORD_SUFFIX}.lock"

    def set_frame_path(self, session_id: str, frame_id: str, local_path: str) -> str:
        """Record where a frame was materialized, unless already recorded.

        The read-modify-replace runs under an exclusive per-session lock,
        so concurrent updates of different frames never overwrite each
        other. Returns the path that ends up recorded.
        """
        if not self.exists(session_id):
            raise SessionNotFoundError(session_id)
        with locked_file(str(self.lock_path(session_id))):
            session = self.load(session_id)
            frame = session.find_frame(frame_id)
            if frame is None:
                raise FrameNotFoundError(session_id, [frame_id])
            if frame.local_path is not None:
                return frame.local_path
            updated = session.with_frame_path(frame_id, local_path)
            atomic_write_bytes(str(self.record_path(session_id)), dump_session(updated))
        logger.debug("Recorded frame %s of session %s at %s", frame_id, session_id, local_path)
        return local_path
