"""Local frame cache backed by the remote service."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .classifier import classify
from .errors import FrameNotFoundError, RemoteUnavailableError
from .models import FrameRef, Stage
from .remote import RemoteFault, RemoteService
from .result_store import ResultStore
from .storage import atomic_write_bytes, path_key

logger = logging.getLogger("reelcheck")

FORMAT_EXTENSIONS = {
    "JPEG": "jpg",
    "PNG": "png",
    "WEBP": "webp",
    "GIF": "gif",
    "BMP": "bmp",
    "TIFF": "tiff",
}


def image_extension(data: bytes) -> str:
    """Return the file extension for image bytes, or raise ValueError."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
            fmt = image.format or ""
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError(f"not a readable image: {exc}") from exc
    return FORMAT_EXTENSIONS.get(fmt, fmt.lower() or "img")


class FrameStore:
    def __init__(self, store: ResultStore, remote: RemoteService) -> None:
        self.store = store
        self.remote = remote

    def get(self, session_id: str, frame_id: str) -> bytes:
        return self.materialize(session_id, frame_id).read_bytes()

    def materialize(self, session_id: str, frame_id: str) -> Path:
        """Ensure the frame is in the local cache and return its path."""
        session = self.store.load(session_id)
        frame = session.find_frame(frame_id)
        if frame is None:
            raise FrameNotFoundError(session_id, [frame_id])

        if frame.local_path is not None:
            path = self.store.resolve(frame.local_path)
            if path.is_file():
                logger.debug("Frame cache hit %s/%s", session_id, frame_id)
                return path
            # Recorded but deleted from disk: refill the same path.
            logger.info("Cached frame %s missing, fetching again", path)
            data, _ = self._fetch_image(session_id, frame)
            atomic_write_bytes(str(path), data)
            return path

        cached = self._find_cached(session_id, frame_id)
        if cached is not None:
            logger.debug("Frame cache file found unrecorded: %s", cached)
            return self._record(session_id, frame_id, cached)

        data, extension = self._fetch_image(session_id, frame)
        path = self.store.frame_dir(session_id) / f"{path_key(frame_id)}.{extension}"
        atomic_write_bytes(str(path), data)
        logger.info("Materialized frame %s/%s at %s", session_id, frame_id, path)
        return self._record(session_id, frame_id, path)

    def _record(self, session_id: str, frame_id: str, path: Path) -> Path:
        recorded = self.store.set_frame_path(session_id, frame_id, self.store.relative(path))
        return self.store.resolve(recorded)

    def _find_cached(self, session_id: str, frame_id: str) -> Optional[Path]:
        directory = self.store.frame_dir(session_id)
        if not directory.is_dir():
            return None
        key = path_key(frame_id)
        # Temporary files start with a dot and never match.
        for candidate in sorted(directory.glob(f"{key}.*")):
            if candidate.stem == key and candidate.is_file():
                return candidate
        return None

    def _fetch(self, session_id: str, frame: FrameRef) -> bytes:
        try:
            return self.remote.fetch_frame(session_id, frame)
        except RemoteFault as fault:
            raise self._unavailable(
                session_id, frame.frame_id, fault.signal, fault.message
            ) from fault

    def _fetch_image(self, session_id: str, frame: FrameRef) -> Tuple[bytes, str]:
        data = self._fetch(session_id, frame)
        try:
            extension = image_extension(data)
        except ValueError as exc:
            raise self._unavailable(
                session_id, frame.frame_id, "invalid_image", str(exc)
            ) from exc
        return data, extension

    def _unavailable(
        self, session_id: str, frame_id: str, signal: str, message: str
    ) -> RemoteUnavailableError:
        report = classify(Stage.FRAME_FETCH, signal).report(Stage.FRAME_FETCH, message)
        logger.warning(
            "Frame %s/%s unavailable: %s (%s)", session_id, frame_id, report.kind, message
        )
        return RemoteUnavailableError(session_id, frame_id, report)
