"""Issue attachment manifests."""

from __future__ import annotations

import json
import logging
from typing import Iterable, List, Optional

from .errors import (
    FrameNotFoundError,
    PartialMaterializationError,
    RemoteUnavailableError,
    StoreError,
)
from .frame_store import FrameStore
from .models import FrameFailure, Manifest, ManifestEntry
from .result_store import ResultStore
from .storage import atomic_write_bytes

logger = logging.getLogger("reelcheck")


class AttachmentPreparer:
    def __init__(self, store: ResultStore, frames: FrameStore) -> None:
        self.store = store
        self.frames = frames

    def prepare(
        self, session_id: str, selection: Optional[Iterable[str]] = None
    ) -> Manifest:
        """Materialize the selected frames and list them for attachment.

        ``selection=None`` takes every frame in session order. Raises
        PartialMaterializationError, carrying the manifest of the frames
        that did materialize, when any frame could not be materialized.
        """
        session = self.store.load(session_id)
        if selection is None:
            wanted = session.frame_ids()
        else:
            wanted = list(dict.fromkeys(selection))
            unknown = [fid for fid in wanted if session.find_frame(fid) is None]
            if unknown:
                raise FrameNotFoundError(session_id, unknown)

        entries: List[ManifestEntry] = []
        failures: List[FrameFailure] = []
        for frame_id in wanted:
            try:
                path = self.frames.materialize(session_id, frame_id)
            except RemoteUnavailableError as exc:
                failures.append(
                    FrameFailure(
                        frame_id=frame_id, kind=exc.report.kind, message=exc.report.message
                    )
                )
                continue
            except StoreError as exc:
                logger.warning("Frame %s/%s not cached: %s", session_id, frame_id, exc)
                failures.append(
                    FrameFailure(frame_id=frame_id, kind=type(exc).__name__, message=str(exc))
                )
                continue
            entries.append(ManifestEntry(frame_id=frame_id, local_path=str(path.resolve())))

        manifest = Manifest(
            session_id=session_id,
            entries=entries,
            transcription=session.transcription,
            failures=failures,
        )
        logger.info(
            "Prepared %s attachment(s) for session %s (%s failed)",
            len(entries),
            session_id,
            len(failures),
        )
        if failures:
            raise PartialMaterializationError(manifest)
        return manifest


def write_manifest(manifest: Manifest, path: str) -> None:
    text = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False) + "\n"
    atomic_write_bytes(path, text.encode("utf-8"))
