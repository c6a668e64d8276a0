"""Data models for reelcheck."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional


class SessionStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class Stage(str, Enum):
    SUBMISSION = "submission"
    TRANSCRIPTION = "transcription"
    FRAME_FETCH = "frame_fetch"


@dataclass
class TranscriptSegment:
    start_ms: int
    end_ms: int
    text: str


@dataclass
class Transcript:
    full_text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    language: Optional[str] = None


@dataclass
class FrameRef:
    frame_id: str
    remote_locator: str
    timestamp_ms: Optional[int] = None
    local_path: Optional[str] = None


@dataclass
class ErrorReport:
    stage: Stage
    kind: str
    message: str
    recoverable: bool


@dataclass
class Session:
    session_id: str
    video_source_path: str
    created_at: str
    status: SessionStatus
    frames: List[FrameRef] = field(default_factory=list)
    transcription: Optional[Transcript] = None
    errors: List[ErrorReport] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.status == SessionStatus.FAILED and (
            self.frames or self.transcription is not None
        ):
            raise ValueError("A failed session carries no frames or transcription.")
        seen = set()
        for frame in self.frames:
            if frame.frame_id in seen:
                raise ValueError(f"Duplicate frame id: {frame.frame_id}")
            seen.add(frame.frame_id)

    def frame_ids(self) -> List[str]:
        return [frame.frame_id for frame in self.frames]

    def find_frame(self, frame_id: str) -> Optional[FrameRef]:
        for frame in self.frames:
            if frame.frame_id == frame_id:
                return frame
        return None

    def with_frame_path(self, frame_id: str, local_path: str) -> "Session":
        """Return a copy with one frame's local path populated.

        Only an unset path may be filled in; the frame list keeps its order
        and length.
        """
        frames = []
        found = False
        for frame in self.frames:
            if frame.frame_id == frame_id:
                if frame.local_path is not None and frame.local_path != local_path:
                    raise ValueError(
                        f"Frame {frame_id} is already materialized at {frame.local_path}"
                    )
                frame = replace(frame, local_path=local_path)
                found = True
            frames.append(frame)
        if not found:
            raise KeyError(frame_id)
        return replace(self, frames=frames)


@dataclass
class SubmitOptions:
    max_frames: Optional[int] = None
    skip_transcription: bool = False
    timeout: float = 600.0

    def __post_init__(self) -> None:
        if self.max_frames is not None and self.max_frames < 1:
            raise ValueError("max_frames must be at least 1.")
        if self.timeout <= 0:
            raise ValueError("timeout must be greater than zero.")


@dataclass
class ManifestEntry:
    frame_id: str
    local_path: str


@dataclass
class FrameFailure:
    frame_id: str
    kind: str
    message: str


@dataclass
class Manifest:
    session_id: str
    entries: List[ManifestEntry] = field(default_factory=list)
    transcription: Optional[Transcript] = None
    failures: List[FrameFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        transcription = None
        if self.transcription is not None:
            transcription = {
                "full_text": self.transcription.full_text,
                "language": self.transcription.language,
                "segments": [
                    {"start_ms": s.start_ms, "end_ms": s.end_ms, "text": s.text}
                    for s in self.transcription.segments
                ],
            }
        return {
            "session_id": self.session_id,
            "attachments": [
                {"frame_id": e.frame_id, "local_path": e.local_path}
                for e in self.entries
            ],
            "transcription": transcription,
            "failures": [
                {"frame_id": f.frame_id, "kind": f.kind, "message": f.message}
                for f in self.failures
            ],
        }
