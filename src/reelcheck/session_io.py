"""Session record persistence format and remote response decoding.

Both directions are strict: a document either matches the expected shape
exactly or is rejected with ``FormatError``. Missing fields are never
filled in with defaults and unknown fields are never ignored.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from .models import (
    ErrorReport,
    FrameRef,
    Session,
    SessionStatus,
    Stage,
    Transcript,
    TranscriptSegment,
)

RECORD_SCHEMA = 1


class FormatError(ValueError):
    pass


def _check_keys(
    obj: Any, where: str, required: Iterable[str], optional: Iterable[str] = ()
) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise FormatError(f"{where}: expected an object, got {type(obj).__name__}")
    required = set(required)
    allowed = required | set(optional)
    missing = sorted(required - obj.keys())
    if missing:
        raise FormatError(f"{where}: missing field(s) {', '.join(missing)}")
    unknown = sorted(set(obj.keys()) - allowed)
    if unknown:
        raise FormatError(f"{where}: unexpected field(s) {', '.join(unknown)}")
    return obj


def _str(obj: Dict[str, Any], key: str, where: str) -> str:
    value = obj[key]
    if not isinstance(value, str):
        raise FormatError(f"{where}.{key}: expected a string")
    return value


def _nonempty_str(obj: Dict[str, Any], key: str, where: str) -> str:
    value = _str(obj, key, where)
    if not value:
        raise FormatError(f"{where}.{key}: must not be empty")
    return value


def _opt_str(obj: Dict[str, Any], key: str, where: str) -> Optional[str]:
    if obj.get(key) is None:
        return None
    return _str(obj, key, where)


def _int(obj: Dict[str, Any], key: str, where: str) -> int:
    value = obj[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise FormatError(f"{where}.{key}: expected a non-negative integer")
    return value


def _opt_int(obj: Dict[str, Any], key: str, where: str) -> Optional[int]:
    if obj.get(key) is None:
        return None
    return _int(obj, key, where)


def _list(obj: Dict[str, Any], key: str, where: str) -> List[Any]:
    value = obj[key]
    if not isinstance(value, list):
        raise FormatError(f"{where}.{key}: expected a list")
    return value


# -- persisted record -------------------------------------------------------


def transcript_to_dict(transcript: Transcript) -> dict:
    return {
        "full_text": transcript.full_text,
        "language": transcript.language,
        "segments": [
            {"start_ms": seg.start_ms, "end_ms": seg.end_ms, "text": seg.text}
            for seg in transcript.segments
        ],
    }


def session_to_dict(session: Session) -> dict:
    return {
        "schema": RECORD_SCHEMA,
        "session_id": session.session_id,
        "video_source_path": session.video_source_path,
        "created_at": session.created_at,
        "status": session.status.value,
        "frames": [
            {
                "frame_id": frame.frame_id,
                "remote_locator": frame.remote_locator,
                "timestamp_ms": frame.timestamp_ms,
                "local_path": frame.local_path,
            }
            for frame in session.frames
        ],
        "transcription": (
            transcript_to_dict(session.transcription)
            if session.transcription is not None
            else None
        ),
        "errors": [
            {
                "stage": report.stage.value,
                "kind": report.kind,
                "message": report.message,
                "recoverable": report.recoverable,
            }
            for report in session.errors
        ],
        "notes": list(session.notes),
    }


def dump_session(session: Session) -> bytes:
    text = json.dumps(session_to_dict(session), indent=2, ensure_ascii=False)
    return (text + "\n").encode("utf-8")


def _decode_segment(raw: Any, where: str) -> TranscriptSegment:
    obj = _check_keys(raw, where, ("start_ms", "end_ms", "text"))
    start = _int(obj, "start_ms", where)
    end = _int(obj, "end_ms", where)
    if end < start:
        raise FormatError(f"{where}: end_ms precedes start_ms")
    return TranscriptSegment(start_ms=start, end_ms=end, text=_str(obj, "text", where))


def _decode_transcript(raw: Any, where: str) -> Transcript:
    obj = _check_keys(raw, where, ("full_text", "segments"), ("language",))
    segments = [
        _decode_segment(item, f"{where}.segments[{idx}]")
        for idx, item in enumerate(_list(obj, "segments", where))
    ]
    return Transcript(
        full_text=_str(obj, "full_text", where),
        segments=segments,
        language=_opt_str(obj, "language", where),
    )


def _enum(enum_cls, value: Any, where: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise FormatError(f"{where}: unknown value {value!r}") from None


def session_from_dict(data: Any) -> Session:
    obj = _check_keys(
        data,
        "session",
        (
            "schema",
            "session_id",
            "video_source_path",
            "created_at",
            "status",
            "frames",
            "transcription",
            "errors",
            "notes",
        ),
    )
    if obj["schema"] != RECORD_SCHEMA:
        raise FormatError(f"session.schema: unsupported version {obj['schema']!r}")

    frames = []
    for idx, raw in enumerate(_list(obj, "frames", "session")):
        where = f"session.frames[{idx}]"
        frame = _check_keys(
            raw, where, ("frame_id", "remote_locator", "timestamp_ms", "local_path")
        )
        frames.append(
            FrameRef(
                frame_id=_nonempty_str(frame, "frame_id", where),
                remote_locator=_nonempty_str(frame, "remote_locator", where),
                timestamp_ms=_opt_int(frame, "timestamp_ms", where),
                local_path=_opt_str(frame, "local_path", where),
            )
        )

    errors = []
    for idx, raw in enumerate(_list(obj, "errors", "session")):
        where = f"session.errors[{idx}]"
        report = _check_keys(raw, where, ("stage", "kind", "message", "recoverable"))
        if not isinstance(report["recoverable"], bool):
            raise FormatError(f"{where}.recoverable: expected a boolean")
        errors.append(
            ErrorReport(
                stage=_enum(Stage, report["stage"], f"{where}.stage"),
                kind=_str(report, "kind", where),
                message=_str(report, "message", where),
                recoverable=report["recoverable"],
            )
        )

    notes = _list(obj, "notes", "session")
    if not all(isinstance(note, str) for note in notes):
        raise FormatError("session.notes: expected a list of strings")

    transcription = None
    if obj["transcription"] is not None:
        transcription = _decode_transcript(obj["transcription"], "session.transcription")

    try:
        return Session(
            session_id=_nonempty_str(obj, "session_id", "session"),
            video_source_path=_str(obj, "video_source_path", "session"),
            created_at=_str(obj, "created_at", "session"),
            status=_enum(SessionStatus, obj["status"], "session.status"),
            frames=frames,
            transcription=transcription,
            errors=errors,
            notes=list(notes),
        )
    except ValueError as exc:
        if isinstance(exc, FormatError):
            raise
        raise FormatError(f"session: {exc}") from exc


def parse_session(raw: bytes) -> Session:
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FormatError(f"not valid JSON: {exc}") from exc
    return session_from_dict(data)


# -- remote submission response ---------------------------------------------


@dataclass
class RemoteFailure:
    stage: Stage
    code: str
    message: str


@dataclass
class RemoteSuccess:
    session_id: str
    frames: List[FrameRef]
    transcription: Optional[Transcript]


@dataclass
class RemotePartial:
    session_id: str
    frames: List[FrameRef]
    transcription: Optional[Transcript]
    failure: RemoteFailure


@dataclass
class RemoteFailed:
    failure: RemoteFailure


RemoteResult = Union[RemoteSuccess, RemotePartial, RemoteFailed]


def _decode_failure(raw: Any) -> RemoteFailure:
    obj = _check_keys(raw, "response.failure", ("stage", "code"), ("message",))
    return RemoteFailure(
        stage=_enum(Stage, obj["stage"], "response.failure.stage"),
        code=_nonempty_str(obj, "code", "response.failure"),
        message=_opt_str(obj, "message", "response.failure") or "",
    )


def _decode_frames(obj: Dict[str, Any]) -> List[FrameRef]:
    frames = []
    seen = set()
    for idx, raw in enumerate(_list(obj, "frames", "response")):
        where = f"response.frames[{idx}]"
        frame = _check_keys(raw, where, ("id", "locator"), ("timestamp_ms",))
        frame_id = _nonempty_str(frame, "id", where)
        if frame_id in seen:
            raise FormatError(f"{where}.id: duplicate frame id {frame_id!r}")
        seen.add(frame_id)
        frames.append(
            FrameRef(
                frame_id=frame_id,
                remote_locator=_nonempty_str(frame, "locator", where),
                timestamp_ms=_opt_int(frame, "timestamp_ms", where),
            )
        )
    return frames


def decode_response(data: Any, skip_transcription: bool = False) -> RemoteResult:
    """Decode a submission response into exactly one result variant."""
    if not isinstance(data, dict):
        raise FormatError("response: expected an object")
    status = data.get("status")

    if status == SessionStatus.SUCCESS.value:
        obj = _check_keys(
            data, "response", ("status", "session_id", "frames", "transcription")
        )
        transcription = None
        if obj["transcription"] is not None:
            transcription = _decode_transcript(
                obj["transcription"], "response.transcription"
            )
        elif not skip_transcription:
            raise FormatError(
                "response.transcription: missing although transcription was requested"
            )
        return RemoteSuccess(
            session_id=_nonempty_str(obj, "session_id", "response"),
            frames=_decode_frames(obj),
            transcription=transcription,
        )

    if status == SessionStatus.PARTIAL_SUCCESS.value:
        obj = _check_keys(
            data,
            "response",
            ("status", "session_id", "frames", "failure"),
            ("transcription",),
        )
        failure = _decode_failure(obj["failure"])
        if failure.stage != Stage.TRANSCRIPTION:
            raise FormatError(
                f"response.failure.stage: partial success cannot fail at {failure.stage.value}"
            )
        transcription = None
        if obj.get("transcription") is not None:
            transcription = _decode_transcript(
                obj["transcription"], "response.transcription"
            )
        return RemotePartial(
            session_id=_nonempty_str(obj, "session_id", "response"),
            frames=_decode_frames(obj),
            transcription=transcription,
            failure=failure,
        )

    if status == SessionStatus.FAILED.value:
        obj = _check_keys(data, "response", ("status", "failure"), ("session_id",))
        return RemoteFailed(failure=_decode_failure(obj["failure"]))

    raise FormatError(f"response.status: unknown value {status!r}")
