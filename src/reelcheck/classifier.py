"""Failure classification policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from .models import ErrorReport, Stage


class Continuation(str, Enum):
    CONTINUE_DEGRADED = "continue_degraded"
    ABORT = "abort"
    RETRYABLE_EXTERNAL = "retryable_external"


@dataclass(frozen=True)
class Classification:
    kind: str
    recoverable: bool
    continuation: Continuation

    def report(self, stage: Stage, message: str) -> ErrorReport:
        return ErrorReport(
            stage=stage, kind=self.kind, message=message, recoverable=self.recoverable
        )


_ABORT = Continuation.ABORT
_DEGRADE = Continuation.CONTINUE_DEGRADED
_RETRY = Continuation.RETRYABLE_EXTERNAL

POLICY: Dict[Tuple[Stage, str], Classification] = {
    (Stage.SUBMISSION, "file_not_found"): Classification("VideoNotFound", False, _ABORT),
    (Stage.SUBMISSION, "unsupported_format"): Classification(
        "UnsupportedFormat", False, _ABORT
    ),
    (Stage.SUBMISSION, "auth_rejected"): Classification(
        "AuthenticationRejected", False, _ABORT
    ),
    (Stage.SUBMISSION, "malformed_response"): Classification(
        "MalformedResponse", False, _ABORT
    ),
    (Stage.SUBMISSION, "request_rejected"): Classification(
        "RequestRejected", False, _ABORT
    ),
    (Stage.SUBMISSION, "network_unreachable"): Classification(
        "NetworkUnreachable", True, _RETRY
    ),
    (Stage.SUBMISSION, "timeout"): Classification("Timeout", True, _RETRY),
    (Stage.SUBMISSION, "server_error"): Classification("RemoteServerError", True, _RETRY),
    (Stage.TRANSCRIPTION, "no_audio_track"): Classification("NoAudioTrack", True, _DEGRADE),
    (Stage.TRANSCRIPTION, "no_speech_detected"): Classification(
        "NoSpeechDetected", True, _DEGRADE
    ),
    (Stage.TRANSCRIPTION, "transcription_unavailable"): Classification(
        "TranscriptionUnavailable", True, _DEGRADE
    ),
    (Stage.TRANSCRIPTION, "transcription_failed"): Classification(
        "TranscriptionFailed", True, _DEGRADE
    ),
    (Stage.FRAME_FETCH, "frame_not_found"): Classification(
        "RemoteFrameMissing", False, _ABORT
    ),
    (Stage.FRAME_FETCH, "auth_rejected"): Classification(
        "AuthenticationRejected", False, _ABORT
    ),
    (Stage.FRAME_FETCH, "network_unreachable"): Classification(
        "NetworkUnreachable", True, _RETRY
    ),
    (Stage.FRAME_FETCH, "timeout"): Classification("Timeout", True, _RETRY),
    (Stage.FRAME_FETCH, "fetch_failed"): Classification("FetchFailed", True, _RETRY),
    (Stage.FRAME_FETCH, "invalid_image"): Classification("InvalidFrameData", True, _RETRY),
}

# Used when a stage reports a signal missing from POLICY. Transcription
# problems must still degrade rather than fail the session.
FALLBACKS: Dict[Stage, Classification] = {
    Stage.SUBMISSION: Classification("Unknown", False, _ABORT),
    Stage.TRANSCRIPTION: Classification("TranscriptionFailed", True, _DEGRADE),
    Stage.FRAME_FETCH: Classification("FetchFailed", True, _RETRY),
}


def classify(stage: Stage, signal: str) -> Classification:
    return POLICY.get((stage, signal), FALLBACKS[stage])
