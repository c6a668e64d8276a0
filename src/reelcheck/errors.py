"""Exception types raised by reelcheck."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from .classifier import Classification
    from .models import ErrorReport, Manifest, Session


class ReelcheckError(Exception):
    """Base class for every failure surfaced to callers."""


class SubmissionError(ReelcheckError):
    """A submission that ended with ``status=failed``; nothing was persisted."""

    def __init__(
        self,
        report: "ErrorReport",
        classification: "Classification",
        session: Optional["Session"] = None,
    ) -> None:
        super().__init__(f"{report.kind}: {report.message}")
        self.report = report
        self.classification = classification
        self.session = session

    @property
    def retryable(self) -> bool:
        return self.classification.recoverable


class InputError(SubmissionError):
    """The video file is missing, unreadable or of an unsupported format."""


class RemoteSubmissionError(SubmissionError):
    """The remote service could not be reached or returned an unusable answer."""


class StoreError(ReelcheckError):
    pass


class SessionNotFoundError(StoreError, LookupError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"No stored session {session_id!r}")
        self.session_id = session_id


class CorruptRecordError(StoreError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Corrupt session record {path}: {reason}")
        self.path = path
        self.reason = reason


class AlreadyExistsError(StoreError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id!r} is already stored")
        self.session_id = session_id


class FrameNotFoundError(ReelcheckError, LookupError):
    def __init__(self, session_id: str, frame_ids: Iterable[str]) -> None:
        self.session_id = session_id
        self.frame_ids = list(frame_ids)
        super().__init__(
            f"Session {session_id!r} has no frame(s): {', '.join(self.frame_ids)}"
        )


class RemoteUnavailableError(ReelcheckError):
    """A frame could not be fetched; the caller may retry later."""

    def __init__(
        self, session_id: str, frame_id: str, report: "ErrorReport"
    ) -> None:
        super().__init__(
            f"Frame {frame_id!r} of session {session_id!r} unavailable: "
            f"{report.kind}: {report.message}"
        )
        self.session_id = session_id
        self.frame_id = frame_id
        self.report = report

    @property
    def retryable(self) -> bool:
        return self.report.recoverable


class PartialMaterializationError(ReelcheckError):
    """Some frames were materialized; ``manifest`` holds the ones that were."""

    def __init__(self, manifest: "Manifest") -> None:
        self.manifest = manifest
        self.failed_frame_ids = [failure.frame_id for failure in manifest.failures]
        super().__init__(
            f"Could not materialize frame(s) of session {manifest.session_id!r}: "
            f"{', '.join(self.failed_frame_ids)}"
        )
