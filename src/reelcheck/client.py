"""Video submission and session construction."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Type

from .classifier import Classification, Continuation, classify
from .errors import InputError, RemoteSubmissionError, SubmissionError
from .models import Session, SessionStatus, Stage, SubmitOptions, Transcript
from .remote import RemoteFault, RemoteService
from .result_store import ResultStore
from .session_io import (
    FormatError,
    RemoteFailed,
    RemotePartial,
    RemoteSuccess,
    decode_response,
)
from .storage import utc_timestamp

logger = logging.getLogger("reelcheck")

DEFAULT_FORMATS = (".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v")

NO_SPEECH_KIND = "NoSpeechDetected"


class SessionClient:
    def __init__(
        self,
        remote: RemoteService,
        store: ResultStore,
        supported_formats: Iterable[str] = DEFAULT_FORMATS,
    ) -> None:
        self.remote = remote
        self.store = store
        self.supported_formats = tuple(fmt.lower() for fmt in supported_formats)

    def submit(self, video_path: str, options: Optional[SubmitOptions] = None) -> Session:
        """Submit a video and persist the resulting session.

        Transcription problems reported by the service degrade the session
        to ``partial_success``. Anything that prevents a usable result
        raises a ``SubmissionError`` and leaves the store untouched.
        """
        options = options or SubmitOptions()
        source = str(video_path)
        path = self._validate_video(source)

        try:
            document = self.remote.submit(path, options)
        except RemoteFault as fault:
            raise self._failure(
                source, Stage.SUBMISSION, fault.signal, fault.message
            ) from fault

        try:
            result = decode_response(document, skip_transcription=options.skip_transcription)
        except FormatError as exc:
            raise self._failure(
                source, Stage.SUBMISSION, "malformed_response", str(exc)
            ) from exc

        if isinstance(result, RemoteFailed):
            failure = result.failure
            raise self._failure(source, failure.stage, failure.code, failure.message)

        if isinstance(result, RemoteSuccess):
            session = Session(
                session_id=result.session_id,
                video_source_path=source,
                created_at=utc_timestamp(),
                status=SessionStatus.SUCCESS,
                frames=result.frames,
                transcription=result.transcription,
            )
            if options.skip_transcription and result.transcription is None:
                session.notes.append("Transcription skipped on request.")
        else:
            session = self._degraded(source, result)

        if options.max_frames is not None and len(session.frames) > options.max_frames:
            logger.warning(
                "Service returned %s frames for max_frames=%s; keeping all of them",
                len(session.frames),
                options.max_frames,
            )

        self.store.save(session)
        logger.info(
            "Session %s stored (%s, %s frames)",
            session.session_id,
            session.status.value,
            len(session.frames),
        )
        return session

    def _validate_video(self, source: str) -> Path:
        path = Path(source)
        if not path.is_file():
            raise self._failure(
                source, Stage.SUBMISSION, "file_not_found", f"{source} does not exist", InputError
            )
        if not os.access(path, os.R_OK):
            raise self._failure(
                source, Stage.SUBMISSION, "file_not_found", f"{source} is not readable", InputError
            )
        if path.suffix.lower() not in self.supported_formats:
            raise self._failure(
                source,
                Stage.SUBMISSION,
                "unsupported_format",
                f"{path.suffix or 'no extension'} is not one of "
                f"{', '.join(self.supported_formats)}",
                InputError,
            )
        return path

    def _degraded(self, source: str, result: RemotePartial) -> Session:
        failure = result.failure
        classification = classify(failure.stage, failure.code)
        report = classification.report(
            failure.stage, failure.message or failure.code.replace("_", " ")
        )
        transcription = None
        notes = []
        if classification.kind == NO_SPEECH_KIND:
            language = result.transcription.language if result.transcription else None
            transcription = Transcript(full_text="", segments=[], language=language)
            notes.append("No speech detected in the audio track.")
        else:
            notes.append(f"Transcription unavailable: {report.kind}.")
        logger.warning(
            "Session %s degraded at %s: %s (%s)",
            result.session_id,
            failure.stage.value,
            report.kind,
            report.message,
        )
        return Session(
            session_id=result.session_id,
            video_source_path=source,
            created_at=utc_timestamp(),
            status=SessionStatus.PARTIAL_SUCCESS,
            frames=result.frames,
            transcription=transcription,
            errors=[report],
            notes=notes,
        )

    def _failure(
        self,
        source: str,
        stage: Stage,
        signal: str,
        message: str,
        error_cls: Type[SubmissionError] = RemoteSubmissionError,
    ) -> SubmissionError:
        classification = classify(stage, signal)
        if stage == Stage.TRANSCRIPTION:
            # A fully failed submission is a submission failure even when
            # the service blames transcription.
            classification = Classification(
                classification.kind, False, Continuation.ABORT
            )
        report = classification.report(stage, message or signal)
        session = Session(
            session_id="",
            video_source_path=source,
            created_at=utc_timestamp(),
            status=SessionStatus.FAILED,
            errors=[report],
        )
        logger.error("Submission of %s failed: %s (%s)", source, report.kind, report.message)
        return error_cls(report, classification, session)
