"""Remote video-analysis service access."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx

from .models import FrameRef, SubmitOptions

logger = logging.getLogger("reelcheck")

API_KEY_HEADER = "X-API-Key"


class RemoteFault(Exception):
    """Raised by RemoteService implementations with a raw failure signal.

    ``signal`` is one of the names understood by ``classifier.classify``
    (``network_unreachable``, ``timeout``, ``auth_rejected`` ...).
    """

    def __init__(
        self, signal: str, message: str, status_code: Optional[int] = None
    ) -> None:
        super().__init__(f"{signal}: {message}")
        self.signal = signal
        self.message = message
        self.status_code = status_code


class RemoteService(Protocol):
    def submit(self, video_path: Path, options: SubmitOptions) -> Any:
        """Upload the video and return the decoded JSON response document."""
        ...

    def fetch_frame(self, session_id: str, frame: FrameRef) -> bytes: ...


def _submission_signal(status_code: int) -> str:
    if status_code in (401, 403):
        return "auth_rejected"
    if status_code == 415:
        return "unsupported_format"
    if status_code >= 500:
        return "server_error"
    return "request_rejected"


def _fetch_signal(status_code: int) -> str:
    if status_code == 404:
        return "frame_not_found"
    if status_code in (401, 403):
        return "auth_rejected"
    return "fetch_failed"


def _short(text: str, limit: int = 200) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


class HttpRemoteService:
    """RemoteService speaking the service's HTTP API through httpx."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        fetch_timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.fetch_timeout = fetch_timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_url,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        )

    def _auth_headers(self, url: str) -> dict:
        """The API key header, for URLs on the service's own origin only."""
        if not self.api_key:
            return {}
        target = httpx.URL(url)
        if target.is_absolute_url:
            base = httpx.URL(self.api_url)
            if (target.scheme, target.host, target.port) != (base.scheme, base.host, base.port):
                return {}
        return {API_KEY_HEADER: self.api_key}

    def submit(self, video_path: Path, options: SubmitOptions) -> Any:
        data = {"skip_transcription": "true" if options.skip_transcription else "false"}
        if options.max_frames is not None:
            data["max_frames"] = str(options.max_frames)
        content_type = mimetypes.guess_type(video_path.name)[0] or "application/octet-stream"

        logger.info("Submitting %s to %s", video_path, self.api_url)
        with open(video_path, "rb") as handle, self._client(options.timeout) as client:
            try:
                response = client.post(
                    "/sessions",
                    files={"video": (video_path.name, handle, content_type)},
                    data=data,
                    headers=self._auth_headers("/sessions"),
                )
            except httpx.TimeoutException as exc:
                raise RemoteFault("timeout", f"no response within {options.timeout}s") from exc
            except httpx.TransportError as exc:
                raise RemoteFault("network_unreachable", str(exc) or type(exc).__name__) from exc

        try:
            document = response.json()
        except ValueError:
            document = None

        if response.is_success:
            if document is None:
                raise RemoteFault(
                    "malformed_response",
                    f"response body is not JSON: {_short(response.text)}",
                    response.status_code,
                )
            return document

        # A structured failure body names the cause more precisely than
        # the status code does.
        if isinstance(document, dict) and document.get("status") == "failed":
            return document
        raise RemoteFault(
            _submission_signal(response.status_code),
            f"HTTP {response.status_code}: {_short(response.text)}",
            response.status_code,
        )

    def _frame_url(self, session_id: str, frame: FrameRef) -> str:
        locator = frame.remote_locator
        if locator.startswith(("http://", "https://", "/")):
            return locator
        return f"/sessions/{quote(session_id, safe='')}/frames/{quote(frame.frame_id, safe='')}"

    def fetch_frame(self, session_id: str, frame: FrameRef) -> bytes:
        url = self._frame_url(session_id, frame)
        headers = {"Accept": "image/*", **self._auth_headers(url)}
        with self._client(self.fetch_timeout) as client:
            try:
                response = client.get(url, headers=headers)
            except httpx.TimeoutException as exc:
                raise RemoteFault("timeout", f"no response within {self.fetch_timeout}s") from exc
            except httpx.TransportError as exc:
                raise RemoteFault("network_unreachable", str(exc) or type(exc).__name__) from exc
        if not response.is_success:
            raise RemoteFault(
                _fetch_signal(response.status_code),
                f"HTTP {response.status_code} for {url}",
                response.status_code,
            )
        return response.content
