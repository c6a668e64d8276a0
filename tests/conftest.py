import io
import threading

import pytest
from PIL import Image

from reelcheck.remote import RemoteFault
from reelcheck.result_store import ResultStore


def png_bytes(color=(255, 0, 0), size=(4, 4)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def success_response(session_id="sess-1", frame_count=3, segments=None):
    if segments is None:
        segments = [
            {"start_ms": 0, "end_ms": 1200, "text": "The button does nothing."},
            {"start_ms": 1300, "end_ms": 2500, "text": "Then it crashes."},
        ]
    return {
        "status": "success",
        "session_id": session_id,
        "frames": [
            {"id": f"f{idx}", "locator": f"/frames/{session_id}/f{idx}", "timestamp_ms": idx * 1000}
            for idx in range(frame_count)
        ],
        "transcription": {
            "full_text": " ".join(seg["text"] for seg in segments),
            "language": "en",
            "segments": segments,
        },
    }


class FakeRemote:
    def __init__(self, response=None, fault=None, frames=None):
        self.response = response
        self.fault = fault
        self.frames = frames or {}
        self.submissions = []
        self.fetches = []
        self._lock = threading.Lock()

    def submit(self, video_path, options):
        self.submissions.append((video_path, options))
        if self.fault is not None:
            raise self.fault
        return self.response

    def fetch_frame(self, session_id, frame):
        with self._lock:
            self.fetches.append(frame.frame_id)
        payload = self.frames.get(frame.frame_id)
        if isinstance(payload, Exception):
            raise payload
        if payload is None:
            raise RemoteFault("frame_not_found", f"no frame {frame.frame_id}", 404)
        return payload


@pytest.fixture
def store(tmp_path):
    return ResultStore(str(tmp_path / "store"))


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "bug-report.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42fake-video")
    return path
