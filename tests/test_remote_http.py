import httpx
import pytest

from conftest import png_bytes, success_response
from reelcheck.models import FrameRef, SubmitOptions
from reelcheck.remote import API_KEY_HEADER, HttpRemoteService, RemoteFault


def _service(handler, api_key="secret"):
    return HttpRemoteService(
        "https://video.example/api/", api_key=api_key, transport=httpx.MockTransport(handler)
    )


def test_submit_posts_video_with_options(video_file):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get(API_KEY_HEADER)
        seen["body"] = request.read()
        return httpx.Response(200, json=success_response())

    document = _service(handler).submit(video_file, SubmitOptions(max_frames=4))

    assert document["session_id"] == "sess-1"
    assert seen["url"] == "https://video.example/api/sessions"
    assert seen["key"] == "secret"
    assert b'name="max_frames"' in seen["body"]
    assert b'name="skip_transcription"' in seen["body"]
    assert b"fake-video" in seen["body"]


def test_submit_without_key_sends_no_header(video_file):
    seen = {}

    def handler(request):
        seen["key"] = request.headers.get(API_KEY_HEADER)
        return httpx.Response(200, json=success_response())

    _service(handler, api_key=None).submit(video_file, SubmitOptions())
    assert seen["key"] is None


@pytest.mark.parametrize(
    "status,signal",
    [(401, "auth_rejected"), (403, "auth_rejected"), (415, "unsupported_format"),
     (400, "request_rejected"), (503, "server_error")],
)
def test_submit_maps_http_status(video_file, status, signal):
    service = _service(lambda request: httpx.Response(status, text="nope"))
    with pytest.raises(RemoteFault) as info:
        service.submit(video_file, SubmitOptions())
    assert info.value.signal == signal
    assert info.value.status_code == status


def test_structured_failure_body_is_returned(video_file):
    body = {"status": "failed", "failure": {"stage": "submission", "code": "unsupported_format"}}
    service = _service(lambda request: httpx.Response(422, json=body))
    assert service.submit(video_file, SubmitOptions()) == body


def test_submit_non_json_body_is_malformed(video_file):
    service = _service(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(RemoteFault) as info:
        service.submit(video_file, SubmitOptions())
    assert info.value.signal == "malformed_response"


def test_submit_timeout_and_network_errors(video_file):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    def down(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteFault) as info:
        _service(slow).submit(video_file, SubmitOptions(timeout=1))
    assert info.value.signal == "timeout"
    with pytest.raises(RemoteFault) as info:
        _service(down).submit(video_file, SubmitOptions())
    assert info.value.signal == "network_unreachable"


def test_fetch_frame_uses_locator_or_default_route():
    urls = []

    def handler(request):
        urls.append(str(request.url))
        return httpx.Response(200, content=png_bytes())

    service = _service(handler)
    assert service.fetch_frame("s 1", FrameRef("f0", "https://cdn.example/f0.png")) == png_bytes()
    service.fetch_frame("s 1", FrameRef("f1", "opaque-token"))

    assert urls[0] == "https://cdn.example/f0.png"
    assert urls[1] == "https://video.example/api/sessions/s%201/frames/f1"


def test_fetch_frame_not_found():
    service = _service(lambda request: httpx.Response(404))
    with pytest.raises(RemoteFault) as info:
        service.fetch_frame("s1", FrameRef("f0", "opaque"))
    assert info.value.signal == "frame_not_found"


def test_api_key_only_sent_to_service_origin():
    keys = {}

    def handler(request):
        keys[str(request.url)] = request.headers.get(API_KEY_HEADER)
        return httpx.Response(200, content=png_bytes())

    service = _service(handler)
    service.fetch_frame("s1", FrameRef("f0", "https://attacker.example/x.png"))
    service.fetch_frame("s1", FrameRef("f1", "http://video.example/api/f1.png"))
    service.fetch_frame("s1", FrameRef("f2", "https://video.example:8443/f2.png"))
    service.fetch_frame("s1", FrameRef("f3", "https://video.example/cdn/f3.png"))
    service.fetch_frame("s1", FrameRef("f4", "/frames/f4"))
    service.fetch_frame("s1", FrameRef("f5", "opaque-token"))

    assert keys == {
        "https://attacker.example/x.png": None,
        "http://video.example/api/f1.png": None,
        "https://video.example:8443/f2.png": None,
        "https://video.example/cdn/f3.png": "secret",
        "https://video.example/api/frames/f4": "secret",
        "https://video.example/api/sessions/s1/frames/f5": "secret",
    }
