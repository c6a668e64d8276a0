import threading

import pytest

from conftest import FakeRemote, png_bytes
from reelcheck.errors import FrameNotFoundError, RemoteUnavailableError
from reelcheck.frame_store import FrameStore, image_extension
from reelcheck.models import FrameRef, Session, SessionStatus
from reelcheck.remote import RemoteFault


@pytest.fixture
def saved(store):
    session = Session(
        session_id="sess-1",
        video_source_path="/videos/bug.mp4",
        created_at="2026-10-18T09:30:00Z",
        status=SessionStatus.SUCCESS,
        frames=[FrameRef("f0", "/frames/f0"), FrameRef("f1", "/frames/f1")],
    )
    store.save(session)
    return session


def test_get_fetches_once_then_hits_cache(store, saved):
    remote = FakeRemote(frames={"f0": png_bytes()})
    frames = FrameStore(store, remote)

    first = frames.get("sess-1", "f0")
    second = frames.get("sess-1", "f0")

    assert first == second == png_bytes()
    assert remote.fetches == ["f0"]
    recorded = store.load("sess-1").find_frame("f0").local_path
    assert recorded == "Frames/sess-1/f0.png"
    assert store.resolve(recorded).read_bytes() == first


def test_cache_survives_a_new_frame_store(store, saved):
    FrameStore(store, FakeRemote(frames={"f0": png_bytes()})).get("sess-1", "f0")

    remote = FakeRemote()
    assert FrameStore(store, remote).get("sess-1", "f0") == png_bytes()
    assert remote.fetches == []


def test_unknown_frame_writes_nothing(store, saved):
    remote = FakeRemote(frames={"f0": png_bytes()})
    with pytest.raises(FrameNotFoundError):
        FrameStore(store, remote).get("sess-1", "f7")

    assert remote.fetches == []
    assert not store.frame_dir("sess-1").exists()


def test_fetch_failure_leaves_record_untouched(store, saved):
    before = store.record_path("sess-1").read_bytes()
    remote = FakeRemote(frames={"f1": RemoteFault("network_unreachable", "connection refused")})

    with pytest.raises(RemoteUnavailableError) as info:
        FrameStore(store, remote).get("sess-1", "f1")

    assert info.value.retryable
    assert info.value.report.kind == "NetworkUnreachable"
    assert store.record_path("sess-1").read_bytes() == before


def test_non_image_payload_is_not_cached(store, saved):
    remote = FakeRemote(frames={"f0": b"<html>gateway error</html>"})
    with pytest.raises(RemoteUnavailableError) as info:
        FrameStore(store, remote).get("sess-1", "f0")

    assert info.value.report.kind == "InvalidFrameData"
    assert store.load("sess-1").find_frame("f0").local_path is None
    assert not store.frame_dir("sess-1").exists() or not any(
        store.frame_dir("sess-1").iterdir()
    )


def test_unrecorded_cache_file_is_adopted(store, saved):
    directory = store.frame_dir("sess-1")
    directory.mkdir(parents=True)
    (directory / "f1.png").write_bytes(png_bytes((0, 0, 255)))
    remote = FakeRemote()

    assert FrameStore(store, remote).get("sess-1", "f1") == png_bytes((0, 0, 255))
    assert remote.fetches == []
    assert store.load("sess-1").find_frame("f1").local_path == "Frames/sess-1/f1.png"


def _run_concurrently(frames, frame_ids):
    start = threading.Barrier(len(frame_ids))
    results = []
    errors = []

    def worker(frame_id):
        start.wait()
        try:
            results.append((frame_id, frames.get("sess-1", frame_id)))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(fid,)) for fid in frame_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results, errors


def test_concurrent_gets_converge(store, saved):
    payloads = {"f0": png_bytes((10, 20, 30)), "f1": png_bytes((40, 50, 60))}
    frames = FrameStore(store, FakeRemote(frames=payloads))

    results, errors = _run_concurrently(frames, ["f0", "f1"] * 8)

    assert errors == []
    assert len(results) == 16
    assert all(data == payloads[frame_id] for frame_id, data in results)
    files = sorted(p.name for p in store.frame_dir("sess-1").iterdir())
    assert files == ["f0.png", "f1.png"]
    session = store.load("sess-1")
    assert [frame.local_path for frame in session.frames] == [
        "Frames/sess-1/f0.png",
        "Frames/sess-1/f1.png",
    ]


def test_concurrent_gets_of_many_frames_record_every_path(store):
    frame_ids = [f"f{idx}" for idx in range(24)]
    store.save(
        Session(
            session_id="sess-1",
            video_source_path="/videos/bug.mp4",
            created_at="2026-10-18T09:30:00Z",
            status=SessionStatus.SUCCESS,
            frames=[FrameRef(fid, f"/frames/{fid}") for fid in frame_ids],
        )
    )
    payloads = {fid: png_bytes((idx, 0, 0)) for idx, fid in enumerate(frame_ids)}
    remote = FakeRemote(frames=payloads)

    results, errors = _run_concurrently(FrameStore(store, remote), frame_ids)

    assert errors == []
    assert sorted(remote.fetches) == sorted(frame_ids)
    assert all(data == payloads[frame_id] for frame_id, data in results)
    session = store.load("sess-1")
    assert session.frame_ids() == frame_ids
    assert [frame.local_path for frame in session.frames] == [
        f"Frames/sess-1/{fid}.png" for fid in frame_ids
    ]


def test_refetch_of_deleted_frame_rejects_non_image(store, saved):
    remote = FakeRemote(frames={"f0": png_bytes()})
    frames = FrameStore(store, remote)
    path = frames.materialize("sess-1", "f0")
    path.unlink()
    remote.frames["f0"] = b"<html>502 Bad Gateway</html>"

    with pytest.raises(RemoteUnavailableError) as info:
        frames.get("sess-1", "f0")

    assert info.value.report.kind == "InvalidFrameData"
    assert not path.exists()
    assert store.load("sess-1").find_frame("f0").local_path == "Frames/sess-1/f0.png"


def test_refetch_of_deleted_frame_refills_same_path(store, saved):
    remote = FakeRemote(frames={"f0": png_bytes()})
    frames = FrameStore(store, remote)
    path = frames.materialize("sess-1", "f0")
    path.unlink()

    assert frames.get("sess-1", "f0") == png_bytes()
    assert path.read_bytes() == png_bytes()
    assert remote.fetches == ["f0", "f0"]


def test_image_extension_detects_format():
    assert image_extension(png_bytes()) == "png"
    with pytest.raises(ValueError):
        image_extension(b"nope")
