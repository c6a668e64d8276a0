import argparse
import os
import sys
import time
from pathlib import Path

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from reelcheck.models import SubmitOptions
from reelcheck.remote import HttpRemoteService, RemoteFault
from reelcheck.session_io import FormatError, RemoteFailed, decode_response


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("video_path", help="Path to video file to submit.")
    parser.add_argument("--api-url", default="http://localhost:8000", help="Service URL.")
    parser.add_argument("--api-key", default=os.getenv("REELCHECK_API_KEY"), help="API key.")
    parser.add_argument("--max-frames", type=int, help="Frame extraction limit.")
    parser.add_argument("--skip-transcription", action="store_true")
    parser.add_argument("--timeout", type=float, default=600.0, help="Seconds.")
    args = parser.parse_args()

    remote = HttpRemoteService(args.api_url, api_key=args.api_key)
    options = SubmitOptions(
        max_frames=args.max_frames,
        skip_transcription=args.skip_transcription,
        timeout=args.timeout,
    )

    started = time.time()
    try:
        document = remote.submit(Path(args.video_path), options)
    except RemoteFault as fault:
        print(f"Remote fault: {fault.signal} ({fault.message})")
        return 1
    elapsed = time.time() - started

    try:
        result = decode_response(document, skip_transcription=args.skip_transcription)
    except FormatError as exc:
        print(f"Malformed response: {exc}")
        return 1

    if isinstance(result, RemoteFailed):
        print(f"Failed: {result.failure.stage.value} {result.failure.code}")
    else:
        segments = len(result.transcription.segments) if result.transcription else 0
        print(f"Result: {type(result).__name__}")
        print(f"Session: {result.session_id}")
        print(f"Frames: {len(result.frames)}")
        print(f"Segments: {segments}")
    print(f"Elapsed: {elapsed:.2f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
