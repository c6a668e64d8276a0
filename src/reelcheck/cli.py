"""CLI entry point."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

from .attachments import AttachmentPreparer, write_manifest
from .client import SessionClient
from .config import DEFAULT_CONFIG_PATH, Config, load_or_default, save_config
from .errors import (
    PartialMaterializationError,
    ReelcheckError,
    RemoteUnavailableError,
    SubmissionError,
)
from .frame_store import FrameStore
from .logging_utils import setup_logging
from .remote import HttpRemoteService
from .renderer import render_issue_note
from .result_store import ResultStore
from .storage import ensure_structure, path_key

EXIT_FATAL = 1
EXIT_RETRYABLE = 2
EXIT_PARTIAL = 3

logger = logging.getLogger("reelcheck")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reelcheck")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Config file.")
    parser.add_argument("--base-dir", help="Base storage directory.")
    parser.add_argument("--api-url", help="Override the remote service URL.")
    sub = parser.add_subparsers(dest="command")

    submit_cmd = sub.add_parser("submit", help="Submit a video for processing.")
    submit_cmd.add_argument("video_path", help="Path to the video file.")
    submit_cmd.add_argument("--max-frames", type=int, help="Frame extraction limit.")
    submit_cmd.add_argument(
        "--skip-transcription",
        action="store_true",
        default=None,
        help="Extract frames only.",
    )
    submit_cmd.add_argument("--timeout", type=float, help="Request timeout (seconds).")

    show_cmd = sub.add_parser("show", help="Print a stored session.")
    show_cmd.add_argument("session_id")

    sub.add_parser("sessions", help="List stored sessions.")

    frame_cmd = sub.add_parser("frame", help="Fetch one frame into the cache.")
    frame_cmd.add_argument("session_id")
    frame_cmd.add_argument("frame_id")
    frame_cmd.add_argument("--out", help="Also copy the frame bytes here.")

    prepare_cmd = sub.add_parser("prepare", help="Prepare issue attachments.")
    prepare_cmd.add_argument("session_id")
    prepare_cmd.add_argument("--frames", nargs="+", help="Frame ids (default: all).")
    prepare_cmd.add_argument("--out", help="Manifest path.")
    prepare_cmd.add_argument("--note", action="store_true", help="Write a Markdown note.")
    prepare_cmd.add_argument("--title", help="Note title.")

    config_cmd = sub.add_parser("config", help="Show or create the config file.")
    config_cmd.add_argument("--init", action="store_true", help="Write defaults.")
    return parser


def _remote(config: Config) -> HttpRemoteService:
    return HttpRemoteService(
        config.remote.api_url,
        api_key=config.remote.api_key,
        fetch_timeout=config.remote.fetch_timeout_seconds,
    )


def _print_session(store: ResultStore, session_id: str) -> None:
    session = store.load(session_id)
    print(f"Session: {session.session_id}")
    print(f"Status: {session.status.value}")
    print(f"Video: {session.video_source_path}")
    print(f"Created: {session.created_at}")
    cached = sum(1 for frame in session.frames if frame.local_path)
    print(f"Frames: {len(session.frames)} ({cached} cached)")
    if session.transcription is None:
        print("Transcript: none")
    else:
        print(f"Transcript segments: {len(session.transcription.segments)}")
    for report in session.errors:
        print(f"Error: [{report.stage.value}] {report.kind}: {report.message}")
    for note in session.notes:
        print(f"Note: {note}")


def main(argv: Optional[list] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config = load_or_default(args.config)
    if args.base_dir:
        config.base_dir = args.base_dir
    if args.api_url:
        config.remote.api_url = args.api_url

    if args.command == "config":
        if args.init:
            if os.path.exists(args.config):
                print(f"{args.config} already exists.")
                return EXIT_FATAL
            save_config(args.config, config)
            print(f"Wrote {args.config}")
            return 0
        print(f"Base dir: {config.base_dir or os.getcwd()}")
        print(f"API URL: {config.remote.api_url}")
        print(f"API key: {'set' if config.remote.api_key else 'not set'}")
        print(f"Formats: {', '.join(config.supported_formats)}")
        return 0

    paths = ensure_structure(config.base_dir or os.getcwd())
    setup_logging(
        paths["logs"], level=logging.DEBUG if config.debug_logging else logging.INFO
    )
    store = ResultStore(paths["root"])

    try:
        if args.command == "submit":
            client = SessionClient(_remote(config), store, config.supported_formats)
            options = config.submit_options(
                max_frames=args.max_frames,
                skip_transcription=args.skip_transcription,
                timeout=args.timeout,
            )
            session = client.submit(args.video_path, options)
            _print_session(store, session.session_id)
            return 0

        if args.command == "show":
            _print_session(store, args.session_id)
            return 0

        if args.command == "sessions":
            for session_id in store.list_sessions():
                print(session_id)
            return 0

        if args.command == "frame":
            frames = FrameStore(store, _remote(config))
            path = frames.materialize(args.session_id, args.frame_id)
            if args.out:
                with open(args.out, "wb") as handle:
                    handle.write(path.read_bytes())
                print(f"Wrote {args.out}")
            else:
                print(path)
            return 0

        if args.command == "prepare":
            frames = FrameStore(store, _remote(config))
            preparer = AttachmentPreparer(store, frames)
            exit_code = 0
            try:
                manifest = preparer.prepare(args.session_id, args.frames)
            except PartialMaterializationError as exc:
                manifest = exc.manifest
                print(f"Missing frames: {', '.join(exc.failed_frame_ids)}")
                exit_code = EXIT_PARTIAL
            out = args.out or os.path.join(
                paths["manifests"], f"{path_key(args.session_id)}.manifest.json"
            )
            write_manifest(manifest, out)
            print(f"Manifest: {out} ({len(manifest.entries)} attachments)")
            if args.note:
                note_path = os.path.join(paths["notes"], f"{path_key(args.session_id)}.md")
                note = render_issue_note(
                    store.load(args.session_id),
                    manifest,
                    title=args.title,
                    note_dir=os.path.realpath(paths["notes"]),
                )
                with open(note_path, "w", encoding="utf-8") as handle:
                    handle.write(note)
                print(f"Note: {note_path}")
            return exit_code
    except SubmissionError as exc:
        print(f"Submission failed: {exc}")
        return EXIT_RETRYABLE if exc.retryable else EXIT_FATAL
    except RemoteUnavailableError as exc:
        print(f"Frame unavailable: {exc}")
        return EXIT_RETRYABLE if exc.retryable else EXIT_FATAL
    except ReelcheckError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}")
        return EXIT_FATAL
    except ValueError as exc:
        print(f"Invalid option: {exc}")
        return EXIT_FATAL

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
