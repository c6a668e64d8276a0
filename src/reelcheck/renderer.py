"""Markdown issue note rendering."""

from __future__ import annotations

import os
from typing import List, Optional

from .models import Manifest, Session, TranscriptSegment


def _yaml_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f"\"{escaped}\""


def _clean_text(value: str) -> str:
    return " ".join(value.split())


def format_ms(value: Optional[int]) -> str:
    if value is None:
        return "--:--.---"
    minutes, rest = divmod(value, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{minutes:02d}:{seconds:02d}.{millis:03d}"


def _build_timeline_lines(segments: List[TranscriptSegment]) -> List[str]:
    ordered = sorted(segments, key=lambda seg: (seg.start_ms, seg.end_ms))
    return [f"[{format_ms(seg.start_ms)}] {_clean_text(seg.text)}" for seg in ordered]


def render_issue_note(
    session: Session,
    manifest: Manifest,
    title: Optional[str] = None,
    note_dir: Optional[str] = None,
) -> str:
    """Render a Markdown note listing the attachments of a session.

    Image links are made relative to ``note_dir`` when given, so the note
    keeps working when moved together with the store.
    """
    video_name = os.path.basename(session.video_source_path)
    heading = title or f"Video report: {video_name}"
    timestamps = {frame.frame_id: frame.timestamp_ms for frame in session.frames}

    lines: List[str] = []
    lines.append("---")
    lines.append("schema: 1")
    lines.append(f"title: {_yaml_quote(heading)}")
    lines.append(f"session_id: {_yaml_quote(session.session_id)}")
    lines.append(f"status: {session.status.value}")
    lines.append(f"video: {_yaml_quote(video_name)}")
    lines.append(f"created_at: {_yaml_quote(session.created_at)}")
    lines.append(f"frames: {len(manifest.entries)}")
    if manifest.failures:
        lines.append("missing_frames:")
        for failure in manifest.failures:
            lines.append(f"  - {_yaml_quote(failure.frame_id)}")
    lines.append("---")
    lines.append("")
    lines.append(f"# {_clean_text(heading)}")
    lines.append("")

    lines.append("## Frames")
    lines.append("")
    if not manifest.entries:
        lines.append("_No frames attached._")
    for entry in manifest.entries:
        link = entry.local_path
        if note_dir:
            link = os.path.relpath(entry.local_path, note_dir)
        link = link.replace(os.sep, "/")
        stamp = format_ms(timestamps.get(entry.frame_id))
        lines.append(f"![{entry.frame_id} @ {stamp}]({link})")
    lines.append("")

    if session.errors or session.notes or manifest.failures:
        lines.append("## Diagnostics")
        lines.append("")
        for report in session.errors:
            lines.append(
                f"- {report.stage.value}: {report.kind} - {_clean_text(report.message)}"
            )
        for note in session.notes:
            lines.append(f"- {_clean_text(note)}")
        for failure in manifest.failures:
            lines.append(
                f"- frame {failure.frame_id} not attached: {failure.kind}"
            )
        lines.append("")

    lines.append("## Transcript")
    lines.append("")
    transcription = manifest.transcription
    if transcription is None:
        lines.append("_No transcript available._")
    elif not transcription.segments:
        lines.append("_No speech detected._")
    else:
        lines.extend(_build_timeline_lines(transcription.segments))
    lines.append("")
    return "\n".join(lines)
