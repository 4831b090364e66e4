"""
Render meeting transcripts and speaker chips with resolved speaker names.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone, tzinfo
from typing import NamedTuple

from sr_common.models import TranscriptLine

from .directory import SpeakerDirectory


class SpeakerChip(NamedTuple):
    channel_label: str
    label: str
    color: str
    linked: bool


def format_clock(timestamp_ms: int, tz: tzinfo | None = timezone.utc) -> str:
    """``HH:MM`` for an epoch-millisecond timestamp.

    Rendered in *tz* (UTC by default); ``None`` uses the local time zone.
    """
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=tz).strftime("%H:%M")


def render_transcript(
    lines: Iterable[TranscriptLine],
    directory: SpeakerDirectory,
    *,
    tz: tzinfo | None = timezone.utc,
) -> str:
    """Format *lines* as ``[HH:MM] Speaker: text`` using current bindings."""
    return "\n".join(
        f"[{format_clock(line.timestamp_ms, tz)}] {directory.label_for(line.speaker)}: {line.text}"
        for line in lines
    )


def speaker_summary(directory: SpeakerDirectory) -> list[SpeakerChip]:
    """One chip per binding, in directory order."""
    return [
        SpeakerChip(
            channel_label=binding.channel_label,
            label=directory.label_for(binding.channel_label),
            color=directory.color_for(binding.channel_label),
            linked=binding.is_linked,
        )
        for binding in directory.bindings()
    ]
