"""Build and reshape SubRip (SRT) subtitle text.

Cues are grouped from timed transcript tokens. A cue closes when it holds
``words_per_cue`` tokens or when a token ends a sentence, whichever is first.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Iterable, List

from toolbox_subtitles.schemas.subtitles import TranscriptWord

SENTENCE_ENDINGS = (".", "?", "!")
SKIPPED_TYPES = {"spacing", "audio_event"}

_BLOCK_SEPARATOR = re.compile(r"(?:\r?\n){2,}")


def format_timestamp(seconds: float) -> str:
    """Format seconds as an SRT timecode ``HH:MM:SS,mmm``.

    Milliseconds are truncated, not rounded.
    """
    if seconds < 0:
        seconds = 0
    total_ms = int(Decimal(str(seconds)) * 1000)
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02}:{minutes:02}:{secs:02},{millis:03}"


def _format_cue(number: int, start: float, end: float, text: str) -> str:
    return f"{number}\n{format_timestamp(start)} --> {format_timestamp(end)}\n{text}\n\n"


def generate_srt(words: Iterable[TranscriptWord], words_per_cue: int = 8) -> str:
    if words_per_cue < 1:
        raise ValueError("words_per_cue must be >= 1")

    cues: List[str] = []
    parts: List[str] = []
    start = end = 0.0

    def close_cue() -> None:
        cues.append(_format_cue(len(cues) + 1, start, end, "".join(parts).strip()))
        parts.clear()

    for word in words:
        if word.type in SKIPPED_TYPES or not word.text.strip():
            continue
        text = word.text.strip()
        if not parts:
            start = word.start
            parts.append(text)
        elif word.type == "punctuation":
            parts.append(text)
        else:
            parts.append(f" {text}")
        end = word.end

        if len(parts) >= words_per_cue or text.endswith(SENTENCE_ENDINGS):
            close_cue()

    if parts:
        close_cue()

    return "".join(cues)


def split_into_blocks(srt_content: str) -> List[str]:
    """Split SRT text on blank lines, tolerating LF and CRLF endings."""
    if not srt_content:
        return []
    return [block.strip() for block in _BLOCK_SEPARATOR.split(srt_content) if block.strip()]


def count_blocks(srt_content: str) -> int:
    return len(split_into_blocks(srt_content))


def srt_to_vtt(srt_content: str) -> str:
    """Convert SRT text to WebVTT for browser video players."""
    lines = ["WEBVTT", ""]
    for line in srt_content.split("\n"):
        line = line.rstrip("\r")
        if " --> " in line:
            line = line.replace(",", ".")
        lines.append(line)
    return "\n".join(lines)
