"""
Caption-track text extraction.

Turns a WebVTT caption document written by yt-dlp into clean, line-oriented
text for an agent to read. Two modes are supported:

- discard-timing (default): only the visible caption text, with immediately
  repeated lines collapsed. Auto-generated YouTube captions repeat each line
  across rolling cues, so this roughly halves their size.
- preserve-timing: each cue as a normalized ``HH:MM:SS.mmm --> HH:MM:SS.mmm``
  line followed by its cleaned text lines.

Input that is not WebVTT yields an empty result instead of an error; callers
report "no subtitles" in that case.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator

WEBVTT_MARKER = "WEBVTT"
CUE_ARROW = "-->"

# A cue timing line reduced to its start/end pair. Settings such as
# "align:start position:0%" after the end time are dropped.
TIMING_PATTERN = re.compile(r"(\d{2}:\d{2}:\d{2}\.\d{3})\s*-->\s*(\d{2}:\d{2}:\d{2}\.\d{3})")

# Karaoke-style word timestamps (<00:00:07.759>) and bare class span tags
INLINE_TAG_PATTERN = re.compile(r"<\d{2}:\d{2}:\d{2}\.\d{3}>|</c>|<c>")

_STYLING_TOKENS = ("align:", "position:")


class CaptionFormat(str, Enum):
    """Caption file formats yt-dlp can write. Only vtt is parsed."""

    vtt = "vtt"
    srt = "srt"
    ass = "ass"
    ttml = "ttml"
    json3 = "json3"
    other = "other"

    @classmethod
    def from_suffix(cls, suffix: str) -> "CaptionFormat":
        try:
            return cls(suffix.lower().lstrip("."))
        except ValueError:
            return cls.other


@dataclass(frozen=True)
class CaptionDocument:
    """
    The raw text of one caption track file.

    Attributes:
        format: File format, inferred from the file suffix
        raw_text: Full document body
    """

    format: CaptionFormat
    raw_text: str

    @classmethod
    def from_path(cls, path: Path) -> "CaptionDocument":
        """Read a caption file written by the extractor."""
        text = path.read_text(encoding="utf-8", errors="replace")
        return cls(format=CaptionFormat.from_suffix(path.suffix), raw_text=text)

    @classmethod
    def from_text(cls, text: str) -> "CaptionDocument":
        return cls(format=CaptionFormat.vtt, raw_text=text)

    @property
    def is_webvtt(self) -> bool:
        first_line = self.raw_text.split("\n", 1)[0]
        return WEBVTT_MARKER in first_line


@dataclass(frozen=True)
class CaptionLine:
    """
    One unit of normalized output.

    Attributes:
        text: Visible text, or the normalized timing pair for a timing line
        start: Cue start (HH:MM:SS.mmm), preserve-timing mode only
        end: Cue end (HH:MM:SS.mmm), preserve-timing mode only
        is_timing: True for the timing line that opens a cue
    """

    text: str
    start: str | None = None
    end: str | None = None
    is_timing: bool = False


def clean_caption_text(line: str) -> str:
    """Strip inline timestamp and <c> styling tags, then surrounding whitespace."""
    return INLINE_TAG_PATTERN.sub("", line).strip()


def _is_styling(line: str) -> bool:
    return any(token in line for token in _STYLING_TOKENS)


def _cue_lines(lines: list[str]) -> list[str]:
    """
    Drop the header block.

    The header ends at the first blank line that is immediately followed by a
    timing line. Without such a boundary only the marker line is dropped.
    """
    for i in range(1, len(lines) - 1):
        if lines[i].strip() == "" and CUE_ARROW in lines[i + 1]:
            return lines[i + 1:]
    return lines[1:]


def _iter_plain(lines: list[str]) -> Iterator[CaptionLine]:
    previous: str | None = None
    for line in lines:
        if CUE_ARROW in line or _is_styling(line) or not line.strip():
            continue
        text = clean_caption_text(line)
        # Adjacent duplicates only; a line recurring later is kept
        if not text or text == previous:
            continue
        previous = text
        yield CaptionLine(text=text)


def _iter_timed(lines: list[str]) -> Iterator[CaptionLine]:
    start: str | None = None
    end: str | None = None
    for line in lines:
        if CUE_ARROW in line:
            match = TIMING_PATTERN.search(line)
            if match is None:
                # Malformed timing is dropped whole; content that follows
                # carries no timing
                start = end = None
                continue
            start, end = match.groups()
            yield CaptionLine(text=f"{start} --> {end}", start=start, end=end, is_timing=True)
        elif line.strip() and not _is_styling(line):
            text = clean_caption_text(line)
            if text:
                yield CaptionLine(text=text, start=start, end=end)


def iter_lines(
    document: CaptionDocument | str, preserve_timing: bool = False
) -> Iterator[CaptionLine]:
    """
    Lazily yield the normalized lines of a caption document.

    Each call walks the document again, so the sequence can be restarted.

    Args:
        document: The caption document, or its raw text
        preserve_timing: Emit cue timing lines ahead of their text

    Yields:
        CaptionLine items in document order
    """
    if isinstance(document, str):
        document = CaptionDocument.from_text(document)

    raw = document.raw_text
    if not raw or not raw.strip():
        return
    lines = raw.split("\n")
    if len(lines) < 2 or WEBVTT_MARKER not in lines[0]:
        return

    body = _cue_lines(lines)
    if preserve_timing:
        yield from _iter_timed(body)
    else:
        yield from _iter_plain(body)


def normalize(document: CaptionDocument | str, preserve_timing: bool = False) -> str:
    """
    Convert a caption document to readable text.

    Never raises: empty, garbled or non-WebVTT input returns "".

    Args:
        document: The caption document, or its raw text
        preserve_timing: Keep "HH:MM:SS.mmm --> HH:MM:SS.mmm" lines per cue

    Returns:
        Newline-joined normalized lines

    Examples:
        >>> normalize("WEBVTT\\n\\n00:00:01.000 --> 00:00:02.000\\nHi\\n")
        'Hi'
    """
    return "\n".join(line.text for line in iter_lines(document, preserve_timing))
