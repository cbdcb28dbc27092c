"""
Shared helpers for the tool layer: URL validation, time range parsing and
human-readable formatting.
"""

import re
from urllib.parse import urlparse

from ytdlp_mcp.errors import ErrorKind, ToolFailure

# Pre-compiled regex patterns for performance
YOUTUBE_PATTERN_COMPILED = re.compile(
    r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/|youtube\.com/live/)([a-zA-Z0-9_-]{11})"
)
YOUTUBE_ID_PATTERN_COMPILED = re.compile(r"^([a-zA-Z0-9_-]{11})$")

VALID_YOUTUBE_HOSTS = {
    "youtube.com",
    "www.youtube.com",
    "youtu.be",
    "m.youtube.com",
    "music.youtube.com",
}


def extract_video_id(url: str) -> str | None:
    """
    Extract video ID from a YouTube URL or return the input if it's a raw ID.

    Args:
        url: YouTube URL or video ID

    Returns:
        11-character YouTube video ID, or None if not found

    Examples:
        >>> extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10")
        'dQw4w9WgXcQ'
        >>> extract_video_id("dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
    """
    match = YOUTUBE_PATTERN_COMPILED.search(url)
    if match:
        return match.group(1)

    match = YOUTUBE_ID_PATTERN_COMPILED.match(url)
    if match:
        return match.group(1)

    return None


def is_valid_youtube_url(url: str) -> bool:
    """
    Validate that a URL is a YouTube video URL with a strict scheme and host.

    Raw 11-character video IDs are accepted. Hosts outside the YouTube
    domains are rejected so the extractor cannot be pointed elsewhere.

    Examples:
        >>> is_valid_youtube_url("https://youtu.be/dQw4w9WgXcQ")
        True
        >>> is_valid_youtube_url("https://evil.com?ref=youtube.com/watch?v=VIDEO_ID")
        False
    """
    if YOUTUBE_ID_PATTERN_COMPILED.match(url):
        return True

    if not url.startswith(("http://", "https://")):
        return False

    if urlparse(url).netloc not in VALID_YOUTUBE_HOSTS:
        return False

    return extract_video_id(url) is not None


def normalize_video_url(url: str) -> str:
    """
    Validate a video URL and expand raw IDs to a watch URL.

    Raises:
        ToolFailure: invalid_input if the URL is not a YouTube video URL
    """
    url = url.strip()
    if not is_valid_youtube_url(url):
        raise ToolFailure(
            f"Invalid YouTube URL: {url!r}. Expected format: "
            "https://www.youtube.com/watch?v=VIDEO_ID",
            ErrorKind.invalid_input,
        )
    if YOUTUBE_ID_PATTERN_COMPILED.match(url):
        return f"https://www.youtube.com/watch?v={url}"
    return url


def parse_time_to_seconds(time_str: str) -> int:
    """
    Parse "MM:SS" or "HH:MM:SS" into seconds.

    Raises:
        ToolFailure: invalid_input for any other shape

    Examples:
        >>> parse_time_to_seconds("1:30")
        90
        >>> parse_time_to_seconds("01:00:05")
        3605
    """
    parts = time_str.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ToolFailure(
            f"Invalid time format: {time_str}. Use MM:SS or HH:MM:SS",
            ErrorKind.invalid_input,
        )
    values = [int(p) for p in parts]
    if any(v >= 60 for v in values[1:]):
        raise ToolFailure(
            f"Invalid time format: {time_str}. Minutes and seconds must be below 60",
            ErrorKind.invalid_input,
        )
    if len(values) == 2:
        minutes, seconds = values
        return minutes * 60 + seconds
    hours, minutes, seconds = values
    return hours * 3600 + minutes * 60 + seconds


def parse_time_range(
    time_start: str | None, time_end: str | None
) -> tuple[int, int | None]:
    """
    Parse an optional start/end pair.

    Returns:
        (start_seconds, end_seconds); start defaults to 0 and end to None
        (until the end of the video)

    Raises:
        ToolFailure: invalid_input if either bound is malformed or start >= end
    """
    start = parse_time_to_seconds(time_start) if time_start else 0
    end = parse_time_to_seconds(time_end) if time_end else None
    if end is not None and start >= end:
        raise ToolFailure("Start time must be before end time", ErrorKind.invalid_input)
    return start, end


def format_seconds_to_time(seconds: float) -> str:
    """
    Format seconds as "H:MM:SS", or "M:SS" below one hour.

    Examples:
        >>> format_seconds_to_time(3725)
        '1:02:05'
        >>> format_seconds_to_time(65)
        '1:05'
    """
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def validate_output_filename(name: str | None) -> str | None:
    """
    Check a caller-supplied output file stem.

    Raises:
        ToolFailure: invalid_input if the name contains path components
    """
    if name is None or not name.strip():
        return None
    name = name.strip()
    if "/" in name or "\\" in name or name in (".", ".."):
        raise ToolFailure(
            f"Invalid output filename: {name!r}. Path separators are not allowed",
            ErrorKind.invalid_input,
        )
    return name


def sanitize_for_log(input_str: str) -> str:
    """Escape newlines, carriage returns and tabs in user input before logging."""
    return input_str.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")


def truncate(text: str, limit: int) -> str:
    """Cut text to ``limit`` characters, marking the cut with '...'."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text
