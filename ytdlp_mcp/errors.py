"""
Failure taxonomy for extractor-backed tools.

Failures carry their kind and retryable flag as data on a single exception
type, so the retry policy can branch on ``retryable`` without inspecting a
class hierarchy.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classified failure kinds."""

    tool_not_found = "tool_not_found"
    target_not_found = "target_not_found"
    invalid_input = "invalid_input"
    network_error = "network_error"
    permission_denied = "permission_denied"
    format_unavailable = "format_unavailable"
    captions_unavailable = "captions_unavailable"
    cache_error = "cache_error"
    unclassified = "unclassified"


DEFAULT_RETRYABLE: dict[ErrorKind, bool] = {
    ErrorKind.tool_not_found: False,
    ErrorKind.target_not_found: False,
    ErrorKind.invalid_input: False,
    ErrorKind.network_error: True,
    ErrorKind.permission_denied: False,
    ErrorKind.format_unavailable: True,
    ErrorKind.captions_unavailable: False,
    # Never surfaced: the cache absorbs its own failures
    ErrorKind.cache_error: False,
    ErrorKind.unclassified: True,
}


class ToolFailure(Exception):
    """
    A classified failure raised by the tool layer.

    Attributes:
        message: Human-readable description shown to the caller
        kind: The failure kind
        retryable: Whether re-attempting the operation may succeed
        attempts: Number of attempts made, set when retries were exhausted
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.unclassified,
        retryable: bool | None = None,
        attempts: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.retryable = DEFAULT_RETRYABLE[kind] if retryable is None else retryable
        self.attempts = attempts

    def __repr__(self) -> str:
        return (
            f"ToolFailure(kind={self.kind.value!r}, retryable={self.retryable}, "
            f"message={self.message!r})"
        )


# Message fragments (lowercase) mapped to a kind and the text shown to callers.
# Order matters: the first matching rule wins.
_NOT_FOUND_PATTERNS = ("video not found", "404", "video unavailable", "private video")
_PERMISSION_PATTERNS = (
    "sign in to confirm",
    "age-restricted",
    "age restricted",
    "confirm your age",
    "members-only",
)
_CAPTIONS_PATTERNS = ("no subtitles", "subtitles not available", "there are no subtitles")
_FORMAT_PATTERNS = ("format not available", "requested format")
_TOOL_PATTERNS = ("ffmpeg not found", "ffprobe not found", "ffmpeg is not installed")
_NETWORK_PATTERNS = (
    "network",
    "connection",
    "timed out",
    "timeout",
    "too many requests",
    "http error 429",
    "http error 502",
    "http error 503",
    "http error 504",
    "temporary failure",
)


def classify_error(error: BaseException, url: str) -> ToolFailure:
    """
    Map an extractor exception to a classified ToolFailure.

    Args:
        error: The exception raised by yt-dlp or the surrounding code
        url: The video URL the operation targeted, used in messages

    Returns:
        The classified failure; a ToolFailure is returned unchanged
    """
    if isinstance(error, ToolFailure):
        return error

    text = str(error)
    lowered = text.lower()

    if any(p in lowered for p in _NOT_FOUND_PATTERNS):
        failure = ToolFailure(
            f"Video not found or unavailable: {url}", ErrorKind.target_not_found
        )
    elif any(p in lowered for p in _PERMISSION_PATTERNS):
        failure = ToolFailure(
            "Video requires authentication or age verification",
            ErrorKind.permission_denied,
        )
    elif any(p in lowered for p in _CAPTIONS_PATTERNS):
        failure = ToolFailure(
            "No subtitles available for this video", ErrorKind.captions_unavailable
        )
    elif any(p in lowered for p in _FORMAT_PATTERNS):
        failure = ToolFailure(
            "Requested format not available for this video",
            ErrorKind.format_unavailable,
        )
    elif any(p in lowered for p in _TOOL_PATTERNS):
        failure = ToolFailure(
            "ffmpeg is required for this operation but was not found. "
            "Install ffmpeg or set YTDLP_FFMPEG_LOCATION.",
            ErrorKind.tool_not_found,
        )
    elif any(p in lowered for p in _NETWORK_PATTERNS):
        failure = ToolFailure(
            "Network error occurred while processing video", ErrorKind.network_error
        )
    else:
        failure = ToolFailure(f"Unexpected error: {text}", ErrorKind.unclassified)

    failure.__cause__ = error
    return failure
