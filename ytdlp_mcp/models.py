"""
Pydantic models shared by the tool service and its transports.

``ToolResult`` is the structured response every tool returns. The summary
and metadata models are what the cache stores for metadata lookups.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ytdlp_mcp.errors import ErrorKind
from ytdlp_mcp.utils import format_seconds_to_time


# Language code to display name for the subtitle listing
LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "zh-CN": "Chinese (Simplified)",
    "zh-TW": "Chinese (Traditional)",
    "ar": "Arabic",
    "hi": "Hindi",
    "tr": "Turkish",
    "pl": "Polish",
    "nl": "Dutch",
    "sv": "Swedish",
    "da": "Danish",
    "fi": "Finnish",
    "no": "Norwegian",
    "id": "Indonesian",
    "th": "Thai",
    "vi": "Vietnamese",
    "cs": "Czech",
    "el": "Greek",
    "he": "Hebrew",
    "hu": "Hungarian",
    "ro": "Romanian",
    "uk": "Ukrainian",
    "bg": "Bulgarian",
    "hr": "Croatian",
    "sk": "Slovak",
    "sl": "Slovenian",
    "lt": "Lithuanian",
    "lv": "Latvian",
    "et": "Estonian",
    "ca": "Catalan",
    "tl": "Tagalog",
    "ml": "Malayalam",
    "ta": "Tamil",
    "te": "Telugu",
    "bn": "Bengali",
    "mr": "Marathi",
    "ur": "Urdu",
    "fa": "Persian",
    "sw": "Swahili",
    "am": "Amharic",
}


class ToolResult(BaseModel):
    """Outcome of one tool call: a failure flag plus human-readable text."""

    is_error: bool = Field(default=False, description="Whether the tool call failed")
    text: str = Field(..., description="Human-readable result or error message")
    error_kind: ErrorKind | None = Field(None, description="Failure classification")

    model_config = {
        "json_schema_extra": {
            "example": {
                "is_error": False,
                "text": "Video Information:\nTitle: Example\nDuration: 3:32",
                "error_kind": None,
            }
        }
    }


# ============================================================================
# Tool option enums
# ============================================================================


class SubtitleType(str, Enum):
    manual = "manual"
    auto = "auto"
    live_chat = "live_chat"


class ThumbnailQuality(str, Enum):
    maxres = "maxres"
    high = "high"
    medium = "medium"
    default = "default"


class AudioQuality(str, Enum):
    best = "best"
    high = "high"
    medium = "medium"
    low = "low"


class AudioFormat(str, Enum):
    mp3 = "mp3"
    m4a = "m4a"
    wav = "wav"
    flac = "flac"
    best = "best"


class VideoQuality(str, Enum):
    best = "best"
    p720 = "720p"
    p480 = "480p"
    p360 = "360p"


class VideoFormat(str, Enum):
    mp4 = "mp4"
    webm = "webm"
    best = "best"


# ============================================================================
# Cached metadata
# ============================================================================


def _language_keys(tracks: Any) -> list[str]:
    return list(tracks.keys()) if isinstance(tracks, dict) else []


class VideoSummary(BaseModel):
    """Short video description returned by get_video_info."""

    title: str = "Unknown Title"
    duration: str = "Unknown"
    uploader: str = "Unknown"
    upload_date: str = "Unknown"
    view_count: int = 0
    description: str = ""
    formats: int = 0
    subtitles_available: int = 0
    auto_subtitles_available: int = 0
    thumbnail: str = ""
    channel_url: str = ""

    @classmethod
    def from_info(cls, info: dict[str, Any]) -> "VideoSummary":
        """Create a summary from a yt-dlp info dictionary."""
        duration = info.get("duration")
        return cls(
            title=info.get("title") or "Unknown Title",
            duration=format_seconds_to_time(duration) if duration else "Unknown",
            uploader=info.get("uploader") or "Unknown",
            upload_date=info.get("upload_date") or "Unknown",
            view_count=info.get("view_count") or 0,
            description=info.get("description") or "",
            formats=len(info.get("formats") or []),
            subtitles_available=len(_language_keys(info.get("subtitles"))),
            auto_subtitles_available=len(_language_keys(info.get("automatic_captions"))),
            thumbnail=info.get("thumbnail") or "",
            channel_url=info.get("channel_url") or "",
        )


class FormatInfo(BaseModel):
    """One downloadable format of a video."""

    format_id: str | None = None
    ext: str | None = None
    resolution: str = "audio only"
    filesize: int | None = None
    tbr: float | None = None


class VideoMetadata(BaseModel):
    """Full video metadata returned by download_video_metadata."""

    title: str = "Unknown"
    description: str = ""
    duration: str = "Unknown"
    duration_seconds: float | None = None
    uploader: str = "Unknown"
    upload_date: str = "Unknown"
    view_count: int = 0
    like_count: int = 0
    channel_url: str = ""
    thumbnail: str = ""
    formats: list[FormatInfo] = Field(default_factory=list)
    subtitles: list[str] = Field(default_factory=list)
    auto_subtitles: list[str] = Field(default_factory=list)

    @classmethod
    def from_info(cls, info: dict[str, Any]) -> "VideoMetadata":
        """Create metadata from a yt-dlp info dictionary."""
        duration = info.get("duration")
        formats = [
            FormatInfo(
                format_id=f.get("format_id"),
                ext=f.get("ext"),
                resolution=f.get("resolution") or "audio only",
                filesize=f.get("filesize"),
                tbr=f.get("tbr"),
            )
            for f in info.get("formats") or []
        ]
        return cls(
            title=info.get("title") or "Unknown",
            description=info.get("description") or "",
            duration=format_seconds_to_time(duration) if duration else "Unknown",
            duration_seconds=duration,
            uploader=info.get("uploader") or "Unknown",
            upload_date=info.get("upload_date") or "Unknown",
            view_count=info.get("view_count") or 0,
            like_count=info.get("like_count") or 0,
            channel_url=info.get("channel_url") or "",
            thumbnail=info.get("thumbnail") or "",
            formats=formats,
            subtitles=_language_keys(info.get("subtitles")),
            auto_subtitles=_language_keys(info.get("automatic_captions")),
        )


class LanguageInfo(BaseModel):
    """Information about an available subtitle track."""

    code: str = Field(..., description="Language code as reported by the extractor")
    name: str = Field(..., description="Language name")
    auto_generated: bool = Field(..., description="Whether the track is auto-generated")
    formats: list[str] = Field(default_factory=list, description="Available subtitle formats")


class SubtitleTracks(BaseModel):
    """Manual and auto-generated caption tracks of a video."""

    tracks: list[LanguageInfo] = Field(default_factory=list)

    @classmethod
    def from_info(cls, info: dict[str, Any]) -> "SubtitleTracks":
        tracks = []
        for key, auto in (("subtitles", False), ("automatic_captions", True)):
            entries = info.get(key)
            if not isinstance(entries, dict):
                continue
            for code, variants in entries.items():
                formats = (
                    [v.get("ext", "vtt") for v in variants]
                    if isinstance(variants, list)
                    else ["vtt"]
                )
                tracks.append(
                    LanguageInfo(
                        code=code,
                        name=LANGUAGE_NAMES.get(code, code),
                        auto_generated=auto,
                        formats=formats,
                    )
                )
        return cls(tracks=tracks)

    @property
    def manual(self) -> list[LanguageInfo]:
        return [t for t in self.tracks if not t.auto_generated]

    @property
    def automatic(self) -> list[LanguageInfo]:
        return [t for t in self.tracks if t.auto_generated]


# ============================================================================
# HTTP request bodies
# ============================================================================


class DownloadSubtitlesRequest(BaseModel):
    url: str = Field(..., max_length=500, description="URL of the YouTube video")
    languages: list[str] = Field(
        default_factory=lambda: ["en"],
        description="Subtitle languages (e.g. ['en', 'es']). Use 'all' for every language.",
    )
    formats: list[str] = Field(
        default_factory=lambda: ["vtt"], description="Subtitle formats (e.g. ['vtt', 'srt'])"
    )
    subtitle_types: list[SubtitleType] = Field(
        default_factory=lambda: [SubtitleType.manual, SubtitleType.auto],
        description="'manual', 'auto' and/or 'live_chat'",
    )
    time_start: str | None = Field(None, description="Start time (MM:SS or HH:MM:SS)")
    time_end: str | None = Field(None, description="End time (MM:SS or HH:MM:SS)")
    include_metadata: bool = Field(True, description="Prefix the title, duration and range")
    preserve_timing: bool = Field(False, description="Keep cue timing lines in the text")


class _MediaRequest(BaseModel):
    url: str = Field(..., max_length=500, description="URL of the YouTube video")
    output_filename: str | None = Field(None, description="Output file name without extension")
    save_path: str | None = Field(None, description="Target directory (defaults to the server's)")


class DownloadThumbnailRequest(_MediaRequest):
    quality: ThumbnailQuality = ThumbnailQuality.high


class DownloadAudioRequest(_MediaRequest):
    quality: AudioQuality = AudioQuality.best
    format: AudioFormat = AudioFormat.mp3


class DownloadVideoRequest(_MediaRequest):
    quality: VideoQuality = VideoQuality.best
    format: VideoFormat = VideoFormat.mp4


class DownloadVideoSegmentRequest(DownloadVideoRequest):
    time_start: str = Field(..., description="Start time (MM:SS or HH:MM:SS)")
    time_end: str = Field(..., description="End time (MM:SS or HH:MM:SS)")
