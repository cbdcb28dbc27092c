"""
Tool service: the request handlers behind both transports.

Each public coroutine drives yt-dlp for one tool and returns a ToolResult.
Blocking extractor calls run in a worker thread through the retry executor;
metadata lookups go through the file cache. Failures never escape a tool:
they are classified and reported as ``Error: <message>`` results.
"""

import logging
import shutil
import tempfile
from functools import wraps
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import urlparse

import yt_dlp
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool
from yt_dlp.networking.impersonate import ImpersonateTarget
from yt_dlp.utils import download_range_func, sanitize_filename

from ytdlp_mcp.cache import FileCache
from ytdlp_mcp.captions import CaptionDocument, CaptionFormat, normalize
from ytdlp_mcp.config import Settings
from ytdlp_mcp.errors import ErrorKind, ToolFailure, classify_error
from ytdlp_mcp.models import (
    AudioFormat,
    AudioQuality,
    SubtitleTracks,
    SubtitleType,
    ThumbnailQuality,
    ToolResult,
    VideoFormat,
    VideoMetadata,
    VideoQuality,
    VideoSummary,
)
from ytdlp_mcp.retry import with_retry
from ytdlp_mcp.utils import (
    format_seconds_to_time,
    normalize_video_url,
    parse_time_range,
    sanitize_for_log,
    truncate,
    validate_output_filename,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DESCRIPTION_PREVIEW_LENGTH = 500

# Live chat is written as <id>.live_chat.json
SUBTITLE_EXTENSIONS = {".vtt", ".srt", ".ass", ".ttml", ".json3", ".json"}
AUDIO_EXTENSIONS = {".mp3", ".m4a", ".wav", ".flac", ".opus", ".ogg", ".webm", ".aac"}
VIDEO_EXTENSIONS = {".mp4", ".webm", ".mkv", ".mov"}
THUMBNAIL_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

AUDIO_FORMAT_SELECTORS: dict[AudioQuality, str] = {
    AudioQuality.best: "bestaudio",
    AudioQuality.high: "bestaudio[ext=m4a]/bestaudio[ext=mp3]/bestaudio",
    AudioQuality.medium: "worstaudio[ext=m4a]/worstaudio[ext=mp3]/worstaudio",
    AudioQuality.low: "worstaudio",
}

# Thumbnail quality -> YouTube image name (".../vi/<id>/<name>.jpg")
THUMBNAIL_NAMES: dict[ThumbnailQuality, str] = {
    ThumbnailQuality.maxres: "maxresdefault",
    ThumbnailQuality.high: "hqdefault",
    ThumbnailQuality.medium: "mqdefault",
    ThumbnailQuality.default: "default",
}


def video_format_selector(quality: VideoQuality, container: VideoFormat) -> str:
    """
    Build the yt-dlp format selector for a video download.

    Examples:
        >>> video_format_selector(VideoQuality.p720, VideoFormat.mp4)
        'bestvideo[height<=720][ext=mp4]+bestaudio[ext=m4a]/best[height<=720][ext=mp4]/best'
    """
    if quality is VideoQuality.best:
        if container is VideoFormat.webm:
            return "bestvideo[ext=webm]+bestaudio[ext=webm]/best[ext=webm]/best"
        return "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"
    height = quality.value.rstrip("p")
    return (
        f"bestvideo[height<={height}][ext=mp4]+bestaudio[ext=m4a]"
        f"/best[height<={height}][ext=mp4]/best"
    )


def _choice(enum_cls: type, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ToolFailure(
            f"Invalid {field}: {value!r}. Expected one of: {allowed}",
            ErrorKind.invalid_input,
        ) from None


def _format_count(value: int) -> str:
    return f"{value:,}"


def tool_boundary(name: str):
    """
    Convert every failure of a tool coroutine into an error ToolResult.

    The first positional argument of the wrapped tool is the video URL and is
    used to word classified messages.
    """

    def decorator(func: Callable[..., Awaitable[ToolResult]]):
        @wraps(func)
        async def wrapper(self: "ToolService", *args: Any, **kwargs: Any) -> ToolResult:
            url = str(args[0] if args else kwargs.get("url", ""))
            try:
                return await func(self, *args, **kwargs)
            except ToolFailure as e:
                logger.warning(f"{name} failed ({e.kind.value}): {sanitize_for_log(e.message)}")
                return ToolResult(is_error=True, text=f"Error: {e.message}", error_kind=e.kind)
            except Exception as e:
                failure = classify_error(e, url)
                logger.exception(f"{name} failed unexpectedly for {sanitize_for_log(url)}")
                return ToolResult(
                    is_error=True, text=f"Error: {failure.message}", error_kind=failure.kind
                )

        return wrapper

    return decorator


class ToolService:
    """
    yt-dlp backed implementations of the tools.

    The service holds no per-request state; one instance is shared by every
    request of a transport.
    """

    def __init__(
        self,
        config: Settings,
        cache: FileCache | None = None,
        confine_save_paths: bool = False,
    ):
        """
        Args:
            config: Application settings
            cache: Metadata cache; None disables caching
            confine_save_paths: Resolve save_path against the download
                directory and reject paths that leave it
        """
        self.config = config
        self.cache = cache
        self.confine_save_paths = confine_save_paths

    # ------------------------------------------------------------------
    # yt-dlp plumbing
    # ------------------------------------------------------------------

    def _base_options(self, **overrides: Any) -> dict[str, Any]:
        """Options shared by every extractor call."""
        options: dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "noplaylist": True,
            "logger": logger,
            "socket_timeout": self.config.ytdlp_request_timeout,
        }
        if self.config.ytdlp_impersonate_target:
            options["impersonate"] = ImpersonateTarget.from_str(
                self.config.ytdlp_impersonate_target
            )
        if self.config.ffmpeg_location:
            options["ffmpeg_location"] = self.config.ffmpeg_location
        options.update(overrides)
        return options

    async def _call(self, url: str, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking extractor call in a worker thread with retries."""

        async def attempt() -> Any:
            try:
                return await run_in_threadpool(func, *args)
            except ToolFailure:
                raise
            except Exception as e:
                raise classify_error(e, url) from e

        return await with_retry(
            attempt,
            max_attempts=self.config.retry_max_attempts,
            base_delay=self.config.retry_base_delay,
        )

    def _fetch_info(self, url: str) -> dict[str, Any]:
        with yt_dlp.YoutubeDL(self._base_options(skip_download=True)) as ydl:
            info = ydl.extract_info(url, download=False)
            if info is None:
                raise ToolFailure(
                    f"Video not found or unavailable: {url}", ErrorKind.target_not_found
                )
            return ydl.sanitize_info(info)

    def _download(self, url: str, options: dict[str, Any]) -> dict[str, Any]:
        with yt_dlp.YoutubeDL(options) as ydl:
            info = ydl.extract_info(url, download=True)
            if info is None:
                raise ToolFailure(
                    f"Video not found or unavailable: {url}", ErrorKind.target_not_found
                )
            return ydl.sanitize_info(info)

    def _fetch_bytes(self, url: str) -> bytes:
        with yt_dlp.YoutubeDL(self._base_options()) as ydl:
            response = ydl.urlopen(url)
            try:
                return response.read()
            finally:
                response.close()

    def _require_ffmpeg(self) -> None:
        location = self.config.ffmpeg_location
        if location and Path(location).exists():
            return
        if shutil.which("ffmpeg"):
            return
        raise ToolFailure(
            "ffmpeg is required for this operation but was not found. "
            "Install ffmpeg or set YTDLP_FFMPEG_LOCATION.",
            ErrorKind.tool_not_found,
        )

    def _temp_dir(self) -> tempfile.TemporaryDirectory:
        return tempfile.TemporaryDirectory(dir=self.config.ytdlp_temp_dir, prefix="ytdlp-mcp-")

    def _target_dir(self, save_path: str | None) -> Path:
        base = Path(self.config.download_dir).expanduser()
        if not (save_path and save_path.strip()):
            target = base
        elif self.confine_save_paths:
            base = base.resolve()
            target = (base / save_path.strip()).resolve()
            if not target.is_relative_to(base):
                raise ToolFailure(
                    f"Save path must be inside the download directory: {save_path}",
                    ErrorKind.invalid_input,
                )
        else:
            target = Path(save_path.strip()).expanduser()
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ToolFailure(
                f"Cannot create save directory {target}: {e}", ErrorKind.invalid_input
            ) from e
        return target

    @staticmethod
    def _downloaded_file(
        info: dict[str, Any], target: Path, stem: str | None, extensions: set[str]
    ) -> Path | None:
        """Locate the file a download produced."""
        for download in info.get("requested_downloads") or []:
            filepath = download.get("filepath")
            if filepath and Path(filepath).is_file():
                return Path(filepath)

        candidates = [
            p
            for p in target.iterdir()
            if p.is_file()
            and p.suffix.lower() in extensions
            and (stem is None or p.stem == stem)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.stat().st_mtime)

    async def _cached_model(self, key: str, model_cls: type[M], url: str) -> tuple[M, bool]:
        """
        Get a metadata model from the cache, or build it from fresh info.

        Returns:
            (model, was_cached)
        """
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                try:
                    return model_cls.model_validate(cached), True
                except ValidationError:
                    logger.warning(f"Discarding unusable cache entry for {key}")
                    await self.cache.delete(key)

        info = await self._call(url, self._fetch_info, url)
        model = model_cls.from_info(info)
        if self.cache is not None:
            await self.cache.set(key, model.model_dump(mode="json"), self.config.cache_ttl)
        return model, False

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    @tool_boundary("get_video_info")
    async def get_video_info(self, url: str) -> ToolResult:
        """Summarize a video: title, duration, uploader, counts and description."""
        url = normalize_video_url(url)
        summary, cached = await self._cached_model(f"video_info:{url}", VideoSummary, url)

        lines = [
            "Video Information (cached):" if cached else "Video Information:",
            f"Title: {summary.title}",
            f"Duration: {summary.duration}",
            f"Uploader: {summary.uploader}",
            f"Channel: {summary.channel_url or 'Unknown'}",
            f"Upload Date: {summary.upload_date}",
            f"Views: {_format_count(summary.view_count)}",
            f"Available Formats: {summary.formats}",
            f"Manual Subtitles: {summary.subtitles_available} languages",
            f"Auto Subtitles: {summary.auto_subtitles_available} languages",
            f"Thumbnail: {summary.thumbnail or 'None'}",
        ]
        description = truncate(summary.description, DESCRIPTION_PREVIEW_LENGTH)
        text = "\n".join(lines) + f"\n\nDescription:\n{description or 'No description'}"
        return ToolResult(text=text)

    @tool_boundary("list_available_subtitles")
    async def list_available_subtitles(self, url: str) -> ToolResult:
        """List manual and auto-generated caption tracks with their formats."""
        url = normalize_video_url(url)
        tracks, cached = await self._cached_model(f"subtitles:{url}", SubtitleTracks, url)

        if not tracks.tracks:
            return ToolResult(text="No subtitles are available for this video.")

        def section(title: str, entries: list) -> str:
            if not entries:
                return f"{title}: None"
            body = "\n".join(
                f"  {t.code} ({t.name}): {', '.join(dict.fromkeys(t.formats))}" for t in entries
            )
            return f"{title} ({len(entries)}):\n{body}"

        header = "Available Subtitles (cached):" if cached else "Available Subtitles:"
        text = "\n\n".join(
            [
                header,
                section("Manual subtitles", tracks.manual),
                section("Auto-generated subtitles", tracks.automatic),
            ]
        )
        return ToolResult(text=text)

    @tool_boundary("download_subtitles")
    async def download_subtitles(
        self,
        url: str,
        languages: list[str] | None = None,
        formats: list[str] | None = None,
        subtitle_types: list[str] | None = None,
        time_start: str | None = None,
        time_end: str | None = None,
        include_metadata: bool = True,
        preserve_timing: bool = False,
    ) -> ToolResult:
        """
        Download caption tracks and return their text.

        WebVTT tracks are normalized to readable text; other formats are
        returned as written by the extractor. When several formats are
        requested the tracks are fetched once as WebVTT.
        """
        url = normalize_video_url(url)
        languages = [lang.strip() for lang in languages or ["en"] if lang.strip()] or ["en"]
        formats = [fmt.strip().lower() for fmt in formats or ["vtt"] if fmt.strip()] or ["vtt"]
        types = {_choice(SubtitleType, t, "subtitle type") for t in subtitle_types or []}
        types = types or {SubtitleType.manual, SubtitleType.auto}
        start, end = parse_time_range(time_start, time_end)

        if SubtitleType.live_chat in types and "live_chat" not in languages:
            languages.append("live_chat")
        subtitle_format = formats[0] if len(formats) == 1 else CaptionFormat.vtt.value

        options = self._base_options(
            skip_download=True,
            writesubtitles=bool(types & {SubtitleType.manual, SubtitleType.live_chat}),
            writeautomaticsub=SubtitleType.auto in types,
            subtitleslangs=["all"] if "all" in languages else languages,
            subtitlesformat=subtitle_format,
        )
        if self.config.ytdlp_sleep_seconds > 0:
            options["sleep_subtitles"] = self.config.ytdlp_sleep_seconds
        if time_start or time_end:
            options["download_ranges"] = download_range_func(
                None, [(start, end if end is not None else float("inf"))]
            )

        logger.info(
            f"Downloading subtitles for {sanitize_for_log(url)} "
            f"(languages={languages}, format={subtitle_format})"
        )
        with self._temp_dir() as temp_dir:
            options["outtmpl"] = f"{temp_dir}/%(id)s.%(ext)s"
            await self._call(url, self._download, url, options)

            files = sorted(
                p for p in Path(temp_dir).iterdir()
                if p.is_file() and p.suffix.lower() in SUBTITLE_EXTENSIONS
            )
            if not files:
                return ToolResult(
                    text="No subtitles were downloaded. They may not be available for this video."
                )

            blocks = []
            for path in files:
                document = await run_in_threadpool(CaptionDocument.from_path, path)
                if document.format is CaptionFormat.vtt:
                    content = normalize(document, preserve_timing=preserve_timing)
                else:
                    content = document.raw_text.strip()
                label = f"{path.name} (converted to text)" if len(formats) > 1 else path.name
                blocks.append(f"{label}\n{'=' * 20}\n{content or '(no caption text)'}\n\n")

        header = ""
        if include_metadata:
            header = await self._subtitle_header(url, time_start, time_end)
        return ToolResult(text=f"{header}Downloaded Subtitles:\n" + "".join(blocks))

    async def _subtitle_header(
        self, url: str, time_start: str | None, time_end: str | None
    ) -> str:
        """Title, duration and time range; metadata failures do not fail the tool."""
        try:
            summary, _ = await self._cached_model(f"video_info:{url}", VideoSummary, url)
        except ToolFailure as e:
            logger.warning(f"Metadata lookup failed for subtitle header: {e.message}")
            return f"Could not retrieve video metadata: {e.message}\n\n"
        return (
            f"Video: {summary.title}\n"
            f"Duration: {summary.duration}\n"
            f"Time Range: {time_start or '0:00'} - {time_end or summary.duration}\n\n"
        )

    @tool_boundary("download_video_metadata")
    async def download_video_metadata(self, url: str) -> ToolResult:
        """Return full metadata including formats and subtitle languages."""
        url = normalize_video_url(url)
        metadata, cached = await self._cached_model(f"video_metadata:{url}", VideoMetadata, url)

        format_lines = [
            f"  {f.format_id or '?'}: {f.ext or '?'} {f.resolution}"
            + (f" ({f.filesize / (1024 * 1024):.2f} MB)" if f.filesize else "")
            for f in metadata.formats
        ]
        lines = [
            "Video Metadata (cached):" if cached else "Video Metadata:",
            f"Title: {metadata.title}",
            f"Duration: {metadata.duration}",
            f"Uploader: {metadata.uploader}",
            f"Upload Date: {metadata.upload_date}",
            f"Views: {_format_count(metadata.view_count)}",
            f"Likes: {_format_count(metadata.like_count)}",
            f"Channel URL: {metadata.channel_url or 'Unknown'}",
            f"Thumbnail: {metadata.thumbnail or 'None'}",
            f"Available Formats: {len(metadata.formats)}",
            *format_lines,
            f"Manual Subtitles: {', '.join(metadata.subtitles) or 'None'}",
            f"Auto Subtitles: {', '.join(metadata.auto_subtitles) or 'None'}",
        ]
        text = "\n".join(lines) + f"\n\nDescription:\n{metadata.description or 'No description'}"
        return ToolResult(text=text)

    @tool_boundary("download_thumbnail")
    async def download_thumbnail(
        self,
        url: str,
        quality: str = "high",
        output_filename: str | None = None,
        save_path: str | None = None,
    ) -> ToolResult:
        """Save the video thumbnail of the requested quality."""
        url = normalize_video_url(url)
        quality = _choice(ThumbnailQuality, quality, "thumbnail quality")
        name = validate_output_filename(output_filename)
        target = await run_in_threadpool(self._target_dir, save_path)

        info = await self._call(url, self._fetch_info, url)
        thumbnail_url = self._pick_thumbnail(info, quality)
        if not thumbnail_url:
            raise ToolFailure("No thumbnail found for this video", ErrorKind.target_not_found)

        suffix = Path(urlparse(thumbnail_url).path).suffix.lower()
        if suffix not in THUMBNAIL_EXTENSIONS:
            suffix = ".jpg"
        stem = name or sanitize_filename(info.get("title") or info.get("id") or "thumbnail")
        path = target / f"{stem}{suffix}"

        data = await self._call(url, self._fetch_bytes, thumbnail_url)
        await run_in_threadpool(path.write_bytes, data)
        logger.info(f"Saved thumbnail to {path}")

        text = "\n".join(
            [
                "Thumbnail downloaded successfully!",
                f"File: {path.name}",
                f"Location: {path}",
                f"Size: {len(data) / 1024:.2f} KB",
                f"Quality: {quality.value}",
                f"Source: {thumbnail_url}",
            ]
        )
        return ToolResult(text=text)

    @staticmethod
    def _pick_thumbnail(info: dict[str, Any], quality: ThumbnailQuality) -> str | None:
        marker = f"/{THUMBNAIL_NAMES[quality]}."
        for thumbnail in reversed(info.get("thumbnails") or []):
            candidate = thumbnail.get("url") or ""
            if marker in candidate:
                return candidate
        return info.get("thumbnail")

    @tool_boundary("download_audio")
    async def download_audio(
        self,
        url: str,
        quality: str = "best",
        format: str = "mp3",
        output_filename: str | None = None,
        save_path: str | None = None,
    ) -> ToolResult:
        """Extract the audio track with ffmpeg."""
        url = normalize_video_url(url)
        quality = _choice(AudioQuality, quality, "audio quality")
        codec = _choice(AudioFormat, format, "audio format")
        name = validate_output_filename(output_filename)
        target = await run_in_threadpool(self._target_dir, save_path)
        self._require_ffmpeg()

        with self._temp_dir() as temp_dir:
            options = self._base_options(
                format=AUDIO_FORMAT_SELECTORS[quality],
                outtmpl=f"{name}.%(ext)s" if name else "%(title)s.%(ext)s",
                paths={"home": str(target), "temp": temp_dir},
                postprocessors=[{"key": "FFmpegExtractAudio", "preferredcodec": codec.value}],
            )
            logger.info(f"Downloading audio for {sanitize_for_log(url)} ({quality.value}/{codec.value})")
            info = await self._call(url, self._download, url, options)

        path = self._downloaded_file(info, target, name, AUDIO_EXTENSIONS)
        if path is None:
            raise ToolFailure(
                "No audio file was downloaded. The video may not have audio "
                "or format selection failed.",
                ErrorKind.format_unavailable,
            )

        text = "\n".join(
            [
                "Audio downloaded successfully!",
                f"File: {path.name}",
                f"Location: {path}",
                f"Size: {path.stat().st_size / (1024 * 1024):.2f} MB",
                f"Quality: {quality.value}",
                f"Format: {codec.value}",
            ]
        )
        return ToolResult(text=text)

    @tool_boundary("download_video")
    async def download_video(
        self,
        url: str,
        quality: str = "best",
        format: str = "mp4",
        output_filename: str | None = None,
        save_path: str | None = None,
    ) -> ToolResult:
        """Download the full video."""
        return await self._download_video(url, quality, format, output_filename, save_path)

    @tool_boundary("download_video_segment")
    async def download_video_segment(
        self,
        url: str,
        time_start: str,
        time_end: str,
        quality: str = "best",
        format: str = "mp4",
        output_filename: str | None = None,
        save_path: str | None = None,
    ) -> ToolResult:
        """Download the part of a video between two timestamps."""
        if not time_start or not time_end:
            raise ToolFailure(
                "Both time_start and time_end are required for a segment download",
                ErrorKind.invalid_input,
            )
        start, end = parse_time_range(time_start, time_end)
        return await self._download_video(
            url, quality, format, output_filename, save_path, section=(start, end)
        )

    async def _download_video(
        self,
        url: str,
        quality: str,
        format: str,
        output_filename: str | None,
        save_path: str | None,
        section: tuple[int, int] | None = None,
    ) -> ToolResult:
        url = normalize_video_url(url)
        quality = _choice(VideoQuality, quality, "video quality")
        container = _choice(VideoFormat, format, "video format")
        name = validate_output_filename(output_filename)
        target = await run_in_threadpool(self._target_dir, save_path)
        if section is not None:
            # Section cuts are done by ffmpeg
            self._require_ffmpeg()

        with self._temp_dir() as temp_dir:
            options = self._base_options(
                format=video_format_selector(quality, container),
                outtmpl=f"{name}.%(ext)s" if name else "%(title)s.%(ext)s",
                paths={"home": str(target), "temp": temp_dir},
            )
            if container is VideoFormat.mp4 or quality is not VideoQuality.best:
                options["merge_output_format"] = "mp4"
            if section is not None:
                options["download_ranges"] = download_range_func(None, [section])
                options["force_keyframes_at_cuts"] = True
            logger.info(
                f"Downloading video for {sanitize_for_log(url)} "
                f"({quality.value}/{container.value}, section={section})"
            )
            info = await self._call(url, self._download, url, options)

        path = self._downloaded_file(info, target, name, VIDEO_EXTENSIONS)
        if path is None:
            raise ToolFailure(
                "No video file was downloaded. The requested quality or format "
                "may not be available.",
                ErrorKind.format_unavailable,
            )

        lines = [
            "Video segment downloaded successfully!" if section else "Video downloaded successfully!",
            f"File: {path.name}",
            f"Location: {path}",
            f"Size: {path.stat().st_size / (1024 * 1024):.2f} MB",
        ]
        if section is not None:
            start, end = section
            lines += [
                f"Time Range: {format_seconds_to_time(start)} - {format_seconds_to_time(end)}",
                f"Duration: {format_seconds_to_time(end - start)}",
            ]
        lines += [
            f"Quality: {quality.value}",
            f"Format: {container.value}",
            f"Save Directory: {target}",
        ]
        return ToolResult(text="\n".join(lines))
