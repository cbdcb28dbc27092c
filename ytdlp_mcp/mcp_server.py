"""
Model Context Protocol server exposing the yt-dlp tools over stdio.

Tool results are returned as text. Error results are raised as ToolError,
which the MCP SDK reports to the client as an ``isError`` tool result.
"""

import asyncio
import logging
import sys

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from ytdlp_mcp import __version__
from ytdlp_mcp.cache import FileCache
from ytdlp_mcp.config import get_settings
from ytdlp_mcp.logging_config import configure_logging
from ytdlp_mcp.models import ToolResult
from ytdlp_mcp.service import ToolService

logger = logging.getLogger(__name__)

SERVER_NAME = "ytdlp-mcp"


def _text(result: ToolResult) -> str:
    if result.is_error:
        raise ToolError(result.text)
    return result.text


def build_server(service: ToolService) -> FastMCP:
    """Create a FastMCP server with every tool bound to ``service``."""
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool()
    async def get_video_info(url: str) -> str:
        """Get a summary of a YouTube video: title, duration, uploader, view
        count, available subtitle languages and the start of the description."""
        return _text(await service.get_video_info(url))

    @mcp.tool()
    async def list_available_subtitles(url: str) -> str:
        """List the manual and auto-generated subtitle languages of a video
        together with the formats each is offered in."""
        return _text(await service.list_available_subtitles(url))

    @mcp.tool()
    async def download_subtitles(
        url: str,
        languages: list[str] | None = None,
        formats: list[str] | None = None,
        subtitle_types: list[str] | None = None,
        time_start: str | None = None,
        time_end: str | None = None,
        include_metadata: bool = True,
        preserve_timing: bool = False,
    ) -> str:
        """Download subtitles and return them as clean text.

        Args:
            url: YouTube video URL or ID
            languages: Language codes such as ["en", "es"]; "all" for every language
            formats: Subtitle formats such as ["vtt"] or ["srt"]
            subtitle_types: Any of "manual", "auto" and "live_chat"
            time_start: Start of the range (MM:SS or HH:MM:SS)
            time_end: End of the range (MM:SS or HH:MM:SS)
            include_metadata: Prefix the title, duration and time range
            preserve_timing: Keep "HH:MM:SS.mmm --> HH:MM:SS.mmm" lines per cue
        """
        return _text(
            await service.download_subtitles(
                url,
                languages=languages,
                formats=formats,
                subtitle_types=subtitle_types,
                time_start=time_start,
                time_end=time_end,
                include_metadata=include_metadata,
                preserve_timing=preserve_timing,
            )
        )

    @mcp.tool()
    async def download_video_metadata(url: str) -> str:
        """Get full video metadata: counts, channel, formats, subtitle
        languages and the complete description."""
        return _text(await service.download_video_metadata(url))

    @mcp.tool()
    async def download_thumbnail(
        url: str,
        quality: str = "high",
        output_filename: str | None = None,
        save_path: str | None = None,
    ) -> str:
        """Save the video thumbnail. Quality is one of maxres, high, medium
        or default."""
        return _text(await service.download_thumbnail(url, quality, output_filename, save_path))

    @mcp.tool()
    async def download_audio(
        url: str,
        quality: str = "best",
        format: str = "mp3",
        output_filename: str | None = None,
        save_path: str | None = None,
    ) -> str:
        """Extract the audio track (requires ffmpeg). Quality is best, high,
        medium or low; format is mp3, m4a, wav, flac or best."""
        return _text(
            await service.download_audio(url, quality, format, output_filename, save_path)
        )

    @mcp.tool()
    async def download_video(
        url: str,
        quality: str = "best",
        format: str = "mp4",
        output_filename: str | None = None,
        save_path: str | None = None,
    ) -> str:
        """Download a video. Quality is best, 720p, 480p or 360p; format is
        mp4, webm or best."""
        return _text(
            await service.download_video(url, quality, format, output_filename, save_path)
        )

    @mcp.tool()
    async def download_video_segment(
        url: str,
        time_start: str,
        time_end: str,
        quality: str = "best",
        format: str = "mp4",
        output_filename: str | None = None,
        save_path: str | None = None,
    ) -> str:
        """Download the part of a video between two timestamps (MM:SS or
        HH:MM:SS). Cuts are keyframe-accurate and require ffmpeg."""
        return _text(
            await service.download_video_segment(
                url, time_start, time_end, quality, format, output_filename, save_path
            )
        )

    return mcp


def run_stdio() -> None:
    """Entry point: serve the tools over stdio."""
    settings = get_settings()
    # stdout carries JSON-RPC
    configure_logging(settings.log_level, stream=sys.stderr)

    cache = None
    if settings.cache_enabled:
        cache = FileCache(settings.cache_path, default_ttl=settings.cache_ttl)
        removed = asyncio.run(cache.cleanup())
        logger.info(f"Cache ready at {cache.directory} ({removed} expired entries removed)")

    logger.info(f"{SERVER_NAME} {__version__} serving over stdio")
    build_server(ToolService(settings, cache)).run()


if __name__ == "__main__":
    run_stdio()
