"""
FastAPI application exposing the yt-dlp tools over JSON/HTTP.

Every tool endpoint returns a ToolResult body. The HTTP status reflects the
failure kind so plain HTTP clients can branch on it without parsing text.
"""

import shutil
import time
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from yt_dlp.version import __version__ as YTDLP_VERSION

from ytdlp_mcp import __version__
from ytdlp_mcp.cache import FileCache
from ytdlp_mcp.config import Settings, get_settings
from ytdlp_mcp.errors import ErrorKind
from ytdlp_mcp.middleware import ResponseHeadersMiddleware
from ytdlp_mcp.models import (
    DownloadAudioRequest,
    DownloadSubtitlesRequest,
    DownloadThumbnailRequest,
    DownloadVideoRequest,
    DownloadVideoSegmentRequest,
    ToolResult,
)
from ytdlp_mcp.service import ToolService
from ytdlp_mcp.utils import sanitize_for_log

logger = structlog.get_logger()

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.invalid_input: 400,
    ErrorKind.permission_denied: 403,
    ErrorKind.target_not_found: 404,
    ErrorKind.captions_unavailable: 404,
    ErrorKind.format_unavailable: 422,
    ErrorKind.network_error: 502,
    ErrorKind.tool_not_found: 503,
    ErrorKind.cache_error: 500,
    ErrorKind.unclassified: 500,
}

ERROR_RESPONSES = {
    400: {"model": ToolResult, "description": "Invalid URL or parameters"},
    404: {"model": ToolResult, "description": "Video or subtitles not found"},
    429: {"description": "Too many requests"},
    502: {"model": ToolResult, "description": "Network error talking to the video site"},
}


class HealthResponse(BaseModel):
    """Response model for the health check."""

    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    ytdlp_version: str = Field(..., description="Installed yt-dlp version")
    ffmpeg_available: bool = Field(..., description="Whether ffmpeg was found on PATH")
    timestamp: float = Field(..., description="Current Unix timestamp")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    cache: dict = Field(default_factory=dict, description="Cache statistics")
    rate_limiting: dict = Field(default_factory=dict, description="Rate limiting status")


def get_remote_address_proxied(request: Request) -> str:
    """Get client address, considering X-Forwarded-For header."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_service(request: Request) -> ToolService:
    """FastAPI dependency returning the service built by the lifespan."""
    return request.app.state.service


def to_response(result: ToolResult) -> JSONResponse:
    status = STATUS_BY_KIND.get(result.error_kind, 500) if result.is_error else 200
    return JSONResponse(status_code=status, content=result.model_dump(mode="json"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the cache and tool service; sweep expired cache entries."""
    settings: Settings = app.state.settings

    cache = None
    if settings.cache_enabled:
        cache = FileCache(settings.cache_path, default_ttl=settings.cache_ttl)
        removed = await cache.cleanup()
        logger.info("Cache ready", directory=str(cache.directory), expired_removed=removed)

    app.state.service = ToolService(settings, cache, confine_save_paths=True)
    app.state.started_at = time.time()

    logger.info(
        "ytdlp-mcp HTTP server starting",
        version=__version__,
        ytdlp_version=YTDLP_VERSION,
        ffmpeg=bool(shutil.which("ffmpeg")),
        rate_limit=(
            f"{settings.rate_limit_per_minute}/minute"
            if settings.rate_limit_enabled
            else "disabled"
        ),
        retry_max_attempts=settings.retry_max_attempts,
    )

    yield

    logger.info("ytdlp-mcp HTTP server stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings; environment-derived when None
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="ytdlp-mcp",
        description="Video metadata, subtitles and media downloads via yt-dlp",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ========== Middleware ==========

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        ResponseHeadersMiddleware, add_security_headers=settings.enable_security_headers
    )

    limiter = Limiter(
        key_func=get_remote_address_proxied,
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    rate_limit = limiter.limit(lambda: f"{settings.rate_limit_per_minute}/minute")

    # ========== Exception Handlers ==========

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Report invalid parameters as an invalid_input tool result."""
        details = "; ".join(
            f"{' -> '.join(str(x) for x in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        logger.warning("Validation error", detail=sanitize_for_log(details))
        result = ToolResult(
            is_error=True,
            text=f"Error: Invalid request parameters: {details}",
            error_kind=ErrorKind.invalid_input,
        )
        return to_response(result)

    # ========== Service Endpoints ==========

    @app.get("/")
    async def root():
        """Service description and endpoint index."""
        return {
            "service": "ytdlp-mcp",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "video_info": "/api/v1/videos/info",
                "video_metadata": "/api/v1/videos/metadata",
                "subtitle_languages": "/api/v1/subtitles/languages",
                "subtitles": "/api/v1/subtitles/download",
                "thumbnail": "/api/v1/downloads/thumbnail",
                "audio": "/api/v1/downloads/audio",
                "video": "/api/v1/downloads/video",
                "video_segment": "/api/v1/downloads/segment",
                "docs": "/docs",
            },
        }

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        """Liveness check with cache statistics and tool availability."""
        service: ToolService = request.app.state.service
        cache_stats = await service.cache.get_stats() if service.cache else {"enabled": False}
        now = time.time()
        return HealthResponse(
            status="healthy",
            service="ytdlp-mcp",
            version=__version__,
            ytdlp_version=YTDLP_VERSION,
            ffmpeg_available=bool(shutil.which("ffmpeg")),
            timestamp=now,
            uptime_seconds=now - request.app.state.started_at,
            cache=cache_stats,
            rate_limiting={
                "enabled": settings.rate_limit_enabled,
                "limit": f"{settings.rate_limit_per_minute}/minute",
            },
        )

    # ========== Tool Endpoints ==========

    @app.get("/api/v1/videos/info", response_model=ToolResult, responses=ERROR_RESPONSES)
    @rate_limit
    async def video_info(
        request: Request,
        url: str = Query(..., max_length=500, description="YouTube video URL or ID"),
        service: ToolService = Depends(get_service),
    ):
        """Summary of a video: title, duration, uploader, counts and description."""
        return to_response(await service.get_video_info(url))

    @app.get("/api/v1/videos/metadata", response_model=ToolResult, responses=ERROR_RESPONSES)
    @rate_limit
    async def video_metadata(
        request: Request,
        url: str = Query(..., max_length=500, description="YouTube video URL or ID"),
        service: ToolService = Depends(get_service),
    ):
        """Full metadata including formats and subtitle languages."""
        return to_response(await service.download_video_metadata(url))

    @app.get("/api/v1/subtitles/languages", response_model=ToolResult, responses=ERROR_RESPONSES)
    @rate_limit
    async def subtitle_languages(
        request: Request,
        url: str = Query(..., max_length=500, description="YouTube video URL or ID"),
        service: ToolService = Depends(get_service),
    ):
        """Manual and auto-generated caption tracks with their formats."""
        return to_response(await service.list_available_subtitles(url))

    @app.post("/api/v1/subtitles/download", response_model=ToolResult, responses=ERROR_RESPONSES)
    @rate_limit
    async def subtitles(
        request: Request,
        body: DownloadSubtitlesRequest,
        service: ToolService = Depends(get_service),
    ):
        """
        Download subtitles and return them as clean text.

        **Example:**
        ```bash
        curl -X POST http://localhost:8000/api/v1/subtitles/download \\
            -H 'Content-Type: application/json' \\
            -d '{"url": "dQw4w9WgXcQ", "languages": ["en"], "time_start": "0:30", "time_end": "1:30"}'
        ```
        """
        result = await service.download_subtitles(
            body.url,
            languages=body.languages,
            formats=body.formats,
            subtitle_types=[t.value for t in body.subtitle_types],
            time_start=body.time_start,
            time_end=body.time_end,
            include_metadata=body.include_metadata,
            preserve_timing=body.preserve_timing,
        )
        return to_response(result)

    @app.post("/api/v1/downloads/thumbnail", response_model=ToolResult, responses=ERROR_RESPONSES)
    @rate_limit
    async def thumbnail(
        request: Request,
        body: DownloadThumbnailRequest,
        service: ToolService = Depends(get_service),
    ):
        """Save the video thumbnail into the target directory."""
        result = await service.download_thumbnail(
            body.url, body.quality.value, body.output_filename, body.save_path
        )
        return to_response(result)

    @app.post("/api/v1/downloads/audio", response_model=ToolResult, responses=ERROR_RESPONSES)
    @rate_limit
    async def audio(
        request: Request,
        body: DownloadAudioRequest,
        service: ToolService = Depends(get_service),
    ):
        """Extract the audio track into the target directory."""
        result = await service.download_audio(
            body.url, body.quality.value, body.format.value, body.output_filename, body.save_path
        )
        return to_response(result)

    @app.post("/api/v1/downloads/video", response_model=ToolResult, responses=ERROR_RESPONSES)
    @rate_limit
    async def video(
        request: Request,
        body: DownloadVideoRequest,
        service: ToolService = Depends(get_service),
    ):
        """Download the full video into the target directory."""
        result = await service.download_video(
            body.url, body.quality.value, body.format.value, body.output_filename, body.save_path
        )
        return to_response(result)

    @app.post("/api/v1/downloads/segment", response_model=ToolResult, responses=ERROR_RESPONSES)
    @rate_limit
    async def video_segment(
        request: Request,
        body: DownloadVideoSegmentRequest,
        service: ToolService = Depends(get_service),
    ):
        """Download the part of a video between two timestamps."""
        result = await service.download_video_segment(
            body.url,
            body.time_start,
            body.time_end,
            body.quality.value,
            body.format.value,
            body.output_filename,
            body.save_path,
        )
        return to_response(result)

    return app


app = create_app()
