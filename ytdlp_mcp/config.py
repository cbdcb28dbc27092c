"""
Configuration module for ytdlp-mcp.

Uses pydantic-settings to load configuration from environment variables.
Settings are built once by the entry point and passed explicitly to the
cache, the tool service and the transports.
"""

import os
import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> str:
    return os.path.join(tempfile.gettempdir(), "ytdlp-mcp-cache")


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be set via either:
    - Prefixed: YTDLP_<SETTING_NAME> (e.g., YTDLP_CACHE_TTL)
    - Unprefixed alias for server settings (e.g., HOST, PORT, TRANSPORT)
    - A .env file in the working directory

    Environment Variables:
        HOST / PORT: HTTP server bind address (default: 127.0.0.1:8000)
        LOG_LEVEL: Logging level (default: info)
        TRANSPORT: "http" for the FastAPI server, "stdio" for MCP (default: http)
        CACHE_ENABLED: Cache metadata lookups on disk (default: true)
        CACHE_DIR: Directory holding cache entry files
        CACHE_TTL: Cache entry lifetime in seconds (default: 86400)
        RETRY_MAX_ATTEMPTS: Attempts per extractor call (default: 3)
        RETRY_BASE_DELAY: Linear backoff unit in seconds (default: 1.0)
        DOWNLOAD_DIR: Default target directory for media downloads (default: cwd)
        IMPERSONATE_TARGET: Optional browser to impersonate (needs curl_cffi)
        FFMPEG_LOCATION: Optional path to the ffmpeg binary or its directory
    """

    # ========== Server Configuration ==========

    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    transport: str = Field(default="http", alias="TRANSPORT")

    # ========== yt-dlp Settings ==========

    # Scoped per-request working directories are created under this path
    ytdlp_temp_dir: str | None = None

    # Socket timeout for extractor network calls
    ytdlp_request_timeout: int = 120

    # Sleep between subtitle requests; 0 disables throttling
    ytdlp_sleep_seconds: int = 0

    # TLS fingerprint impersonation, e.g. "chrome"; None leaves it off
    ytdlp_impersonate_target: str | None = None

    ffmpeg_location: str | None = None

    # Default destination for thumbnail/audio/video downloads
    download_dir: str = Field(default_factory=os.getcwd)

    # ========== Retry Settings ==========

    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)

    # ========== Caching Settings ==========

    cache_enabled: bool = True
    cache_dir: str = Field(default_factory=_default_cache_dir)
    cache_ttl: float = Field(default=24 * 60 * 60, gt=0)

    # ========== HTTP Security Settings ==========

    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 10
    enable_security_headers: bool = True

    model_config = SettingsConfigDict(
        env_prefix="YTDLP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir)


@lru_cache
def get_settings() -> Settings:
    """Build the settings once for the process entry points."""
    return Settings()
