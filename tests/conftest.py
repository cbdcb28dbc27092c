"""Shared pytest fixtures: isolated settings, cache, service and mocked yt-dlp."""

import copy
from unittest.mock import MagicMock, patch

import pytest
import yt_dlp
from fastapi.testclient import TestClient

from ytdlp_mcp.cache import FileCache
from ytdlp_mcp.config import Settings
from ytdlp_mcp.main import create_app
from ytdlp_mcp.service import ToolService

VIDEO_ID = "jNQXAC9IVRw"
VIDEO_URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"

SAMPLE_INFO = {
    "id": VIDEO_ID,
    "title": "Me at the zoo",
    "duration": 19,
    "uploader": "jawed",
    "upload_date": "20050423",
    "view_count": 1234567,
    "like_count": 4321,
    "description": "The first video on YouTube.",
    "channel_url": "https://www.youtube.com/channel/UC4QobU6STFB0P71PMvOGN5A",
    "thumbnail": f"https://i.ytimg.com/vi/{VIDEO_ID}/maxresdefault.jpg",
    "thumbnails": [
        {"url": f"https://i.ytimg.com/vi/{VIDEO_ID}/default.jpg"},
        {"url": f"https://i.ytimg.com/vi/{VIDEO_ID}/mqdefault.jpg"},
        {"url": f"https://i.ytimg.com/vi/{VIDEO_ID}/hqdefault.jpg"},
        {"url": f"https://i.ytimg.com/vi/{VIDEO_ID}/maxresdefault.jpg"},
    ],
    "formats": [
        {"format_id": "18", "ext": "mp4", "resolution": "640x360", "filesize": 1048576, "tbr": 500.0},
        {"format_id": "140", "ext": "m4a", "resolution": "audio only", "filesize": None, "tbr": 128.0},
    ],
    "subtitles": {"en": [{"ext": "vtt"}, {"ext": "srt"}]},
    "automatic_captions": {"en": [{"ext": "vtt"}], "de": [{"ext": "vtt"}]},
}

SAMPLE_VTT = """WEBVTT
Kind: captions
Language: en

00:00:01.000 --> 00:00:02.000
Hello world

00:00:02.000 --> 00:00:03.000
Hello world

00:00:03.000 --> 00:00:04.000
Goodbye
"""


@pytest.fixture
def settings(tmp_path):
    """Settings isolated to a temporary directory, with no retry delay."""
    return Settings(
        cache_dir=str(tmp_path / "cache"),
        download_dir=str(tmp_path / "downloads"),
        ytdlp_temp_dir=None,
        ytdlp_impersonate_target=None,
        ffmpeg_location=None,
        retry_max_attempts=3,
        retry_base_delay=0,
        rate_limit_enabled=False,
    )


@pytest.fixture
def file_cache(settings):
    return FileCache(settings.cache_path, default_ttl=settings.cache_ttl)


@pytest.fixture
def service(settings, file_cache):
    return ToolService(settings, file_cache)


@pytest.fixture
def sample_info():
    return copy.deepcopy(SAMPLE_INFO)


@pytest.fixture
def mock_ydl(sample_info):
    """Patch yt_dlp.YoutubeDL in the service; extract_info returns SAMPLE_INFO."""
    with patch("ytdlp_mcp.service.yt_dlp.YoutubeDL") as mock_class:
        mock_instance = MagicMock()
        mock_instance.extract_info = MagicMock(return_value=sample_info)
        mock_instance.sanitize_info = MagicMock(side_effect=lambda info: info)
        mock_instance.__enter__ = MagicMock(return_value=mock_instance)
        mock_instance.__exit__ = MagicMock(return_value=False)
        mock_class.return_value = mock_instance
        yield mock_class


@pytest.fixture
def work_dir(tmp_path):
    """Patch TemporaryDirectory so extractor output lands in a known directory."""
    path = tmp_path / "work"
    path.mkdir()
    with patch("ytdlp_mcp.service.tempfile.TemporaryDirectory") as mock_tempdir:
        mock_cm = MagicMock()
        mock_cm.__enter__ = MagicMock(return_value=str(path))
        mock_cm.__exit__ = MagicMock(return_value=False)
        mock_tempdir.return_value = mock_cm
        yield path


@pytest.fixture
def ffmpeg_available():
    with patch("ytdlp_mcp.service.shutil.which", return_value="/usr/bin/ffmpeg"):
        yield


@pytest.fixture
def client(settings):
    """FastAPI TestClient with the lifespan run and rate limiting disabled."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def mock_429_error():
    return yt_dlp.utils.DownloadError("ERROR: HTTP Error 429: Too Many Requests")


@pytest.fixture
def mock_unavailable_error():
    return yt_dlp.utils.DownloadError(f"ERROR: [youtube] {VIDEO_ID}: Video unavailable")
