"""API endpoint tests.

Tests cover success cases, error-to-status mapping, request validation and
rate limiting. All tests use mocked yt-dlp.
"""

from fastapi.testclient import TestClient

from conftest import SAMPLE_VTT, VIDEO_ID, VIDEO_URL
from ytdlp_mcp.main import create_app


class TestServiceEndpoints:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "ytdlp-mcp"
        assert data["endpoints"]["subtitles"] == "/api/v1/subtitles/download"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["uptime_seconds"] >= 0
        assert data["cache"] == {"size": 0, "hits": 0, "misses": 0, "hit_rate": 0}
        assert data["rate_limiting"]["enabled"] is False

    def test_health_without_cache(self, settings):
        settings.cache_enabled = False
        with TestClient(create_app(settings)) as client:
            response = client.get("/health")
        assert response.json()["cache"] == {"enabled": False}


class TestVideoEndpoints:
    def test_video_info(self, client, mock_ydl):
        response = client.get("/api/v1/videos/info", params={"url": VIDEO_URL})

        assert response.status_code == 200
        data = response.json()
        assert data["is_error"] is False
        assert data["error_kind"] is None
        assert "Title: Me at the zoo" in data["text"]

    def test_video_info_cached_across_requests(self, client, mock_ydl):
        client.get("/api/v1/videos/info", params={"url": VIDEO_URL})
        response = client.get("/api/v1/videos/info", params={"url": VIDEO_URL})

        assert response.json()["text"].startswith("Video Information (cached):")
        assert client.get("/health").json()["cache"]["hits"] == 1

    def test_video_metadata(self, client, mock_ydl):
        response = client.get("/api/v1/videos/metadata", params={"url": VIDEO_ID})

        assert response.status_code == 200
        assert response.json()["text"].startswith("Video Metadata:")

    def test_subtitle_languages(self, client, mock_ydl):
        response = client.get("/api/v1/subtitles/languages", params={"url": VIDEO_URL})

        assert response.status_code == 200
        assert "en (English)" in response.json()["text"]


class TestErrorStatus:
    def test_invalid_url_is_400(self, client, mock_ydl):
        response = client.get("/api/v1/videos/info", params={"url": "https://example.com/x"})

        assert response.status_code == 400
        data = response.json()
        assert data["is_error"] is True
        assert data["error_kind"] == "invalid_input"
        assert data["text"].startswith("Error: Invalid YouTube URL")

    def test_unavailable_video_is_404(self, client, mock_ydl, mock_unavailable_error):
        mock_ydl.return_value.extract_info.side_effect = mock_unavailable_error
        response = client.get("/api/v1/videos/info", params={"url": VIDEO_URL})

        assert response.status_code == 404
        assert response.json()["error_kind"] == "target_not_found"

    def test_exhausted_retries_is_500(self, client, mock_ydl, mock_429_error):
        mock_ydl.return_value.extract_info.side_effect = mock_429_error
        response = client.get("/api/v1/videos/info", params={"url": VIDEO_URL})

        assert response.status_code == 500
        assert "Operation failed after 3 attempts" in response.json()["text"]

    def test_missing_parameter_is_400(self, client):
        response = client.get("/api/v1/videos/info")

        assert response.status_code == 400
        data = response.json()
        assert data["error_kind"] == "invalid_input"
        assert "url" in data["text"]

    def test_url_too_long_is_400(self, client):
        response = client.get("/api/v1/videos/info", params={"url": "a" * 501})
        assert response.status_code == 400

    def test_invalid_enum_in_body_is_400(self, client):
        response = client.post(
            "/api/v1/downloads/video", json={"url": VIDEO_URL, "quality": "4k"}
        )
        assert response.status_code == 400
        assert response.json()["error_kind"] == "invalid_input"


class TestDownloadEndpoints:
    def test_download_subtitles(self, client, mock_ydl, work_dir):
        (work_dir / f"{VIDEO_ID}.en.vtt").write_text(SAMPLE_VTT, encoding="utf-8")

        response = client.post(
            "/api/v1/subtitles/download",
            json={"url": VIDEO_URL, "languages": ["en"], "include_metadata": False},
        )

        assert response.status_code == 200
        assert response.json()["text"] == (
            "Downloaded Subtitles:\n"
            f"{VIDEO_ID}.en.vtt\n====================\nHello world\nGoodbye\n\n"
        )

    def test_download_subtitles_bad_range(self, client, mock_ydl):
        response = client.post(
            "/api/v1/subtitles/download",
            json={"url": VIDEO_URL, "time_start": "1:00", "time_end": "0:30"},
        )

        assert response.status_code == 400
        assert response.json()["text"] == "Error: Start time must be before end time"

    def test_download_thumbnail(self, client, mock_ydl, tmp_path):
        mock_ydl.return_value.urlopen.return_value.read.return_value = b"jpeg"

        response = client.post(
            "/api/v1/downloads/thumbnail",
            json={"url": VIDEO_URL, "quality": "maxres", "save_path": "t"},
        )

        assert response.status_code == 200
        saved = tmp_path / "downloads" / "t" / "Me at the zoo.jpg"
        assert saved.read_bytes() == b"jpeg"

    def test_save_path_outside_download_dir_is_400(self, client, mock_ydl, tmp_path):
        mock_ydl.return_value.urlopen.return_value.read.return_value = b"jpeg"
        outside = tmp_path / "outside" / "anywhere"

        response = client.post(
            "/api/v1/downloads/thumbnail",
            json={"url": VIDEO_URL, "save_path": str(outside), "output_filename": "thumb"},
        )

        assert response.status_code == 400
        assert response.json()["error_kind"] == "invalid_input"
        assert not outside.exists()

    def test_save_path_parent_traversal_is_400(self, client, mock_ydl, tmp_path):
        response = client.post(
            "/api/v1/downloads/audio", json={"url": VIDEO_URL, "save_path": "../escaped"}
        )

        assert response.status_code == 400
        assert "inside the download directory" in response.json()["text"]
        assert not (tmp_path / "escaped").exists()

    def test_download_audio_without_ffmpeg_is_503(self, client, mock_ydl, monkeypatch):
        monkeypatch.setattr("ytdlp_mcp.service.shutil.which", lambda name: None)

        response = client.post("/api/v1/downloads/audio", json={"url": VIDEO_URL})

        assert response.status_code == 503
        assert response.json()["error_kind"] == "tool_not_found"

    def test_download_video_no_output_is_422(self, client, mock_ydl):
        response = client.post("/api/v1/downloads/video", json={"url": VIDEO_URL})

        assert response.status_code == 422
        assert response.json()["error_kind"] == "format_unavailable"

    def test_download_segment_requires_range(self, client):
        response = client.post("/api/v1/downloads/segment", json={"url": VIDEO_URL})
        assert response.status_code == 400


class TestRateLimiting:
    def test_limit_enforced_per_client(self, settings, mock_ydl):
        settings.rate_limit_enabled = True
        settings.rate_limit_per_minute = 2

        with TestClient(create_app(settings)) as client:
            statuses = [
                client.get("/api/v1/videos/info", params={"url": VIDEO_URL}).status_code
                for _ in range(3)
            ]
            other_client = client.get(
                "/api/v1/videos/info",
                params={"url": VIDEO_URL},
                headers={"X-Forwarded-For": "203.0.113.7"},
            )

        assert statuses == [200, 200, 429]
        assert other_client.status_code == 200

    def test_service_endpoints_not_limited(self, settings):
        settings.rate_limit_enabled = True
        settings.rate_limit_per_minute = 1

        with TestClient(create_app(settings)) as client:
            statuses = [client.get("/health").status_code for _ in range(3)]

        assert statuses == [200, 200, 200]
