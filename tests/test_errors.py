"""
Tests for failure classification in ytdlp_mcp/errors.py.
"""

import pytest
import yt_dlp

from ytdlp_mcp.errors import DEFAULT_RETRYABLE, ErrorKind, ToolFailure, classify_error

URL = "https://www.youtube.com/watch?v=jNQXAC9IVRw"


class TestToolFailure:
    def test_retryable_defaults_from_kind(self):
        assert ToolFailure("x", ErrorKind.network_error).retryable is True
        assert ToolFailure("x", ErrorKind.invalid_input).retryable is False
        assert ToolFailure("x").kind is ErrorKind.unclassified
        assert ToolFailure("x").retryable is True

    def test_explicit_retryable_overrides_default(self):
        assert ToolFailure("x", ErrorKind.unclassified, retryable=False).retryable is False

    def test_every_kind_has_a_default(self):
        assert set(DEFAULT_RETRYABLE) == set(ErrorKind)


class TestClassifyError:
    @pytest.mark.parametrize(
        "message, kind",
        [
            ("ERROR: [youtube] abc: Video unavailable", ErrorKind.target_not_found),
            ("HTTP Error 404: Not Found", ErrorKind.target_not_found),
            ("ERROR: Private video. Sign in if you've been granted access", ErrorKind.target_not_found),
            ("Sign in to confirm your age", ErrorKind.permission_denied),
            ("This video is age-restricted", ErrorKind.permission_denied),
            ("There are no subtitles for the requested languages", ErrorKind.captions_unavailable),
            ("Requested format is not available", ErrorKind.format_unavailable),
            ("ffmpeg not found. Please install", ErrorKind.tool_not_found),
            ("HTTP Error 429: Too Many Requests", ErrorKind.network_error),
            ("HTTP Error 503: Service Unavailable", ErrorKind.network_error),
            ("<urlopen error [Errno 111] Connection refused>", ErrorKind.network_error),
            ("The read operation timed out", ErrorKind.network_error),
            ("something entirely different", ErrorKind.unclassified),
        ],
    )
    def test_message_patterns(self, message, kind):
        failure = classify_error(yt_dlp.utils.DownloadError(message), URL)
        assert failure.kind is kind
        assert failure.retryable is DEFAULT_RETRYABLE[kind]

    def test_not_found_names_url(self):
        failure = classify_error(RuntimeError("Video unavailable"), URL)
        assert URL in failure.message

    def test_unclassified_keeps_error_text(self):
        failure = classify_error(RuntimeError("weird"), URL)
        assert failure.message == "Unexpected error: weird"

    def test_cause_chained(self):
        cause = RuntimeError("connection reset by peer")
        assert classify_error(cause, URL).__cause__ is cause

    def test_tool_failure_passes_through(self):
        failure = ToolFailure("bad range", ErrorKind.invalid_input)
        assert classify_error(failure, URL) is failure

    def test_first_matching_rule_wins(self):
        # Mentions both a missing video and the network; not-found is checked first
        failure = classify_error(RuntimeError("network: video unavailable"), URL)
        assert failure.kind is ErrorKind.target_not_found
