"""
ytdlp-mcp: agent-facing tools around the yt-dlp media extractor.

Exposes video metadata lookup, subtitle listing and download, and
time-bounded audio/video downloads over MCP (stdio) and HTTP.
"""

__version__ = "0.8.0"
