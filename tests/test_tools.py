"""Tests for the chat tools (webpage fetch, YouTube search URL)."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from aural_odyssey.ai.tools import (
    TOOLS,
    WEBPAGE_MAX_CHARS,
    create_youtube_search_url,
    fetch_webpage_content,
    run_tool,
    strip_html,
)


def _fetch(url, handler):
    return asyncio.run(fetch_webpage_content(url, transport=httpx.MockTransport(handler)))


class TestStripHtml:
    """Naive HTML to text."""

    def test_removes_tags_scripts_and_styles(self):
        html = (
            "<html><head><style>body { color: red; }</style>"
            "<script>alert('x')</script></head>"
            "<body><h1>Title</h1>\n\n<p>Some   text.</p></body></html>"
        )
        assert strip_html(html) == "Title Some text."

    def test_plain_text_unchanged(self):
        assert strip_html("just words") == "just words"


class TestFetchWebpageContent:
    """fetchWebpageContent never raises; failures come back as text."""

    def test_html_page(self):
        def handler(request):
            assert "Mozilla/5.0" in request.headers["user-agent"]
            return httpx.Response(
                200,
                headers={"content-type": "text/html; charset=utf-8"},
                text="<p>Hello <b>reader</b></p>",
            )

        assert _fetch("https://example.com/page", handler) == "Hello reader"

    def test_long_page_is_truncated(self):
        body = "a" * (WEBPAGE_MAX_CHARS + 100)
        result = _fetch(
            "https://example.com",
            lambda r: httpx.Response(200, headers={"content-type": "text/plain"}, text=body),
        )
        assert result == "a" * WEBPAGE_MAX_CHARS + "..."

    def test_http_error_status(self):
        result = _fetch("https://example.com/missing", lambda r: httpx.Response(404))
        assert result == "Error: Failed to fetch the webpage. Status: 404 Not Found"

    def test_non_text_content(self):
        result = _fetch(
            "https://example.com/img.png",
            lambda r: httpx.Response(200, headers={"content-type": "image/png"}, content=b"\x89PNG"),
        )
        assert result == "Error: Fetched content is not HTML or plain text. Content-Type: image/png"

    def test_page_without_text(self):
        result = _fetch(
            "https://example.com",
            lambda r: httpx.Response(
                200,
                headers={"content-type": "text/html"},
                text="<script>var x = 1;</script>",
            ),
        )
        assert result.startswith("Successfully fetched the page, but no meaningful text")

    def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = _fetch("https://example.com", handler)
        assert result.startswith(
            "Error: An exception occurred while trying to fetch the webpage: connection refused"
        )

    @pytest.mark.parametrize("url", ["example.com", "ftp://example.com/file", "not a url"])
    def test_invalid_url(self, url):
        result = asyncio.run(fetch_webpage_content(url))
        assert result.startswith("Error: Invalid URL")


class TestYouTubeSearchUrl:
    """YouTube search links."""

    def test_query_is_percent_encoded(self):
        assert create_youtube_search_url("lofi beats & rain") == (
            "https://www.youtube.com/results?search_query=lofi%20beats%20%26%20rain"
        )


class TestRunTool:
    """Dispatching model function calls to tools."""

    def test_youtube_tool(self):
        result = asyncio.run(run_tool("createYouTubeSearchUrl", {"query": "raga"}))
        assert result == {"youtubeUrl": "https://www.youtube.com/results?search_query=raga"}

    def test_unknown_tool(self):
        result = asyncio.run(run_tool("launchRocket", {}))
        assert result == {"error": "Error: Unknown tool 'launchRocket'."}

    def test_missing_argument(self):
        result = asyncio.run(run_tool("fetchWebpageContent", {}))
        assert result["error"].startswith("Error: Invalid arguments for fetchWebpageContent")

    def test_registry_declarations_use_gemini_types(self):
        declaration = TOOLS["fetchWebpageContent"].declaration()
        assert declaration["name"] == "fetchWebpageContent"
        assert declaration["parameters"]["type"] == "OBJECT"
        assert declaration["parameters"]["properties"]["url"]["type"] == "STRING"
