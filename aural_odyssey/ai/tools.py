"""Chat tools the model can call: webpage fetching and YouTube search links.

WHY: The chat assistant answers questions about URLs the user pastes and
hands out YouTube links when asked to "play" something. The model cannot
do either itself, so it requests a function call and we run it.

HOW: Each tool is a ChatTool with a JSON Schema for its arguments and an
async handler returning a JSON-serialisable dict. TOOLS is the registry,
keyed by the function name the model uses. To add a tool, write a
handler and register a ChatTool for it below.

RULES:
- Tool failures never raise; they return an "Error: ..." string in the result
- Arguments are validated with jsonschema before the handler runs
- Webpage text is stripped of tags and truncated to WEBPAGE_MAX_CHARS
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import quote, urlparse

import httpx
import jsonschema

from aural_odyssey.ai.client import to_gemini_schema

logger = logging.getLogger(__name__)

WEBPAGE_MAX_CHARS = 5000

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

_STYLE_BLOCK = re.compile(r"<style[^>]*>.*?</style>", re.DOTALL | re.IGNORECASE)
_SCRIPT_BLOCK = re.compile(r"<script[^>]*>.*?</script>", re.DOTALL | re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE_RUN = re.compile(r"\s\s+")

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ChatTool:
    """A function the chat model may call.

    Attributes:
        name: Function name exposed to the model.
        description: When the model should use it.
        parameters: JSON Schema for the arguments object.
        handler: Async callable receiving validated args.
    """

    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler

    def declaration(self) -> Dict[str, Any]:
        """Gemini functionDeclaration for this tool."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": to_gemini_schema(self.parameters),
        }


# ---------------------------------------------------------------------------
# Webpage content
# ---------------------------------------------------------------------------


def strip_html(html: str) -> str:
    """Naive HTML to text: drop style/script blocks and tags, squeeze whitespace."""
    text = _STYLE_BLOCK.sub("", html)
    text = _SCRIPT_BLOCK.sub("", text)
    text = _TAG.sub(" ", text)
    text = _WHITESPACE_RUN.sub(" ", text)
    return text.strip()


async def fetch_webpage_content(
    url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Fetch a page and return its visible text, or an "Error: ..." message."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return "Error: Invalid URL '{}'. Please provide a full http(s) URL.".format(url)

    try:
        async with httpx.AsyncClient(
            headers={"User-Agent": BROWSER_USER_AGENT},
            timeout=httpx.Timeout(20.0, connect=10.0),
            follow_redirects=True,
            transport=transport,
        ) as client:
            resp = await client.get(url)
    except httpx.HTTPError as exc:
        logger.warning("fetchWebpageContent failed for %s: %s", url, exc)
        return "Error: An exception occurred while trying to fetch the webpage: {}".format(exc)

    if resp.status_code >= 400:
        return "Error: Failed to fetch the webpage. Status: {} {}".format(
            resp.status_code, resp.reason_phrase
        )

    content_type = resp.headers.get("content-type", "")
    if "text/html" not in content_type and "text/plain" not in content_type:
        return "Error: Fetched content is not HTML or plain text. Content-Type: {}".format(
            content_type or None
        )

    stripped = strip_html(resp.text)
    if not stripped:
        return (
            "Successfully fetched the page, but no meaningful text content could "
            "be extracted after basic HTML stripping."
        )
    if len(stripped) > WEBPAGE_MAX_CHARS:
        return stripped[:WEBPAGE_MAX_CHARS] + "..."
    return stripped


async def _fetch_webpage_tool(args: Dict[str, Any]) -> Dict[str, Any]:
    return {"fetchedContent": await fetch_webpage_content(args["url"])}


# ---------------------------------------------------------------------------
# YouTube search
# ---------------------------------------------------------------------------


def create_youtube_search_url(query: str) -> str:
    return "https://www.youtube.com/results?search_query={}".format(quote(query, safe=""))


async def _youtube_search_tool(args: Dict[str, Any]) -> Dict[str, Any]:
    return {"youtubeUrl": create_youtube_search_url(args["query"])}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

TOOLS: Dict[str, ChatTool] = {
    "fetchWebpageContent": ChatTool(
        name="fetchWebpageContent",
        description=(
            "Fetches the main text content from a given webpage URL. Use this when "
            "the user asks for information from a specific URL or when you need to "
            "consult a webpage to answer a question."
        ),
        parameters={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The full URL of the webpage to fetch content from.",
                },
            },
            "required": ["url"],
        },
        handler=_fetch_webpage_tool,
    ),
    "createYouTubeSearchUrl": ChatTool(
        name="createYouTubeSearchUrl",
        description=(
            "Generates a YouTube search URL for a given video query. Use this when "
            "the user asks to play a video or search for something on YouTube."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The YouTube search query (e.g., song title, video topic).",
                },
            },
            "required": ["query"],
        },
        handler=_youtube_search_tool,
    ),
}


async def run_tool(
    name: str,
    args: Dict[str, Any],
    tools: Optional[Dict[str, ChatTool]] = None,
) -> Dict[str, Any]:
    """Validate args and run the named tool; unknown tools and bad args become errors."""
    registry = TOOLS if tools is None else tools
    tool = registry.get(name)
    if tool is None:
        return {"error": "Error: Unknown tool '{}'.".format(name)}
    try:
        jsonschema.validate(args, tool.parameters)
    except jsonschema.ValidationError as exc:
        return {"error": "Error: Invalid arguments for {}: {}".format(name, exc.message)}
    logger.info("Running chat tool %s", name)
    return await tool.handler(args)
