"""Model access package — Gemini client, prompt flows, and chat tools.

WHY: Reading a book, answering questions about it, and chatting all rely
on a hosted multimodal model. This package keeps every model call, prompt,
and tool behind a small async API.

HOW: GeminiClient wraps the generateContent REST endpoint with httpx.
flows.py holds one coroutine per feature; tools.py holds the functions the
chat model may call.

RULES:
- All model HTTP calls go through GeminiClient (no direct httpx usage elsewhere,
  except the webpage-fetching chat tool)
- Authentication is via the GEMINI_API_KEY from config
"""

from aural_odyssey.ai.client import EmptyResponseError, GeminiAPIError, GeminiClient
from aural_odyssey.ai.flows import analyze_book_content, chat_with_bot, extract_first_chapter
from aural_odyssey.ai.models import BookAnswer, ChapterExtraction, ChatMessage, ChatReply

__all__ = [
    "BookAnswer",
    "ChapterExtraction",
    "ChatMessage",
    "ChatReply",
    "EmptyResponseError",
    "GeminiAPIError",
    "GeminiClient",
    "analyze_book_content",
    "chat_with_bot",
    "extract_first_chapter",
]
