"""Prompt flows: chapter extraction, book Q&A, and chat.

WHY: Each user-facing AI feature is one prompt plus a small amount of
post-processing and a user-readable fallback when the model misbehaves.
Keeping prompt text, output schemas, and fallbacks together makes them
easy to review and tune.

HOW: Every flow takes an entered GeminiClient. Structured outputs
(chapter text, answers) request JSON with a response schema and are
validated with jsonschema before use. Chat runs a bounded tool-calling
loop over the TOOLS registry.

RULES:
- extract_first_chapter and analyze_book_content never raise for model
  failures; they return the fallback text instead
- chat_with_bot propagates GeminiAPIError (the caller shows it) but turns
  empty or blocked replies into the Hindi apology
- Chat replies default to Hindi unless the user asks otherwise
"""

from __future__ import annotations

import json
import logging
from typing import Dict, Iterable, List, Optional

import httpx
import jsonschema

from aural_odyssey.ai.client import (
    EmptyResponseError,
    GeminiAPIError,
    GeminiClient,
    document_part,
    function_response_part,
    text_part,
    user_content,
)
from aural_odyssey.ai.models import BookAnswer, ChapterExtraction, ChatMessage, ChatReply
from aural_odyssey.ai.tools import TOOLS, ChatTool, run_tool
from aural_odyssey.documents import BookDocument

logger = logging.getLogger(__name__)

_MODEL_FAILURES = (
    GeminiAPIError,
    EmptyResponseError,
    httpx.HTTPError,
    ValueError,
    jsonschema.ValidationError,
)

MAX_TOOL_ROUNDS = 4

# ---------------------------------------------------------------------------
# Storyteller: first chapter extraction
# ---------------------------------------------------------------------------

CHAPTER_EXTRACTION_ERROR = "Error processing book. Could not extract the first chapter."

CHAPTER_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "firstChapterText": {
            "type": "string",
            "description": "The extracted text of the first chapter of the book.",
        },
    },
    "required": ["firstChapterText"],
}

_CHAPTER_PROMPT_HEAD = """You are a helpful assistant that processes books.
Your task is to extract the first chapter from the provided book content.
The book content is provided as an attached document, which could be a plain text file or a PDF document.

Book Content:"""

_CHAPTER_PROMPT_TAIL = """If the input is a PDF, first extract all its textual content. Then, from this extracted text (or from the original text if it was not a PDF), please identify and return only the text of the first chapter.
Keep the paragraph breaks of the original: separate paragraphs with a blank line.
If the book is very short and seems to be only one chapter, return the entire content as the first chapter.
If you cannot determine the first chapter (e.g., unclear structure, or unable to process PDF content effectively), return an empty string for firstChapterText."""


async def extract_first_chapter(client: GeminiClient, document: BookDocument) -> ChapterExtraction:
    """Ask the model for the first chapter of a book.

    Returns an empty string when the model could not find a chapter, and
    CHAPTER_EXTRACTION_ERROR when the call itself failed.
    """
    contents = [
        user_content(
            text_part(_CHAPTER_PROMPT_HEAD),
            document_part(document),
            text_part(_CHAPTER_PROMPT_TAIL),
        )
    ]
    try:
        response = await client.generate_content(
            contents,
            response_schema=CHAPTER_OUTPUT_SCHEMA,
        )
        output = _parse_structured_output(response.text, CHAPTER_OUTPUT_SCHEMA)
    except _MODEL_FAILURES:
        logger.exception("First-chapter extraction failed for %s", document.filename)
        return ChapterExtraction(first_chapter_text=CHAPTER_EXTRACTION_ERROR)

    return ChapterExtraction(first_chapter_text=output["firstChapterText"])


# ---------------------------------------------------------------------------
# Book analysis: question answering
# ---------------------------------------------------------------------------

EMPTY_ANSWER_FALLBACK = (
    "The AI did not provide a specific answer for this question. This could be "
    "due to processing difficulties, no relevant information found in the "
    "document, or the question being unanswerable based on the content."
)

ANSWER_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "answer": {
            "type": "string",
            "description": (
                "The answer to the user's question based on the book content. If the "
                "PDF was image-based and text extraction was problematic, this should "
                "be noted."
            ),
        },
    },
    "required": ["answer"],
}

_ANALYSIS_PROMPT_HEAD = """You are an AI assistant specialized in analyzing book content.
The user has provided a document (which could be a text file or a PDF document) and a question about it.
The PDF document might be text-based or image-based (e.g., a scanned book).

Your tasks are:
1. If the input is a PDF, determine if it's primarily text-based or image-based.
2. If it's image-based or text extraction is otherwise difficult, use your multimodal capabilities to perform Optical Character Recognition (OCR) to extract the textual content from the document.
3. Analyze the extracted textual content (or the original text if not a PDF/image-based PDF) to answer the user's question.

Document Content:"""

_ANALYSIS_PROMPT_TAIL = """User's Question:
"{question}"

Please provide a comprehensive and detailed answer based *only* on the text you can extract from the document provided.
- Ensure your answer is complete and directly addresses all parts of the user's question.
- If the question requires a detailed explanation or differentiation, provide a thorough response.
- If the answer cannot be found in the text, state that clearly.
- If the document is a PDF and you had significant trouble extracting text (e.g., poor image quality, unreadable text), please indicate this in your answer. For example: "I had difficulty extracting clear text from the provided PDF, which appears to be image-based. Based on the partially extracted text..." or "The PDF seems to be image-based, and I was unable to extract sufficient text to answer the question."
"""


async def analyze_book_content(
    client: GeminiClient,
    document: BookDocument,
    question: str,
) -> BookAnswer:
    """Answer a question about a book, with OCR for image-based PDFs."""
    contents = [
        user_content(
            text_part(_ANALYSIS_PROMPT_HEAD),
            document_part(document),
            text_part(_ANALYSIS_PROMPT_TAIL.format(question=question)),
        )
    ]
    try:
        response = await client.generate_content(
            contents,
            temperature=0.5,
            response_schema=ANSWER_OUTPUT_SCHEMA,
        )
        output = _parse_structured_output(response.text, ANSWER_OUTPUT_SCHEMA)
    except _MODEL_FAILURES as exc:
        logger.exception("Book analysis failed for %s", document.filename)
        return BookAnswer(
            answer="Error analyzing book content: {}. Please ensure the document is "
            "valid and try again.".format(exc)
        )

    answer = output["answer"]
    if not answer.strip():
        logger.warning("Model returned an empty answer for question: %s", question)
        return BookAnswer(answer=EMPTY_ANSWER_FALLBACK)
    return BookAnswer(answer=answer)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

CHAT_FALLBACK_REPLY = "मुझे क्षमा करें, मैं अभी प्रतिक्रिया उत्पन्न नहीं कर सका। कृपया पुन: प्रयास करें।"

CHAT_SYSTEM_INSTRUCTION = """You are Aural Odyssey's friendly and helpful AI assistant.
Your primary goal is to be a versatile and engaging conversationalist.
ALWAYS reply in Hindi by default, unless the user explicitly asks you to use a different language.
When replying in Hindi, use simple, clear, and easy-to-understand language.
If the user asks for a different language, switch to that language for the conversation.

Feel free to chat about a wide range of topics.
Be prepared for any kind of question, even if it seems non-sensical or silly. If a question is unusual, try to respond in a light-hearted, creative, or playful manner. Don't be afraid to be a little humorous if appropriate.

In addition to general conversation, you can also help users with questions about the Aural Odyssey app or discuss books and storytelling in their preferred language (defaulting to Hindi).
Aural Odyssey is an app that transforms written stories into engaging audio experiences. Users can load their books (TXT or PDF), and the app's AI crafts the narrative. Only the first chapter is processed.

You have access to the following tools:
- fetchWebpageContent: Use this tool if the user provides a URL and asks for information from it, or if you need to consult a specific webpage to answer a question. You should use the fetched content to inform your response.
- createYouTubeSearchUrl: Use this tool when the user asks to play a video or search for something on YouTube. You should provide the generated URL in your response.

When the fetchWebpageContent tool provides content, summarize it or use it directly to answer the user's question.
When the createYouTubeSearchUrl tool provides a URL, please include it clearly in your response, for example: "मैंने आपके लिए यह खोजा: [URL]" or "आप इसे यूट्यूब पर यहां देख सकते हैं: [URL]".
Keep your responses engaging, helpful, and use simple language (defaulting to Hindi)."""


def build_chat_transcript(history: Iterable[ChatMessage], user_message: str) -> str:
    """Render history plus the new message as a "User:/AI:" transcript."""
    lines = []
    for msg in history:
        speaker = "User" if msg.role == "user" else "AI"
        lines.append("{}: {}\n".format(speaker, msg.content))
    lines.append("User: {}\nAI:".format(user_message))
    return "".join(lines)


async def chat_with_bot(
    client: GeminiClient,
    user_message: str,
    history: Iterable[ChatMessage] = (),
    tools: Optional[Dict[str, ChatTool]] = None,
    max_tool_rounds: int = MAX_TOOL_ROUNDS,
) -> ChatReply:
    """Get the assistant's next reply, running any tools it asks for.

    Raises:
        GeminiAPIError: The model API rejected the request.
    """
    registry = TOOLS if tools is None else tools
    declarations = [tool.declaration() for tool in registry.values()]
    contents: List[dict] = [
        user_content(text_part(build_chat_transcript(history, user_message)))
    ]

    for _ in range(max_tool_rounds + 1):
        try:
            response = await client.generate_content(
                contents,
                system_instruction=CHAT_SYSTEM_INSTRUCTION,
                temperature=0.7,
                tools=declarations,
            )
        except EmptyResponseError:
            logger.warning("Chat model returned no response")
            return ChatReply(response=CHAT_FALLBACK_REPLY)

        if not response.function_calls:
            text = response.text.strip()
            if not text:
                logger.error("Chat flow did not receive a valid response from the model")
                return ChatReply(response=CHAT_FALLBACK_REPLY)
            return ChatReply(response=text)

        contents.append(response.content)
        results = []
        for call in response.function_calls:
            result = await run_tool(call.name, call.args, registry)
            results.append(function_response_part(call.name, result))
        contents.append({"role": "user", "parts": results})

    logger.warning("Chat tool loop exceeded %d rounds", max_tool_rounds)
    return ChatReply(response=CHAT_FALLBACK_REPLY)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_structured_output(text: str, schema: dict) -> dict:
    """Decode a JSON-mode reply and validate it against schema.

    Raises:
        ValueError: The reply is not JSON.
        jsonschema.ValidationError: The JSON does not match schema.
    """
    if not text.strip():
        raise ValueError("No output from model")
    data = json.loads(text)
    jsonschema.validate(data, schema)
    return data
