"""Async HTTP client for the Gemini generateContent REST API.

WHY: Chapter extraction, book Q&A, and chat all send a prompt (sometimes
with an inline PDF or text document) to a hosted model and read back text
or tool calls. This module encapsulates that HTTP exchange behind a
single client class so flows and tests don't need to know HTTP details.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. GeminiClient is an
async context manager — enter it to get an authenticated client, exit to
close the connection pool. generate_content() builds the request body
(contents, system instruction, generation config, safety settings,
tools) and parses the reply into a GenerateResponse.

RULES:
- Always use the async context manager (async with GeminiClient(...) as client:)
- The API key is sent in the x-goog-api-key header, never in the URL
- Non-2xx responses raise GeminiAPIError(status_code, message)
- A response with no candidates raises EmptyResponseError
- JSON schemas are written in standard lowercase JSON Schema and converted
  with to_gemini_schema() on the way out
- transport is injectable so tests can use httpx.MockTransport
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import httpx

from aural_odyssey.ai.models import GenerateResponse
from aural_odyssey.config import GEMINI_BASE_URL, GEMINI_MODEL, SAFETY_SETTINGS, load_api_key
from aural_odyssey.documents import BookDocument

logger = logging.getLogger(__name__)


class GeminiAPIError(Exception):
    """Raised when the Gemini API returns an error response.

    WHY: Callers need a typed exception to distinguish model API errors
    from network errors or other failures.

    HOW: Wraps the HTTP status code and the error message from the body.

    RULES:
    - Always include status_code and message
    - message is error.message from the JSON body when present, else the body text
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Gemini API error {status_code}: {message}")


class EmptyResponseError(Exception):
    """Raised when the model returns no candidate (e.g. the prompt was blocked)."""


# ---------------------------------------------------------------------------
# Request building helpers
# ---------------------------------------------------------------------------


def text_part(text: str) -> dict[str, Any]:
    return {"text": text}


def document_part(document: BookDocument) -> dict[str, Any]:
    """Inline a book document as base64 data with its MIME type."""
    return {
        "inlineData": {
            "mimeType": document.mime_type,
            "data": document.base64_data,
        }
    }


def user_content(*parts: dict[str, Any]) -> dict[str, Any]:
    return {"role": "user", "parts": list(parts)}


def function_response_part(name: str, response: dict[str, Any]) -> dict[str, Any]:
    return {"functionResponse": {"name": name, "response": response}}


def to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert a JSON Schema subset into Gemini's OpenAPI-style schema.

    Gemini expects uppercase type names ("OBJECT", "STRING") and does not
    accept JSON Schema bookkeeping keys such as additionalProperties.
    """
    converted: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            converted[key] = value.upper()
        elif key == "properties":
            converted[key] = {name: to_gemini_schema(sub) for name, sub in value.items()}
        elif key == "items":
            converted[key] = to_gemini_schema(value)
        elif key in ("additionalProperties", "$schema", "format"):
            continue
        else:
            converted[key] = value
    return converted


class GeminiClient:
    """Async client for the Gemini generateContent endpoint.

    WHY: Provides a clean, typed interface for the one model call the app
    makes, with auth, request shaping, and error wrapping handled once.

    HOW: Wraps httpx.AsyncClient with the x-goog-api-key header. Use as
    an async context manager to ensure the HTTP connection pool is
    properly closed.

    RULES:
    - Use as: async with GeminiClient() as client: ...
    - api_key defaults to load_api_key() from .env
    - base_url defaults to GEMINI_BASE_URL from config
    - model defaults to GEMINI_MODEL from config
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or GEMINI_BASE_URL).rstrip("/")
        self._model = model or GEMINI_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def model(self) -> str:
        return self._model

    async def __aenter__(self) -> GeminiClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-goog-api-key": self._api_key},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "GeminiClient must be used as an async context manager: "
                "async with GeminiClient() as client: ..."
            )
        return self._client

    async def generate_content(
        self,
        contents: list[dict[str, Any]],
        system_instruction: str | None = None,
        temperature: float | None = None,
        response_schema: dict[str, Any] | None = None,
        tools: Iterable[dict[str, Any]] | None = None,
        safety_settings: list[dict[str, str]] | None = None,
    ) -> GenerateResponse:
        """Send one generateContent request and parse the first candidate.

        Args:
            contents: Conversation turns ({"role": ..., "parts": [...]}).
            system_instruction: Optional system prompt.
            temperature: Optional sampling temperature.
            response_schema: Optional JSON Schema; requests JSON output.
            tools: Optional function declarations (Gemini format).
            safety_settings: Defaults to SAFETY_SETTINGS from config.

        Returns:
            The parsed GenerateResponse.

        Raises:
            GeminiAPIError: On a non-2xx response.
            EmptyResponseError: When the response carries no candidate.
        """
        client = self._ensure_client()

        body: dict[str, Any] = {
            "contents": contents,
            "safetySettings": safety_settings if safety_settings is not None else SAFETY_SETTINGS,
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [text_part(system_instruction)]}

        generation_config: dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = to_gemini_schema(response_schema)
        if generation_config:
            body["generationConfig"] = generation_config

        declarations = list(tools or [])
        if declarations:
            body["tools"] = [{"functionDeclarations": declarations}]

        logger.debug("generateContent model=%s turns=%d", self._model, len(contents))
        resp = await client.post(
            "/models/{}:generateContent".format(self._model),
            json=body,
        )
        if resp.status_code >= 400:
            raise GeminiAPIError(resp.status_code, _error_message(resp))

        result = GenerateResponse.from_dict(resp.json())
        if not result.has_candidate:
            reason = result.block_reason or "no candidates returned"
            raise EmptyResponseError("Model returned no response ({})".format(reason))
        return result


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return resp.text
