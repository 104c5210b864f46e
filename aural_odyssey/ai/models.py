"""Request and response dataclasses for the Gemini generateContent API.

WHY: generateContent returns nested JSON (candidates → content → parts),
and a part is either text or a function call. Typed dataclasses make the
handful of fields we use explicit and keep dict-walking out of the flows.

HOW: from_dict factories parse raw API responses. Flow results
(ChapterExtraction, BookAnswer, ChatReply) are plain dataclasses that
the surfaces serialise.

RULES:
- GenerateResponse.text joins all text parts of the first candidate
- function_calls lists every functionCall part of the first candidate, in order
- content keeps the raw first-candidate content so it can be replayed in
  a follow-up request during tool calling
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ChatMessage:
    """One turn of chat history.

    RULES:
    - role is "user" or "model"
    """

    role: str
    content: str

    @classmethod
    def from_dict(cls, data: dict) -> ChatMessage:
        role = data["role"]
        if role not in ("user", "model"):
            raise ValueError("Chat role must be 'user' or 'model', got {!r}".format(role))
        return cls(role=role, content=data["content"])

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class FunctionCall:
    """A tool invocation requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> FunctionCall:
        return cls(name=data["name"], args=dict(data.get("args") or {}))


@dataclass
class GenerateResponse:
    """The parts of a generateContent response the app relies on.

    Attributes:
        text: Concatenated text parts of the first candidate ("" if none).
        function_calls: functionCall parts of the first candidate.
        finish_reason: Candidate finishReason ("STOP", "SAFETY", ...), or None.
        block_reason: promptFeedback.blockReason when the prompt was blocked.
        content: Raw first-candidate content dict (role + parts).
    """

    text: str
    function_calls: list[FunctionCall] = field(default_factory=list)
    finish_reason: str | None = None
    block_reason: str | None = None
    content: dict[str, Any] = field(default_factory=dict)

    @property
    def has_candidate(self) -> bool:
        return bool(self.content)

    @classmethod
    def from_dict(cls, data: dict) -> GenerateResponse:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        candidates = data.get("candidates") or []
        if not candidates:
            return cls(text="", block_reason=block_reason)

        candidate = candidates[0]
        content = candidate.get("content") or {}
        texts: list[str] = []
        calls: list[FunctionCall] = []
        for part in content.get("parts") or []:
            if "text" in part:
                texts.append(part["text"])
            elif "functionCall" in part:
                calls.append(FunctionCall.from_dict(part["functionCall"]))

        return cls(
            text="".join(texts),
            function_calls=calls,
            finish_reason=candidate.get("finishReason"),
            block_reason=block_reason,
            content=content,
        )


@dataclass
class ChapterExtraction:
    """First-chapter text, or an error/empty marker from the storyteller flow."""

    first_chapter_text: str

    @property
    def usable(self) -> bool:
        """False when the text is empty or the flow's error message."""
        text = self.first_chapter_text.strip()
        return bool(text) and not text.startswith("Error processing book")

    def processing_note(self, filename: str) -> str | None:
        """User-facing note explaining why there is nothing to narrate, if so."""
        if self.usable:
            return None
        return self.first_chapter_text.strip() or (
            "Could not determine the first chapter from {}.".format(filename)
        )

    def to_dict(self) -> dict:
        return {"firstChapterText": self.first_chapter_text}


@dataclass
class BookAnswer:
    answer: str

    def to_dict(self) -> dict:
        return {"answer": self.answer}


@dataclass
class ChatReply:
    response: str

    def to_dict(self) -> dict:
        return {"response": self.response}
