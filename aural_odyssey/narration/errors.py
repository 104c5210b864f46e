"""Speech engine error reasons and their user-facing messages.

WHY: Host speech engines report failures as short reason codes
("audio-busy", "voice-unavailable", ...). Some of those are noise caused
by our own cancellation and must never reach the user; the rest need a
readable explanation.

HOW: A lookup table from reason code to message, plus a predicate for
cancellation noise.

RULES:
- "canceled", "cancelled", "interrupted", and empty/None reasons are noise
- Unknown reasons get a generic "Speech error: <reason>" message
"""

from __future__ import annotations

CANCELLATION_REASONS = frozenset({"canceled", "cancelled", "interrupted"})

ERROR_MESSAGES: dict[str, str] = {
    "synthesis-unavailable": "Speech synthesis service is unavailable on this device.",
    "synthesis-failed": (
        "Speech synthesis failed. Please try a different voice or check "
        "your internet connection."
    ),
    "language-unavailable": "The selected language for narration is not available.",
    "voice-unavailable": (
        "The selected voice for narration is not available. Please try another."
    ),
    "text-too-long": (
        "The current text section is too long to narrate with the selected "
        "voice/engine."
    ),
    "invalid-argument": "Invalid argument for speech synthesis (e.g., invalid speed).",
    "not-allowed": "Speech synthesis is not allowed by the current system settings.",
    "audio-busy": "Audio output is busy. Please try again shortly.",
    "audio-hardware": "A problem occurred with your audio hardware.",
}


def is_cancellation_noise(reason: str | None) -> bool:
    """True if an error reason is an expected artifact of cancelling."""
    return not reason or reason in CANCELLATION_REASONS


def describe_error(reason: str) -> str:
    """Return the user-facing message for an engine error reason."""
    return ERROR_MESSAGES.get(
        reason, "Speech error: {}. Please try again.".format(reason)
    )
