"""Configuration constants, playback defaults, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Supported book formats, playback speeds, and
model API defaults are plain data structures — not buried in logic — so
the CLI, GUI, and HTTP API agree on them.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level dicts, tuples, and strings. The load_api_key() function
provides a clear error when the key is missing.

RULES:
- SUPPORTED_BOOK_FORMATS maps file extension → MIME type (.txt, .pdf only)
- Playback rates outside [MIN_PLAYBACK_RATE, MAX_PLAYBACK_RATE] fall back to 1.0
- API key is loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Book formats
# ---------------------------------------------------------------------------

SUPPORTED_BOOK_FORMATS: dict[str, str] = {
    ".txt": "text/plain",
    ".pdf": "application/pdf",
}
"""Book file extensions (lowercase, with dot) → MIME type sent to the model."""

# ---------------------------------------------------------------------------
# Narration defaults
# ---------------------------------------------------------------------------

PLAYBACK_SPEED_OPTIONS: tuple[tuple[str, str], ...] = (
    ("0.5", "0.5x"),
    ("0.75", "0.75x"),
    ("1.0", "1.0x (Normal)"),
    ("1.25", "1.25x"),
    ("1.5", "1.5x"),
    ("1.75", "1.75x"),
    ("2.0", "2.0x"),
)
"""Selectable playback speeds as (value, display label) pairs."""

DEFAULT_PLAYBACK_SPEED = os.getenv("DEFAULT_PLAYBACK_SPEED", "1.0")
MIN_PLAYBACK_RATE = 0.1
MAX_PLAYBACK_RATE = 10.0

PREFERRED_VOICE_LANGUAGES: tuple[str, ...] = ("hi", "en-us", "en-gb")
"""Language prefixes tried in order when no saved voice is available."""

PYTTSX3_BASE_RATE_WPM = int(os.getenv("PYTTSX3_BASE_RATE_WPM", "200"))
"""Words per minute that corresponds to a 1.0x playback rate on pyttsx3."""

SETTINGS_PATH = Path(
    os.getenv(
        "AURAL_ODYSSEY_SETTINGS_PATH",
        str(Path.home() / ".aural_odyssey" / "settings.json"),
    )
)

# ---------------------------------------------------------------------------
# Model API configuration defaults
# ---------------------------------------------------------------------------

GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

SAFETY_SETTINGS: list[dict[str, str]] = [
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
]


def load_api_key() -> str:
    """Load the Gemini API key from the environment.

    WHY: The API key is required for all model calls. Loading it from
    the environment (via .env) keeps it out of source code.

    HOW: Reads GEMINI_API_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("GEMINI_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "Gemini API key not configured. "
            "Add GEMINI_API_KEY to the .env file in the app folder."
        )
    return key
