"""Voice and playback-rate resolution for narration.

WHY: The playback controller must know which voice and rate to use for
each utterance, but it does not own those settings — the user can change
them at any time from the settings panel. A mid-session change must take
effect on the very next utterance, so the controller asks a resolver
every time instead of caching a value per session.

HOW: Voice is a small normalized description of an engine voice.
NarrationVoiceSettings is the mutable resolver that UIs write to and the
controller reads from. choose_default_voice() and parse_playback_rate()
encode the fallback rules for first launch and bad input.

RULES:
- resolve() returns None when no voice is available (narration disabled)
- A saved voice id wins if the engine still offers it
- Otherwise prefer Hindi, then en-US, then en-GB, then the first voice
- Playback rates outside [0.1, 10] or unparseable fall back to 1.0
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterable, Protocol

from aural_odyssey.config import (
    DEFAULT_PLAYBACK_SPEED,
    MAX_PLAYBACK_RATE,
    MIN_PLAYBACK_RATE,
    PREFERRED_VOICE_LANGUAGES,
)


@dataclass(frozen=True)
class Voice:
    """One voice offered by the host speech engine.

    Attributes:
        id: Engine-specific identifier passed back to the engine.
        name: Human-readable voice name.
        lang: BCP-47-ish language tag, lowercased (e.g. "en-us", "hi-in").
    """

    id: str
    name: str
    lang: str = ""

    @property
    def label(self) -> str:
        """Display label, e.g. ``"Samantha (en-us)"``."""
        return "{} ({})".format(self.name, self.lang) if self.lang else self.name


@dataclass(frozen=True)
class VoiceSelection:
    """The voice id and rate to use for one utterance."""

    voice_id: str
    rate: float


class VoiceResolver(Protocol):
    """Anything the playback controller can ask for the current voice/rate."""

    def resolve(self) -> VoiceSelection | None: ...


def parse_playback_rate(value: str | float | None) -> float:
    """Parse a playback speed setting into a usable engine rate.

    RULES:
    - Accepts strings ("1.25") and numbers
    - Values outside [MIN_PLAYBACK_RATE, MAX_PLAYBACK_RATE] → 1.0
    - Unparseable values (None, "", "fast", NaN) → 1.0
    """
    try:
        rate = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 1.0
    if rate != rate:  # NaN
        return 1.0
    if rate < MIN_PLAYBACK_RATE or rate > MAX_PLAYBACK_RATE:
        return 1.0
    return rate


def choose_default_voice(
    voices: Iterable[Voice],
    preferred_id: str | None = None,
) -> Voice | None:
    """Pick the voice to select when settings are first loaded.

    WHY: Saved settings may reference a voice that is no longer installed,
    and first launch has no saved voice at all.

    HOW: Exact id match first, then language-prefix preference order from
    PREFERRED_VOICE_LANGUAGES, then the first voice.
    """
    voice_list = list(voices)
    if not voice_list:
        return None

    if preferred_id:
        for voice in voice_list:
            if voice.id == preferred_id:
                return voice

    for prefix in PREFERRED_VOICE_LANGUAGES:
        for voice in voice_list:
            if voice.lang.lower().startswith(prefix):
                return voice

    return voice_list[0]


class NarrationVoiceSettings:
    """Mutable voice/rate state shared between a settings UI and narration.

    WHY: The GUI writes selections from one place and the controller reads
    them from another; both need a single source of truth.

    HOW: Plain attributes guarded by a lock, because engine adapters may
    list voices from a worker thread while the UI thread updates them.

    RULES:
    - set_voices() keeps the current selection if still available,
      otherwise falls back through choose_default_voice()
    - resolve() is called once per issued utterance
    """

    def __init__(
        self,
        voices: Iterable[Voice] = (),
        voice_id: str | None = None,
        playback_speed: str = DEFAULT_PLAYBACK_SPEED,
    ) -> None:
        self._lock = threading.Lock()
        self._voices: list[Voice] = []
        self._voice_id: str | None = voice_id
        self.playback_speed = playback_speed
        self.set_voices(voices)

    @property
    def voices(self) -> list[Voice]:
        with self._lock:
            return list(self._voices)

    @property
    def voice_id(self) -> str | None:
        with self._lock:
            return self._voice_id

    @voice_id.setter
    def voice_id(self, value: str | None) -> None:
        with self._lock:
            self._voice_id = value

    def set_voices(self, voices: Iterable[Voice]) -> None:
        """Replace the available voice list and re-validate the selection."""
        with self._lock:
            self._voices = list(voices)
            chosen = choose_default_voice(self._voices, self._voice_id)
            self._voice_id = chosen.id if chosen else self._voice_id

    def resolve(self) -> VoiceSelection | None:
        with self._lock:
            if not self._voices:
                return None
            voice_id = self._voice_id
            if voice_id is None or not any(v.id == voice_id for v in self._voices):
                voice_id = self._voices[0].id
        return VoiceSelection(
            voice_id=voice_id,
            rate=parse_playback_rate(self.playback_speed),
        )
