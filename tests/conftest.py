"""Shared test fixtures for the aural_odyssey test suite.

WHY: Narration tests need a speech engine whose lifecycle events the test
controls exactly (start, pause, end, error, late callbacks). Centralizing
the fake engine and the standard controller wiring here keeps every test
module on the same setup.

HOW: FakeSpeechEngine records every call and exposes helpers that emit
events for a given token. The controller fixture wires it through a
synchronous SpeechChannel (no pump) so events are applied immediately.

RULES:
- The fake never emits on its own; tests drive every event
- Two voices are installed by default: Hindi first, then en-US
- Notices are collected in a list fixture for assertions
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from aural_odyssey.narration.controller import NarrationNotice, PlaybackController
from aural_odyssey.narration.engine import EngineEventKind, SpeechChannel, SpeechEngine
from aural_odyssey.narration.voices import NarrationVoiceSettings, Voice

SAMPLE_VOICES = [
    Voice(id="hi-voice", name="Lekha", lang="hi-in"),
    Voice(id="en-voice", name="Samantha", lang="en-us"),
]


class FakeSpeechEngine(SpeechEngine):
    """Recording SpeechEngine whose events are emitted by the test."""

    def __init__(self, voices: Optional[List[Voice]] = None) -> None:
        super().__init__()
        self.voices = list(SAMPLE_VOICES if voices is None else voices)
        self.spoken: List[Tuple[str, str, str, float]] = []
        self.cancel_count = 0
        self.pause_count = 0
        self.resume_count = 0
        self.closed = False

    # SpeechEngine interface

    def speak(self, token: str, text: str, voice_id: str, rate: float) -> None:
        self.spoken.append((token, text, voice_id, rate))

    def cancel(self) -> None:
        self.cancel_count += 1

    def pause(self) -> None:
        self.pause_count += 1

    def resume(self) -> None:
        self.resume_count += 1

    def list_voices(self) -> List[Voice]:
        return list(self.voices)

    def close(self) -> None:
        self.closed = True

    # Test helpers

    @property
    def last_token(self) -> str:
        return self.spoken[-1][0]

    @property
    def spoken_texts(self) -> List[str]:
        return [text for _, text, _, _ in self.spoken]

    def start(self, token: str) -> None:
        self._emit(EngineEventKind.START, token)

    def finish(self, token: str) -> None:
        self._emit(EngineEventKind.END, token)

    def ack_pause(self, token: str) -> None:
        self._emit(EngineEventKind.PAUSE, token)

    def ack_resume(self, token: str) -> None:
        self._emit(EngineEventKind.RESUME, token)

    def fail(self, token: str, reason: Optional[str]) -> None:
        self._emit(EngineEventKind.ERROR, token, reason)

    def play_through(self) -> None:
        """Start and finish the latest utterance."""
        token = self.last_token
        self.start(token)
        self.finish(token)


@pytest.fixture
def engine() -> FakeSpeechEngine:
    return FakeSpeechEngine()


@pytest.fixture
def channel(engine) -> SpeechChannel:
    return SpeechChannel(engine)


@pytest.fixture
def voice_settings(engine) -> NarrationVoiceSettings:
    return NarrationVoiceSettings(voices=engine.list_voices())


@pytest.fixture
def notices() -> List[NarrationNotice]:
    return []


@pytest.fixture
def controller(channel, voice_settings, notices) -> PlaybackController:
    return PlaybackController(channel, voice_settings, on_notice=notices.append)
