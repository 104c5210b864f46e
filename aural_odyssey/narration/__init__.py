"""Narration package — chunking, playback control, and speech engines.

WHY: Turning a chapter into audio means splitting it into sections and
feeding them one at a time to a single shared speech device while the
user pauses, stops, and seeks. This package owns that whole problem.

HOW: chunker splits text; PlaybackController runs the per-section state
machine; SpeechChannel serialises access to a SpeechEngine (pyttsx3 in
production, a fake in tests); ChatMessageReader shares the same channel.

RULES:
- Nothing outside this package talks to a SpeechEngine directly
- Engine events reach owners only through SpeechChannel
"""

from aural_odyssey.narration.chunker import section_label, split_into_chunks
from aural_odyssey.narration.controller import (
    NarrationNotice,
    NoticeKind,
    PlaybackController,
    PlaybackPhase,
)
from aural_odyssey.narration.engine import (
    EngineEvent,
    EngineEventKind,
    EventPump,
    SpeechChannel,
    SpeechEngine,
)
from aural_odyssey.narration.message_reader import ChatMessageReader
from aural_odyssey.narration.voices import (
    NarrationVoiceSettings,
    Voice,
    VoiceSelection,
    choose_default_voice,
    parse_playback_rate,
)

__all__ = [
    "ChatMessageReader",
    "EngineEvent",
    "EngineEventKind",
    "EventPump",
    "NarrationNotice",
    "NarrationVoiceSettings",
    "NoticeKind",
    "PlaybackController",
    "PlaybackPhase",
    "SpeechChannel",
    "SpeechEngine",
    "Voice",
    "VoiceSelection",
    "choose_default_voice",
    "parse_playback_rate",
    "section_label",
    "split_into_chunks",
]
