"""Tests for the pyttsx3 engine adapter.

HOW: The pyttsx3 driver is a MagicMock injected through init_driver.
Most tests call the worker-side methods (_handle_command and the pyttsx3
callbacks) directly so no thread is involved; one test runs the real
worker loop to check voice listing and shutdown.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, call

import pytest

from aural_odyssey.narration.engine import EngineEventKind
from aural_odyssey.narration.pyttsx3_engine import (
    Pyttsx3Engine,
    normalize_language,
    voice_from_pyttsx3,
)
from aural_odyssey.narration.voices import Voice

RAW_VOICES = [
    SimpleNamespace(id="com.apple.lekha", name="Lekha", languages=["hi_IN"]),
    SimpleNamespace(id="english-gb", name="english", languages=[b"\x05en-gb"]),
    SimpleNamespace(id="bare", name=None, languages=[]),
]


@pytest.fixture
def driver():
    mock = MagicMock()
    mock.getProperty.return_value = RAW_VOICES
    return mock


@pytest.fixture
def adapter(driver):
    """A Pyttsx3Engine with its driver set up but no worker thread."""
    engine = Pyttsx3Engine(base_rate_wpm=200, init_driver=lambda: driver)
    engine.events = []
    engine.set_listener(engine.events.append)
    engine._setup_driver()
    return engine


def _kinds(engine):
    return [(e.kind, e.token, e.reason) for e in engine.events]


class TestVoiceConversion:
    """pyttsx3 voice objects → Voice."""

    @pytest.mark.parametrize("raw, expected", [
        ("en_US", "en-us"),
        (b"\x05en-gb", "en-gb"),
        ("hi-IN", "hi-in"),
        (None, ""),
    ])
    def test_normalize_language(self, raw, expected):
        assert normalize_language(raw) == expected

    def test_voice_from_pyttsx3(self):
        assert voice_from_pyttsx3(RAW_VOICES[0]) == Voice("com.apple.lekha", "Lekha", "hi-in")
        assert voice_from_pyttsx3(RAW_VOICES[2]) == Voice("bare", "bare", "")


class TestCommands:
    """Commands applied on the worker side."""

    def test_setup_connects_callbacks(self, adapter, driver):
        topics = [c.args[0] for c in driver.connect.call_args_list]
        assert topics == ["started-utterance", "finished-utterance", "error"]

    def test_speak_sets_voice_rate_and_names_utterance(self, adapter, driver):
        adapter._handle_command("speak", ("t1", "Hello.", "com.apple.lekha", 1.5))

        driver.setProperty.assert_has_calls([
            call("voice", "com.apple.lekha"),
            call("rate", 300),
        ])
        driver.say.assert_called_once_with("Hello.", "t1")

    def test_complete_utterance_emits_start_and_end(self, adapter):
        adapter._handle_command("speak", ("t1", "Hello.", "v", 1.0))
        adapter._on_started("t1")
        adapter._on_finished("t1", True)

        assert _kinds(adapter) == [
            (EngineEventKind.START, "t1", None),
            (EngineEventKind.END, "t1", None),
        ]

    def test_cancel_reports_interrupted(self, adapter, driver):
        adapter._handle_command("speak", ("t1", "Hello.", "v", 1.0))
        adapter._handle_command("cancel", ())
        driver.stop.assert_called_once()

        adapter._on_finished("t1", False)
        assert _kinds(adapter) == [(EngineEventKind.ERROR, "t1", "interrupted")]

    def test_cancel_when_idle_does_not_stop_driver(self, adapter, driver):
        adapter._handle_command("cancel", ())
        driver.stop.assert_not_called()

    def test_pause_then_resume_respeaks(self, adapter, driver):
        adapter._handle_command("speak", ("t1", "Hello.", "v", 1.25))
        adapter._handle_command("pause", ())
        adapter._on_finished("t1", False)

        assert _kinds(adapter) == [(EngineEventKind.PAUSE, "t1", None)]

        adapter._handle_command("resume", ())
        assert _kinds(adapter)[-1] == (EngineEventKind.RESUME, "t1", None)
        assert driver.say.call_count == 2
        assert driver.say.call_args == call("Hello.", "t1")

    def test_resume_without_hold_is_noop(self, adapter, driver):
        adapter._handle_command("resume", ())
        assert adapter.events == []
        driver.say.assert_not_called()

    def test_cancel_drops_held_utterance(self, adapter, driver):
        adapter._handle_command("speak", ("t1", "Hello.", "v", 1.0))
        adapter._handle_command("pause", ())
        adapter._on_finished("t1", False)
        adapter._handle_command("cancel", ())
        adapter._handle_command("resume", ())

        assert driver.say.call_count == 1

    def test_cancel_held_utterance_forgets_it(self, adapter, driver):
        adapter._handle_command("speak", ("t1", "Hello.", "v", 1.0))
        adapter._handle_command("pause", ())
        adapter._on_finished("t1", False)
        adapter._handle_command("cancel", ())

        assert adapter._utterances == {}

    def test_cancel_during_pending_pause_reports_interrupted(self, adapter, driver):
        adapter._handle_command("speak", ("t1", "Hello.", "v", 1.0))
        adapter._handle_command("pause", ())
        adapter._handle_command("cancel", ())
        adapter._on_finished("t1", False)

        assert _kinds(adapter) == [(EngineEventKind.ERROR, "t1", "interrupted")]
        assert adapter._utterances == {}

    def test_driver_error_reports_synthesis_failed(self, adapter):
        adapter._handle_command("speak", ("t1", "Hello.", "v", 1.0))
        adapter._on_error("t1", RuntimeError("driver crashed"))
        assert _kinds(adapter) == [(EngineEventKind.ERROR, "t1", "synthesis-failed")]


class TestWorkerThread:
    """The real worker loop with a mock driver."""

    def test_list_voices_and_close(self, driver):
        engine = Pyttsx3Engine(init_driver=lambda: driver)
        try:
            voices = engine.list_voices()
        finally:
            engine.close()

        assert [v.id for v in voices] == ["com.apple.lekha", "english-gb", "bare"]
        assert voices[1].lang == "en-gb"
        driver.startLoop.assert_called_once_with(False)
        driver.endLoop.assert_called_once()

    def test_close_without_worker_is_noop(self):
        engine = Pyttsx3Engine(init_driver=MagicMock())
        engine.close()
