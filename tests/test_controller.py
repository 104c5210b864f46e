"""Tests for the narration PlaybackController state machine.

WHY: The controller is the only stateful component in the app. Late
engine callbacks, stop-versus-complete, seek while speaking, and pause
acknowledgment are exactly where narration players break, so each of
those paths gets a focused test.

HOW: The FakeSpeechEngine from conftest records speak/cancel/pause calls;
tests emit start/end/pause/error events for chosen tokens through a
synchronous SpeechChannel and assert on controller state and notices.

RULES:
- Tests are grouped by command or concern
- Every test builds its own controller via fixtures
"""

from __future__ import annotations

import pytest

from aural_odyssey.narration.controller import NoticeKind, PlaybackController, PlaybackPhase
from aural_odyssey.narration.engine import SpeechChannel
from aural_odyssey.narration.message_reader import ChatMessageReader
from aural_odyssey.narration.voices import NarrationVoiceSettings

THREE_CHUNKS = ["Para one.", "Para two.", "Para three."]


def _end_on_cancel(engine):
    """Make the fake engine report END synchronously from cancel()."""
    record_cancel = engine.cancel

    def cancel():
        record_cancel()
        engine.finish(engine.last_token)

    engine.cancel = cancel


# ---------------------------------------------------------------------------
# TestPlay
# ---------------------------------------------------------------------------


class TestPlay:
    """play() starts, restarts, resumes, or toggles to pause."""

    def test_play_starts_first_chunk(self, controller, engine):
        controller.load(THREE_CHUNKS)
        assert controller.play() is True
        assert engine.spoken_texts == ["Para one."]
        assert controller.phase == PlaybackPhase.SPEAKING
        assert controller.cursor == 0
        assert controller.highlight_index == 0

    def test_play_on_empty_sequence_is_noop(self, controller, engine):
        controller.load([])
        assert controller.play() is False
        assert engine.spoken == []
        assert controller.phase == PlaybackPhase.IDLE
        assert controller.cursor is None

    def test_play_without_voice_is_noop(self, channel, engine, notices):
        controller = PlaybackController(channel, NarrationVoiceSettings(voices=[]), notices.append)
        controller.load(THREE_CHUNKS)
        assert controller.play() is False
        assert engine.spoken == []

    def test_three_chunks_play_through_in_order(self, controller, engine, notices):
        controller.load(THREE_CHUNKS)
        controller.play()
        for _ in range(3):
            engine.play_through()

        assert engine.spoken_texts == THREE_CHUNKS
        assert controller.phase == PlaybackPhase.IDLE
        assert controller.highlight_index == -1
        assert engine.cancel_count == 0
        assert [n.kind for n in notices] == [NoticeKind.COMPLETE]
        assert notices[0].title == "Narration Complete"
        assert notices[0].message == "Finished narrating all sections."

    def test_play_after_stop_restarts_cursor_chunk(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        engine.play_through()
        controller.stop()

        controller.play()
        assert engine.spoken_texts == ["Para one.", "Para two.", "Para two."]
        assert controller.cursor == 1

    def test_play_while_speaking_requests_pause(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        assert controller.play() is True
        assert engine.pause_count == 1
        assert controller.pause_pending is True

    def test_start_event_confirms_highlight(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        engine.start(engine.last_token)
        assert controller.phase == PlaybackPhase.SPEAKING
        assert controller.highlight_index == 0

    def test_voice_and_rate_read_for_every_utterance(self, controller, engine, voice_settings):
        controller.load(THREE_CHUNKS)
        controller.play()
        voice_settings.voice_id = "en-voice"
        voice_settings.playback_speed = "1.5"
        engine.play_through()

        first, second = engine.spoken[0], engine.spoken[1]
        assert (first[2], first[3]) == ("hi-voice", 1.0)
        assert (second[2], second[3]) == ("en-voice", 1.5)

    def test_invalid_speed_falls_back_to_normal_rate(self, controller, engine, voice_settings):
        voice_settings.playback_speed = "fast"
        controller.load(THREE_CHUNKS)
        controller.play()
        assert engine.spoken[0][3] == 1.0


# ---------------------------------------------------------------------------
# TestPauseResume
# ---------------------------------------------------------------------------


class TestPauseResume:
    """pause() waits for acknowledgment; resume() restarts the chunk."""

    def test_pause_transitions_only_on_acknowledgment(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        token = engine.last_token

        assert controller.pause() is True
        assert controller.phase == PlaybackPhase.SPEAKING
        assert controller.pause_pending is True

        engine.ack_pause(token)
        assert controller.phase == PlaybackPhase.PAUSED
        assert controller.pause_pending is False

    def test_pause_when_idle_is_rejected(self, controller, engine):
        controller.load(THREE_CHUNKS)
        assert controller.pause() is False
        assert engine.pause_count == 0

    def test_resume_restarts_current_chunk(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        engine.play_through()
        held = engine.last_token
        controller.pause()
        engine.ack_pause(held)

        assert controller.play() is True
        assert engine.cancel_count == 1
        assert engine.spoken_texts == ["Para one.", "Para two.", "Para two."]
        assert controller.phase == PlaybackPhase.SPEAKING
        assert controller.cursor == 1

    def test_resume_with_engine_that_ends_on_cancel(self, channel, controller, engine):
        _end_on_cancel(engine)
        controller.load(["A", "B", "C"])
        controller.play()
        held = engine.last_token
        controller.pause()
        engine.ack_pause(held)

        assert controller.resume() is True
        assert engine.spoken_texts == ["A", "A"]
        assert controller.cursor == 0
        assert controller.phase == PlaybackPhase.SPEAKING
        assert channel.tracked_tokens == [engine.last_token]

    def test_resume_when_not_paused_is_rejected(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        assert controller.resume() is False
        assert len(engine.spoken) == 1

    def test_engine_resume_event_returns_to_speaking(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        token = engine.last_token
        controller.pause()
        engine.ack_pause(token)
        engine.ack_resume(token)
        assert controller.phase == PlaybackPhase.SPEAKING

    def test_end_while_pause_pending_advances(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        controller.pause()
        engine.finish(engine.last_token)

        assert controller.pause_pending is False
        assert controller.cursor == 1
        assert engine.spoken_texts[-1] == "Para two."


# ---------------------------------------------------------------------------
# TestStop
# ---------------------------------------------------------------------------


class TestStop:
    """stop() cancels, clears highlight, and keeps the cursor."""

    def test_late_end_after_stop_is_ignored(self, controller, engine, notices):
        controller.load(THREE_CHUNKS)
        controller.play()
        token = engine.last_token

        controller.stop()
        engine.finish(token)

        assert controller.phase == PlaybackPhase.IDLE
        assert len(engine.spoken) == 1
        assert notices == []

    def test_stop_keeps_cursor_and_clears_highlight(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        engine.play_through()
        controller.stop()

        assert controller.cursor == 1
        assert controller.highlight_index == -1
        assert controller.stop_requested is True

    def test_stop_is_idempotent(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        controller.stop()
        controller.stop()
        assert engine.cancel_count == 1
        assert controller.phase == PlaybackPhase.IDLE

    def test_stop_with_notice_while_active(self, controller, notices):
        controller.load(THREE_CHUNKS)
        controller.play()
        controller.stop(show_completion_notice=True)
        assert [n.kind for n in notices] == [NoticeKind.STOPPED]
        assert notices[0].title == "Narration Stopped"

    def test_stop_with_notice_while_idle_is_silent(self, controller, notices):
        controller.load(THREE_CHUNKS)
        controller.stop(show_completion_notice=True)
        assert notices == []

    def test_stop_with_engine_that_ends_on_cancel(self, controller, engine, notices):
        _end_on_cancel(engine)
        controller.load(THREE_CHUNKS)
        controller.play()

        controller.stop()

        assert engine.spoken_texts == ["Para one."]
        assert controller.phase == PlaybackPhase.IDLE
        assert controller.cursor == 0
        assert notices == []

    def test_stop_from_paused(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        token = engine.last_token
        controller.pause()
        engine.ack_pause(token)

        controller.stop()
        assert controller.phase == PlaybackPhase.IDLE
        assert controller.pause_pending is False


# ---------------------------------------------------------------------------
# TestSeek
# ---------------------------------------------------------------------------


class TestSeek:
    """seek(index) jumps to a section and narrates it."""

    def test_seek_while_speaking(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        old = engine.last_token
        engine.start(old)

        assert controller.seek(2) is True
        assert engine.cancel_count == 1
        assert engine.spoken_texts == ["Para one.", "Para three."]
        assert controller.cursor == 2
        assert controller.highlight_index == 2

        engine.start(old)
        engine.finish(old)
        assert controller.cursor == 2
        assert controller.phase == PlaybackPhase.SPEAKING
        assert len(engine.spoken) == 2

    def test_seek_from_idle_starts_playback(self, controller, engine):
        controller.load(THREE_CHUNKS)
        assert controller.seek(1) is True
        assert engine.spoken_texts == ["Para two."]
        assert engine.cancel_count == 0

    @pytest.mark.parametrize("index", [-1, 3, 10])
    def test_out_of_range_seek_is_rejected(self, controller, engine, index):
        controller.load(THREE_CHUNKS)
        assert controller.seek(index) is False
        assert engine.spoken == []
        assert controller.cursor is None
        assert controller.phase == PlaybackPhase.IDLE

    def test_seek_to_last_then_end_completes(self, controller, engine, notices):
        controller.load(THREE_CHUNKS)
        controller.seek(2)
        engine.play_through()
        assert controller.phase == PlaybackPhase.IDLE
        assert notices[-1].kind == NoticeKind.COMPLETE


# ---------------------------------------------------------------------------
# TestEmptyChunks
# ---------------------------------------------------------------------------


class TestEmptyChunks:
    """Whitespace-only sections are skipped without an utterance."""

    def test_empty_chunk_is_skipped(self, controller, engine):
        controller.load(["First.", "   ", "Third."])
        controller.play()
        engine.play_through()
        assert engine.spoken_texts == ["First.", "Third."]
        assert controller.cursor == 2

    def test_trailing_empty_chunk_completes(self, controller, engine, notices):
        controller.load(["Only.", ""])
        controller.play()
        engine.play_through()
        assert len(engine.spoken) == 1
        assert controller.phase == PlaybackPhase.IDLE
        assert [n.kind for n in notices] == [NoticeKind.COMPLETE]


# ---------------------------------------------------------------------------
# TestErrors
# ---------------------------------------------------------------------------


class TestErrors:
    """Engine errors: cancellation noise is ignored, the rest force a stop."""

    def test_hardware_error_stops_with_warning(self, controller, engine, notices):
        controller.load(THREE_CHUNKS)
        controller.play()
        engine.fail(engine.last_token, "audio-hardware")

        assert controller.phase == PlaybackPhase.IDLE
        assert controller.highlight_index == -1
        assert len(notices) == 1
        assert notices[0].kind == NoticeKind.WARNING
        assert notices[0].title == "Speech Error"
        assert notices[0].message == "A problem occurred with your audio hardware."
        assert len(engine.spoken) == 1

    @pytest.mark.parametrize("reason", ["canceled", "cancelled", "interrupted", "", None])
    def test_cancellation_noise_is_suppressed(self, controller, engine, notices, reason):
        controller.load(THREE_CHUNKS)
        controller.play()
        engine.fail(engine.last_token, reason)

        assert controller.phase == PlaybackPhase.SPEAKING
        assert notices == []

    def test_unknown_reason_uses_generic_message(self, controller, engine, notices):
        controller.load(THREE_CHUNKS)
        controller.play()
        engine.fail(engine.last_token, "weird-failure")
        assert notices[0].message == "Speech error: weird-failure. Please try again."

    def test_error_for_stale_token_is_ignored(self, controller, engine, notices):
        controller.load(THREE_CHUNKS)
        controller.play()
        old = engine.last_token
        controller.seek(1)
        engine.fail(old, "audio-busy")

        assert controller.phase == PlaybackPhase.SPEAKING
        assert notices == []


# ---------------------------------------------------------------------------
# TestSessionLifecycle
# ---------------------------------------------------------------------------


class TestSessionLifecycle:
    """load(), load_text(), close(), and channel preemption."""

    def test_load_resets_active_session(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        controller.load(["New chapter."])

        assert engine.cancel_count == 1
        assert controller.chunks == ("New chapter.",)
        assert controller.cursor is None
        assert controller.phase == PlaybackPhase.IDLE
        assert controller.stop_requested is False

    def test_load_text_chunks_paragraphs(self, controller):
        chunks = controller.load_text("Para one.\n\nPara two.\n\n\nPara three.")
        assert list(chunks) == THREE_CHUNKS

    def test_close_stops_and_resets_cursor(self, controller, engine):
        controller.load(THREE_CHUNKS)
        controller.play()
        controller.close()
        assert controller.phase == PlaybackPhase.IDLE
        assert controller.cursor is None
        assert engine.cancel_count == 1

    def test_preemption_by_another_speaker_goes_idle(self, channel, controller, engine, voice_settings):
        controller.load(THREE_CHUNKS)
        controller.play()
        old = engine.last_token

        reader = ChatMessageReader(channel, voice_settings)
        reader.toggle("msg-1", "Hello there.")

        assert controller.phase == PlaybackPhase.IDLE
        assert engine.cancel_count == 1
        engine.finish(old)
        assert controller.phase == PlaybackPhase.IDLE
        assert reader.speaking_id == "msg-1"

    def test_change_callback_fires_on_transitions(self, channel, voice_settings):
        changes = []
        controller = PlaybackController(channel, voice_settings, on_change=lambda: changes.append(1))
        controller.load(THREE_CHUNKS)
        controller.play()
        assert len(changes) >= 2

    def test_at_most_one_utterance_in_flight(self, engine):
        channel = SpeechChannel(engine)
        settings = NarrationVoiceSettings(voices=engine.list_voices())
        first = PlaybackController(channel, settings)
        second = PlaybackController(channel, settings)
        first.load(THREE_CHUNKS)
        second.load(THREE_CHUNKS)

        first.play()
        second.play()

        assert engine.cancel_count == 1
        assert first.phase == PlaybackPhase.IDLE
        assert second.phase == PlaybackPhase.SPEAKING
        assert channel.current_token == second.active_token
