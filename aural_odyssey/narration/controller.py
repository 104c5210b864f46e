"""Section-by-section narration playback controller.

WHY: Narrating a chapter means voicing a list of sections one after the
other while the user can pause, resume, stop, or jump to any section.
The host speech engine only knows about single utterances and reports
their lifecycle asynchronously — including late callbacks for utterances
we already cancelled. Getting auto-advance, stop, and seek right under
those conditions is the one genuinely stateful problem in the app.

HOW: PlaybackController is an explicit finite-state machine. Commands
(play, pause, resume, stop, seek, load) run synchronously on the owning
thread. Engine callbacks arrive as EngineEvent objects through the
SpeechChannel and are applied by handle_engine_event(), which first
checks the event's token against the single active utterance token.
User-facing outcomes (completion, explicit stop, engine warnings) are
reported as NarrationNotice objects through an optional callback.

RULES:
- Phases: IDLE, SPEAKING, PAUSED
- Every utterance gets a fresh token; events for any other token are ignored
- stop_requested distinguishes an explicit stop from natural completion;
  while set, END never auto-advances
- Resume restarts the current section from its beginning (hosts do not
  offer reliable resume-from-position)
- Voice and rate are resolved fresh for every utterance
- Commands on an empty section list, or with no voice, are no-ops
- Engine errors other than cancellation noise emit a warning and force stop
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Tuple

from aural_odyssey.narration.chunker import split_into_chunks
from aural_odyssey.narration.engine import (
    EngineEvent,
    EngineEventKind,
    SpeechChannel,
)
from aural_odyssey.narration.errors import describe_error, is_cancellation_noise
from aural_odyssey.narration.voices import VoiceResolver

logger = logging.getLogger(__name__)


class PlaybackPhase(str, enum.Enum):
    """Narration session phases.

    RULES:
    - idle: nothing in flight (never started, stopped, or finished)
    - speaking: a section's utterance is issued and not held
    - paused: the engine acknowledged a pause of the current utterance
    """

    IDLE = "idle"
    SPEAKING = "speaking"
    PAUSED = "paused"


class NoticeKind(str, enum.Enum):
    COMPLETE = "complete"
    STOPPED = "stopped"
    WARNING = "warning"


@dataclass(frozen=True)
class NarrationNotice:
    """A transient, user-facing narration notification."""

    kind: NoticeKind
    title: str
    message: str
    reason: Optional[str] = None


NoticeCallback = Callable[[NarrationNotice], None]

_COMPLETE_NOTICE = NarrationNotice(
    kind=NoticeKind.COMPLETE,
    title="Narration Complete",
    message="Finished narrating all sections.",
)
_STOPPED_NOTICE = NarrationNotice(
    kind=NoticeKind.STOPPED,
    title="Narration Stopped",
    message="Audio playback has been stopped.",
)


class PlaybackController:
    """Drives a SpeechChannel through a sequence of text sections.

    WHY: UIs (GUI, CLI) need a small command surface and a few readable
    properties; all timing and callback subtleties stay in here.

    HOW: Holds the session record (sections, cursor, phase, active token,
    stop flag, highlight). Commands mutate it and issue/cancel utterances
    on the channel; handle_engine_event() applies callbacks for the
    active token only.

    RULES:
    - cursor is None until the first play, then always a valid index
    - highlight_index is -1 whenever phase is IDLE
    - load()/load_text() replace the sections wholesale and reset the session
    - close() stops playback and releases the channel
    """

    def __init__(
        self,
        channel: SpeechChannel,
        resolver: VoiceResolver,
        on_notice: Optional[NoticeCallback] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._channel = channel
        self._resolver = resolver
        self._on_notice = on_notice
        self._on_change = on_change

        self._chunks: Tuple[str, ...] = ()
        self._cursor: Optional[int] = None
        self._phase = PlaybackPhase.IDLE
        self._active_token: Optional[str] = None
        self._stop_requested = False
        self._pause_pending = False
        self._highlight_index = -1

    # ------------------------------------------------------------------
    # Read-only session state
    # ------------------------------------------------------------------

    @property
    def chunks(self) -> Tuple[str, ...]:
        return self._chunks

    @property
    def cursor(self) -> Optional[int]:
        return self._cursor

    @property
    def phase(self) -> PlaybackPhase:
        return self._phase

    @property
    def active_token(self) -> Optional[str]:
        return self._active_token

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def pause_pending(self) -> bool:
        """True between pause() and the engine's pause acknowledgment."""
        return self._pause_pending

    @property
    def highlight_index(self) -> int:
        return self._highlight_index

    @property
    def is_active(self) -> bool:
        return self._phase in (PlaybackPhase.SPEAKING, PlaybackPhase.PAUSED)

    def can_play(self) -> bool:
        """True if play() would do something (sections and a voice exist)."""
        return bool(self._chunks) and self._resolver.resolve() is not None

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def load(self, chunks: Iterable[str]) -> None:
        """Install a new section sequence and reset the session."""
        if self._active_token is not None or self.is_active:
            self.stop(False)
        self._chunks = tuple(chunks)
        self._cursor = None
        self._phase = PlaybackPhase.IDLE
        self._active_token = None
        self._stop_requested = False
        self._pause_pending = False
        self._highlight_index = -1
        logger.debug("Loaded %d narration sections", len(self._chunks))
        self._changed()

    def load_text(self, text: str) -> Sequence[str]:
        """Chunk text, install the result, and return it."""
        chunks = split_into_chunks(text)
        self.load(chunks)
        return self._chunks

    def close(self) -> None:
        """Tear down: stop playback, reset the session, release the channel."""
        self.stop(False)
        self._cursor = None
        self._channel.release(self)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def play(self) -> bool:
        """Start, restart, resume, or (while speaking) pause narration.

        Returns True if the command changed anything.
        """
        if not self.can_play():
            return False

        if self._phase == PlaybackPhase.PAUSED:
            return self.resume()
        if self._phase == PlaybackPhase.SPEAKING:
            return self.pause()

        index = self._cursor if self._cursor is not None else 0
        self._stop_requested = False
        self._start_chunk(index)
        return True

    def pause(self) -> bool:
        """Ask the engine to hold the current utterance.

        The phase only becomes PAUSED when the engine acknowledges.
        """
        if self._phase != PlaybackPhase.SPEAKING or self._active_token is None:
            return False
        self._pause_pending = True
        self._channel.pause(self._active_token)
        self._changed()
        return True

    def resume(self) -> bool:
        """Restart the held section from its beginning."""
        if self._phase != PlaybackPhase.PAUSED or self._cursor is None:
            return False
        if self._resolver.resolve() is None:
            return False
        held_token = self._active_token
        self._active_token = None
        self._channel.cancel(held_token)
        self._pause_pending = False
        self._stop_requested = False
        self._start_chunk(self._cursor)
        return True

    def stop(self, show_completion_notice: bool = False) -> None:
        """Halt narration from any phase. Idempotent; keeps the cursor."""
        was_active = self.is_active
        self._stop_requested = True
        token = self._active_token
        self._active_token = None
        self._channel.cancel(token)
        self._phase = PlaybackPhase.IDLE
        self._pause_pending = False
        self._highlight_index = -1
        if was_active:
            logger.info("Narration stopped at section %s", self._cursor)
            if show_completion_notice:
                self._notify(_STOPPED_NOTICE)
        self._changed()

    def seek(self, index: int) -> bool:
        """Jump to section ``index`` and start narrating it.

        Out-of-range indices are rejected without any state change.
        """
        if not 0 <= index < len(self._chunks):
            return False
        if self._resolver.resolve() is None:
            return False
        self.stop(False)
        self._stop_requested = False
        self._cursor = index
        self._start_chunk(index)
        return True

    # ------------------------------------------------------------------
    # Engine callbacks
    # ------------------------------------------------------------------

    def handle_engine_event(self, event: EngineEvent) -> None:
        """Apply one engine callback if it belongs to the active utterance."""
        if event.token != self._active_token or self._active_token is None:
            logger.debug("Ignoring stale %s event for %s", event.kind.value, event.token)
            return

        if event.kind == EngineEventKind.START:
            if self._phase != PlaybackPhase.PAUSED:
                self._phase = PlaybackPhase.SPEAKING
            self._highlight_index = self._cursor if self._cursor is not None else -1
            self._changed()

        elif event.kind == EngineEventKind.PAUSE:
            if self._phase == PlaybackPhase.SPEAKING:
                self._phase = PlaybackPhase.PAUSED
                self._pause_pending = False
                self._changed()

        elif event.kind == EngineEventKind.RESUME:
            if self._phase == PlaybackPhase.PAUSED:
                self._phase = PlaybackPhase.SPEAKING
                self._changed()

        elif event.kind == EngineEventKind.END:
            self._active_token = None
            self._pause_pending = False
            if self._stop_requested:
                return
            self._advance()

        elif event.kind == EngineEventKind.ERROR:
            self._handle_error(event.reason)

    def on_preempted(self, token: str) -> None:
        """Another speaker took the channel; go idle without cancelling."""
        if token != self._active_token:
            return
        self._active_token = None
        self.stop(False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start_chunk(self, index: int) -> None:
        """Issue the utterance for section index, skipping empty sections."""
        while index < len(self._chunks) and not self._chunks[index].strip():
            logger.debug("Skipping empty section %d", index)
            self._cursor = index
            index += 1

        if index >= len(self._chunks):
            self._complete()
            return

        selection = self._resolver.resolve()
        if selection is None:
            logger.warning("No voice available; narration cannot continue")
            self.stop(False)
            return

        self._active_token = None
        self._cursor = index
        token = self._channel.issue(self, self._chunks[index], selection.voice_id, selection.rate)
        self._active_token = token
        self._phase = PlaybackPhase.SPEAKING
        self._pause_pending = False
        self._highlight_index = index
        logger.debug("Narrating section %d (utterance %s)", index, token)
        self._changed()

    def _advance(self) -> None:
        current = self._cursor if self._cursor is not None else -1
        next_index = current + 1
        if next_index < len(self._chunks):
            self._start_chunk(next_index)
        else:
            self._complete()

    def _complete(self) -> None:
        self._active_token = None
        self._phase = PlaybackPhase.IDLE
        self._pause_pending = False
        self._highlight_index = -1
        self._stop_requested = False
        logger.info("Narration complete (%d sections)", len(self._chunks))
        self._notify(_COMPLETE_NOTICE)
        self._changed()

    def _handle_error(self, reason: Optional[str]) -> None:
        if is_cancellation_noise(reason):
            logger.debug("Suppressed speech cancellation noise: %r", reason)
            return
        logger.warning("Speech engine error during narration: %s", reason)
        self._notify(NarrationNotice(
            kind=NoticeKind.WARNING,
            title="Speech Error",
            message=describe_error(reason or ""),
            reason=reason,
        ))
        self.stop(False)

    def _notify(self, notice: NarrationNotice) -> None:
        if self._on_notice is not None:
            self._on_notice(notice)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
