"""Host speech engine interface and the process-wide speech channel.

WHY: The device that produces speech is a single shared resource — only
one utterance can play at a time, and it reports progress asynchronously
(start, pause, resume, end, error), sometimes long after we have moved
on. Narration and chat read-aloud both want to use it. Without a single
owner of the device, two features would talk over each other and late
callbacks from a cancelled utterance would corrupt whoever speaks next.

HOW: Three pieces:
  SpeechEngine  — ABC every host engine adapter implements (pyttsx3,
                  test fakes). Adapters emit EngineEvent objects tagged
                  with the token they were given in speak().
  EventPump     — thread-safe queue for adapters that call back from a
                  worker thread; the owning thread drains it.
  SpeechChannel — wraps one engine. issue() always cancels whatever is
                  in flight (from any owner) before speaking, generates a
                  fresh opaque token, and routes events back to the owner
                  that issued the token.

RULES:
- At most one utterance is active per channel ("issuing supersedes")
- cancel/pause/resume with a token that is not current are no-ops
- A preempted owner is told via on_preempted() so it can go idle
- Events for non-current tokens are still routed to their issuer, which
  discards them by token comparison
- Only the thread that drains the pump mutates owner state
"""

from __future__ import annotations

import enum
import logging
import queue
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

from aural_odyssey.narration.voices import Voice

logger = logging.getLogger(__name__)


class EngineEventKind(str, enum.Enum):
    """Lifecycle events a host speech engine reports for an utterance."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    END = "end"
    ERROR = "error"


@dataclass(frozen=True)
class EngineEvent:
    """One lifecycle callback from the host engine.

    Attributes:
        kind: Which lifecycle event occurred.
        token: Opaque token of the utterance the event belongs to.
        reason: Error reason code for ERROR events ("audio-busy",
                "canceled", ...); None otherwise or when the engine
                gave no reason.
    """

    kind: EngineEventKind
    token: str
    reason: Optional[str] = None


EventListener = Callable[[EngineEvent], None]


class SpeechEngine(ABC):
    """Abstract base for host text-to-speech engines.

    WHY: The narration logic must not depend on a particular TTS backend.
    Every backend accepts one utterance at a time and reports lifecycle
    events; this base class fixes that contract.

    To add a new engine:
    1. Subclass SpeechEngine
    2. Implement speak(), cancel(), pause(), resume(), list_voices()
    3. Call self._emit() for every lifecycle event, tagged with the token
       passed to speak()
    """

    def __init__(self) -> None:
        self._listener: Optional[EventListener] = None

    def set_listener(self, listener: Optional[EventListener]) -> None:
        """Register the single callable that receives engine events."""
        self._listener = listener

    def _emit(self, kind: EngineEventKind, token: str, reason: Optional[str] = None) -> None:
        if self._listener is not None:
            self._listener(EngineEvent(kind=kind, token=token, reason=reason))

    @abstractmethod
    def speak(self, token: str, text: str, voice_id: str, rate: float) -> None:
        """Start voicing text; events for it must carry ``token``."""

    @abstractmethod
    def cancel(self) -> None:
        """Drop the in-flight utterance. Returns immediately.

        A held (paused) utterance that is cancelled emits no further events.
        """

    @abstractmethod
    def pause(self) -> None:
        """Hold the in-flight utterance. May never be acknowledged."""

    @abstractmethod
    def resume(self) -> None:
        """Continue a held utterance, if the engine supports it."""

    @abstractmethod
    def list_voices(self) -> List[Voice]:
        """Return the voices this engine can speak with."""

    def close(self) -> None:
        """Release engine resources. Default: nothing to release."""


class EventPump:
    """Thread-safe hand-off of engine events to the owning thread.

    WHY: Engine adapters call back from their own worker thread, but the
    playback controller is single-threaded. The pump is the only
    communication channel between the two.

    HOW: A queue.Queue; adapters post(), the owner drains() from its
    event loop (tkinter .after(), a CLI wait loop, ...).
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[EngineEvent]" = queue.Queue()

    def post(self, event: EngineEvent) -> None:
        self._queue.put(event)

    def drain(self, handler: EventListener, timeout: float = 0.0) -> int:
        """Deliver queued events to handler; return how many were handled.

        When timeout > 0, block up to that long for the first event.
        """
        handled = 0
        try:
            if timeout > 0:
                event = self._queue.get(timeout=timeout)
                handler(event)
                handled += 1
            while True:
                event = self._queue.get_nowait()
                handler(event)
                handled += 1
        except queue.Empty:
            pass
        return handled


class ChannelOwner(Protocol):
    """A component that issues utterances on a SpeechChannel."""

    def handle_engine_event(self, event: EngineEvent) -> None: ...

    def on_preempted(self, token: str) -> None: ...


class SpeechChannel:
    """Exclusive, process-wide access to one speech engine.

    WHY: Starting narration anywhere must first silence whatever is
    speaking anywhere else. Owners never talk to the engine directly, so
    this rule cannot be bypassed.

    HOW: Tracks the current token and its owner. issue() cancels the
    current utterance, tells a different previous owner it was
    preempted, then speaks with a fresh uuid4 token. deliver() routes an
    event to the owner that issued its token.

    RULES:
    - issue() returns the new token; it is current until END/ERROR for it
      arrives or it is cancelled
    - cancel(token), pause(token), resume(token) act only on the current token
    - A held (paused) utterance that is cancelled gets no further events,
      so its owner is forgotten at cancel time
    - With a pump, engine events are queued and delivered by
      process_pending(); without one they are delivered synchronously
    """

    def __init__(self, engine: SpeechEngine, pump: Optional[EventPump] = None) -> None:
        self._engine = engine
        self._pump = pump
        self._current_token: Optional[str] = None
        self._current_owner: Optional[ChannelOwner] = None
        self._held_token: Optional[str] = None
        self._owners: Dict[str, ChannelOwner] = {}
        engine.set_listener(pump.post if pump is not None else self.deliver)

    @property
    def engine(self) -> SpeechEngine:
        return self._engine

    @property
    def current_token(self) -> Optional[str]:
        return self._current_token

    @property
    def tracked_tokens(self) -> List[str]:
        """Tokens whose END/ERROR is still awaited."""
        return list(self._owners)

    def is_current(self, token: Optional[str]) -> bool:
        return token is not None and token == self._current_token

    def issue(self, owner: ChannelOwner, text: str, voice_id: str, rate: float) -> str:
        """Speak text for owner, superseding any utterance in flight."""
        previous_token = self._current_token
        previous_owner = self._current_owner
        if previous_token is not None:
            self._drop_current()
            self._engine.cancel()
            if previous_owner is not None and previous_owner is not owner:
                logger.debug("Utterance %s preempted by a new speaker", previous_token)
                previous_owner.on_preempted(previous_token)

        token = uuid.uuid4().hex
        self._current_token = token
        self._current_owner = owner
        self._owners[token] = owner
        self._engine.speak(token, text, voice_id, rate)
        return token

    def cancel(self, token: Optional[str]) -> None:
        if not self.is_current(token):
            return
        self._drop_current()
        self._engine.cancel()

    def pause(self, token: Optional[str]) -> None:
        if self.is_current(token):
            self._engine.pause()

    def resume(self, token: Optional[str]) -> None:
        """Continue a held utterance where the engine supports it.

        The narration controller restarts a held section through issue()
        instead; this is for owners that want the engine's own resume.
        """
        if self.is_current(token):
            self._engine.resume()

    def release(self, owner: ChannelOwner) -> None:
        """Cancel owner's utterance (if current) and forget its tokens."""
        if self._current_owner is owner:
            self.cancel(self._current_token)
        for token in [t for t, o in self._owners.items() if o is owner]:
            del self._owners[token]

    def deliver(self, event: EngineEvent) -> None:
        """Route one engine event to the owner that issued its token."""
        if event.kind in (EngineEventKind.END, EngineEventKind.ERROR):
            owner = self._owners.pop(event.token, None)
            if self.is_current(event.token):
                self._current_token = None
                self._current_owner = None
            if self._held_token == event.token:
                self._held_token = None
        elif event.kind == EngineEventKind.PAUSE and not self.is_current(event.token):
            # Acknowledged after a cancel: the held utterance is already dropped.
            owner = self._owners.pop(event.token, None)
            if owner is not None:
                logger.debug("Forgetting utterance %s held after cancel", event.token)
            return
        else:
            owner = self._owners.get(event.token)
            if event.kind == EngineEventKind.PAUSE:
                self._held_token = event.token
            elif event.kind == EngineEventKind.RESUME and self._held_token == event.token:
                self._held_token = None

        if owner is None:
            logger.debug("Dropping %s event for unknown utterance %s", event.kind.value, event.token)
            return
        owner.handle_engine_event(event)

    def process_pending(self, timeout: float = 0.0) -> int:
        """Deliver queued engine events (pump mode). Returns the count."""
        if self._pump is None:
            return 0
        return self._pump.drain(self.deliver, timeout=timeout)

    def _drop_current(self) -> None:
        token = self._current_token
        self._current_token = None
        self._current_owner = None
        if token is not None and token == self._held_token:
            self._held_token = None
            self._owners.pop(token, None)
