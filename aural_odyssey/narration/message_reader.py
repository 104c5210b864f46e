"""Read single chat messages aloud over the shared speech channel.

WHY: Chat replies have a speaker button. Pressing it speaks that message,
pressing it again stops it, and starting narration elsewhere must silence
it. Unlike narration there is no sequence, no pause, and no auto-advance.

HOW: ChatMessageReader is a second SpeechChannel owner. It remembers
which message id is speaking and the token it was issued under.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from aural_odyssey.narration.engine import EngineEvent, EngineEventKind, SpeechChannel
from aural_odyssey.narration.errors import is_cancellation_noise
from aural_odyssey.narration.voices import VoiceResolver

logger = logging.getLogger(__name__)

WarningCallback = Callable[[str, str], None]


class ChatMessageReader:
    """Speaks one chat message at a time; a repeat request toggles it off."""

    def __init__(
        self,
        channel: SpeechChannel,
        resolver: VoiceResolver,
        on_warning: Optional[WarningCallback] = None,
    ) -> None:
        self._channel = channel
        self._resolver = resolver
        self._on_warning = on_warning
        self._speaking_id: Optional[str] = None
        self._token: Optional[str] = None

    @property
    def speaking_id(self) -> Optional[str]:
        """Id of the message currently being read, or None."""
        return self._speaking_id

    def toggle(self, message_id: str, text: str) -> bool:
        """Speak message_id, or stop it if it is already speaking.

        Returns True if the message is now speaking.
        """
        if self._token is not None:
            was_same = self._speaking_id == message_id
            self.stop()
            if was_same:
                return False

        selection = self._resolver.resolve()
        if selection is None or not text.strip():
            return False

        self._speaking_id = message_id
        self._token = None
        self._token = self._channel.issue(self, text, selection.voice_id, selection.rate)
        return True

    def stop(self) -> None:
        if self._token is not None:
            self._channel.cancel(self._token)
        self._token = None
        self._speaking_id = None

    def handle_engine_event(self, event: EngineEvent) -> None:
        if self._token is None or event.token != self._token:
            return
        if event.kind == EngineEventKind.END:
            self._token = None
            self._speaking_id = None
        elif event.kind == EngineEventKind.ERROR:
            self._token = None
            self._speaking_id = None
            if is_cancellation_noise(event.reason):
                return
            logger.warning("Could not play chat message: %s", event.reason)
            if self._on_warning is not None:
                self._on_warning(
                    "Speech Error",
                    "Could not play bot response: {}".format(event.reason),
                )

    def on_preempted(self, token: str) -> None:
        if token == self._token:
            self._token = None
            self._speaking_id = None
