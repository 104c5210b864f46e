"""pyttsx3-backed host speech engine.

WHY: Narration needs a real, offline text-to-speech device on the
desktop. pyttsx3 wraps the platform engines (SAPI5, NSSpeechSynthesizer,
eSpeak) behind one API, but its event loop must be driven from a single
thread and it has no pause primitive.

HOW: Pyttsx3Engine owns a worker thread that creates the pyttsx3 engine,
runs its external loop (startLoop(False) + iterate()), and executes
commands posted to a queue by the owning thread. pyttsx3 callbacks
(started-utterance, finished-utterance, error) are translated into
EngineEvent objects tagged with the utterance token, which doubles as the
pyttsx3 utterance name.

RULES:
- All pyttsx3 calls happen on the worker thread
- speak() sets voice and rate per utterance (rate = base WPM × multiplier)
- A finished-utterance with completed=False is reported as "interrupted"
- pause() stops the utterance and reports PAUSE instead of interrupted
- resume() re-speaks a held utterance from its start and reports RESUME
- Voice languages are normalised to lowercase dash tags ("en-gb")
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import pyttsx3

from aural_odyssey.config import PYTTSX3_BASE_RATE_WPM
from aural_odyssey.narration.engine import EngineEventKind, SpeechEngine
from aural_odyssey.narration.voices import Voice

logger = logging.getLogger(__name__)

_LOOP_INTERVAL_S = 0.05
_VOICE_LIST_TIMEOUT_S = 10.0


def normalize_language(raw: Any) -> str:
    """Turn a pyttsx3 voice language entry into a tag like ``"en-gb"``.

    eSpeak reports languages as bytes prefixed with a priority byte
    (``b'\\x05en-gb'``); SAPI5 and macOS report strings such as
    ``"en_US"``.
    """
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        raw = raw.decode("latin-1", errors="ignore")
    text = "".join(ch for ch in str(raw) if ch.isprintable()).strip()
    return text.replace("_", "-").lower()


def voice_from_pyttsx3(voice: Any) -> Voice:
    """Convert a pyttsx3 Voice object into our Voice dataclass."""
    languages = getattr(voice, "languages", None) or []
    lang = normalize_language(languages[0]) if languages else ""
    name = getattr(voice, "name", None) or voice.id
    return Voice(id=str(voice.id), name=str(name), lang=lang)


class Pyttsx3Engine(SpeechEngine):
    """SpeechEngine adapter for pyttsx3, driven from a worker thread.

    WHY: The playback controller needs an engine that returns from
    speak()/cancel() immediately and reports progress asynchronously;
    pyttsx3's blocking runAndWait() does not fit.

    HOW: Commands are (name, args) tuples on a queue. The worker applies
    them between iterate() calls so pyttsx3 is only ever touched from one
    thread. Events are emitted from the worker; pair this engine with an
    EventPump so the owning thread applies them.

    RULES:
    - The worker starts lazily on first use and stops on close()
    - init_driver is injectable for tests (defaults to pyttsx3.init)
    """

    def __init__(
        self,
        base_rate_wpm: int = PYTTSX3_BASE_RATE_WPM,
        init_driver: Callable[[], Any] = pyttsx3.init,
    ) -> None:
        super().__init__()
        self._base_rate_wpm = base_rate_wpm
        self._init_driver = init_driver
        self._commands: "queue.Queue[Tuple[str, tuple]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()
        self._start_lock = threading.Lock()

        # Worker-thread state
        self._driver: Any = None
        self._current: Optional[str] = None
        self._utterances: Dict[str, Tuple[str, str, float]] = {}
        self._held: Optional[str] = None
        self._pausing: Optional[str] = None

    # ------------------------------------------------------------------
    # SpeechEngine interface (called from the owning thread)
    # ------------------------------------------------------------------

    def speak(self, token: str, text: str, voice_id: str, rate: float) -> None:
        self._post("speak", token, text, voice_id, rate)

    def cancel(self) -> None:
        self._post("cancel")

    def pause(self) -> None:
        self._post("pause")

    def resume(self) -> None:
        self._post("resume")

    def list_voices(self) -> List[Voice]:
        """Ask the worker for the installed voices and wait for the answer."""
        reply: "queue.Queue[List[Voice]]" = queue.Queue(maxsize=1)
        self._post("list_voices", reply)
        try:
            return reply.get(timeout=_VOICE_LIST_TIMEOUT_S)
        except queue.Empty:
            logger.warning("Timed out listing pyttsx3 voices")
            return []

    def close(self) -> None:
        if self._thread is None:
            return
        self._commands.put(("close", ()))
        self._thread.join(timeout=5.0)
        self._thread = None

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _post(self, name: str, *args: Any) -> None:
        self._ensure_worker()
        self._commands.put((name, args))

    def _ensure_worker(self) -> None:
        with self._start_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._running.clear()
            self._thread = threading.Thread(
                target=self._run, name="pyttsx3-engine", daemon=True
            )
            self._thread.start()
        self._running.wait(timeout=_VOICE_LIST_TIMEOUT_S)

    def _run(self) -> None:
        self._setup_driver()
        self._driver.startLoop(False)
        self._running.set()
        try:
            while True:
                try:
                    name, args = self._commands.get_nowait()
                except queue.Empty:
                    self._driver.iterate()
                    time.sleep(_LOOP_INTERVAL_S)
                    continue
                if name == "close":
                    break
                self._handle_command(name, args)
        finally:
            self._driver.endLoop()
            logger.debug("pyttsx3 worker stopped")

    def _setup_driver(self) -> None:
        self._driver = self._init_driver()
        self._driver.connect("started-utterance", self._on_started)
        self._driver.connect("finished-utterance", self._on_finished)
        self._driver.connect("error", self._on_error)

    def _handle_command(self, name: str, args: tuple) -> None:
        if name == "speak":
            self._do_speak(*args)
        elif name == "cancel":
            if self._held is not None:
                self._utterances.pop(self._held, None)
                self._held = None
            # A pending pause becomes a plain interruption.
            self._pausing = None
            if self._current is not None:
                self._driver.stop()
        elif name == "pause":
            if self._current is not None:
                self._pausing = self._current
                self._driver.stop()
        elif name == "resume":
            # Replays the held utterance from its start; pyttsx3 cannot continue mid-sentence.
            token = self._held
            if token is not None and token in self._utterances:
                self._held = None
                self._emit(EngineEventKind.RESUME, token)
                text, voice_id, rate = self._utterances[token]
                self._do_speak(token, text, voice_id, rate)
        elif name == "list_voices":
            reply = args[0]
            voices = [voice_from_pyttsx3(v) for v in self._driver.getProperty("voices")]
            reply.put(voices)
        else:
            logger.warning("Unknown pyttsx3 engine command: %s", name)

    def _do_speak(self, token: str, text: str, voice_id: str, rate: float) -> None:
        self._utterances[token] = (text, voice_id, rate)
        self._held = None
        if voice_id:
            self._driver.setProperty("voice", voice_id)
        self._driver.setProperty("rate", int(round(self._base_rate_wpm * rate)))
        self._current = token
        self._driver.say(text, token)

    # ------------------------------------------------------------------
    # pyttsx3 callbacks (worker thread)
    # ------------------------------------------------------------------

    def _on_started(self, name: str) -> None:
        self._emit(EngineEventKind.START, name)

    def _on_finished(self, name: str, completed: bool) -> None:
        if self._current == name:
            self._current = None

        if self._pausing == name:
            self._pausing = None
            self._held = name
            self._emit(EngineEventKind.PAUSE, name)
            return

        self._utterances.pop(name, None)
        if completed:
            self._emit(EngineEventKind.END, name)
        else:
            self._emit(EngineEventKind.ERROR, name, "interrupted")

    def _on_error(self, name: str, exception: Exception) -> None:
        logger.warning("pyttsx3 error for utterance %s: %s", name, exception)
        if self._current == name:
            self._current = None
        self._utterances.pop(name, None)
        self._emit(EngineEventKind.ERROR, name, "synthesis-failed")
