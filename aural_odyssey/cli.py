"""Command-line interface for Aural Odyssey.

WHY: Users want to hear the first chapter of a book, ask questions about
a book, or chat with the assistant straight from the terminal, without
opening the desktop window.

HOW: argparse with one subcommand per feature. Model calls run through
asyncio.run(); narration runs the PlaybackController on the main thread
and pumps pyttsx3 events from the worker thread until playback goes idle.
Status messages go to stderr; results (sections, answers, replies) go to
stdout.

RULES:
- narrate FILE: extract the first chapter (or --raw for .txt as-is) and
  narrate it section by section; --section N starts at section N (1-based);
  --dry-run prints the sections instead of speaking
- ask FILE QUESTION: print the model's answer about the book
- chat: interactive conversation; --speak reads each reply aloud
- voices: list installed voices, marking the one narration would use
- settings: save default voice and speed
- Ctrl+C during narration stops playback and exits with status 130
- Python 3.9 compatible: no match/case, no X | Y unions at runtime
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from aural_odyssey.ai.client import GeminiAPIError, GeminiClient
from aural_odyssey.ai.flows import analyze_book_content, chat_with_bot, extract_first_chapter
from aural_odyssey.ai.models import ChatMessage
from aural_odyssey.config import PLAYBACK_SPEED_OPTIONS
from aural_odyssey.documents import BookDocument, UnsupportedBookFormatError, load_book
from aural_odyssey.narration.chunker import section_label, split_into_chunks
from aural_odyssey.narration.controller import NarrationNotice, PlaybackController
from aural_odyssey.narration.engine import EventPump, SpeechChannel, SpeechEngine
from aural_odyssey.narration.message_reader import ChatMessageReader
from aural_odyssey.narration.voices import NarrationVoiceSettings, parse_playback_rate
from aural_odyssey.settings import NarrationDefaults, SettingsStore

_PUMP_TIMEOUT_S = 0.1


def _status(msg: str) -> None:
    """Print a status message to stderr (stdout stays pipeable)."""
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _make_engine() -> SpeechEngine:
    """Create the host speech engine (pyttsx3)."""
    from aural_odyssey.narration.pyttsx3_engine import Pyttsx3Engine

    return Pyttsx3Engine()


def _voice_settings(
    engine: SpeechEngine,
    store: SettingsStore,
    voice_id: Optional[str] = None,
    speed: Optional[str] = None,
) -> NarrationVoiceSettings:
    """Build the voice resolver from saved defaults plus CLI overrides."""
    defaults = store.load()
    settings = NarrationVoiceSettings(
        voices=engine.list_voices(),
        voice_id=voice_id or defaults.default_voice_id,
        playback_speed=speed or defaults.default_playback_speed,
    )
    return settings


def _load_document(path_str: str) -> BookDocument:
    path = Path(path_str).resolve()
    if not path.is_file():
        _fail("File not found: {}".format(path))
    try:
        return load_book(path)
    except UnsupportedBookFormatError as exc:
        _fail(str(exc))
        raise


# ---------------------------------------------------------------------------
# narrate
# ---------------------------------------------------------------------------


async def _extract_chapter(document: BookDocument) -> str:
    async with GeminiClient() as client:
        _status("Extracting the first chapter of {}...".format(document.filename))
        extraction = await extract_first_chapter(client, document)
    note = extraction.processing_note(document.filename)
    if note:
        _fail(note)
    _status("{} processed. First chapter available.".format(document.filename))
    return extraction.first_chapter_text


def _chapter_text(args: argparse.Namespace, document: BookDocument) -> str:
    if args.raw:
        if document.mime_type != "text/plain":
            _fail("--raw only works with .txt files.")
        return document.data.decode("utf-8", errors="replace")
    try:
        return asyncio.run(_extract_chapter(document))
    except ValueError as exc:
        _fail(str(exc))
        raise


def run_narration(
    controller: PlaybackController,
    channel: SpeechChannel,
    start_index: int = 0,
) -> None:
    """Start narration at start_index and pump events until playback is idle."""
    if start_index:
        started = controller.seek(start_index)
    else:
        started = controller.play()
    if not started:
        _fail("Nothing to narrate (no sections or no voice available).")

    try:
        while controller.is_active:
            channel.process_pending(timeout=_PUMP_TIMEOUT_S)
    except KeyboardInterrupt:
        controller.stop(True)
        channel.process_pending()
        sys.exit(130)


def _cmd_narrate(args: argparse.Namespace) -> None:
    document = _load_document(args.file)
    chunks = split_into_chunks(_chapter_text(args, document))
    if not chunks:
        _fail("Could not extract the first chapter or the chapter is empty.")

    if args.section < 1 or args.section > len(chunks):
        _fail("--section must be between 1 and {}.".format(len(chunks)))

    if args.dry_run:
        for i, chunk in enumerate(chunks):
            print(section_label(i, chunk))
        return

    engine = _make_engine()
    try:
        pump = EventPump()
        channel = SpeechChannel(engine, pump)
        settings = _voice_settings(engine, SettingsStore(), args.voice, args.speed)

        last_highlight = [-1]

        def on_change() -> None:
            index = controller.highlight_index
            if index != last_highlight[0] and index >= 0:
                _status(section_label(index, chunks[index]))
            last_highlight[0] = index

        def on_notice(notice: NarrationNotice) -> None:
            _status("{}: {}".format(notice.title, notice.message))

        controller = PlaybackController(channel, settings, on_notice=on_notice, on_change=on_change)
        controller.load(chunks)
        _status("Narrating {} section(s)... (Ctrl+C to stop)".format(len(chunks)))
        run_narration(controller, channel, args.section - 1)
        controller.close()
    finally:
        engine.close()


# ---------------------------------------------------------------------------
# ask
# ---------------------------------------------------------------------------


async def _ask(document: BookDocument, question: str) -> str:
    async with GeminiClient() as client:
        _status("Analyzing {}...".format(document.filename))
        answer = await analyze_book_content(client, document, question)
    return answer.answer


def _cmd_ask(args: argparse.Namespace) -> None:
    if not args.question.strip():
        _fail("Please enter your question about the book.")
    document = _load_document(args.file)
    try:
        print(asyncio.run(_ask(document, args.question.strip())))
    except ValueError as exc:
        _fail(str(exc))


# ---------------------------------------------------------------------------
# chat
# ---------------------------------------------------------------------------


async def _chat_turn(message: str, history: List[ChatMessage]) -> str:
    async with GeminiClient() as client:
        reply = await chat_with_bot(client, message, history)
    return reply.response


def _speak_and_wait(reader: ChatMessageReader, channel: SpeechChannel, message_id: str, text: str) -> None:
    if not reader.toggle(message_id, text):
        return
    try:
        while reader.speaking_id == message_id:
            channel.process_pending(timeout=_PUMP_TIMEOUT_S)
    except KeyboardInterrupt:
        reader.stop()


def _cmd_chat(args: argparse.Namespace) -> None:
    history: List[ChatMessage] = []
    reader: Optional[ChatMessageReader] = None
    channel: Optional[SpeechChannel] = None
    engine: Optional[SpeechEngine] = None

    if args.speak:
        engine = _make_engine()
        channel = SpeechChannel(engine, EventPump())
        settings = _voice_settings(engine, SettingsStore())
        reader = ChatMessageReader(
            channel,
            settings,
            on_warning=lambda title, msg: _status("{}: {}".format(title, msg)),
        )

    _status("Chat with Aural Odyssey (empty line or Ctrl+D to quit).")
    try:
        turn = 0
        while True:
            try:
                message = input("You: ").strip()
            except EOFError:
                break
            if not message:
                break
            try:
                reply = asyncio.run(_chat_turn(message, history))
            except GeminiAPIError as exc:
                _status("Chatbot Error: {}".format(exc.message))
                continue
            except ValueError as exc:
                _fail(str(exc))
            print("AI: {}".format(reply), flush=True)
            history.append(ChatMessage(role="user", content=message))
            history.append(ChatMessage(role="model", content=reply))
            turn += 1
            if reader is not None and channel is not None:
                _speak_and_wait(reader, channel, "reply-{}".format(turn), reply)
    except KeyboardInterrupt:
        _status("")
    finally:
        if engine is not None:
            engine.close()


# ---------------------------------------------------------------------------
# voices / settings
# ---------------------------------------------------------------------------


def _cmd_voices(args: argparse.Namespace) -> None:
    engine = _make_engine()
    try:
        settings = _voice_settings(engine, SettingsStore())
        voices = settings.voices
        if not voices:
            _status("No voices available.")
            return
        for voice in voices:
            marker = "*" if voice.id == settings.voice_id else " "
            print("{} {}\t{}".format(marker, voice.id, voice.label))
    finally:
        engine.close()


def _cmd_settings(args: argparse.Namespace) -> None:
    store = SettingsStore()
    current = store.load()
    if args.voice is None and args.speed is None:
        print("default_voice_id: {}".format(current.default_voice_id or "(automatic)"))
        print("default_playback_speed: {}".format(current.default_playback_speed))
        return

    speed = current.default_playback_speed
    if args.speed is not None:
        if parse_playback_rate(args.speed) != float(args.speed):
            _fail("Speed must be between 0.1 and 10.")
        speed = args.speed
    updated = NarrationDefaults(
        default_voice_id=args.voice if args.voice is not None else current.default_voice_id,
        default_playback_speed=speed,
    )
    store.save(updated)
    _status("Your default voice and speed preferences have been updated.")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _speed_arg(value: str) -> str:
    try:
        float(value)
    except ValueError:
        raise argparse.ArgumentTypeError("invalid speed: {!r}".format(value))
    return value


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable — tests can inspect the parser without touching the model
    or the speech engine.
    """
    parser = argparse.ArgumentParser(
        prog="aural_odyssey",
        description="Listen to books, ask questions about them, and chat with "
                    "the Aural Odyssey assistant.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    speeds = ", ".join(value for value, _ in PLAYBACK_SPEED_OPTIONS)

    narrate = sub.add_parser("narrate", help="Narrate the first chapter of a book.")
    narrate.add_argument("file", help="Book file (.txt or .pdf).")
    narrate.add_argument(
        "--section", type=int, default=1,
        help="1-based section to start from (default: %(default)s).",
    )
    narrate.add_argument("--voice", default=None, help="Voice id (see 'voices').")
    narrate.add_argument(
        "--speed", type=_speed_arg, default=None,
        help="Playback speed multiplier, e.g. {} (default: saved setting).".format(speeds),
    )
    narrate.add_argument(
        "--raw", action="store_true",
        help="Narrate a .txt file as-is instead of extracting its first chapter.",
    )
    narrate.add_argument(
        "--dry-run", action="store_true",
        help="Print the narration sections instead of speaking them.",
    )
    narrate.set_defaults(func=_cmd_narrate)

    ask = sub.add_parser("ask", help="Ask a question about a book.")
    ask.add_argument("file", help="Book file (.txt or .pdf; scanned PDFs are OCR'd).")
    ask.add_argument("question", help="Your question about the book.")
    ask.set_defaults(func=_cmd_ask)

    chat = sub.add_parser("chat", help="Chat with the assistant (Hindi by default).")
    chat.add_argument("--speak", action="store_true", help="Read each reply aloud.")
    chat.set_defaults(func=_cmd_chat)

    voices = sub.add_parser("voices", help="List installed narration voices.")
    voices.set_defaults(func=_cmd_voices)

    settings = sub.add_parser("settings", help="Show or save narration defaults.")
    settings.add_argument("--voice", default=None, help="Default voice id.")
    settings.add_argument("--speed", type=_speed_arg, default=None, help="Default playback speed.")
    settings.set_defaults(func=_cmd_settings)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``python -m aural_odyssey`` and the console script.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
