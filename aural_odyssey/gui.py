"""Tkinter desktop storyteller for Aural Odyssey.

WHY: Listeners want a point-and-click way to pick a book, hear its first
chapter, and jump around in it, without knowing about models, APIs, or
command lines.

HOW: A single StorytellerApp class builds one window: book selection and
a Process button, the extracted chapter, a clickable section list, the
Listen/Pause/Resume and Stop buttons, and voice/speed pickers. The async
model call runs in a background thread via asyncio.run() and reports back
through a status queue polled with .after(). Speech engine events arrive
on the pyttsx3 worker thread and are pumped into the PlaybackController
on the main thread by a second .after() loop.

RULES:
- All model work runs in a background thread (never on the main thread)
- The status queue is the only channel from the worker thread to the UI
- tkinter widgets and the PlaybackController are only touched on the main thread
- The API key is checked on startup; a setup prompt appears if it is missing
- Selecting a section starts narrating it; changing voice or speed applies
  from the next section
"""

from __future__ import annotations

import asyncio
import logging
import os
import queue
import threading
import tkinter as tk
from pathlib import Path
from tkinter import filedialog, messagebox, ttk
from typing import List, Optional

from aural_odyssey.ai.client import GeminiClient
from aural_odyssey.ai.flows import extract_first_chapter
from aural_odyssey.config import PLAYBACK_SPEED_OPTIONS, SUPPORTED_BOOK_FORMATS, load_api_key
from aural_odyssey.documents import UnsupportedBookFormatError, load_book
from aural_odyssey.narration.chunker import section_label, split_into_chunks
from aural_odyssey.narration.controller import (
    NarrationNotice,
    NoticeKind,
    PlaybackController,
    PlaybackPhase,
)
from aural_odyssey.narration.engine import EventPump, SpeechChannel, SpeechEngine
from aural_odyssey.narration.voices import NarrationVoiceSettings
from aural_odyssey.settings import NarrationDefaults, SettingsStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_WINDOW_TITLE = "Aural Odyssey - Storyteller"
_WINDOW_MIN_WIDTH = 720
_WINDOW_MIN_HEIGHT = 640
_PAD = 8

_SPEECH_POLL_MS = 50
_STATUS_POLL_MS = 100

# Status message types
_STATUS_MSG = "status"
_DONE_MSG = "done"
_ERROR_MSG = "error"


class StorytellerApp:
    """Main tkinter application for the storyteller.

    RULES:
    - Background thread communicates via self._status_queue
    - Speech events are drained every 50ms for the lifetime of the window
    - Closing the window stops narration and shuts the engine down
    """

    def __init__(
        self,
        root: tk.Tk,
        engine: SpeechEngine,
        settings_store: Optional[SettingsStore] = None,
    ) -> None:
        self._root = root
        self._root.title(_WINDOW_TITLE)
        self._root.minsize(_WINDOW_MIN_WIDTH, _WINDOW_MIN_HEIGHT)

        self._status_queue: queue.Queue = queue.Queue()
        self._worker_thread: Optional[threading.Thread] = None

        self._engine = engine
        self._channel = SpeechChannel(engine, EventPump())
        self._settings_store = settings_store or SettingsStore()
        defaults = self._settings_store.load()
        self._voice_settings = NarrationVoiceSettings(
            voices=engine.list_voices(),
            voice_id=defaults.default_voice_id,
            playback_speed=defaults.default_playback_speed,
        )
        self._controller = PlaybackController(
            self._channel,
            self._voice_settings,
            on_notice=self._on_notice,
            on_change=self._refresh_playback_ui,
        )

        self._input_path: Optional[Path] = None

        self._build_ui()
        self._refresh_playback_ui()

        self._root.protocol("WM_DELETE_WINDOW", self._on_close)
        self._root.after(_SPEECH_POLL_MS, self._pump_speech_events)
        self._root.after(100, self._check_api_key)

    # ------------------------------------------------------------------
    # UI Construction
    # ------------------------------------------------------------------

    def _build_ui(self) -> None:
        main = ttk.Frame(self._root, padding=_PAD)
        main.pack(fill=tk.BOTH, expand=True)

        # --- Book selection ---
        file_frame = ttk.LabelFrame(main, text="Book (.txt or .pdf)", padding=_PAD)
        file_frame.pack(fill=tk.X, pady=(0, _PAD))

        self._file_label = ttk.Label(file_frame, text="No file selected", foreground="gray")
        self._file_label.pack(side=tk.LEFT, fill=tk.X, expand=True)

        self._process_btn = ttk.Button(
            file_frame, text="Process Book", command=self._start_processing, state=tk.DISABLED
        )
        self._process_btn.pack(side=tk.RIGHT, padx=(4, 0))
        self._browse_btn = ttk.Button(file_frame, text="Browse...", command=self._browse_file)
        self._browse_btn.pack(side=tk.RIGHT)

        # --- Voice settings ---
        voice_frame = ttk.LabelFrame(main, text="Voice", padding=_PAD)
        voice_frame.pack(fill=tk.X, pady=(0, _PAD))

        ttk.Label(voice_frame, text="Narrator:").pack(side=tk.LEFT)
        voices = self._voice_settings.voices
        self._voice_combo = ttk.Combobox(
            voice_frame,
            values=[v.label for v in voices],
            state="readonly" if voices else tk.DISABLED,
            width=36,
        )
        for i, voice in enumerate(voices):
            if voice.id == self._voice_settings.voice_id:
                self._voice_combo.current(i)
                break
        self._voice_combo.bind("<<ComboboxSelected>>", self._on_voice_selected)
        self._voice_combo.pack(side=tk.LEFT, padx=(4, 16))

        ttk.Label(voice_frame, text="Speed:").pack(side=tk.LEFT)
        self._speed_combo = ttk.Combobox(
            voice_frame,
            values=[label for _, label in PLAYBACK_SPEED_OPTIONS],
            state="readonly",
            width=14,
        )
        for i, (value, _) in enumerate(PLAYBACK_SPEED_OPTIONS):
            if float(value) == float(self._voice_settings.playback_speed):
                self._speed_combo.current(i)
                break
        self._speed_combo.bind("<<ComboboxSelected>>", self._on_speed_selected)
        self._speed_combo.pack(side=tk.LEFT, padx=(4, 16))

        ttk.Button(voice_frame, text="Save as Default", command=self._save_defaults).pack(
            side=tk.RIGHT
        )

        # --- Chapter and sections ---
        body = ttk.PanedWindow(main, orient=tk.HORIZONTAL)
        body.pack(fill=tk.BOTH, expand=True, pady=(0, _PAD))

        chapter_frame = ttk.LabelFrame(body, text="First Chapter", padding=_PAD)
        self._chapter_text = tk.Text(chapter_frame, wrap=tk.WORD, height=16, state=tk.DISABLED)
        self._chapter_text.pack(fill=tk.BOTH, expand=True)
        body.add(chapter_frame, weight=3)

        sections_frame = ttk.LabelFrame(body, text="Sections", padding=_PAD)
        self._sections_list = tk.Listbox(sections_frame, activestyle="none", exportselection=False)
        self._sections_list.pack(fill=tk.BOTH, expand=True)
        self._sections_list.bind("<<ListboxSelect>>", self._on_section_selected)
        body.add(sections_frame, weight=2)

        # --- Playback controls ---
        controls = ttk.Frame(main)
        controls.pack(fill=tk.X, pady=(0, _PAD))

        self._play_btn = ttk.Button(controls, text="Listen", command=self._toggle_play)
        self._play_btn.pack(side=tk.LEFT)
        self._stop_btn = ttk.Button(controls, text="Stop", command=self._stop)
        self._stop_btn.pack(side=tk.LEFT, padx=(4, 0))
        self._now_label = ttk.Label(controls, text="", foreground="gray")
        self._now_label.pack(side=tk.LEFT, padx=(_PAD, 0))

        # --- Status ---
        status_frame = ttk.LabelFrame(main, text="Status", padding=_PAD)
        status_frame.pack(fill=tk.X)
        self._status_text = tk.Text(status_frame, height=5, state=tk.DISABLED)
        self._status_text.pack(fill=tk.X)

    # ------------------------------------------------------------------
    # API Key Check
    # ------------------------------------------------------------------

    def _check_api_key(self) -> None:
        try:
            load_api_key()
        except ValueError:
            self._show_api_key_dialog()

    def _show_api_key_dialog(self) -> None:
        """Ask for the Gemini API key and store it in .env."""
        dialog = tk.Toplevel(self._root)
        dialog.title("API Key Setup")
        dialog.transient(self._root)
        dialog.grab_set()
        dialog.resizable(False, False)

        frame = ttk.Frame(dialog, padding=16)
        frame.pack(fill=tk.BOTH, expand=True)

        ttk.Label(
            frame,
            text="Gemini API key not configured.",
            font=("TkDefaultFont", 12, "bold"),
        ).pack(anchor=tk.W, pady=(0, 8))
        ttk.Label(frame, text="API Key:").pack(anchor=tk.W)
        key_var = tk.StringVar()
        key_entry = ttk.Entry(frame, textvariable=key_var, width=50, show="*")
        key_entry.pack(fill=tk.X, pady=(0, 12))
        key_entry.focus_set()

        def _save_key() -> None:
            key = key_var.get().strip()
            if not key:
                messagebox.showwarning("Missing Key", "Please enter an API key.", parent=dialog)
                return
            env_path = Path.cwd() / ".env"
            lines: List[str] = []
            found = False
            if env_path.is_file():
                for line in env_path.read_text(encoding="utf-8").splitlines():
                    if line.startswith("GEMINI_API_KEY="):
                        lines.append("GEMINI_API_KEY={}".format(key))
                        found = True
                    else:
                        lines.append(line)
            if not found:
                lines.append("GEMINI_API_KEY={}".format(key))
            env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
            os.environ["GEMINI_API_KEY"] = key
            dialog.destroy()

        ttk.Button(frame, text="Save", command=_save_key).pack(anchor=tk.E)

    # ------------------------------------------------------------------
    # Book selection and processing
    # ------------------------------------------------------------------

    def _browse_file(self) -> None:
        ext_pattern = " ".join("*{}".format(e) for e in sorted(SUPPORTED_BOOK_FORMATS))
        path = filedialog.askopenfilename(
            title="Select Book",
            filetypes=[("Books", ext_pattern), ("All files", "*.*")],
        )
        if not path:
            return
        selected = Path(path)
        if selected.suffix.lower() not in SUPPORTED_BOOK_FORMATS:
            messagebox.showerror("Unsupported File Type", "Please upload a .txt or .pdf file.")
            return
        self._input_path = selected
        self._file_label.configure(text=selected.name, foreground="")
        self._process_btn.configure(state=tk.NORMAL)

    def _start_processing(self) -> None:
        if self._input_path is None:
            messagebox.showwarning("No File Selected", "Please select a file to upload.")
            return
        try:
            load_api_key()
        except ValueError:
            self._show_api_key_dialog()
            return

        self._controller.stop(False)
        self._process_btn.configure(state=tk.DISABLED)
        self._browse_btn.configure(state=tk.DISABLED)
        self._append_status("Processing {}...".format(self._input_path.name))

        self._worker_thread = threading.Thread(
            target=self._run_extraction_thread,
            args=(self._input_path,),
            daemon=True,
        )
        self._worker_thread.start()
        self._poll_status()

    def _run_extraction_thread(self, path: Path) -> None:
        """Load the book and extract its first chapter (background thread).

        RULES:
        - NEVER touch tkinter widgets from this thread
        - All results go through self._status_queue
        """
        try:
            document = load_book(path)
            extraction = asyncio.run(self._extract(document))
        except (UnsupportedBookFormatError, ValueError, OSError) as exc:
            # Missing API key, unreadable or unsupported file
            self._status_queue.put((_ERROR_MSG, str(exc)))
            return
        except Exception as exc:
            logger.exception("Unexpected error processing %s", path)
            self._status_queue.put((_ERROR_MSG, str(exc)))
            return

        note = extraction.processing_note(path.name)
        if note:
            self._status_queue.put((_STATUS_MSG, "Processing Note: {}".format(note)))
        self._status_queue.put((_DONE_MSG, (path.name, extraction.first_chapter_text, note)))

    async def _extract(self, document):  # noqa: ANN001
        async with GeminiClient() as client:
            return await extract_first_chapter(client, document)

    def _poll_status(self) -> None:
        try:
            while True:
                msg_type, msg_data = self._status_queue.get_nowait()

                if msg_type == _STATUS_MSG:
                    self._append_status(msg_data)

                elif msg_type == _DONE_MSG:
                    filename, chapter, note = msg_data
                    self._show_chapter(chapter, usable=note is None)
                    if note is None:
                        self._append_status("{} processed. First chapter available.".format(filename))
                    self._set_idle_state()
                    return

                elif msg_type == _ERROR_MSG:
                    self._append_status("ERROR: {}".format(msg_data))
                    self._set_idle_state()
                    messagebox.showerror(
                        "Processing Error", "Could not process file. {}".format(msg_data)
                    )
                    return

        except queue.Empty:
            pass

        self._root.after(_STATUS_POLL_MS, self._poll_status)

    def _set_idle_state(self) -> None:
        self._browse_btn.configure(state=tk.NORMAL)
        if self._input_path is not None:
            self._process_btn.configure(state=tk.NORMAL)

    def _show_chapter(self, chapter: str, usable: bool) -> None:
        self._chapter_text.configure(state=tk.NORMAL)
        self._chapter_text.delete("1.0", tk.END)
        self._chapter_text.insert(
            tk.END, chapter or "Could not extract the first chapter or the chapter is empty."
        )
        self._chapter_text.configure(state=tk.DISABLED)

        chunks = split_into_chunks(chapter) if usable else []
        self._controller.load(chunks)
        self._sections_list.delete(0, tk.END)
        for i, chunk in enumerate(chunks):
            self._sections_list.insert(tk.END, section_label(i, chunk))

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def _toggle_play(self) -> None:
        self._controller.play()

    def _stop(self) -> None:
        self._controller.stop(True)

    def _on_section_selected(self, event: tk.Event) -> None:  # noqa: ARG002
        selection = self._sections_list.curselection()
        if not selection:
            return
        index = selection[0]
        if index == self._controller.highlight_index:
            return
        self._controller.seek(index)

    def _pump_speech_events(self) -> None:
        self._channel.process_pending()
        self._root.after(_SPEECH_POLL_MS, self._pump_speech_events)

    def _refresh_playback_ui(self) -> None:
        """Mirror controller state into buttons and the section list."""
        if not hasattr(self, "_play_btn"):
            return
        phase = self._controller.phase
        if phase == PlaybackPhase.SPEAKING:
            self._play_btn.configure(text="Pausing..." if self._controller.pause_pending else "Pause")
        elif phase == PlaybackPhase.PAUSED:
            self._play_btn.configure(text="Resume")
        else:
            self._play_btn.configure(text="Listen")

        can_play = self._controller.can_play()
        self._play_btn.configure(state=tk.NORMAL if can_play else tk.DISABLED)
        self._stop_btn.configure(state=tk.NORMAL if self._controller.is_active else tk.DISABLED)

        index = self._controller.highlight_index
        self._sections_list.selection_clear(0, tk.END)
        if index >= 0:
            self._sections_list.selection_set(index)
            self._sections_list.see(index)
            self._now_label.configure(
                text="Section {} of {}".format(index + 1, len(self._controller.chunks))
            )
        else:
            self._now_label.configure(text="")

    def _on_notice(self, notice: NarrationNotice) -> None:
        self._append_status("{}: {}".format(notice.title, notice.message))
        if notice.kind == NoticeKind.WARNING:
            messagebox.showwarning(notice.title, notice.message)

    # ------------------------------------------------------------------
    # Voice settings
    # ------------------------------------------------------------------

    def _on_voice_selected(self, event: tk.Event) -> None:  # noqa: ARG002
        index = self._voice_combo.current()
        voices = self._voice_settings.voices
        if 0 <= index < len(voices):
            self._voice_settings.voice_id = voices[index].id

    def _on_speed_selected(self, event: tk.Event) -> None:  # noqa: ARG002
        index = self._speed_combo.current()
        if 0 <= index < len(PLAYBACK_SPEED_OPTIONS):
            self._voice_settings.playback_speed = PLAYBACK_SPEED_OPTIONS[index][0]

    def _save_defaults(self) -> None:
        self._settings_store.save(NarrationDefaults(
            default_voice_id=self._voice_settings.voice_id,
            default_playback_speed=self._voice_settings.playback_speed,
        ))
        self._append_status("Your default voice and speed preferences have been updated.")

    # ------------------------------------------------------------------
    # Status display and shutdown
    # ------------------------------------------------------------------

    def _append_status(self, text: str) -> None:
        self._status_text.configure(state=tk.NORMAL)
        self._status_text.insert(tk.END, text + "\n")
        self._status_text.see(tk.END)
        self._status_text.configure(state=tk.DISABLED)

    def _on_close(self) -> None:
        self._controller.close()
        self._engine.close()
        self._root.destroy()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Launch the Tkinter storyteller.

    RULES:
    - This function blocks until the window is closed
    - Must be called from the main thread
    """
    from aural_odyssey.narration.pyttsx3_engine import Pyttsx3Engine

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    root = tk.Tk()
    StorytellerApp(root, Pyttsx3Engine())
    root.mainloop()


if __name__ == "__main__":
    main()
