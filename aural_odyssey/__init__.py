"""Aural Odyssey — book narration and reading assistant.

WHY: Readers want to hear a book instead of reading it, ask questions
about it, and chat with an assistant about stories. A hosted language
model handles document understanding; the host text-to-speech engine
handles the voice. This package glues both together and owns the one
piece of real state: the section-by-section narration controller.

HOW: Three layers — AI flows (model client, prompt flows, chat tools),
narration (chunker, playback controller, speech channel, engine
adapters), and surfaces (CLI, HTTP API, desktop GUI). Each layer is
independently testable.

RULES:
- The playback controller is the only component with mutable session state
- All model HTTP calls go through GeminiClient
- All speech goes through a single SpeechChannel per process
"""

__version__ = "0.1.0"
