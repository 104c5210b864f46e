"""Persistent narration defaults (voice and playback speed).

WHY: Users pick a narrator voice and speed once and expect every later
session, in the CLI or the desktop app, to start with them.

HOW: A small JSON file at SETTINGS_PATH holding two keys. SettingsStore
reads it leniently (missing or corrupt file → defaults) and writes it
atomically via a temp file and rename. The payload is validated with
jsonschema before it is trusted.

RULES:
- Keys: default_voice_id (str or null), default_playback_speed (str)
- A playback speed that is not a valid rate falls back to "1.0"
- Writes create the parent directory if needed
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

import jsonschema

from aural_odyssey.config import DEFAULT_PLAYBACK_SPEED, SETTINGS_PATH
from aural_odyssey.narration.voices import NarrationVoiceSettings, parse_playback_rate

logger = logging.getLogger(__name__)

SETTINGS_SCHEMA = {
    "type": "object",
    "properties": {
        "default_voice_id": {"type": ["string", "null"]},
        "default_playback_speed": {"type": "string"},
    },
    "additionalProperties": True,
}


@dataclass
class NarrationDefaults:
    default_voice_id: Optional[str] = None
    default_playback_speed: str = DEFAULT_PLAYBACK_SPEED


class SettingsStore:
    """Load and save NarrationDefaults as JSON."""

    def __init__(self, path: Path | str = SETTINGS_PATH) -> None:
        self.path = Path(path)

    def load(self) -> NarrationDefaults:
        """Return saved defaults, or fresh defaults if nothing usable is saved."""
        if not self.path.exists():
            return NarrationDefaults()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            jsonschema.validate(data, SETTINGS_SCHEMA)
        except (OSError, json.JSONDecodeError, jsonschema.ValidationError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", self.path, exc)
            return NarrationDefaults()

        speed = data.get("default_playback_speed", DEFAULT_PLAYBACK_SPEED)
        if not _is_number(speed) or parse_playback_rate(speed) != float(speed):
            speed = DEFAULT_PLAYBACK_SPEED
        return NarrationDefaults(
            default_voice_id=data.get("default_voice_id"),
            default_playback_speed=speed,
        )

    def save(self, defaults: NarrationDefaults) -> None:
        payload = asdict(defaults)
        jsonschema.validate(payload, SETTINGS_SCHEMA)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.info("Saved narration defaults to %s", self.path)

    def apply_to(self, voice_settings: NarrationVoiceSettings) -> NarrationDefaults:
        """Load defaults and push them into a live voice resolver."""
        defaults = self.load()
        voice_settings.playback_speed = defaults.default_playback_speed
        if defaults.default_voice_id:
            voice_settings.voice_id = defaults.default_voice_id
            voice_settings.set_voices(voice_settings.voices)
        return defaults


def _is_number(value: str) -> bool:
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True
