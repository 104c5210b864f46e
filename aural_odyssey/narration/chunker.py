"""Split narrative text into playable sections.

WHY: The host speech engine narrates one utterance at a time, and long
utterances are fragile (engines reject or truncate very long text). The
narration controller also needs natural units to highlight and seek to.
Paragraphs separated by blank lines are those units.

HOW: One regex split on runs of blank lines, then trim and filter.

RULES:
- A blank line is a whitespace-only line; one or more of them separate chunks
- Every chunk is trimmed; chunks that are empty after trimming are dropped
- Document order is preserved
- Pure and deterministic; empty or whitespace-only input yields []
"""

from __future__ import annotations

import re

_BLANK_LINE_RUN = re.compile(r"\n[^\S\n]*\n\s*")


def split_into_chunks(text: str) -> list[str]:
    """Split text into trimmed, non-empty paragraph chunks.

    Example:
        >>> split_into_chunks("Para one.\\n\\nPara two.\\n\\n\\nPara three.")
        ['Para one.', 'Para two.', 'Para three.']
    """
    if not text:
        return []
    normalized = text.replace("\r\n", "\n")
    parts = _BLANK_LINE_RUN.split(normalized)
    return [part.strip() for part in parts if part.strip()]


def section_label(index: int, chunk: str, preview_chars: int = 70) -> str:
    """Return the list label for a chunk, e.g. ``"Section 3: It was a..."``."""
    preview = chunk[:preview_chars]
    if len(chunk) > preview_chars:
        preview += "..."
    return "Section {}: {}".format(index + 1, preview)
