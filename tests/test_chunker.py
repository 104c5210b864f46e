"""Tests for paragraph chunking and section labels."""

from __future__ import annotations

import pytest

from aural_odyssey.narration.chunker import section_label, split_into_chunks


class TestSplitIntoChunks:
    """Blank-line paragraph splitting."""

    def test_basic_paragraphs(self):
        text = "Para one.\n\nPara two.\n\n\nPara three."
        assert split_into_chunks(text) == ["Para one.", "Para two.", "Para three."]

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\n", " \t\n \n"])
    def test_empty_or_whitespace_yields_nothing(self, text):
        assert split_into_chunks(text) == []

    def test_single_newline_stays_inside_chunk(self):
        text = "Line one\nline two\n\nNext paragraph"
        assert split_into_chunks(text) == ["Line one\nline two", "Next paragraph"]

    def test_whitespace_only_separator_lines(self):
        text = "Alpha\n   \t\nBeta\n \n \nGamma"
        assert split_into_chunks(text) == ["Alpha", "Beta", "Gamma"]

    @pytest.mark.parametrize("blank", ["\xa0", "\u3000", " \xa0\t"])
    def test_unicode_whitespace_separator_lines(self, blank):
        text = "Para one.\n{}\nPara two.".format(blank)
        assert split_into_chunks(text) == ["Para one.", "Para two."]

    def test_chunks_are_trimmed(self):
        text = "   Leading space\n\n  trailing too   \n"
        assert split_into_chunks(text) == ["Leading space", "trailing too"]

    def test_windows_line_endings(self):
        text = "One\r\n\r\nTwo\r\n\r\nThree"
        assert split_into_chunks(text) == ["One", "Two", "Three"]

    def test_no_blank_lines_is_one_chunk(self):
        assert split_into_chunks("Just one paragraph.") == ["Just one paragraph."]

    def test_concatenation_preserves_words_in_order(self):
        text = "The quick brown\nfox.\n\n\n  Jumps over\n\nthe lazy dog.  "
        chunks = split_into_chunks(text)
        assert " ".join(chunks).split() == text.split()


class TestSectionLabel:
    """List labels shown next to each section."""

    def test_short_chunk_has_no_ellipsis(self):
        assert section_label(0, "Short text.") == "Section 1: Short text."

    def test_long_chunk_is_truncated(self):
        chunk = "x" * 100
        label = section_label(2, chunk)
        assert label == "Section 3: " + "x" * 70 + "..."

    def test_exact_length_is_not_truncated(self):
        chunk = "y" * 70
        assert section_label(4, chunk).endswith("y" * 70)

    def test_custom_preview_length(self):
        assert section_label(0, "abcdefgh", preview_chars=3) == "Section 1: abc..."
