"""Unit tests for completion marker detection

Tests cover:
- Marker at the end of the text (with trailing whitespace)
- Marker that is not at the end
- Marker glued to a preceding word
- Stripping, repeated markers and idempotence
"""

from __future__ import annotations

import pytest

from notecraft.notes.marker import is_complete, strip_marker


@pytest.mark.parametrize(
    "text",
    [
        "# Title\n\nSome content\n\nEND_OF_NOTES",
        "Some content\nEND_OF_NOTES\n",
        "Some content\n\nEND_OF_NOTES   \n\n",
        "END_OF_NOTES",
        "last sentence. END_OF_NOTES",
    ],
)
def test_is_complete_when_text_ends_with_marker(text):
    assert is_complete(text) is True


@pytest.mark.parametrize(
    "text",
    [
        "",
        None,
        "Some content without a marker",
        "END_OF_NOTES\n\nbut the notes kept going",
        "Some content\nend_of_notes",
        "Some content\nXEND_OF_NOTES",
        "Some content\nfoo_END_OF_NOTES",
    ],
)
def test_is_complete_false_otherwise(text):
    assert is_complete(text) is False


def test_strip_marker_removes_trailing_marker_and_trims():
    assert strip_marker("# Title\n\nSome content\n\nEND_OF_NOTES") == "# Title\n\nSome content"


def test_strip_marker_removes_repeated_markers():
    assert strip_marker("body\n\nEND_OF_NOTES\nEND_OF_NOTES\n") == "body"


def test_strip_marker_is_idempotent():
    once = strip_marker("  notes body\nEND_OF_NOTES  ")
    assert once == "notes body"
    assert strip_marker(once) == once


def test_strip_marker_leaves_incomplete_text_untouched():
    text = "  still writing...\n"
    assert strip_marker(text) == text


def test_strip_marker_on_marker_only_text():
    assert strip_marker("END_OF_NOTES\n") == ""
    assert strip_marker("") == ""
    assert strip_marker(None) == ""


def test_marker_in_the_middle_is_kept():
    text = "mentions END_OF_NOTES here\nthen more text"
    assert strip_marker(text) == text
