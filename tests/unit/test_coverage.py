"""Unit tests for the source coverage heuristic

Tests cover:
- Vacuous coverage when the source has no qualifying tokens
- Token length filter and case folding
- Half-up rounding
- Bounds and the warning threshold
"""

from __future__ import annotations

from notecraft.notes.coverage import coverage_report, estimate_coverage, tokenize


def test_tokenize_keeps_only_long_lowercased_tokens():
    assert tokenize("The QUICK brown-fox, jumps!! over 12345 dogs") == {
        "quick",
        "brown",
        "jumps",
        "12345",
    }


def test_tokenize_empty():
    assert tokenize("") == set()
    assert tokenize(None) == set()


def test_source_without_qualifying_tokens_is_fully_covered():
    assert estimate_coverage("a an it the cat", "") == 100
    assert estimate_coverage("", "whatever notes") == 100


def test_identical_text_is_fully_covered():
    text = "Photosynthesis converts light energy into chemical energy."
    assert estimate_coverage(text, text) == 100


def test_partial_overlap():
    source = "photosynthesis converts light energy"
    notes = "PHOTOSYNTHESIS needs light"
    assert estimate_coverage(source, notes) == 50


def test_no_overlap_is_zero():
    assert estimate_coverage("mitochondria produce adenosine", "nothing relevant here") == 0


def test_rounds_half_up():
    source = "apple bread chair delta eagle flame grape house"
    # 1 of 8 tokens -> 12.5
    assert estimate_coverage(source, "apple") == 13
    # 3 of 8 tokens -> 37.5
    assert estimate_coverage(source, "apple bread chair") == 38


def test_non_ascii_source_counts_only_ascii_words():
    assert estimate_coverage("光合作用は植物の重要な過程です", "") == 100
    assert estimate_coverage("光合作用 photosynthesis", "photosynthesis") == 100


def test_coverage_report_warning_threshold():
    source = "apple bread chair delta eagle flame grape house"

    low = coverage_report(source, "apple bread")
    assert low.score == 25
    assert low.warning is True

    high = coverage_report(source, source)
    assert high.score == 100
    assert high.warning is False

    assert coverage_report(source, "apple bread", threshold=20).warning is False
