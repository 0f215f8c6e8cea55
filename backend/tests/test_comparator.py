"""Tests for output comparison rules."""

from backend.gauntlet.comparator import compare_output


def test_identical_outputs_match():
    for text in ["", "42", "a\nb", "[1, 2]", "  spaced  out  "]:
        assert compare_output(text, text)


def test_list_outputs_compare_textually():
    assert compare_output("[1, 2, 3]", "[1, 2, 3]")
    assert compare_output("['a', 'b']", '["a", "b"]')
    # spacing differences are not forgiven inside brackets
    assert not compare_output("[1,2]", "[1, 2]")


def test_multiline_ignores_indentation_and_blank_lines():
    assert compare_output("a\n\n  b  \n", "a\nb")
    assert not compare_output("a\nb\nc", "a\nb")
    assert not compare_output("a\nc", "a\nb")


def test_single_line_collapses_whitespace():
    assert compare_output("  hello   world ", "hello world")
    assert not compare_output("Hello", "hello")
