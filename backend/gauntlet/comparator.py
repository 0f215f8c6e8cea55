"""Lenient comparison of program output against an expected answer."""

import re

_WHITESPACE = re.compile(r"\s+")


def compare_output(actual: str, expected: str) -> bool:
    """Return True when `actual` output counts as matching `expected`.

    Both sides are trimmed first. A bracketed expectation such as
    ``[1, 2, 3]`` is compared textually after normalising quotes, so
    ``['a']`` and ``["a"]`` are equal. Multi-line expectations are compared
    line by line ignoring indentation and blank lines. Anything else is
    compared with runs of whitespace collapsed.
    """
    actual = (actual or "").strip()
    expected = (expected or "").strip()

    if expected.startswith("[") and expected.endswith("]"):
        return actual.replace("'", '"') == expected.replace("'", '"')

    if "\n" in expected:
        actual_lines = [line.strip() for line in actual.splitlines() if line.strip()]
        expected_lines = [line.strip() for line in expected.splitlines() if line.strip()]
        return actual_lines == expected_lines

    return _WHITESPACE.sub(" ", actual) == _WHITESPACE.sub(" ", expected)
