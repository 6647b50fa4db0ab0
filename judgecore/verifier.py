from typing import Optional


def normalize_output(output: Optional[str]) -> str:
    """Unify line endings and trim surrounding whitespace"""
    if not output:
        return ""
    return output.replace("\r\n", "\n").replace("\r", "\n").strip()


def verify(actual: Optional[str], expected: Optional[str]) -> bool:
    """Compare outputs ignoring line-ending style and per-line outer whitespace.

    Missing or extra lines never match, neither do reordered lines.
    """
    normalized_actual = normalize_output(actual)
    normalized_expected = normalize_output(expected)

    if normalized_actual == normalized_expected:
        return True

    actual_lines = normalized_actual.split("\n")
    expected_lines = normalized_expected.split("\n")
    if len(actual_lines) != len(expected_lines):
        return False

    return all(a.strip() == e.strip() for a, e in zip(actual_lines, expected_lines))
