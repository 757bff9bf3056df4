"""Content-safety heuristics: size, binary-looking data, and line repetition.

These flag corrupt or adversarially generated input and are independent of
secret and malicious-pattern detection.
"""

from __future__ import annotations

import re

from sandgate.security.models import SafetyReport

_NON_PRINTABLE = re.compile(r"[\x00-\x08\x0E-\x1F\x7F]")


def is_binary_content(content: str, ratio: float = 0.3) -> bool:
    """Return ``True`` for content with NUL bytes or mostly control characters."""
    if not content:
        return False
    if "\x00" in content:
        return True
    non_printable = len(_NON_PRINTABLE.findall(content))
    return non_printable / len(content) > ratio


def has_excessive_repetition(
    content: str,
    min_unique_ratio: float = 0.1,
    min_lines: int = 10,
) -> bool:
    """Return ``True`` when near-duplicate lines dominate the content."""
    lines = [line.strip() for line in content.split("\n")]
    if len(lines) < min_lines:
        return False
    return len(set(lines)) / len(lines) < min_unique_ratio


def validate_safety(
    content: str,
    *,
    max_size: int = 1_000_000,
    binary_ratio: float = 0.3,
    min_unique_ratio: float = 0.1,
    min_lines: int = 10,
) -> SafetyReport:
    """Check *content* for size, binary, and repetition risks."""
    risks: list[str] = []
    recommendations: list[str] = []

    if len(content) > max_size:
        risks.append(f"Content too large (>{max_size} characters)")
        recommendations.append("Reduce file size or exclude large generated files")

    if is_binary_content(content, binary_ratio):
        risks.append("Binary content detected")
        recommendations.append("Exclude binary files from the sandbox")

    if has_excessive_repetition(content, min_unique_ratio, min_lines):
        risks.append("Excessive repetition detected")
        recommendations.append("Content looks generated or corrupt; regenerate it")

    return SafetyReport(is_safe=not risks, risks=risks, recommendations=recommendations)
