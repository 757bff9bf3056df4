"""Sensitive-data redaction and malicious-pattern annotation.

Pure functions of ``(content, table)``.  Secret matches are replaced with a
type-tagged placeholder (``[REDACTED_API_KEY]``) whose length does not depend
on the secret.  Malicious matches are annotated in place with a
``/* [SANDGATE:MALICIOUS:<category>] */`` marker; the matched text itself is
left intact so reviewers can see it.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from sandgate.security.models import Finding, FindingCategory, SanitizationResult
from sandgate.security.patterns import DEFAULT_PATTERN_TABLE, PatternRule, PatternTable

logger = logging.getLogger(__name__)


class _Match(NamedTuple):
    start: int
    end: int
    order: int
    rule: PatternRule


def redaction_placeholder(kind: str) -> str:
    return f"[REDACTED_{kind.upper()}]"


def malicious_marker(category: str) -> str:
    return f"/* [SANDGATE:MALICIOUS:{category}] */"


def find_matches(content: str, rules: list[PatternRule]) -> list[_Match]:
    """Return every match of every rule, in content order."""
    matches: list[_Match] = []
    for order, rule in enumerate(rules):
        regex = rule.compiled()
        group = rule.group if rule.group <= regex.groups else 0
        for m in regex.finditer(content):
            start, end = m.span(group)
            if start < 0 or end <= start:
                continue
            matches.append(_Match(start, end, order, rule))
    matches.sort(key=lambda m: (m.start, -(m.end - m.start), m.order))
    return matches


def select_non_overlapping(matches: list[_Match]) -> list[_Match]:
    """Greedy earliest-start / longest-match selection."""
    selected: list[_Match] = []
    cursor = 0
    for match in matches:
        if match.start >= cursor:
            selected.append(match)
            cursor = match.end
    return selected


def sanitize(
    content: str,
    label: str = "",
    table: PatternTable = DEFAULT_PATTERN_TABLE,
    *,
    detect_secrets: bool = True,
    detect_malicious: bool = True,
) -> SanitizationResult:
    """Redact secrets and annotate malicious constructs in *content*.

    Both detector sets run over the original content, so offsets in the
    returned findings always refer to the input text.
    """
    secrets = select_non_overlapping(find_matches(content, table.secrets)) if detect_secrets else []
    malicious = find_matches(content, table.malicious) if detect_malicious else []

    findings: list[Finding] = []
    for m in secrets:
        findings.append(
            Finding(
                category=FindingCategory.SECRET,
                kind=m.rule.kind,
                rule=m.rule.name,
                start=m.start,
                end=m.end,
            )
        )
        logger.warning("Sensitive data detected in %s: %s at %d", label or "<content>", m.rule.kind, m.start)

    seen_malicious: set[tuple[int, int, str]] = set()
    for m in malicious:
        key = (m.start, m.end, m.rule.kind)
        if key in seen_malicious:
            continue
        seen_malicious.add(key)
        findings.append(
            Finding(
                category=FindingCategory.MALICIOUS,
                kind=m.rule.kind,
                rule=m.rule.name,
                start=m.start,
                end=m.end,
            )
        )
        logger.warning(
            "Potentially malicious pattern in %s: %s at %d", label or "<content>", m.rule.kind, m.start
        )

    sanitized = _rewrite(content, secrets, malicious)
    return SanitizationResult(
        sanitized_content=sanitized,
        sensitive_data_found=bool(secrets),
        malicious_patterns=bool(seen_malicious),
        redaction_count=len(secrets),
        findings=findings,
        label=label,
        table_version=table.version,
    )


def _rewrite(content: str, secrets: list[_Match], malicious: list[_Match]) -> str:
    """Apply redactions and insert malicious markers in a single pass."""
    # (position, kind-order, end, text): markers sort before a redaction at the same offset.
    edits: list[tuple[int, int, int, str]] = []
    for m in secrets:
        edits.append((m.start, 1, m.end, redaction_placeholder(m.rule.kind)))

    marked: set[tuple[int, str]] = set()
    for m in malicious:
        pos = m.start
        for s in secrets:
            if s.start < pos < s.end:
                pos = s.start
                break
        if (pos, m.rule.kind) in marked:
            continue
        marked.add((pos, m.rule.kind))
        edits.append((pos, 0, pos, malicious_marker(m.rule.kind) + " "))

    if not edits:
        return content

    edits.sort(key=lambda e: (e[0], e[1], e[3]))
    pieces: list[str] = []
    cursor = 0
    for start, _kind, end, text in edits:
        pieces.append(content[cursor:start])
        pieces.append(text)
        cursor = max(cursor, end)
    pieces.append(content[cursor:])
    return "".join(pieces)
