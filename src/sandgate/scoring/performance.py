"""Performance anti-pattern heuristics.

The rule table is data: each :class:`PerformanceRule` pairs a regex with a
penalty and optional gating regexes.  Triple-nested loops need structure
rather than a regex and are detected separately.  Every rule counts at most
:data:`MAX_HITS_PER_RULE` times.
"""

from __future__ import annotations

import re
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field

from sandgate.scoring.models import PerformanceHit, PerformanceReport

MAX_HITS_PER_RULE = 2

_ASYNC_CONTEXT = r"\basync\s+(?:def|function)\b|\bawait\b"


class PerformanceRule(BaseModel):
    """One heuristic: *pattern* hits unless *unless* matches the whole content."""

    model_config = ConfigDict(frozen=True)

    name: str
    pattern: str
    penalty: int = Field(..., ge=0)
    description: str = ""
    requires: str | None = Field(default=None, description="Content must match this for the rule to apply.")
    unless: str | None = Field(default=None, description="Content matching this suppresses the rule.")
    languages: tuple[str, ...] = ()

    @property
    def regex(self) -> re.Pattern[str]:
        return _compile(self.pattern)

    def applies_to(self, content: str, language: str) -> bool:
        if self.languages and language not in self.languages:
            return False
        if self.requires and not _compile(self.requires).search(content):
            return False
        return not (self.unless and _compile(self.unless).search(content))


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.MULTILINE)


DEFAULT_PERFORMANCE_RULES: tuple[PerformanceRule, ...] = (
    PerformanceRule(
        name="unbounded_loop",
        pattern=r"\bwhile\s*\(\s*(?:true|1)\s*\)|\bwhile\s+(?:True|1)\s*:|\bfor\s*\(\s*;\s*;\s*\)",
        penalty=3,
        unless=r"\bbreak\b|\breturn\b",
        description="Infinite loop with no break or return",
    ),
    PerformanceRule(
        name="blocking_sleep_in_async",
        pattern=r"\btime\.sleep\s*\(|\bAtomics\.wait\s*\(",
        penalty=2,
        requires=_ASYNC_CONTEXT,
        description="Blocking sleep inside asynchronous code",
    ),
    PerformanceRule(
        name="sync_io_in_async",
        pattern=r"\bfs\.\w+Sync\s*\(|\brequests\.(?:get|post|put|delete|patch)\s*\(|\burllib\.request\.urlopen\s*\(",
        penalty=2,
        requires=_ASYNC_CONTEXT,
        description="Synchronous I/O inside asynchronous code",
    ),
    PerformanceRule(
        name="sync_child_process",
        pattern=r"\b(?:execSync|spawnSync|execFileSync)\s*\(|\bsubprocess\.(?:run|call|check_call|check_output)\s*\(",
        penalty=1,
        description="Synchronous child-process call",
    ),
    PerformanceRule(
        name="large_allocation",
        pattern=r"\bnew\s+Array\s*\(\s*\d{6,}\s*\)|\bArray\s*\(\s*\d{6,}\s*\)|\[[^\]\n]*\]\s*\*\s*\d{6,}|\brange\s*\(\s*\d{7,}\s*\)|\bBuffer\.alloc\s*\(\s*\d{8,}",
        penalty=2,
        description="Very large literal allocation",
    ),
    PerformanceRule(
        name="string_concat_in_loop",
        pattern=r"^\s+\w+\s*\+=\s*(?:f?[\"'`]|str\()",
        penalty=1,
        requires=r"\b(?:for|while)\b",
        description="String concatenation inside a loop",
    ),
)

NESTED_LOOP_RULE = "triple_nested_loops"
NESTED_LOOP_PENALTY = 2

_PY_LOOP = re.compile(r"^(\s*)(?:async\s+)?(?:for|while)\b.*:\s*(?:#.*)?$")
_BRACE_LOOP = re.compile(r"\b(?:for|while)\s*\(")


def assess_performance(
    content: str,
    language: str,
    rules: tuple[PerformanceRule, ...] = DEFAULT_PERFORMANCE_RULES,
) -> PerformanceReport:
    hits: list[PerformanceHit] = []
    for rule in rules:
        if not rule.applies_to(content, language):
            continue
        for match in list(rule.regex.finditer(content))[:MAX_HITS_PER_RULE]:
            hits.append(
                PerformanceHit(
                    rule=rule.name,
                    penalty=rule.penalty,
                    line=content.count("\n", 0, match.start()) + 1,
                    description=rule.description,
                )
            )
    for line in nested_loop_lines(content, language)[:MAX_HITS_PER_RULE]:
        hits.append(
            PerformanceHit(
                rule=NESTED_LOOP_RULE,
                penalty=NESTED_LOOP_PENALTY,
                line=line,
                description="Loop nested three or more levels deep",
            )
        )
    return PerformanceReport(hits=tuple(hits))


def nested_loop_lines(content: str, language: str) -> list[int]:
    """Line numbers where a loop opens at nesting depth three or more."""
    if language == "python":
        return _python_nested_loops(content)
    return _brace_nested_loops(content)


def _python_nested_loops(content: str) -> list[int]:
    found: list[int] = []
    stack: list[int] = []
    for number, line in enumerate(content.splitlines(), start=1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        indent = len(line) - len(line.lstrip())
        while stack and stack[-1] >= indent:
            stack.pop()
        if _PY_LOOP.match(line):
            stack.append(indent)
            if len(stack) >= 3:
                found.append(number)
    return found


def _brace_nested_loops(content: str) -> list[int]:
    found: list[int] = []
    stack: list[int] = []
    depth = 0
    for number, line in enumerate(content.splitlines(), start=1):
        if _BRACE_LOOP.search(line):
            stack.append(depth + 1)
            if len(stack) >= 3:
                found.append(number)
        depth += line.count("{") - line.count("}")
        while stack and depth < stack[-1]:
            stack.pop()
    return found
