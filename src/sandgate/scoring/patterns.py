"""Convention signals extracted from source text.

Signals share the shape of :class:`~sandgate.memory.models.PatternSummary`
so a candidate can be compared key-by-key with what project memory
reports as established.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import TYPE_CHECKING

from sandgate.memory.models import PatternSummary
from sandgate.scoring.models import ScoringConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

_PY_FUNC = re.compile(r"^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)", re.MULTILINE)
_JS_FUNC = re.compile(
    r"\bfunction\s*\*?\s*([A-Za-z_$][\w$]*)|\b(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*=\s*(?:async\s*)?(?:function\b|\([^)]*\)\s*=>|[A-Za-z_$][\w$]*\s*=>)"
)
_CLASS = re.compile(r"^\s*(?:export\s+(?:default\s+)?)?(?:abstract\s+)?class\s+([A-Za-z_$][\w$]*)", re.MULTILINE)
_PY_VAR = re.compile(r"^\s*([A-Za-z_]\w*)\s*(?::\s*[^=]+)?=(?!=)", re.MULTILINE)
_JS_VAR = re.compile(r"\b(?:const|let|var)\s+([A-Za-z_$][\w$]*)")
_SINGLE = re.compile(r"'(?:[^'\\\n]|\\.)*'")
_DOUBLE = re.compile(r'"(?:[^"\\\n]|\\.)*"')
_PY_RELATIVE_IMPORT = re.compile(r"^\s*from\s+\.", re.MULTILINE)
_PY_IMPORT = re.compile(r"^\s*(?:from\s+\S+\s+import|import\s+\w)", re.MULTILINE)
_ESM = re.compile(r"^\s*(?:import\s.+\sfrom\s|import\s+['\"]|export\s)", re.MULTILINE)
_CJS = re.compile(r"\brequire\s*\(|\bmodule\.exports\b|\bexports\.\w+\s*=")
_ASYNC = re.compile(r"\basync\s+(?:def|function)\b|\bawait\b|\basync\s*\(")
_PROMISE = re.compile(r"\.then\s*\(")
_TOP_LEVEL_FUNC = re.compile(r"^(?:export\s+)?(?:async\s+)?(?:def|function)\s+\w+", re.MULTILINE)

_LINE_BUCKETS = (80, 100, 120)
_SCRIPT_LANGUAGES = {"javascript", "typescript"}


def classify_case(name: str) -> str | None:
    """Return ``snake``, ``camel``, ``pascal``, or ``upper_snake``.

    Single lowercase words are ambiguous and yield ``None``.
    """
    core = name.strip("_$")
    if not core or not core[0].isalpha():
        return None
    if core.isupper() and len(core) > 1:
        return "upper_snake"
    if "_" in core:
        return "snake" if core.islower() else None
    if core[0].isupper():
        return "pascal"
    if any(c.isupper() for c in core):
        return "camel"
    return None


def extract_signals(content: str, language: str) -> PatternSummary:
    """Derive naming, style, and architecture signals from *content*."""
    script = language in _SCRIPT_LANGUAGES
    if language != "python" and not script:
        return PatternSummary(style=_style_signals(content, script=False))

    if script:
        functions = [a or b for a, b in _JS_FUNC.findall(content)]
        variables = _JS_VAR.findall(content)
    else:
        functions = [name for name in _PY_FUNC.findall(content) if not name.startswith("__")]
        variables = [name for name in _PY_VAR.findall(content) if name not in ("self", "cls")]

    naming: dict[str, str] = {}
    for signal, names in (
        ("function_case", functions),
        ("class_case", _CLASS.findall(content)),
        ("variable_case", [v for v in variables if classify_case(v) != "upper_snake"]),
    ):
        dominant = _dominant(classify_case(name) for name in names)
        if dominant:
            naming[signal] = dominant

    return PatternSummary(
        architecture=_architecture_signals(content, script=script),
        naming=naming,
        style=_style_signals(content, script=script),
    )


def score_patterns(candidate: PatternSummary, established: PatternSummary, config: ScoringConfig) -> int:
    """Weighted agreement between candidate and established signals.

    A signal the candidate does not exhibit counts as half a match; a
    category with nothing established contributes its neutral share.
    """
    if established.is_empty:
        return config.neutral_patterns
    neutral_ratio = config.neutral_patterns / sum(config.pattern_weights.values())
    total = 0.0
    for category, weight in config.pattern_weights.items():
        expected: dict[str, str] = getattr(established, category)
        observed: dict[str, str] = getattr(candidate, category)
        if not expected:
            total += weight * neutral_ratio
            continue
        matched = 0.0
        for signal, value in expected.items():
            if signal not in observed:
                matched += 0.5
            elif _signal_matches(signal, observed[signal], value):
                matched += 1.0
        total += weight * matched / len(expected)
    return math.floor(total + 0.5)


def _signal_matches(signal: str, observed: str, expected: str) -> bool:
    if signal == "line_length":
        return _bucket_rank(observed) <= _bucket_rank(expected)
    return observed == expected


def _bucket_rank(value: str) -> int:
    try:
        return _LINE_BUCKETS.index(int(value))
    except ValueError:
        return len(_LINE_BUCKETS)


def _dominant(values: Iterable[str | None]) -> str | None:
    counts = Counter(v for v in values if v)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def _style_signals(content: str, *, script: bool) -> dict[str, str]:
    lines = [line.rstrip("\r") for line in content.splitlines()]
    code_lines = [line for line in lines if line.strip()]
    style: dict[str, str] = {}
    if not code_lines:
        return style

    indents = [len(line) - len(line.lstrip(" ")) for line in code_lines if line.startswith(" ")]
    if any(line.startswith("\t") for line in code_lines) and not indents:
        style["indent"] = "tabs"
    elif indents:
        smallest = min(indents)
        style["indent"] = "2" if smallest % 4 else "4"

    singles = len(_SINGLE.findall(content))
    doubles = len(_DOUBLE.findall(content))
    if singles != doubles:
        style["quotes"] = "single" if singles > doubles else "double"

    if script:
        statements = [
            line.strip()
            for line in code_lines
            if not line.strip().startswith(("//", "/*", "*")) and not line.strip().endswith(("{", "}", ",", "(", "["))
        ]
        if statements:
            with_semicolon = sum(1 for s in statements if s.endswith(";"))
            style["semicolons"] = "always" if with_semicolon * 2 > len(statements) else "never"

    longest = max(len(line) for line in code_lines)
    for bucket in _LINE_BUCKETS:
        if longest <= bucket:
            style["line_length"] = str(bucket)
            break
    else:
        style["line_length"] = "long"
    return style


def _architecture_signals(content: str, *, script: bool) -> dict[str, str]:
    architecture: dict[str, str] = {}
    if script:
        if _ESM.search(content):
            architecture["module_system"] = "esm"
        elif _CJS.search(content):
            architecture["module_system"] = "commonjs"
    elif _PY_IMPORT.search(content):
        architecture["imports"] = "relative" if _PY_RELATIVE_IMPORT.search(content) else "absolute"

    classes = len(_CLASS.findall(content))
    functions = len(_TOP_LEVEL_FUNC.findall(content))
    if classes or functions:
        architecture["paradigm"] = "class" if classes >= functions else "functional"

    if _ASYNC.search(content):
        architecture["async_style"] = "async_await"
    elif _PROMISE.search(content):
        architecture["async_style"] = "promise"
    return architecture
