"""Language detection and syntax validation.

Python is parsed with :mod:`ast`; JSON, YAML, and TOML with their own
loaders.  Brace languages go through a delimiter scanner that reports
unbalanced brackets and unterminated string literals; it does not build an
AST, so it only catches structural breakage.
"""

from __future__ import annotations

import ast
import asyncio
import json
import logging
import threading
import tomllib
import warnings
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

import yaml

from sandgate.scoring.models import METRIC_MAXIMA, ScoringConfig, SyntaxReport

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".java": "java",
    ".kt": "kotlin",
    ".scala": "scala",
    ".swift": "swift",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cc": "cpp",
    ".cs": "csharp",
    ".go": "go",
    ".rs": "rust",
    ".php": "php",
    ".css": "css",
    ".scss": "scss",
    ".less": "less",
    ".vue": "vue",
    ".svelte": "svelte",
    ".html": "html",
    ".md": "markdown",
    ".sh": "shell",
    ".rb": "ruby",
}


@dataclass(frozen=True)
class _ScanRules:
    quotes: str
    line_comment: bool = True
    multiline_quotes: str = ""


_BRACE_LANGUAGES: dict[str, _ScanRules] = {
    "javascript": _ScanRules(quotes="'\"`", multiline_quotes="`"),
    "typescript": _ScanRules(quotes="'\"`", multiline_quotes="`"),
    "java": _ScanRules(quotes="'\""),
    "kotlin": _ScanRules(quotes="'\""),
    "scala": _ScanRules(quotes="'\""),
    "swift": _ScanRules(quotes="\""),
    "c": _ScanRules(quotes="'\""),
    "cpp": _ScanRules(quotes="'\""),
    "csharp": _ScanRules(quotes="'\""),
    "go": _ScanRules(quotes="'\"`", multiline_quotes="`"),
    # Single quotes double as lifetimes in Rust.
    "rust": _ScanRules(quotes="\""),
    "php": _ScanRules(quotes="'\""),
    "css": _ScanRules(quotes="'\"", line_comment=False),
    "scss": _ScanRules(quotes="'\""),
    "less": _ScanRules(quotes="'\""),
}

_PAIRS = {")": "(", "]": "[", "}": "{"}


def detect_language(path: str) -> str:
    name = PurePosixPath(path)
    return LANGUAGE_BY_EXTENSION.get(name.suffix.lower(), "unknown")


def is_supported(language: str) -> bool:
    return language in {"python", "json", "yaml", "toml"} or language in _BRACE_LANGUAGES


def check_syntax(content: str, language: str) -> SyntaxReport:
    """Parse *content* synchronously and report diagnostics."""
    if not content.strip():
        return SyntaxReport(language=language, supported=is_supported(language), empty=True)
    if language == "python":
        return _check_python(content)
    if language == "json":
        return _check_loader(content, language, json.loads)
    if language == "yaml":
        return _check_loader(content, language, lambda text: list(yaml.safe_load_all(text)))
    if language == "toml":
        return _check_loader(content, language, tomllib.loads)
    rules = _BRACE_LANGUAGES.get(language)
    if rules is None:
        return SyntaxReport(language=language, supported=False)
    return SyntaxReport(language=language, diagnostics=tuple(scan_delimiters(content, rules)))


async def check_syntax_async(content: str, language: str, timeout: float) -> SyntaxReport:
    """Run :func:`check_syntax` in a worker thread under *timeout*."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(check_syntax, content, language), timeout=timeout)
    except TimeoutError:
        logger.warning("Syntax check for %s content timed out after %ss", language, timeout)
        return SyntaxReport(language=language, supported=is_supported(language), timed_out=True)


def score_syntax(report: SyntaxReport, config: ScoringConfig) -> int:
    maximum = METRIC_MAXIMA["syntax"]
    if report.empty and not report.supported:
        return 0
    if report.timed_out or report.fatal:
        return 0
    if not report.supported:
        return config.unsupported_syntax_score
    return max(0, maximum - config.diagnostic_penalty * len(report.diagnostics))


# catch_warnings swaps process-global state; one Python parse at a time.
_WARNINGS_LOCK = threading.Lock()
_CANDIDATE_FILENAME = "<sandgate-candidate>"


def _check_python(content: str) -> SyntaxReport:
    with _WARNINGS_LOCK, warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            ast.parse(content, filename=_CANDIDATE_FILENAME)
        except SyntaxError as exc:
            return SyntaxReport(
                language="python",
                diagnostics=(f"line {exc.lineno}: {exc.msg}",),
                fatal=True,
            )
        except ValueError as exc:
            # Null bytes in source.
            return SyntaxReport(language="python", diagnostics=(str(exc),), fatal=True)
    diagnostics = tuple(f"line {w.lineno}: {w.message}" for w in caught if w.filename == _CANDIDATE_FILENAME)
    return SyntaxReport(language="python", diagnostics=diagnostics)


def _check_loader(content: str, language: str, loader: Callable[[str], object]) -> SyntaxReport:
    try:
        loader(content)
    except (ValueError, yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        first_line = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
        return SyntaxReport(language=language, diagnostics=(first_line,), fatal=True)
    return SyntaxReport(language=language)


def scan_delimiters(content: str, rules: _ScanRules) -> list[str]:
    """Report unbalanced delimiters and unterminated strings."""
    diagnostics: list[str] = []
    stack: list[tuple[str, int]] = []
    line = 1
    i = 0
    n = len(content)
    while i < n:
        ch = content[i]
        nxt = content[i + 1] if i + 1 < n else ""
        if ch == "\n":
            line += 1
        elif ch == "/" and nxt == "/" and rules.line_comment:
            end = content.find("\n", i)
            i = n if end == -1 else end
            continue
        elif ch == "/" and nxt == "*":
            end = content.find("*/", i + 2)
            if end == -1:
                diagnostics.append(f"line {line}: unterminated block comment")
                break
            line += content.count("\n", i, end)
            i = end + 2
            continue
        elif ch in rules.quotes:
            end, closed = _skip_string(content, i, ch, multiline=ch in rules.multiline_quotes)
            if not closed:
                diagnostics.append(f"line {line}: unterminated string literal")
            line += content.count("\n", i, end)
            i = end
            continue
        elif ch in "([{":
            stack.append((ch, line))
        elif ch in _PAIRS:
            if stack and stack[-1][0] == _PAIRS[ch]:
                stack.pop()
            else:
                diagnostics.append(f"line {line}: unmatched '{ch}'")
        i += 1
    diagnostics.extend(f"line {opened}: unclosed '{ch}'" for ch, opened in stack)
    return diagnostics


def _skip_string(content: str, start: int, quote: str, *, multiline: bool) -> tuple[int, bool]:
    i = start + 1
    n = len(content)
    while i < n:
        ch = content[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1, True
        if ch == "\n" and not multiline:
            return i, False
        i += 1
    return n, False
