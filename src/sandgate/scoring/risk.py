"""Risk assessment: penalties that lower the risk sub-score.

Everything here is pure except :func:`discover_known_modules`, which reads
project manifests and is called while evidence is gathered.
"""

from __future__ import annotations

import ast
import json
import logging
import re
import sys
import tomllib
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from sandgate.policy.models import PROJECT_MANIFESTS
from sandgate.scoring.models import Evidence, RiskPenalty, RiskReport

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

MALICIOUS_PENALTY = 5
SENSITIVE_PENALTY = 3
UNSAFE_CONTENT_PENALTY = 5
REMOVED_SYMBOL_PENALTY = 2
REMOVED_SYMBOL_CAP = 4
BREAKING_PENALTY = 2
PERFORMANCE_PENALTY = 1
PERFORMANCE_REGRESSION_AT = 6
MANIFEST_PENALTY = 2
NEW_IMPORT_PENALTY = 1
NEW_IMPORT_CAP = 2

_BREAKING = re.compile(r"\bBREAKING(?:[ _-]CHANGES?)?\b")

_PY_DEF = re.compile(r"^(?:async\s+)?(?:def|class)\s+([A-Za-z]\w*)", re.MULTILINE)
_PY_IMPORT = re.compile(r"^\s*(?:from\s+([A-Za-z_][\w.]*)\s+import|import\s+([A-Za-z_][\w.]*))", re.MULTILINE)
_JS_EXPORT = re.compile(
    r"\bexport\s+(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?"
    r"(?:function\s*\*?|class|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)"
)
_JS_EXPORT_LIST = re.compile(r"\bexport\s*\{([^}]*)\}")
_CJS_EXPORT = re.compile(r"\b(?:module\.)?exports\.([A-Za-z_$][\w$]*)\s*=")
_JS_IMPORT = re.compile(
    r"""(?:\bfrom\s*|\bimport\s*\(?\s*|\brequire\s*\(\s*)['"]([^'"]+)['"]"""
)

NODE_BUILTINS: frozenset[str] = frozenset(
    {
        "assert", "buffer", "child_process", "cluster", "crypto", "dgram", "dns", "events", "fs",
        "http", "http2", "https", "module", "net", "os", "path", "perf_hooks", "process",
        "querystring", "readline", "stream", "string_decoder", "timers", "tls", "url", "util",
        "v8", "vm", "worker_threads", "zlib",
    }
)


def public_symbols(content: str, language: str) -> set[str]:
    """Names a module exposes to its importers."""
    if language == "python":
        return _python_public_symbols(content)
    if language in ("javascript", "typescript"):
        names = set(_JS_EXPORT.findall(content)) | set(_CJS_EXPORT.findall(content))
        for group in _JS_EXPORT_LIST.findall(content):
            for item in group.split(","):
                item = item.strip()
                if item:
                    names.add(item.split(" as ")[-1].strip())
        return names
    return set()


def third_party_imports(content: str, language: str, known: frozenset[str] = frozenset()) -> set[str]:
    """Top-level packages imported by *content* that are neither stdlib nor *known*."""
    if language == "python":
        modules = _python_imports(content)
        stdlib = sys.stdlib_module_names
        return {m for m in modules if m not in stdlib and m not in known and m != "__future__"}
    if language in ("javascript", "typescript"):
        packages: set[str] = set()
        for spec in _JS_IMPORT.findall(content):
            if spec.startswith((".", "/", "node:")):
                continue
            parts = spec.split("/")
            name = "/".join(parts[:2]) if spec.startswith("@") else parts[0]
            if name not in NODE_BUILTINS and name not in known:
                packages.add(name)
        return packages
    return set()


def assess_risk(evidence: Evidence, performance_score: int) -> RiskReport:
    penalties: list[RiskPenalty] = []
    sanitization = evidence.sanitization

    if sanitization.malicious_patterns:
        penalties.append(
            RiskPenalty(
                kind="malicious_patterns",
                points=MALICIOUS_PENALTY,
                detail="Potentially malicious code: " + ", ".join(sanitization.malicious_categories),
            )
        )
    if sanitization.sensitive_data_found:
        penalties.append(
            RiskPenalty(
                kind="sensitive_data",
                points=SENSITIVE_PENALTY,
                detail="Sensitive data detected: " + ", ".join(sanitization.secret_kinds),
            )
        )
    if not evidence.safety.is_safe:
        penalties.append(
            RiskPenalty(
                kind="unsafe_content",
                points=UNSAFE_CONTENT_PENALTY,
                detail="Failed content safety checks: " + ", ".join(evidence.safety.risks),
            )
        )

    if evidence.original_content is not None:
        removed = sorted(
            public_symbols(evidence.original_content, evidence.language)
            - public_symbols(evidence.content, evidence.language)
        )
        if removed:
            penalties.append(
                RiskPenalty(
                    kind="removed_public_symbols",
                    points=min(REMOVED_SYMBOL_PENALTY * len(removed), REMOVED_SYMBOL_CAP),
                    detail="Removes public symbols: " + ", ".join(removed),
                )
            )

    if _BREAKING.search(evidence.content) or _BREAKING.search(evidence.intent):
        penalties.append(RiskPenalty(kind="breaking_change", points=BREAKING_PENALTY, detail="Marked as a breaking change"))

    if performance_score <= PERFORMANCE_REGRESSION_AT:
        penalties.append(
            RiskPenalty(kind="performance_regression", points=PERFORMANCE_PENALTY, detail="Likely performance regression")
        )

    if PurePosixPath(evidence.path).name in PROJECT_MANIFESTS:
        penalties.append(
            RiskPenalty(kind="dependency_change", points=MANIFEST_PENALTY, detail="Changes a dependency manifest")
        )

    new_imports = sorted(
        third_party_imports(evidence.content, evidence.language, evidence.known_modules)
        - third_party_imports(evidence.original_content or "", evidence.language, evidence.known_modules)
    )
    if new_imports:
        penalties.append(
            RiskPenalty(
                kind="new_dependencies",
                points=min(NEW_IMPORT_PENALTY * len(new_imports), NEW_IMPORT_CAP),
                detail="Adds third-party imports: " + ", ".join(new_imports),
            )
        )

    return RiskReport(penalties=tuple(penalties))


def discover_known_modules(project_root: Path) -> frozenset[str]:
    """Local top-level modules plus dependencies declared in project manifests."""
    known: set[str] = set()
    for base in (project_root, project_root / "src"):
        if not base.is_dir():
            continue
        for entry in base.iterdir():
            if entry.name.startswith("."):
                continue
            if entry.is_dir() and (entry / "__init__.py").exists():
                known.add(entry.name)
            elif entry.suffix == ".py":
                known.add(entry.stem)

    package_json = project_root / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
            for section in ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies"):
                known.update((data.get(section) or {}).keys())
        except (OSError, ValueError, AttributeError) as exc:
            logger.debug("Cannot read %s: %s", package_json, exc)

    requirements = project_root / "requirements.txt"
    if requirements.is_file():
        try:
            for line in requirements.read_text(encoding="utf-8").splitlines():
                name = _requirement_name(line)
                if name:
                    known.add(name)
        except OSError as exc:
            logger.debug("Cannot read %s: %s", requirements, exc)

    pyproject = project_root / "pyproject.toml"
    if pyproject.is_file():
        try:
            project = tomllib.loads(pyproject.read_text(encoding="utf-8")).get("project", {})
            declared = list(project.get("dependencies", []))
            for extra in (project.get("optional-dependencies") or {}).values():
                declared.extend(extra)
            known.update(filter(None, (_requirement_name(item) for item in declared)))
        except (OSError, tomllib.TOMLDecodeError, AttributeError, TypeError) as exc:
            logger.debug("Cannot read %s: %s", pyproject, exc)

    return frozenset(known)


def _requirement_name(line: str) -> str | None:
    line = line.split("#", 1)[0].strip()
    if not line or line.startswith("-"):
        return None
    match = re.match(r"[A-Za-z0-9][A-Za-z0-9._-]*", line)
    if not match:
        return None
    return match.group(0).lower().replace("-", "_").replace(".", "_")


def _python_public_symbols(content: str) -> set[str]:
    try:
        tree = ast.parse(content)
    except (SyntaxError, ValueError):
        return set(_PY_DEF.findall(content))

    names: set[str] = set()
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                if isinstance(target, ast.Name):
                    if target.id == "__all__" and isinstance(node.value, (ast.List, ast.Tuple)):
                        return {
                            elt.value
                            for elt in node.value.elts
                            if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                        }
                    names.add(target.id)
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
            names.add(node.target.id)
    return {name for name in names if not name.startswith("_")}


def _python_imports(content: str) -> set[str]:
    try:
        tree = ast.parse(content)
    except (SyntaxError, ValueError):
        return {(a or b).split(".")[0] for a, b in _PY_IMPORT.findall(content)}

    modules: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            modules.update(alias.name.split(".")[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            modules.add(node.module.split(".")[0])
    return modules
