"""Versioned, loadable detector tables.

The sensitive-data and malicious-pattern detectors are data, not code:
:data:`DEFAULT_PATTERN_TABLE` is the built-in table, and
:func:`load_pattern_table` reads a replacement from YAML so detectors can
evolve without touching scoring or gating logic.
"""

from __future__ import annotations

import functools
import re
from pathlib import Path  # noqa: TC003
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from sandgate.errors import ConfigError

_FLAG_MAP: dict[str, re.RegexFlag] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


class PatternRule(BaseModel):
    """A single detector: a regex plus the kind it reports."""

    name: str
    kind: str = Field(..., description="Secret type or malicious category reported on match.")
    pattern: str
    flags: str = Field(default="", description="Any of 'i', 'm', 's'.")
    group: int = Field(default=0, ge=0, description="Regex group to redact (0 = whole match).")
    description: str = ""

    @field_validator("flags")
    @classmethod
    def _check_flags(cls, value: str) -> str:
        unknown = set(value) - set(_FLAG_MAP)
        if unknown:
            msg = f"unknown regex flags: {''.join(sorted(unknown))}"
            raise ValueError(msg)
        return value

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            msg = f"invalid regex: {exc}"
            raise ValueError(msg) from exc
        return value

    def compiled(self) -> re.Pattern[str]:
        return _compile(self.pattern, self.flags)


class PatternTable(BaseModel):
    """Ordered secret and malicious detector sets with a version tag."""

    version: str
    secrets: list[PatternRule] = Field(default_factory=list)
    malicious: list[PatternRule] = Field(default_factory=list)


@functools.lru_cache(maxsize=512)
def _compile(pattern: str, flags: str) -> re.Pattern[str]:
    value = 0
    for flag in flags:
        value |= _FLAG_MAP[flag]
    return re.compile(pattern, value)


def load_pattern_table(path: Path) -> PatternTable:
    """Load a :class:`PatternTable` from a YAML file.

    Raises:
        ConfigError: If the file cannot be read, parsed, or validated.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read pattern table {path}: {exc}") from exc

    try:
        data: Any = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Pattern table YAML parse error: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError("Pattern table YAML must be a mapping")

    try:
        return PatternTable.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Built-in table
# ---------------------------------------------------------------------------

_LOCAL_HOSTS = r"(?!localhost\b|127\.0\.0\.1\b|\[::1\])"

SECRET_RULES: list[PatternRule] = [
    PatternRule(
        name="pem_private_key",
        kind="private_key",
        pattern=r"-----BEGIN (?:[A-Z]+ )*PRIVATE KEY-----[\s\S]*?-----END (?:[A-Z]+ )*PRIVATE KEY-----",
        description="PEM encoded private key block.",
    ),
    PatternRule(
        name="database_url",
        kind="database_url",
        pattern=r"\b(?:mongodb(?:\+srv)?|mysql|postgres(?:ql)?|redis|rediss|amqp|mssql)://[^\s'\"`]+",
        flags="i",
    ),
    PatternRule(
        name="aws_access_key_id",
        kind="aws_key",
        pattern=r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b",
    ),
    PatternRule(
        name="aws_secret_assignment",
        kind="aws_secret",
        pattern=r"aws_secret_access_key\s*[:=]\s*['\"`]?([A-Za-z0-9/+=]{20,})",
        flags="i",
        group=1,
    ),
    PatternRule(
        name="jwt",
        kind="jwt_token",
        pattern=r"\beyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*",
    ),
    PatternRule(
        name="vendor_secret_key",
        kind="api_key",
        pattern=r"\b(?:sk|rk)[-_](?:live[-_]|test[-_]|proj[-_])?[A-Za-z0-9]{16,}",
        description="Stripe/OpenAI style secret keys.",
    ),
    PatternRule(
        name="github_token",
        kind="api_key",
        pattern=r"\bgh[pousr]_[A-Za-z0-9]{36,}\b",
    ),
    PatternRule(
        name="slack_token",
        kind="api_key",
        pattern=r"\bxox[abposr]-[A-Za-z0-9-]{10,}",
    ),
    PatternRule(
        name="google_api_key",
        kind="api_key",
        pattern=r"\bAIza[0-9A-Za-z_-]{35}\b",
    ),
    PatternRule(
        name="credential_assignment",
        kind="credential",
        pattern=(
            r"\b(?:api[_-]?key|access[_-]?token|auth[_-]?token|client[_-]?secret"
            r"|token|secret|password|passwd|pwd)\b['\"]?\s*[:=]\s*['\"`]?"
            r"(?=[A-Za-z_\-./+=]*\d)([A-Za-z0-9_\-./+=]{16,})"
        ),
        flags="i",
        group=1,
        description="Credential-looking assignment; the value must contain a digit.",
    ),
    PatternRule(
        name="secret_env_assignment",
        kind="secret_env",
        pattern=r"\b(?:SECRET|PRIVATE|CONFIDENTIAL|INTERNAL)_[A-Z_]+\s*[:=]\s*['\"`]?([^\s'\"`]+)",
        group=1,
    ),
    PatternRule(
        name="credit_card",
        kind="credit_card",
        pattern=r"\b(?:\d{4}[- ]?){3}\d{4}\b",
    ),
    PatternRule(
        name="us_ssn",
        kind="ssn",
        pattern=r"\b\d{3}-\d{2}-\d{4}\b",
    ),
    PatternRule(
        name="us_phone",
        kind="phone",
        pattern=r"\b\d{3}-\d{3}-\d{4}\b",
    ),
    PatternRule(
        name="email_address",
        kind="email",
        pattern=r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
    ),
    PatternRule(
        name="private_ipv4",
        kind="private_ip",
        pattern=r"\b(?:10\.\d{1,3}|172\.(?:1[6-9]|2\d|3[01])|192\.168)\.\d{1,3}\.\d{1,3}\b",
    ),
]

MALICIOUS_RULES: list[PatternRule] = [
    # Dynamic code evaluation
    PatternRule(name="eval_call", kind="dynamic_eval", pattern=r"(?<![\w.])eval\s*\("),
    PatternRule(name="function_constructor", kind="dynamic_eval", pattern=r"\bnew\s+Function\s*\("),
    PatternRule(
        name="string_timer",
        kind="dynamic_eval",
        pattern=r"\b(?:setTimeout|setInterval)\s*\(\s*['\"`]",
    ),
    PatternRule(name="python_exec", kind="dynamic_eval", pattern=r"(?<![\w.])exec\s*\("),
    PatternRule(name="dunder_import", kind="dynamic_eval", pattern=r"\b__import__\s*\("),
    # Destructive filesystem calls
    PatternRule(
        name="node_fs_delete",
        kind="destructive_fs",
        pattern=r"\bfs(?:\.promises)?\.(?:unlink|unlinkSync|rmdir|rmdirSync|rm|rmSync)\b",
    ),
    PatternRule(name="python_rmtree", kind="destructive_fs", pattern=r"\bshutil\.rmtree\s*\("),
    PatternRule(
        name="python_os_remove",
        kind="destructive_fs",
        pattern=r"\bos\.(?:remove|unlink|rmdir|removedirs)\s*\(",
    ),
    PatternRule(name="shell_rm_rf", kind="destructive_fs", pattern=r"\brm\s+-(?:[a-zA-Z]*r[a-zA-Z]*f|[a-zA-Z]*f[a-zA-Z]*r)\b"),
    # Subprocesses with non-constant commands
    PatternRule(
        name="node_child_process",
        kind="subprocess",
        pattern=(
            r"\bchild_process\.(?:exec|execSync|spawn|spawnSync|fork)\s*\(\s*"
            r"(?:[A-Za-z_$]|`[^`]*\$\{|['\"][^'\"]*['\"]\s*\+)"
        ),
    ),
    PatternRule(
        name="python_subprocess",
        kind="subprocess",
        pattern=(
            r"\bsubprocess\.(?:run|call|check_call|check_output|Popen)\s*\(\s*"
            r"(?:f['\"]|[A-Za-z_]|\[[^\]]*\b(?:f['\"]|[A-Za-z_]\w*\s*[,\]]))"
        ),
    ),
    PatternRule(
        name="python_os_system",
        kind="subprocess",
        pattern=r"\bos\.(?:system|popen)\s*\(\s*(?:f['\"]|[A-Za-z_]|['\"][^'\"]*['\"]\s*[+%])",
    ),
    PatternRule(name="process_exit", kind="process_exit", pattern=r"\bprocess\.exit\s*\("),
    # Prototype / global object mutation
    PatternRule(name="proto_access", kind="prototype_pollution", pattern=r"__proto__"),
    PatternRule(
        name="constructor_prototype",
        kind="prototype_pollution",
        pattern=r"\bconstructor\.prototype\b",
    ),
    PatternRule(
        name="builtin_prototype_assignment",
        kind="prototype_pollution",
        pattern=r"\b(?:Object|Array|String|Function)\.prototype\.[A-Za-z_$][\w$]*\s*=(?!=)",
    ),
    PatternRule(
        name="global_object_assignment",
        kind="prototype_pollution",
        pattern=r"\b(?:globalThis|global|window)\.[A-Za-z_$][\w$]*\s*=(?!=)",
    ),
    PatternRule(
        name="python_builtins_mutation",
        kind="prototype_pollution",
        pattern=r"\b(?:builtins\.[A-Za-z_]\w*\s*=(?!=)|setattr\s*\(\s*builtins\b)",
    ),
    # Outbound requests to non-local hosts
    PatternRule(
        name="fetch_remote",
        kind="outbound_request",
        pattern=rf"\bfetch\s*\(\s*['\"`]https?://{_LOCAL_HOSTS}",
    ),
    PatternRule(name="xml_http_request", kind="outbound_request", pattern=r"\bXMLHttpRequest\b"),
    PatternRule(
        name="axios_remote",
        kind="outbound_request",
        pattern=rf"\baxios(?:\.(?:get|post|put|delete|patch|request))?\s*\(\s*['\"`]https?://{_LOCAL_HOSTS}",
    ),
    PatternRule(
        name="python_http_remote",
        kind="outbound_request",
        pattern=(
            r"\b(?:requests|httpx)\.(?:get|post|put|delete|patch|request)\s*\(\s*"
            rf"['\"]https?://{_LOCAL_HOSTS}"
        ),
    ),
    PatternRule(name="urlopen", kind="outbound_request", pattern=r"\burlopen\s*\("),
    # SQL-injection shaped sequences
    PatternRule(name="union_select", kind="sql_injection", pattern=r"\bunion\s+(?:all\s+)?select\b", flags="i"),
    PatternRule(
        name="tautology",
        kind="sql_injection",
        pattern=r"'\s*or\s+'?1'?\s*=\s*'?1",
        flags="i",
    ),
    PatternRule(
        name="stacked_drop",
        kind="sql_injection",
        pattern=r";\s*drop\s+(?:table|database)\b",
        flags="i",
    ),
    PatternRule(
        name="concatenated_query",
        kind="sql_injection",
        pattern=r"['\"`]\s*(?:select|insert|update|delete)\b[^'\"`\n]*['\"`]\s*\+\s*[A-Za-z_$]",
        flags="i",
    ),
    PatternRule(
        name="interpolated_query",
        kind="sql_injection",
        pattern=r"\bf['\"]\s*(?:select|insert|update|delete)\b[^'\"\n]*\{",
        flags="i",
    ),
]

DEFAULT_PATTERN_TABLE = PatternTable(
    version="2024.1",
    secrets=SECRET_RULES,
    malicious=MALICIOUS_RULES,
)
