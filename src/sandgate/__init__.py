"""Sandgate — confidence-gated sandbox for machine-generated code changes."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from sandgate.config import ConfigLoader as ConfigLoader
    from sandgate.config import SandgateConfig as SandgateConfig
    from sandgate.manager import SandboxManager as SandboxManager

_LAZY_EXPORTS = {
    "SandboxManager": "sandgate.manager",
    "SandgateConfig": "sandgate.config",
    "ConfigLoader": "sandgate.config",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'sandgate' has no attribute {name!r}")
