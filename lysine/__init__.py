"""
Lysine: a text templating engine with inheritance, macros and filters.
"""

from __future__ import annotations

from .builtins.registry import BuiltinRegistry
from .config import EngineConfig, load_config
from .engine import Lysine
from .errors import (
    BuiltinError,
    ConfigError,
    LysineUserError,
    RenderError,
    ResolveError,
    TemplateLoadError,
    TemplateSyntaxError,
)
from .template.context import Context
from .template.model import Template

__all__ = [
    "Lysine",
    "Context",
    "Template",
    "EngineConfig",
    "load_config",
    "BuiltinRegistry",
    "LysineUserError",
    "TemplateSyntaxError",
    "ResolveError",
    "RenderError",
    "BuiltinError",
    "ConfigError",
    "TemplateLoadError",
]
