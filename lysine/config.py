"""
Engine configuration.

Every key is optional; a missing file or an empty mapping gives the defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigError

DEFAULT_CONFIG_FILE = "lysine.yaml"

_yaml = YAML(typ="safe")


@dataclass
class EngineConfig:
    """
    Settings shared by the engine and the CLI.

    Attributes:
        templates: Glob patterns (gitwildmatch) selecting template files
        autoescape_suffixes: Template name suffixes whose output is HTML-escaped
        max_depth: Ceiling on nested block/include/macro render depth
        max_evaluations: Ceiling on evaluated nodes per render call
    """
    templates: List[str] = field(default_factory=lambda: ["**/*"])
    autoescape_suffixes: List[str] = field(default_factory=lambda: [".lisc", ".lism", ".lish"])
    max_depth: int = 32
    max_evaluations: int = 1_000_000

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "EngineConfig":
        """
        Builds a config from a plain mapping.

        Raises:
            ConfigError: On unknown keys or values of the wrong type
        """
        known = {f.name for f in fields(cls)}
        for key in raw:
            if key not in known:
                raise ConfigError(f"Unknown config key '{key}'")

        kwargs: Dict[str, Any] = {}
        for key in ("templates", "autoescape_suffixes"):
            if key in raw:
                kwargs[key] = _string_list(key, raw[key])
        for key in ("max_depth", "max_evaluations"):
            if key in raw:
                kwargs[key] = _positive_int(key, raw[key])
        return cls(**kwargs)


def _string_list(key: str, value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"Config key '{key}' must be a list of strings")
    return list(value)


def _positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"Config key '{key}' must be a positive integer")
    return value


def load_config(path: Path) -> EngineConfig:
    """
    Loads a YAML config file.

    A missing file yields the defaults.

    Raises:
        ConfigError: If the file is not valid YAML, not a mapping,
            or holds unknown or mistyped keys
    """
    if not path.is_file():
        return EngineConfig()

    try:
        raw = _yaml.load(path.read_text(encoding="utf-8")) or {}
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"YAML must be a mapping: {path}")
    return EngineConfig.from_dict(raw)


__all__ = ["EngineConfig", "load_config", "DEFAULT_CONFIG_FILE"]
