from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .config import DEFAULT_CONFIG_FILE, EngineConfig, load_config
from .engine import Lysine
from .errors import LysineUserError
from .template.context import Context
from .version import tool_version

_yaml = YAML(typ="safe")


def _setup_logging() -> None:
    log = logging.getLogger("lysine")
    if log.handlers:
        return
    log.setLevel(logging.DEBUG if os.environ.get("LYSINE_DEBUG") else logging.WARNING)
    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    log.addHandler(h)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lysine",
        description="Lysine template engine",
        add_help=True,
    )
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {tool_version()}")
    sub = p.add_subparsers(dest="cmd", required=True)

    # Shared by every subcommand
    def add_common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument(
            "--dir",
            default=".",
            help="template directory (default: current directory)",
        )
        sp.add_argument(
            "--config",
            metavar="FILE",
            help=f"YAML config (default: <dir>/{DEFAULT_CONFIG_FILE} if present)",
        )

    sp_render = sub.add_parser("render", help="Render one template to stdout")
    add_common(sp_render)
    sp_render.add_argument("template", help="template name (path relative to --dir)")
    sp_render.add_argument(
        "--context",
        metavar="FILE",
        help="context data as a JSON or YAML mapping",
    )
    sp_render.add_argument(
        "--var",
        action="append",
        metavar="KEY=VALUE",
        help="context entry; VALUE is parsed as JSON, otherwise taken as a string (repeatable)",
    )

    sp_check = sub.add_parser("check", help="Parse and resolve every template")
    add_common(sp_check)

    sp_list = sub.add_parser("list", help="List template names")
    add_common(sp_list)

    return p


def _config(ns: argparse.Namespace) -> EngineConfig:
    if ns.config:
        path = Path(ns.config)
        if not path.is_file():
            raise ValueError(f"Config file not found: {path}")
        return load_config(path)
    return load_config(Path(ns.dir) / DEFAULT_CONFIG_FILE)


def _engine(ns: argparse.Namespace) -> Lysine:
    config = _config(ns)
    patterns = list(config.templates)
    # The config file itself is never a template
    patterns.append(f"!/{DEFAULT_CONFIG_FILE}")
    return Lysine.from_directory(ns.dir, patterns, config)


def _load_context_file(path: Path) -> Dict[str, Any]:
    """Reads a JSON (.json) or YAML (anything else) mapping."""
    if not path.is_file():
        raise ValueError(f"Context file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = _yaml.load(text)
    except (json.JSONDecodeError, YAMLError) as e:
        raise ValueError(f"Failed to parse context file {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Context file must hold a mapping: {path}")
    return data


def _parse_vars(items: Optional[List[str]]) -> Dict[str, Any]:
    """Parses KEY=VALUE pairs; VALUE is JSON when it parses as such."""
    result: Dict[str, Any] = {}
    if not items:
        return result

    for item in items:
        if "=" not in item:
            raise ValueError(f"Invalid --var '{item}'. Expected 'KEY=VALUE'")
        key, raw = item.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid --var '{item}'. Key is empty")
        try:
            result[key] = json.loads(raw)
        except json.JSONDecodeError:
            result[key] = raw
    return result


def _context(ns: argparse.Namespace) -> Context:
    context = Context()
    if ns.context:
        for key, value in _load_context_file(Path(ns.context)).items():
            context.insert(str(key), value)
    for key, value in _parse_vars(ns.var).items():
        context.insert(key, value)
    return context


def main(argv: list[str] | None = None) -> int:
    _setup_logging()
    ns = _build_parser().parse_args(argv)

    try:
        if ns.cmd == "render":
            engine = _engine(ns)
            sys.stdout.write(engine.render(ns.template, _context(ns)))
            return 0

        if ns.cmd == "check":
            engine = _engine(ns)
            sys.stdout.write(f"ok: {len(engine.get_template_names())} templates\n")
            return 0

        if ns.cmd == "list":
            engine = _engine(ns)
            for name in engine.get_template_names():
                sys.stdout.write(name + "\n")
            return 0

    except LysineUserError as e:
        sys.stderr.write(f"error: {str(e).rstrip()}\n")
        return 2
    except ValueError as e:
        sys.stderr.write(f"error: {str(e).rstrip()}\n")
        return 2

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
