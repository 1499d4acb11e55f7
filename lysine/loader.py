"""
Template discovery on disk.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import pathspec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateFile:
    """A discovered template: its name (root-relative POSIX path) and location."""
    name: str
    path: Path


def build_spec(patterns: Sequence[str]) -> pathspec.PathSpec:
    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


def iter_template_files(root: Path, patterns: Optional[Sequence[str]] = None) -> Iterator[TemplateFile]:
    """
    Recursive iterator over template files under `root`.

    A file is selected when its root-relative POSIX path matches any of
    the gitwildmatch patterns. Hidden directories (starting with a dot)
    are never entered. Files come out sorted by name.
    """
    root = root.resolve()
    spec = build_spec(patterns or ["**/*"])

    found: List[TemplateFile] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for fn in filenames:
            p = Path(dirpath, fn)
            rel_posix = p.relative_to(root).as_posix()
            if spec.match_file(rel_posix):
                found.append(TemplateFile(name=rel_posix, path=p))

    found.sort(key=lambda f: f.name)
    logger.debug(f"Discovered {len(found)} template file(s) under {root}")
    yield from found


def read_template(path: Path) -> str:
    with path.open(encoding="utf-8") as f:
        return f.read()


def template_name_for(path: Path, name: Optional[str] = None) -> str:
    """Explicit name, or the file path with forward slashes."""
    return name if name is not None else Path(path).as_posix()


__all__ = ["TemplateFile", "iter_template_files", "read_template", "template_name_for", "build_spec"]
