"""
File helpers for tests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict


def write(p: Path, text: str) -> Path:
    """
    Writes text to a file, creating parent directories as needed.

    Args:
        p: File path
        text: Content to write

    Returns:
        Path of the written file
    """
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Writes several files given as {relative posix path: content}."""
    for rel, text in files.items():
        write(root / rel, text)
    return root
