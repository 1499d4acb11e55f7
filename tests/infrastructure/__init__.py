"""
Shared test infrastructure.

Modules:
- file_utils: Creating template files and directory trees
- cli_utils: Running the CLI in a subprocess
"""

from .file_utils import write, write_tree
from .cli_utils import run_cli

__all__ = ["write", "write_tree", "run_cli"]
