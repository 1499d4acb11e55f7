"""
Builtin filters, testers and functions.
"""

from __future__ import annotations

from .registry import BuiltinRegistry, FilterFn, FunctionFn, TesterFn

__all__ = ["BuiltinRegistry", "FilterFn", "TesterFn", "FunctionFn"]
