"""
Registry of builtin filters, testers and functions.

The engine builds one registry during setup, fills it with the default
catalogue plus user registrations and freezes it before the first render.
Render calls only read from it, so it can be shared across threads.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from ..errors import ConfigError, UndefinedBuiltinError

logger = logging.getLogger(__name__)

# fn(value, kwargs) -> value
FilterFn = Callable[[Any, Dict[str, Any]], Any]
# fn(value, positional args) -> bool
TesterFn = Callable[[Any, List[Any]], bool]
# fn(kwargs) -> value
FunctionFn = Callable[[Dict[str, Any]], Any]


class BuiltinRegistry:
    """
    Name-keyed tables of builtin callables.

    Registration is only possible while the registry is not frozen.
    """

    def __init__(self):
        self.filters: Dict[str, FilterFn] = {}
        self.testers: Dict[str, TesterFn] = {}
        self.functions: Dict[str, FunctionFn] = {}
        self._frozen = False

    @classmethod
    def with_defaults(cls) -> "BuiltinRegistry":
        """Creates a registry pre-filled with the default catalogue."""
        from .filters import DEFAULT_FILTERS
        from .functions import DEFAULT_FUNCTIONS
        from .testers import DEFAULT_TESTERS

        registry = cls()
        registry.filters.update(DEFAULT_FILTERS)
        registry.testers.update(DEFAULT_TESTERS)
        registry.functions.update(DEFAULT_FUNCTIONS)
        return registry

    # ----------------------------- registration ----------------------------- #

    def register_filter(self, name: str, fn: FilterFn) -> None:
        self._register(self.filters, "filter", name, fn)

    def register_tester(self, name: str, fn: TesterFn) -> None:
        self._register(self.testers, "tester", name, fn)

    def register_function(self, name: str, fn: FunctionFn) -> None:
        self._register(self.functions, "function", name, fn)

    def _register(self, table: Dict[str, Callable], kind: str, name: str, fn: Callable) -> None:
        if self._frozen:
            raise ConfigError(f"Cannot register {kind} '{name}': builtins are frozen after the first render")
        if name in table:
            logger.warning(f"{kind.capitalize()} '{name}' overwrites an existing registration")
        table[name] = fn

    def freeze(self) -> None:
        """Makes the registry read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def merge_missing(self, other: "BuiltinRegistry") -> None:
        """Copies entries of `other` whose names are not registered here yet."""
        for mine, theirs in ((self.filters, other.filters),
                             (self.testers, other.testers),
                             (self.functions, other.functions)):
            for name, fn in theirs.items():
                mine.setdefault(name, fn)

    # ----------------------------- lookup ----------------------------- #

    def get_filter(self, name: str) -> FilterFn:
        try:
            return self.filters[name]
        except KeyError:
            raise UndefinedBuiltinError("filter", name) from None

    def get_tester(self, name: str) -> TesterFn:
        try:
            return self.testers[name]
        except KeyError:
            raise UndefinedBuiltinError("tester", name) from None

    def get_function(self, name: str) -> FunctionFn:
        try:
            return self.functions[name]
        except KeyError:
            raise UndefinedBuiltinError("function", name) from None


__all__ = ["BuiltinRegistry", "FilterFn", "TesterFn", "FunctionFn"]
