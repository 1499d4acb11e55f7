"""
Error taxonomy for the template engine.

All expected errors that should be displayed to the user
as clean messages (without stack traces) inherit from LysineUserError.
They fall into three families that follow the processing pipeline:

- TemplateSyntaxError: the source text does not match the grammar
- ResolveError: templates parse, but their extends/import graph is broken
- RenderError: evaluation of a resolved template failed

Programming errors and bugs should NOT inherit from LysineUserError:
they will propagate with full tracebacks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence


class LysineUserError(Exception):
    """
    Base class for all user-facing errors of the engine.

    These errors indicate problems that the template author can fix:
    syntax mistakes, broken inheritance, undefined variables, etc.
    """
    pass


# ----------------------------- Parsing ----------------------------- #

class TemplateSyntaxError(LysineUserError):
    """
    Grammar mismatch, unknown or misplaced tag, illegal nesting.

    Always carries the source position of the offending token.
    """

    def __init__(
        self,
        message: str,
        position: int,
        line: int,
        column: int,
        expected: Optional[Sequence[str]] = None,
        template_name: str = "",
    ):
        self.message = message
        self.position = position
        self.line = line
        self.column = column
        self.expected: List[str] = list(expected or [])
        self.template_name = template_name
        super().__init__(self._format())

    def with_template(self, template_name: str) -> "TemplateSyntaxError":
        """Attach the template name once it is known (lexer/parser work on bare text)."""
        self.template_name = template_name
        self.args = (self._format(),)
        return self

    def _format(self) -> str:
        where = f"{self.template_name}:" if self.template_name else ""
        msg = f"{where}{self.line}:{self.column}: {self.message}"
        if self.expected:
            msg += f" (expected {', '.join(self.expected)})"
        return msg


# ----------------------------- Resolution ----------------------------- #

class ResolveError(LysineUserError):
    """Base class for extends/import graph errors."""
    pass


@dataclass
class DuplicateBlockError(ResolveError):
    """Two blocks with the same name in one template."""
    template_name: str
    block_name: str

    def __str__(self) -> str:
        return f"Block '{self.block_name}' is defined more than once in template '{self.template_name}'"


@dataclass
class CircularExtendsError(ResolveError):
    """Circular dependency in extends chain."""
    cycle: List[str]

    def __str__(self) -> str:
        return f"Circular extends dependency: {' -> '.join(self.cycle)}"


@dataclass
class MissingParentError(ResolveError):
    """Template extends a template that is not loaded."""
    template_name: str
    parent_name: str

    def __str__(self) -> str:
        return f"Template '{self.template_name}' extends '{self.parent_name}' which is not loaded"


@dataclass
class MissingImportError(ResolveError):
    """Template imports macros from a template that is not loaded."""
    template_name: str
    import_name: str

    def __str__(self) -> str:
        return (
            f"Template '{self.template_name}' loads macros from '{self.import_name}' "
            f"which is not loaded"
        )


@dataclass
class UnresolvedSuperError(ResolveError):
    """super() used in a block that has no less-derived definition."""
    template_name: str
    block_name: str

    def __str__(self) -> str:
        return (
            f"super() was called in block '{self.block_name}' of template "
            f"'{self.template_name}' but no parent template defines that block"
        )


# ----------------------------- Rendering ----------------------------- #

class RenderError(LysineUserError):
    """
    Base class for evaluation errors.

    The renderer records the name of the template that was being evaluated
    when the error happened, so the message points at the right file.
    """
    template_name: str = ""

    def __str__(self) -> str:
        msg = self.describe()
        if self.template_name:
            msg += f" (while rendering '{self.template_name}')"
        return msg

    def describe(self) -> str:
        return super().__str__()


@dataclass
class TemplateNotFoundError(RenderError):
    """Requested template is not in the cache."""
    name: str

    def describe(self) -> str:
        return f"Template '{self.name}' not found"


@dataclass
class UndefinedVariableError(RenderError):
    """Identifier path lookup missed and no default rescued it."""
    path: str

    def describe(self) -> str:
        return f"Variable '{self.path}' not found in context"


@dataclass
class UndefinedBuiltinError(RenderError):
    """Filter, function or tester name is not registered."""
    kind: str  # "filter" | "function" | "tester"
    name: str

    def describe(self) -> str:
        return f"{self.kind.capitalize()} '{self.name}' not found"


@dataclass
class UndefinedMacroError(RenderError):
    """Macro namespace or macro name cannot be found."""
    namespace: str
    name: str
    reason: str = ""

    def describe(self) -> str:
        msg = f"Macro '{self.namespace}::{self.name}' not found"
        if self.reason:
            msg += f": {self.reason}"
        return msg


@dataclass
class MacroArityError(RenderError):
    """Macro called with missing or unknown keyword arguments."""
    macro: str
    missing: List[str] = field(default_factory=list)
    unknown: List[str] = field(default_factory=list)

    def describe(self) -> str:
        parts = []
        if self.missing:
            parts.append(f"missing argument(s) {', '.join(self.missing)}")
        if self.unknown:
            parts.append(f"unknown argument(s) {', '.join(self.unknown)}")
        return f"Macro '{self.macro}' called with {'; '.join(parts)}"


@dataclass
class TypeMismatchError(RenderError):
    """Operator applied to incompatible value kinds."""
    message: str

    def describe(self) -> str:
        return self.message


@dataclass
class DivisionByZeroError(RenderError):
    """Right operand of / or % is zero."""
    operator: str

    def describe(self) -> str:
        what = "Modulo" if self.operator == "%" else "Division"
        return f"{what} by zero"


@dataclass
class NumericOverflowError(RenderError):
    """Arithmetic result does not fit in a float."""
    operator: str

    def describe(self) -> str:
        return f"Result of operator '{self.operator}' is too large for a number"


@dataclass
class MissingIncludeError(RenderError):
    """No include candidate resolves and 'ignore missing' is absent."""
    candidates: List[str]

    def describe(self) -> str:
        names = ", ".join(f"'{c}'" for c in self.candidates)
        return f"Template(s) {names} not found for include"


@dataclass
class LoopControlError(RenderError):
    """break/continue evaluated outside of a for loop."""
    keyword: str

    def describe(self) -> str:
        return f"'{self.keyword}' is only allowed inside a for loop"


@dataclass
class ResourceExhaustedError(RenderError):
    """Recursion depth or evaluation budget exceeded."""
    limit_name: str
    limit: int

    def describe(self) -> str:
        return f"Render aborted: {self.limit_name} limit of {self.limit} exceeded"


@dataclass
class BuiltinCallError(RenderError):
    """A filter, function or tester rejected its input."""
    kind: str
    name: str
    message: str

    def describe(self) -> str:
        return f"{self.kind.capitalize()} '{self.name}' failed: {self.message}"


class BuiltinError(LysineUserError):
    """
    Raised by builtin filter/function/tester implementations.

    The renderer converts it into BuiltinCallError with the builtin's name.
    """
    pass


# ----------------------------- Engine setup ----------------------------- #

class ConfigError(LysineUserError):
    """Invalid engine configuration."""
    pass


class TemplateLoadError(LysineUserError):
    """One or more template files could not be read or parsed."""

    def __init__(self, failures: Sequence[str]):
        self.failures = list(failures)
        super().__init__("Failed to load templates:" + "".join(f"\n- {f}" for f in self.failures))


__all__ = [
    "LysineUserError",
    "TemplateSyntaxError",
    "ResolveError",
    "DuplicateBlockError",
    "CircularExtendsError",
    "MissingParentError",
    "MissingImportError",
    "UnresolvedSuperError",
    "RenderError",
    "TemplateNotFoundError",
    "UndefinedVariableError",
    "UndefinedBuiltinError",
    "UndefinedMacroError",
    "MacroArityError",
    "TypeMismatchError",
    "DivisionByZeroError",
    "NumericOverflowError",
    "MissingIncludeError",
    "LoopControlError",
    "ResourceExhaustedError",
    "BuiltinCallError",
    "BuiltinError",
    "ConfigError",
    "TemplateLoadError",
]
