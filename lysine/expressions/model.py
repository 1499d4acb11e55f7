"""
Expression tree of the template language.

Every node can render itself back to source text, so a parsed expression
can be printed and re-parsed into an equivalent tree.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple, Union


class ExpressionType(Enum):
    """Expression node kinds."""
    LITERAL = "literal"
    IDENTIFIER = "identifier"
    ARRAY = "array"
    CONCAT = "concat"
    FUNCTION_CALL = "function_call"
    MACRO_CALL = "macro_call"
    TEST = "test"
    BINARY = "binary"
    NOT = "not"
    FILTER_CHAIN = "filter_chain"


@dataclass(frozen=True)
class Expression(ABC):
    """Base class for all expression nodes."""

    @abstractmethod
    def get_type(self) -> ExpressionType:
        """Returns the node kind."""
        pass

    def __str__(self) -> str:
        return self._to_string()

    @abstractmethod
    def _to_string(self) -> str:
        pass


LiteralValue = Union[bool, int, float, str]


def _quote(text: str) -> str:
    for quote in ('"', "'", "`"):
        if quote not in text:
            return f"{quote}{text}{quote}"
    raise ValueError(f"String literal cannot be printed: {text!r}")


def literal_to_source(value: LiteralValue) -> str:
    """Source form of a literal value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return _quote(value)
    return repr(value)


@dataclass(frozen=True)
class Literal(Expression):
    """int, float, bool or string literal"""
    value: LiteralValue

    def get_type(self) -> ExpressionType:
        return ExpressionType.LITERAL

    def _to_string(self) -> str:
        return literal_to_source(self.value)


@dataclass(frozen=True)
class Attribute:
    """Dotted accessor: .name"""
    name: str

    def __str__(self) -> str:
        return f".{self.name}"


@dataclass(frozen=True)
class Index:
    """
    Bracket accessor: [0], ["key"] or [other.identifier]

    A nested identifier is looked up first and its value is used as the key.
    """
    key: Union[int, str, "Identifier"]

    def __str__(self) -> str:
        if isinstance(self.key, Identifier):
            return f"[{self.key}]"
        return f"[{literal_to_source(self.key)}]"


Accessor = Union[Attribute, Index]


@dataclass(frozen=True)
class Identifier(Expression):
    """
    Variable reference: root name plus a chain of accessors.

    Example: users[0].name, config["key"], rows[loop.index0]
    """
    name: str
    accessors: Tuple[Accessor, ...] = ()

    def get_type(self) -> ExpressionType:
        return ExpressionType.IDENTIFIER

    def _to_string(self) -> str:
        return self.name + "".join(str(a) for a in self.accessors)


@dataclass(frozen=True)
class ArrayLiteral(Expression):
    """[expr, expr, ...]"""
    items: Tuple[Expression, ...] = ()

    def get_type(self) -> ExpressionType:
        return ExpressionType.ARRAY

    def _to_string(self) -> str:
        return "[" + ", ".join(str(i) for i in self.items) + "]"


@dataclass(frozen=True)
class StringConcat(Expression):
    """a ~ "b" ~ c"""
    parts: Tuple[Expression, ...]

    def get_type(self) -> ExpressionType:
        return ExpressionType.CONCAT

    def _to_string(self) -> str:
        return " ~ ".join(str(p) for p in self.parts)


def _kwargs_to_string(kwargs: Dict[str, Expression]) -> str:
    return ", ".join(f"{k}={v}" for k, v in kwargs.items())


@dataclass(frozen=True)
class FunctionCall(Expression):
    """Global function call with keyword arguments: range(end=3)"""
    name: str
    kwargs: Dict[str, Expression] = field(default_factory=dict)

    def get_type(self) -> ExpressionType:
        return ExpressionType.FUNCTION_CALL

    def _to_string(self) -> str:
        return f"{self.name}({_kwargs_to_string(self.kwargs)})"


@dataclass(frozen=True)
class MacroCall(Expression):
    """Macro call through a namespace: ns::name(arg=value)"""
    namespace: str
    name: str
    kwargs: Dict[str, Expression] = field(default_factory=dict)

    def get_type(self) -> ExpressionType:
        return ExpressionType.MACRO_CALL

    def _to_string(self) -> str:
        return f"{self.namespace}::{self.name}({_kwargs_to_string(self.kwargs)})"


@dataclass(frozen=True)
class Test(Expression):
    """
    Tester application: subject is name(args) / subject is not name(args)

    The subject is passed to the tester as implicit first argument.
    """
    __test__ = False  # not a pytest test class

    subject: Identifier
    name: str
    args: Tuple[Expression, ...] = ()
    negated: bool = False

    def get_type(self) -> ExpressionType:
        return ExpressionType.TEST

    def _to_string(self) -> str:
        op = "is not" if self.negated else "is"
        args = f"({', '.join(str(a) for a in self.args)})" if self.args else ""
        return f"{self.subject} {op} {self.name}{args}"


# Operators grouped by the family they belong to
ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "%")
COMPARISON_OPERATORS = ("==", "!=", "<=", ">=", "<", ">")
LOGIC_OPERATORS = ("and", "or")
MEMBERSHIP_OPERATORS = ("in", "not in")


def _operand_to_string(expr: Expression) -> str:
    if isinstance(expr, (BinaryOp, Not)):
        return f"({expr})"
    return str(expr)


@dataclass(frozen=True)
class BinaryOp(Expression):
    """
    Binary operation: left op right

    Covers arithmetic, comparison, logic and membership operators.
    """
    operator: str
    left: Expression
    right: Expression

    def get_type(self) -> ExpressionType:
        return ExpressionType.BINARY

    def _to_string(self) -> str:
        return f"{_operand_to_string(self.left)} {self.operator} {_operand_to_string(self.right)}"


@dataclass(frozen=True)
class Not(Expression):
    """not expr"""
    operand: Expression

    def get_type(self) -> ExpressionType:
        return ExpressionType.NOT

    def _to_string(self) -> str:
        return f"not {_operand_to_string(self.operand)}"


@dataclass(frozen=True)
class FilterCall:
    """One filter invocation: | name or | name(arg=value)"""
    name: str
    kwargs: Dict[str, Expression] = field(default_factory=dict)

    def __str__(self) -> str:
        if self.kwargs:
            return f"{self.name}({_kwargs_to_string(self.kwargs)})"
        return self.name


@dataclass(frozen=True)
class FilterChain(Expression):
    """base | f1 | f2(arg=1), applied left to right"""
    base: Expression
    filters: Tuple[FilterCall, ...]

    def get_type(self) -> ExpressionType:
        return ExpressionType.FILTER_CHAIN

    def _to_string(self) -> str:
        base = _operand_to_string(self.base)
        return base + "".join(f" | {f}" for f in self.filters)



__all__ = [
    "ExpressionType",
    "Expression",
    "Literal",
    "LiteralValue",
    "literal_to_source",
    "Attribute",
    "Index",
    "Accessor",
    "Identifier",
    "ArrayLiteral",
    "StringConcat",
    "FunctionCall",
    "MacroCall",
    "Test",
    "BinaryOp",
    "Not",
    "FilterCall",
    "FilterChain",
    "ARITHMETIC_OPERATORS",
    "COMPARISON_OPERATORS",
    "LOGIC_OPERATORS",
    "MEMBERSHIP_OPERATORS",
]
