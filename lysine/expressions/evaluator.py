"""
Expression evaluator.

Walks an expression tree and computes its value against the current scope
stack, dispatching filters, testers and functions to the builtin registry.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, List, Protocol, cast

from .model import (
    ArrayLiteral,
    BinaryOp,
    Expression,
    ExpressionType,
    FilterChain,
    FunctionCall,
    Identifier,
    Index,
    Literal,
    MacroCall,
    Not,
    StringConcat,
    Test,
)
from .values import (
    UNDEFINED,
    compare_order,
    format_number,
    is_number,
    is_truthy,
    kind_of,
    structurally_equal,
    values_equal,
)
from ..builtins.registry import BuiltinRegistry
from ..errors import (
    BuiltinCallError,
    BuiltinError,
    DivisionByZeroError,
    NumericOverflowError,
    TypeMismatchError,
    UndefinedVariableError,
)
from ..template.context import ScopeStack

# call_macro(namespace, name, evaluated kwargs) -> rendered text
MacroCaller = Callable[[str, str, Dict[str, Any]], str]


class EvaluationState(Protocol):
    """Render state the evaluator reads from."""
    scopes: ScopeStack

    def tick(self, count: int = 1) -> None:
        """Counts evaluations against the render budget."""
        ...


class ExpressionEvaluator:
    """
    Computes expression values.

    The evaluator is bound to one render call; it reads the scope stack from
    the render state on every lookup, so macro calls that swap the stack are
    seen immediately.
    """

    def __init__(self, registry: BuiltinRegistry, state: EvaluationState, call_macro: MacroCaller):
        self.registry = registry
        self.state = state
        self.call_macro = call_macro

    def evaluate(self, expr: Expression) -> Any:
        """
        Evaluates an expression.

        Raises:
            RenderError: On undefined names, type mismatches and builtin failures
        """
        self.state.tick()
        expr_type = expr.get_type()

        if expr_type == ExpressionType.LITERAL:
            return cast(Literal, expr).value
        elif expr_type == ExpressionType.IDENTIFIER:
            return self._evaluate_identifier(cast(Identifier, expr))
        elif expr_type == ExpressionType.ARRAY:
            return [self.evaluate(item) for item in cast(ArrayLiteral, expr).items]
        elif expr_type == ExpressionType.CONCAT:
            return self._evaluate_concat(cast(StringConcat, expr))
        elif expr_type == ExpressionType.FUNCTION_CALL:
            return self._evaluate_function(cast(FunctionCall, expr))
        elif expr_type == ExpressionType.MACRO_CALL:
            return self._evaluate_macro_call(cast(MacroCall, expr))
        elif expr_type == ExpressionType.TEST:
            return self._evaluate_test(cast(Test, expr))
        elif expr_type == ExpressionType.BINARY:
            return self._evaluate_binary(cast(BinaryOp, expr))
        elif expr_type == ExpressionType.NOT:
            return not is_truthy(self.evaluate(cast(Not, expr).operand))
        elif expr_type == ExpressionType.FILTER_CHAIN:
            return self._evaluate_filters(cast(FilterChain, expr))
        else:
            raise ValueError(f"Unknown expression type: {expr_type}")

    def evaluate_kwargs(self, kwargs: Dict[str, Expression]) -> Dict[str, Any]:
        """Arguments are evaluated eagerly in the caller's scope."""
        return {name: self.evaluate(value) for name, value in kwargs.items()}

    # ----------------------------- lookups ----------------------------- #

    def lookup(self, identifier: Identifier) -> Any:
        """
        Follows the identifier path; UNDEFINED when any step misses.

        Raises:
            UndefinedVariableError: If a nested index identifier is undefined
        """
        value = self.state.scopes.lookup(identifier.name)

        for accessor in identifier.accessors:
            if value is UNDEFINED:
                return UNDEFINED
            if isinstance(accessor, Index):
                key = accessor.key
                if isinstance(key, Identifier):
                    key = self._evaluate_identifier(key)
            else:
                key = accessor.name
            value = _access(value, key)

        return value

    def _evaluate_identifier(self, identifier: Identifier) -> Any:
        value = self.lookup(identifier)
        if value is UNDEFINED:
            raise UndefinedVariableError(str(identifier))
        return value

    # ----------------------------- compound values ----------------------------- #

    def _evaluate_concat(self, expr: StringConcat) -> str:
        parts: List[str] = []
        for part in expr.parts:
            value = self.evaluate(part)
            if isinstance(value, str):
                parts.append(value)
            elif is_number(value):
                parts.append(format_number(value))
            else:
                raise TypeMismatchError(f"Cannot concatenate {kind_of(value)} with '~'")
        return "".join(parts)

    def _evaluate_function(self, expr: FunctionCall) -> Any:
        fn = self.registry.get_function(expr.name)
        args = self.evaluate_kwargs(expr.kwargs)
        try:
            result = fn(args)
        except BuiltinError as e:
            raise BuiltinCallError("function", expr.name, str(e)) from e
        if isinstance(result, range):
            # Every item of a lazy sequence costs one evaluation
            self.state.tick(_range_length(result))
            result = list(result)
        return result

    def _evaluate_macro_call(self, expr: MacroCall) -> str:
        args = self.evaluate_kwargs(expr.kwargs)
        return self.call_macro(expr.namespace, expr.name, args)

    def _evaluate_test(self, expr: Test) -> bool:
        tester = self.registry.get_tester(expr.name)
        subject = self.lookup(expr.subject)
        args = [self.evaluate(arg) for arg in expr.args]
        try:
            result = bool(tester(subject, args))
        except BuiltinError as e:
            raise BuiltinCallError("tester", expr.name, str(e)) from e
        return not result if expr.negated else result

    def _evaluate_filters(self, expr: FilterChain) -> Any:
        """
        Applies filters left to right.

        An undefined identifier is passed through to a leading default filter
        instead of failing.
        """
        if (expr.filters and expr.filters[0].name == "default"
                and isinstance(expr.base, Identifier)):
            value = self.lookup(expr.base)
        else:
            value = self.evaluate(expr.base)

        for call in expr.filters:
            value = self.apply_filter(call.name, value, self.evaluate_kwargs(call.kwargs))
        return value

    def apply_filter(self, name: str, value: Any, args: Dict[str, Any]) -> Any:
        fn = self.registry.get_filter(name)
        try:
            return fn(value, args)
        except BuiltinError as e:
            raise BuiltinCallError("filter", name, str(e)) from e

    # ----------------------------- operators ----------------------------- #

    def _evaluate_binary(self, expr: BinaryOp) -> Any:
        operator = expr.operator

        if operator == "and":
            return is_truthy(self.evaluate(expr.left)) and is_truthy(self.evaluate(expr.right))
        if operator == "or":
            return is_truthy(self.evaluate(expr.left)) or is_truthy(self.evaluate(expr.right))

        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)

        if operator == "in":
            return _contains(right, left)
        if operator == "not in":
            return not _contains(right, left)
        if operator == "==":
            return values_equal(left, right)
        if operator == "!=":
            return not values_equal(left, right)
        if operator in ("<", "<=", ">", ">="):
            return compare_order(operator, left, right)

        return _arithmetic(operator, left, right)


def _access(value: Any, key: Any) -> Any:
    """Single accessor step: object key or array index."""
    if isinstance(value, dict):
        if isinstance(key, str) and key in value:
            return value[key]
        return UNDEFINED
    if isinstance(value, list):
        if isinstance(key, str) and key.isdigit():
            key = int(key)
        if isinstance(key, int) and not isinstance(key, bool) and 0 <= key < len(value):
            return value[key]
        return UNDEFINED
    return UNDEFINED


def _contains(container: Any, item: Any) -> bool:
    if isinstance(container, str):
        if not isinstance(item, str):
            raise TypeMismatchError(f"Cannot check whether {kind_of(item)} is in a string")
        return item in container
    if isinstance(container, list):
        return any(structurally_equal(element, item) for element in container)
    if isinstance(container, dict):
        if not isinstance(item, str):
            raise TypeMismatchError(f"Cannot check whether {kind_of(item)} is a key of an object")
        return item in container
    raise TypeMismatchError(f"Operator 'in' needs a string, array or object, got {kind_of(container)}")


def _range_length(sequence: range) -> int:
    # len() raises OverflowError past sys.maxsize
    if sequence.step > 0:
        return max(0, (sequence.stop - sequence.start + sequence.step - 1) // sequence.step)
    return max(0, (sequence.start - sequence.stop - sequence.step - 1) // -sequence.step)


def _arithmetic(operator: str, left: Any, right: Any) -> Any:
    if not is_number(left) or not is_number(right):
        raise TypeMismatchError(
            f"Operator '{operator}' is not defined for {kind_of(left)} and {kind_of(right)}"
        )

    try:
        return _apply_arithmetic(operator, left, right)
    except OverflowError:
        # int too large to become a float
        raise NumericOverflowError(operator) from None


def _apply_arithmetic(operator: str, left: Any, right: Any) -> Any:
    if operator == "+":
        return left + right
    if operator == "-":
        return left - right
    if operator == "*":
        return left * right
    if operator == "/":
        if right == 0:
            raise DivisionByZeroError(operator)
        return left / right
    if operator == "%":
        if right == 0:
            raise DivisionByZeroError(operator)
        # Remainder takes the sign of the dividend
        if isinstance(left, float) or isinstance(right, float):
            return math.fmod(left, right)
        remainder = abs(left) % abs(right)
        return -remainder if left < 0 else remainder

    raise ValueError(f"Unknown arithmetic operator: {operator}")


__all__ = ["ExpressionEvaluator", "EvaluationState", "MacroCaller"]
