"""
Expression parser with precedence climbing.

Builds an expression tree from the tokens between tag delimiters.

Grammar (lowest binding first):
expression    → logic
logic         → logic_value (("and" | "or") logic_value)*      strictly left to right
logic_value   → "not" logic_value | comparison
comparison    → operand ( "not"? "in" operand | cmp_op operand )?   no chaining
operand       → additive ("|" filter)* (arith_op additive)*         filters close an arithmetic run
additive      → multiplicative (("+" | "-") multiplicative)*
multiplicative→ concat (("*" | "/" | "%") concat)*
concat        → primary ("~" primary)*                             string-producing parts only
primary       → literal | array | "(" expression ")" | macro_call | function_call
                | identifier ("is" "not"? test_name test_args?)?

identifier    → NAME ( "." SEGMENT | "[" (INT | STRING | identifier) "]" )*   no inner whitespace
macro_call    → NAME "::" NAME "(" kwargs ")"
function_call → NAME "(" kwargs ")"
kwargs        → (NAME "=" expression ("," NAME "=" expression)* ","?)?
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .model import (
    ArrayLiteral,
    Attribute,
    BinaryOp,
    Expression,
    FilterCall,
    FilterChain,
    FunctionCall,
    Identifier,
    Index,
    Literal,
    LiteralValue,
    MacroCall,
    Not,
    StringConcat,
    Test,
)
from ..template.base import ParsingContext
from ..template.tokens import (
    ADDITIVE_OPERATORS,
    COMPARISON_OPERATORS,
    MULTIPLICATIVE_OPERATORS,
    Token,
    TokenType,
)

# Parts allowed on either side of "~"
_CONCAT_PARTS = (Literal, Identifier, FunctionCall, MacroCall)


class ExpressionParser:
    """
    Recursive descent parser for expressions.

    Works directly on the shared token cursor, so the statement parser can
    hand over in the middle of a tag and take control back afterwards.
    """

    def __init__(self, context: ParsingContext):
        self.ctx = context

    def parse_expression(self) -> Expression:
        """Parses a full expression (start symbol of the grammar)."""
        return self._parse_logic()

    # ----------------------------- precedence levels ----------------------------- #

    def _parse_logic(self) -> Expression:
        """and/or share one precedence level and fold left to right."""
        left = self._parse_logic_value()

        while self.ctx.match(TokenType.AND, TokenType.OR):
            operator = self.ctx.advance().value
            right = self._parse_logic_value()
            left = BinaryOp(operator=operator, left=left, right=right)

        return left

    def _parse_logic_value(self) -> Expression:
        if self.ctx.accept(TokenType.NOT):
            return Not(operand=self._parse_logic_value())
        return self._parse_comparison()

    def _parse_comparison(self) -> Expression:
        left = self._parse_operand()

        if self.ctx.match(TokenType.NOT) and self.ctx.peek().type == TokenType.IN:
            self.ctx.advance()
            self.ctx.advance()
            return BinaryOp(operator="not in", left=left, right=self._parse_operand())

        if self.ctx.accept(TokenType.IN):
            return BinaryOp(operator="in", left=left, right=self._parse_operand())

        if self.ctx.current().type in COMPARISON_OPERATORS:
            operator = COMPARISON_OPERATORS[self.ctx.advance().type]
            right = self._parse_operand()
            if self.ctx.current().type in COMPARISON_OPERATORS:
                raise self.ctx.error("Comparison operators cannot be chained")
            return BinaryOp(operator=operator, left=left, right=right)

        return left

    def _parse_operand(self) -> Expression:
        left = self._parse_additive()

        while self.ctx.match(TokenType.PIPE):
            left = self._parse_filters(left)
            if self._at_arithmetic_operator():
                left = self._parse_additive(first=left)

        return left

    def _parse_additive(self, first: Optional[Expression] = None) -> Expression:
        left = self._parse_multiplicative(first)

        while self.ctx.current().type in ADDITIVE_OPERATORS:
            operator = ADDITIVE_OPERATORS[self.ctx.advance().type]
            right = self._parse_multiplicative()
            left = BinaryOp(operator=operator, left=left, right=right)

        return left

    def _parse_multiplicative(self, first: Optional[Expression] = None) -> Expression:
        left = first if first is not None else self._parse_concat()

        while self.ctx.current().type in MULTIPLICATIVE_OPERATORS:
            operator = MULTIPLICATIVE_OPERATORS[self.ctx.advance().type]
            right = self._parse_concat()
            left = BinaryOp(operator=operator, left=left, right=right)

        return left

    def _parse_concat(self) -> Expression:
        start = self.ctx.current()
        first = self._parse_primary()
        if not self.ctx.match(TokenType.TILDE):
            return first

        self._check_concat_part(first, start)
        parts = [first]
        while self.ctx.accept(TokenType.TILDE):
            start = self.ctx.current()
            part = self._parse_primary()
            self._check_concat_part(part, start)
            parts.append(part)

        return StringConcat(parts=tuple(parts))

    def _check_concat_part(self, part: Expression, token: Token) -> None:
        if not isinstance(part, _CONCAT_PARTS):
            raise self.ctx.error(
                "String concatenation only accepts literals, identifiers and calls",
                token=token,
            )

    # ----------------------------- primaries ----------------------------- #

    def _parse_primary(self) -> Expression:
        """Parses atomic values and parenthesized groups."""
        current = self.ctx.current()

        if self.ctx.accept(TokenType.LPAREN):
            expr = self.parse_expression()
            self.ctx.consume(TokenType.RPAREN, "')'")
            return expr

        if current.type in (TokenType.INTEGER, TokenType.FLOAT, TokenType.STRING,
                            TokenType.TRUE, TokenType.FALSE, TokenType.MINUS):
            return Literal(value=self.parse_literal())

        if current.type == TokenType.LBRACKET:
            return self._parse_array()

        if current.type == TokenType.IDENTIFIER:
            return self._parse_name()

        if current.type == TokenType.EOF:
            raise self.ctx.error("Unexpected end of expression", ["expression"])
        raise self.ctx.error(f"Unexpected token '{current.value}'", ["expression"])

    def parse_literal(self) -> LiteralValue:
        """
        Parses int, float, string or bool literal.

        A minus sign directly in front of a number makes a negative literal.
        """
        token = self.ctx.current()
        negative = False
        if token.type == TokenType.MINUS:
            self.ctx.advance()
            if not self.ctx.match(TokenType.INTEGER, TokenType.FLOAT) or not self.ctx.is_adjacent():
                raise self.ctx.error("Expected a number after '-'", ["number"])
            negative = True
            token = self.ctx.current()

        if token.type == TokenType.INTEGER:
            self.ctx.advance()
            value: LiteralValue = int(token.value)
            return -value if negative else value
        if token.type == TokenType.FLOAT:
            self.ctx.advance()
            value = float(token.value)
            return -value if negative else value
        if token.type == TokenType.STRING:
            self.ctx.advance()
            return token.value[1:-1]
        if token.type in (TokenType.TRUE, TokenType.FALSE):
            self.ctx.advance()
            return token.type == TokenType.TRUE

        raise self.ctx.error(f"Expected a literal, got '{token.value}'", ["literal"])

    def _parse_array(self) -> ArrayLiteral:
        """[expr, expr, ...] with optional trailing comma"""
        self.ctx.consume(TokenType.LBRACKET)
        items: List[Expression] = []

        while not self.ctx.match(TokenType.RBRACKET):
            items.append(self.parse_expression())
            if not self.ctx.accept(TokenType.COMMA):
                break

        self.ctx.consume(TokenType.RBRACKET, "']'")
        return ArrayLiteral(items=tuple(items))

    def _parse_name(self) -> Expression:
        """Macro call, function call, or identifier (optionally tested)."""
        name_token = self.ctx.advance()

        if self.ctx.match(TokenType.DOUBLE_COLON) and self.ctx.is_adjacent():
            self.ctx.advance()
            if not self.ctx.is_adjacent():
                raise self.ctx.error("Whitespace is not allowed in macro call names")
            macro_name = self.ctx.consume(TokenType.IDENTIFIER, "macro name").value
            kwargs = self.parse_kwargs()
            return MacroCall(namespace=name_token.value, name=macro_name, kwargs=kwargs)

        if self.ctx.match(TokenType.LPAREN):
            return FunctionCall(name=name_token.value, kwargs=self.parse_kwargs())

        identifier = self._parse_accessors(name_token)

        if self.ctx.accept(TokenType.IS):
            return self._parse_test(identifier)

        return identifier

    def parse_identifier(self) -> Identifier:
        """Parses a (possibly dotted/bracketed) identifier."""
        return self._parse_accessors(self.ctx.consume(TokenType.IDENTIFIER, "identifier"))

    def _parse_accessors(self, name_token: Token) -> Identifier:
        accessors = []

        while self.ctx.is_adjacent():
            if self.ctx.match(TokenType.DOT):
                self.ctx.advance()
                segment = self.ctx.current()
                if segment.type not in (TokenType.IDENTIFIER, TokenType.INTEGER) or not self.ctx.is_adjacent():
                    raise self.ctx.error("Expected attribute name after '.'", ["identifier"])
                self.ctx.advance()
                accessors.append(Attribute(name=segment.value))
            elif self.ctx.match(TokenType.LBRACKET):
                self.ctx.advance()
                accessors.append(Index(key=self._parse_index_key()))
                self.ctx.consume(TokenType.RBRACKET, "']'")
            else:
                break

        return Identifier(name=name_token.value, accessors=tuple(accessors))

    def _parse_index_key(self):
        current = self.ctx.current()
        if current.type == TokenType.INTEGER:
            return int(self.ctx.advance().value)
        if current.type == TokenType.STRING:
            return self.ctx.advance().value[1:-1]
        if current.type == TokenType.IDENTIFIER:
            return self.parse_identifier()
        raise self.ctx.error(
            f"Unexpected token '{current.value}' in brackets",
            ["integer", "string", "identifier"],
        )

    def _parse_test(self, subject: Identifier) -> Test:
        """subject is [not] name[(args)]"""
        negated = self.ctx.accept(TokenType.NOT) is not None
        name = self.ctx.consume(TokenType.IDENTIFIER, "test name").value
        args: List[Expression] = []

        if self.ctx.accept(TokenType.LPAREN):
            while not self.ctx.match(TokenType.RPAREN):
                args.append(self.parse_expression())
                if not self.ctx.accept(TokenType.COMMA):
                    break
            self.ctx.consume(TokenType.RPAREN, "')'")

        return Test(subject=subject, name=name, args=tuple(args), negated=negated)

    # ----------------------------- calls and filters ----------------------------- #

    def parse_kwargs(self) -> Dict[str, Expression]:
        """
        Parses "(" name=expr, ... ")" with optional trailing comma.

        Raises:
            TemplateSyntaxError: On positional or duplicated arguments
        """
        self.ctx.consume(TokenType.LPAREN, "'('")
        kwargs: Dict[str, Expression] = {}

        while not self.ctx.match(TokenType.RPAREN):
            name_token = self.ctx.consume(TokenType.IDENTIFIER, "argument name")
            if name_token.value in kwargs:
                raise self.ctx.error(f"Duplicate argument '{name_token.value}'", token=name_token)
            self.ctx.consume(TokenType.ASSIGN, "'='")
            kwargs[name_token.value] = self.parse_expression()
            if not self.ctx.accept(TokenType.COMMA):
                break

        self.ctx.consume(TokenType.RPAREN, "')'")
        return kwargs

    def parse_filter_call(self) -> FilterCall:
        """name or name(kwargs), used after '|' and by the filter section tag."""
        name = self.ctx.consume(TokenType.IDENTIFIER, "filter name").value
        kwargs = self.parse_kwargs() if self.ctx.match(TokenType.LPAREN) else {}
        return FilterCall(name=name, kwargs=kwargs)

    def _parse_filters(self, base: Expression) -> FilterChain:
        filters: List[FilterCall] = []
        while self.ctx.accept(TokenType.PIPE):
            filters.append(self.parse_filter_call())
        return FilterChain(base=base, filters=tuple(filters))

    def _at_arithmetic_operator(self) -> bool:
        current = self.ctx.current().type
        return current in ADDITIVE_OPERATORS or current in MULTIPLICATIVE_OPERATORS


def parse_expression_string(source: str) -> Expression:
    """
    Convenience function: parses a standalone expression.

    Args:
        source: Expression text, e.g. "1 + 2 * x"

    Returns:
        Root node of the expression tree

    Raises:
        TemplateSyntaxError: On syntax errors
    """
    from ..template.lexer import TemplateLexer

    tokens = TemplateLexer("{{ " + source + " }}").tokenize()
    ctx = ParsingContext(tokens)
    ctx.consume(TokenType.VARIABLE_START)
    expr = ExpressionParser(ctx).parse_expression()
    if not ctx.match(TokenType.VARIABLE_END):
        current = ctx.current()
        raise ctx.error(f"Unexpected token '{current.value}'", ["end of expression"])
    return expr


__all__ = ["ExpressionParser", "parse_expression_string"]
