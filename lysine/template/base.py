"""
Token cursor shared by the statement parser and the expression parser.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .tokens import Token, TokenType
from ..errors import TemplateSyntaxError


class ParsingContext:
    """
    Context for parsing tokens.

    Provides methods for navigating tokens and tracking the position
    during syntax analysis.
    """

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.position = 0
        self.length = len(tokens)

    def current(self) -> Token:
        """Returns the current token."""
        if self.position >= self.length:
            return self._eof()
        return self.tokens[self.position]

    def peek(self, offset: int = 1) -> Token:
        """Returns the token at the given offset from the current position."""
        pos = self.position + offset
        if pos >= self.length:
            return self._eof()
        return self.tokens[pos]

    def previous(self) -> Optional[Token]:
        """Returns the last consumed token."""
        return self.tokens[self.position - 1] if self.position > 0 else None

    def advance(self) -> Token:
        """Moves to the next token and returns the previous one."""
        current = self.current()
        if self.position < self.length:
            self.position += 1
        return current

    def is_at_end(self) -> bool:
        """Checks whether the end of tokens is reached."""
        return self.current().type == TokenType.EOF

    def match(self, *token_types: TokenType) -> bool:
        """Checks whether the current token has one of the given types."""
        return self.current().type in token_types

    def match_word(self, word: str) -> bool:
        """Checks whether the current token is the identifier `word`."""
        current = self.current()
        return current.type == TokenType.IDENTIFIER and current.value == word

    def accept(self, token_type: TokenType) -> Optional[Token]:
        """Consumes the current token if it has the given type."""
        if self.current().type == token_type:
            return self.advance()
        return None

    def is_adjacent(self) -> bool:
        """
        Checks that the current token starts right where the previous one ended.

        Atomic rules (dotted identifiers, bracket access, namespaced macro
        calls) do not allow whitespace between their parts.
        """
        prev = self.previous()
        return prev is not None and prev.end == self.current().position

    def consume(self, expected_type: TokenType, description: str = "") -> Token:
        """
        Consumes a token of the expected type.

        Raises:
            TemplateSyntaxError: If the token does not have the expected type
        """
        current = self.current()
        if current.type != expected_type:
            what = description or expected_type.name
            raise self.error(f"Expected {what}, got {self._describe(current)}", [what])
        return self.advance()

    def consume_word(self, word: str) -> Token:
        """Consumes the identifier `word` (tag keywords such as endfor, as, ignore)."""
        if not self.match_word(word):
            raise self.error(f"Expected '{word}', got {self._describe(self.current())}", [word])
        return self.advance()

    def error(self, message: str, expected: Optional[Sequence[str]] = None,
              token: Optional[Token] = None) -> TemplateSyntaxError:
        """Builds a syntax error pointing at the given (or current) token."""
        token = token or self.current()
        return TemplateSyntaxError(message, token.position, token.line, token.column, expected)

    def _eof(self) -> Token:
        if self.tokens:
            last = self.tokens[-1]
            return Token(TokenType.EOF, "", last.end, last.line, last.column)
        return Token(TokenType.EOF, "", 0, 1, 1)

    @staticmethod
    def _describe(token: Token) -> str:
        if token.type == TokenType.EOF:
            return "end of template"
        return f"'{token.value}'"


__all__ = ["ParsingContext"]
