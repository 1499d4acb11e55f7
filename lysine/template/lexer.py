"""
Lexical analyzer of the template language.

Splits template source into a flat token stream. The lexer works in three
modes that mirror where the scanner currently is:

- text: everything up to the next {{, {% or {#
- tag: expression tokens between a tag opener and its matching closer
- raw: the body of {% raw %} ... {% endraw %}, emitted verbatim

Trim markers stay part of the delimiter token value ("{{-", "-%}") so the
parser can turn them into metadata on the adjacent text nodes.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Pattern, Tuple

from .tokens import KEYWORDS, Token, TokenType
from ..errors import TemplateSyntaxError

logger = logging.getLogger(__name__)


class TemplateLexer:
    """
    Template tokenizer.

    Each instance tokenizes one source text; create a new lexer per template.
    """

    # Start of any tag in text mode
    _TAG_OPEN = re.compile(r"\{[{%#]")

    _OPENERS = {
        "{{": TokenType.VARIABLE_START,
        "{%": TokenType.TAG_START,
        "{#": TokenType.COMMENT_START,
    }

    # Closers allowed for each opener
    _CLOSERS = {
        TokenType.VARIABLE_START: (re.compile(r"-?\}\}"), TokenType.VARIABLE_END, "}}"),
        TokenType.TAG_START: (re.compile(r"-?%\}"), TokenType.TAG_END, "%}"),
    }

    _COMMENT_CLOSE = re.compile(r"-?#\}")
    _RAW_CLOSE = re.compile(r"\{%-?\s*endraw\s*-?%\}")

    _WHITESPACE = re.compile(r"[ \t\r\n]+")

    # Word operators must be followed by whitespace: "not x", never "not(x)"
    _WORD_OPERATORS = {TokenType.AND, TokenType.OR, TokenType.NOT, TokenType.IN}

    # Identifier segment right after a dot: a.b, a.0
    _SEGMENT = re.compile(r"[A-Za-z0-9_]+")

    # Expression tokens in priority order
    _EXPRESSION_PATTERNS: List[Tuple[TokenType, Pattern[str]]] = [
        (TokenType.FLOAT, re.compile(r"(?:0|[1-9][0-9]*)\.[0-9]+")),
        (TokenType.INTEGER, re.compile(r"0|[1-9][0-9]*")),
        (TokenType.STRING, re.compile(r'"[^"]*"|\'[^\']*\'|`[^`]*`')),
        (TokenType.IDENTIFIER, re.compile(r"[A-Za-z_][A-Za-z0-9_]*")),
        (TokenType.DOUBLE_COLON, re.compile(r"::")),
        (TokenType.EQ, re.compile(r"==")),
        (TokenType.NE, re.compile(r"!=")),
        (TokenType.LE, re.compile(r"<=")),
        (TokenType.GE, re.compile(r">=")),
        (TokenType.LT, re.compile(r"<")),
        (TokenType.GT, re.compile(r">")),
        (TokenType.PLUS, re.compile(r"\+")),
        (TokenType.MINUS, re.compile(r"-")),
        (TokenType.STAR, re.compile(r"\*")),
        (TokenType.SLASH, re.compile(r"/")),
        (TokenType.PERCENT, re.compile(r"%")),
        (TokenType.TILDE, re.compile(r"~")),
        (TokenType.PIPE, re.compile(r"\|")),
        (TokenType.ASSIGN, re.compile(r"=")),
        (TokenType.COMMA, re.compile(r",")),
        (TokenType.DOT, re.compile(r"\.")),
        (TokenType.LPAREN, re.compile(r"\(")),
        (TokenType.RPAREN, re.compile(r"\)")),
        (TokenType.LBRACKET, re.compile(r"\[")),
        (TokenType.RBRACKET, re.compile(r"\]")),
    ]

    def __init__(self, text: str):
        self.text = text
        self.position = 0
        self.line = 1
        self.column = 1
        self.length = len(text)
        self.tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        """
        Tokenize the whole source text.

        Returns:
            List of tokens terminated by EOF

        Raises:
            TemplateSyntaxError: On unclosed tags/comments/raw blocks or unknown characters
        """
        self.tokens = []

        while self.position < self.length:
            match = self._TAG_OPEN.search(self.text, self.position)
            if match is None:
                self._emit(TokenType.TEXT, self.length - self.position)
                break

            if match.start() > self.position:
                self._emit(TokenType.TEXT, match.start() - self.position)

            opener = self._OPENERS[match.group(0)]
            trim = self.text.startswith("-", match.end())
            self._emit(opener, 3 if trim else 2)

            if opener == TokenType.COMMENT_START:
                self._lex_comment()
            else:
                self._lex_tag(opener)

        self.tokens.append(Token(TokenType.EOF, "", self.position, self.line, self.column))
        logger.debug(f"Tokenized template into {len(self.tokens)} tokens")
        return self.tokens

    # ----------------------------- modes ----------------------------- #

    def _lex_comment(self) -> None:
        """Comment body is opaque: no tag recognition until the closer."""
        close = self._COMMENT_CLOSE.search(self.text, self.position)
        if close is None:
            raise self._error("Unclosed comment", expected=["#}"])

        if close.start() > self.position:
            self._emit(TokenType.COMMENT_TEXT, close.start() - self.position)
        self._emit(TokenType.COMMENT_END, close.end() - close.start())

    def _lex_tag(self, opener: TokenType) -> None:
        """Expression tokens up to the closer that matches the opener."""
        closer_pattern, closer_type, closer_text = self._CLOSERS[opener]
        tag_begin = len(self.tokens)

        while True:
            ws = self._WHITESPACE.match(self.text, self.position)
            if ws:
                self._advance(ws.end() - ws.start())

            if self.position >= self.length:
                raise self._error("Unclosed tag", expected=[closer_text])

            close = closer_pattern.match(self.text, self.position)
            if close:
                self._emit(closer_type, close.end() - close.start())
                break

            self._lex_expression_token()

        if opener == TokenType.TAG_START and self._is_raw_tag(self.tokens[tag_begin:-1]):
            self._lex_raw_body()

    def _lex_expression_token(self) -> None:
        previous = self.tokens[-1] if self.tokens else None
        if previous is not None and previous.type == TokenType.DOT and previous.end == self.position:
            segment = self._SEGMENT.match(self.text, self.position)
            if segment:
                self._emit(TokenType.IDENTIFIER, segment.end() - segment.start())
                return

        for token_type, pattern in self._EXPRESSION_PATTERNS:
            match = pattern.match(self.text, self.position)
            if not match:
                continue
            if token_type == TokenType.IDENTIFIER:
                token_type = KEYWORDS.get(match.group(0), TokenType.IDENTIFIER)
                if token_type in self._WORD_OPERATORS and not self._WHITESPACE.match(self.text, match.end()):
                    raise self._error(f"Operator '{match.group(0)}' must be followed by whitespace")
            self._emit(token_type, match.end() - match.start())
            return

        raise self._error(f"Unexpected character {self.text[self.position]!r} in tag")

    def _lex_raw_body(self) -> None:
        """Emit everything up to the matching {% endraw %} as one token."""
        close = self._RAW_CLOSE.search(self.text, self.position)
        if close is None:
            raise self._error("Unclosed raw block", expected=["{% endraw %}"])
        self._emit(TokenType.RAW_TEXT, close.start() - self.position)

    @staticmethod
    def _is_raw_tag(inner: List[Token]) -> bool:
        return len(inner) == 1 and inner[0].type == TokenType.IDENTIFIER and inner[0].value == "raw"

    # ----------------------------- helpers ----------------------------- #

    def _emit(self, token_type: TokenType, length: int) -> Token:
        token = Token(
            token_type,
            self.text[self.position:self.position + length],
            self.position,
            self.line,
            self.column,
        )
        self.tokens.append(token)
        self._advance(length)
        return token

    def _advance(self, count: int) -> None:
        """
        Move the position forward, keeping line and column numbers in sync.
        """
        chunk = self.text[self.position:self.position + count]
        newlines = chunk.count("\n")
        if newlines:
            self.line += newlines
            self.column = len(chunk) - chunk.rfind("\n")
        else:
            self.column += len(chunk)
        self.position += len(chunk)

    def _error(self, message: str, expected: Optional[List[str]] = None) -> TemplateSyntaxError:
        return TemplateSyntaxError(message, self.position, self.line, self.column, expected)


def tokenize_template(text: str) -> List[Token]:
    """
    Convenience function for template tokenization.

    Args:
        text: Template source text

    Returns:
        List of tokens

    Raises:
        TemplateSyntaxError: On lexical errors
    """
    return TemplateLexer(text).tokenize()


__all__ = ["TemplateLexer", "tokenize_template"]
