"""
Lexical types of the template language.

Defines token kinds for both the text level (delimiters, raw bodies,
comments) and the expression level (literals, identifiers, operators)
that lives between tag delimiters.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class TokenType(enum.Enum):
    """Token kinds produced by TemplateLexer."""

    # Text outside of tags
    TEXT = "TEXT"
    RAW_TEXT = "RAW_TEXT"                    # verbatim body of {% raw %}

    # Delimiters (value keeps the trim marker, e.g. "{{-")
    VARIABLE_START = "VARIABLE_START"        # {{
    VARIABLE_END = "VARIABLE_END"            # }}
    TAG_START = "TAG_START"                  # {%
    TAG_END = "TAG_END"                      # %}
    COMMENT_START = "COMMENT_START"          # {#
    COMMENT_TEXT = "COMMENT_TEXT"
    COMMENT_END = "COMMENT_END"              # #}

    # Literals and names
    IDENTIFIER = "IDENTIFIER"
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    STRING = "STRING"

    # Word operators and literals
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    IN = "IN"
    IS = "IS"
    TRUE = "TRUE"
    FALSE = "FALSE"

    # Arithmetic
    PLUS = "PLUS"                            # +
    MINUS = "MINUS"                          # -
    STAR = "STAR"                            # *
    SLASH = "SLASH"                          # /
    PERCENT = "PERCENT"                      # %

    # Comparison
    EQ = "EQ"                                # ==
    NE = "NE"                                # !=
    LE = "LE"                                # <=
    GE = "GE"                                # >=
    LT = "LT"                                # <
    GT = "GT"                                # >

    # Punctuation
    TILDE = "TILDE"                          # ~
    PIPE = "PIPE"                            # |
    ASSIGN = "ASSIGN"                        # =
    COMMA = "COMMA"                          # ,
    DOT = "DOT"                              # .
    DOUBLE_COLON = "DOUBLE_COLON"            # ::
    LPAREN = "LPAREN"                        # (
    RPAREN = "RPAREN"                        # )
    LBRACKET = "LBRACKET"                    # [
    RBRACKET = "RBRACKET"                    # ]

    EOF = "EOF"


# Word operators recognised after an identifier has been matched
KEYWORDS = {
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
    "in": TokenType.IN,
    "is": TokenType.IS,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
}

COMPARISON_OPERATORS = {
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.LE: "<=",
    TokenType.GE: ">=",
    TokenType.LT: "<",
    TokenType.GT: ">",
}

ADDITIVE_OPERATORS = {
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
}

MULTIPLICATIVE_OPERATORS = {
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
}


@dataclass(frozen=True)
class Token:
    """
    Token with positional information for precise error diagnostics.
    """
    type: TokenType
    value: str
    position: int       # Offset in the source text
    line: int           # Line number (1-based)
    column: int         # Column number (1-based)

    @property
    def end(self) -> int:
        """Offset right after the token."""
        return self.position + len(self.value)

    @property
    def trims_left(self) -> bool:
        """Opening delimiter carries a trim marker: {{- {%- {#-"""
        return self.value.endswith("-") and self.type in _OPENING

    @property
    def trims_right(self) -> bool:
        """Closing delimiter carries a trim marker: -}} -%} -#}"""
        return self.value.startswith("-") and self.type in _CLOSING

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


_OPENING = {TokenType.VARIABLE_START, TokenType.TAG_START, TokenType.COMMENT_START}
_CLOSING = {TokenType.VARIABLE_END, TokenType.TAG_END, TokenType.COMMENT_END}


__all__ = [
    "TokenType",
    "Token",
    "KEYWORDS",
    "COMPARISON_OPERATORS",
    "ADDITIVE_OPERATORS",
    "MULTIPLICATIVE_OPERATORS",
]
