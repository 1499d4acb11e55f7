"""
Tests for the template lexer.

Covers tokenization of:
- plain text
- variable, tag and comment delimiters with trim markers
- expression tokens (literals, keywords, operators)
- raw blocks
- lexical errors
"""

import pytest

from lysine.errors import TemplateSyntaxError
from lysine.template.lexer import TemplateLexer, tokenize_template
from lysine.template.tokens import TokenType


def types(tokens):
    return [t.type for t in tokens]


class TestTemplateLexer:
    """Basic lexer behaviour."""

    def test_empty_template(self):
        """An empty template yields only EOF."""
        tokens = TemplateLexer("").tokenize()

        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF
        assert tokens[0].position == 0
        assert tokens[0].line == 1
        assert tokens[0].column == 1

    def test_plain_text(self):
        text = "Hello, world!"
        tokens = tokenize_template(text)

        assert types(tokens) == [TokenType.TEXT, TokenType.EOF]
        assert tokens[0].value == text

    def test_variable_between_text(self):
        tokens = tokenize_template("Hello {{ name }}!")

        assert types(tokens) == [
            TokenType.TEXT,
            TokenType.VARIABLE_START,
            TokenType.IDENTIFIER,
            TokenType.VARIABLE_END,
            TokenType.TEXT,
            TokenType.EOF,
        ]
        assert tokens[0].value == "Hello "
        assert tokens[2].value == "name"
        assert tokens[4].value == "!"

    def test_positions_across_lines(self):
        tokens = tokenize_template("line1\n{{ x }}")

        opener = tokens[1]
        assert opener.type == TokenType.VARIABLE_START
        assert (opener.line, opener.column, opener.position) == (2, 1, 6)
        assert (tokens[2].line, tokens[2].column) == (2, 4)

    def test_trim_markers_stay_on_delimiters(self):
        tokens = tokenize_template("a {{- x -}} b")

        opener, closer = tokens[1], tokens[3]
        assert opener.value == "{{-"
        assert opener.trims_left
        assert closer.value == "-}}"
        assert closer.trims_right
        assert not opener.trims_right

    def test_minus_operator_is_not_a_trim_marker(self):
        tokens = tokenize_template("{{ a - b }}")

        assert types(tokens) == [
            TokenType.VARIABLE_START,
            TokenType.IDENTIFIER,
            TokenType.MINUS,
            TokenType.IDENTIFIER,
            TokenType.VARIABLE_END,
            TokenType.EOF,
        ]
        assert not tokens[4].trims_right

    def test_comment(self):
        tokens = tokenize_template("{# note {{ x }} #}")

        assert types(tokens) == [
            TokenType.COMMENT_START,
            TokenType.COMMENT_TEXT,
            TokenType.COMMENT_END,
            TokenType.EOF,
        ]
        assert tokens[1].value == " note {{ x }} "


class TestExpressionTokens:
    """Tokens between tag delimiters."""

    def test_keywords(self):
        tokens = tokenize_template("{% if a and not b or c in d %}")

        assert types(tokens)[1:-2] == [
            TokenType.IDENTIFIER,
            TokenType.IDENTIFIER,
            TokenType.AND,
            TokenType.NOT,
            TokenType.IDENTIFIER,
            TokenType.OR,
            TokenType.IDENTIFIER,
            TokenType.IN,
            TokenType.IDENTIFIER,
        ]

    @pytest.mark.parametrize("source", [
        "{{ not(x) }}",
        "{% if a and(b) %}{% endif %}",
        "{{ x in[1, 2] }}",
    ])
    def test_word_operators_need_trailing_whitespace(self, source):
        with pytest.raises(TemplateSyntaxError, match="must be followed by whitespace"):
            tokenize_template(source)

    def test_words_starting_with_operators_are_identifiers(self):
        tokens = tokenize_template("{{ index or order }}")

        assert types(tokens)[1:-2] == [TokenType.IDENTIFIER, TokenType.OR, TokenType.IDENTIFIER]

    def test_literals(self):
        tokens = tokenize_template("{{ 1 2.5 'x' \"y\" `z` true false }}")

        assert types(tokens)[1:-2] == [
            TokenType.INTEGER,
            TokenType.FLOAT,
            TokenType.STRING,
            TokenType.STRING,
            TokenType.STRING,
            TokenType.TRUE,
            TokenType.FALSE,
        ]

    def test_comparison_operators(self):
        tokens = tokenize_template("{{ == != <= >= < > }}")

        assert types(tokens)[1:-2] == [
            TokenType.EQ,
            TokenType.NE,
            TokenType.LE,
            TokenType.GE,
            TokenType.LT,
            TokenType.GT,
        ]

    def test_numeric_segment_after_dot(self):
        tokens = tokenize_template("{{ rows.0.name }}")

        assert types(tokens)[1:-2] == [
            TokenType.IDENTIFIER,
            TokenType.DOT,
            TokenType.IDENTIFIER,
            TokenType.DOT,
            TokenType.IDENTIFIER,
        ]
        assert tokens[3].value == "0"

    def test_namespaced_macro_call(self):
        tokens = tokenize_template("{{ ns::greet(name=1) }}")

        assert types(tokens)[1:-2] == [
            TokenType.IDENTIFIER,
            TokenType.DOUBLE_COLON,
            TokenType.IDENTIFIER,
            TokenType.LPAREN,
            TokenType.IDENTIFIER,
            TokenType.ASSIGN,
            TokenType.INTEGER,
            TokenType.RPAREN,
        ]


class TestRawBlocks:

    def test_raw_body_is_one_token(self):
        tokens = tokenize_template("{% raw %}{{ not parsed }}{% endraw %}")

        assert types(tokens) == [
            TokenType.TAG_START,
            TokenType.IDENTIFIER,
            TokenType.TAG_END,
            TokenType.RAW_TEXT,
            TokenType.TAG_START,
            TokenType.IDENTIFIER,
            TokenType.TAG_END,
            TokenType.EOF,
        ]
        assert tokens[3].value == "{{ not parsed }}"

    def test_raw_with_trim_markers(self):
        tokens = tokenize_template("{%- raw -%} x {%- endraw -%}")

        assert tokens[3].type == TokenType.RAW_TEXT
        assert tokens[3].value == " x "
        assert tokens[4].trims_left


class TestLexerErrors:

    def test_unclosed_variable(self):
        with pytest.raises(TemplateSyntaxError, match="Unclosed tag"):
            tokenize_template("Hello {{ name")

    def test_unclosed_comment(self):
        with pytest.raises(TemplateSyntaxError, match="Unclosed comment"):
            tokenize_template("{# never closed")

    def test_unclosed_raw(self):
        with pytest.raises(TemplateSyntaxError, match="Unclosed raw block"):
            tokenize_template("{% raw %}abc")

    def test_unknown_character(self):
        with pytest.raises(TemplateSyntaxError, match="Unexpected character") as exc:
            tokenize_template("{{ a @ b }}")

        assert exc.value.line == 1
        assert exc.value.column == 6
