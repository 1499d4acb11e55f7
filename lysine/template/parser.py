"""
Template parser.

Turns the token stream into a Template: preamble (extends/imports), content
nodes, block definitions and top-level macros. Expressions inside tags are
delegated to ExpressionParser over the same token cursor.

Nesting rules are enforced while parsing:
- extends/import only in the preamble, before any content
- macro definitions only at top level
- block and super() never inside a macro body; super() only inside a block
- break/continue only inside a for body
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from .base import ParsingContext
from .lexer import TemplateLexer
from .model import Template
from .nodes import (
    BlockNode,
    BreakNode,
    CommentNode,
    ContinueNode,
    FilterSectionNode,
    ForNode,
    IfNode,
    IncludeNode,
    MacroDefinition,
    MacroParameter,
    RawNode,
    SetGlobalNode,
    SetNode,
    SuperNode,
    TemplateAST,
    TemplateNode,
    TextNode,
    VariableNode,
)
from .tokens import Token, TokenType
from ..errors import TemplateSyntaxError
from ..expressions.parser import ExpressionParser

logger = logging.getLogger(__name__)

_WHITESPACE = " \t\r\n"


@dataclass(frozen=True)
class BodyContext:
    """What is legal in the body currently being parsed."""
    top_level: bool = False
    in_block: bool = False
    in_macro: bool = False
    in_for: bool = False


_TOP_LEVEL = BodyContext(top_level=True)


class TemplateParser:
    """
    Recursive parser for a single template.

    Create one parser per template; parse() may only be called once.
    """

    def __init__(self, tokens: List[Token], name: str = "", path: Optional[str] = None):
        self.ctx = ParsingContext(tokens)
        self.expressions = ExpressionParser(self.ctx)
        self.name = name
        self.path = path

        self.parent: Optional[str] = None
        self.imports: List[Tuple[str, str]] = []
        self.blocks: List[BlockNode] = []
        self.macros: Dict[str, MacroDefinition] = {}

        # Set by a closing delimiter with a trim marker, consumed by the next text token
        self._trim_next = False

    def parse(self) -> Template:
        """
        Parses the whole token stream.

        Returns:
            Parsed template

        Raises:
            TemplateSyntaxError: On grammar or nesting violations
        """
        try:
            preamble = self._parse_preamble()
            # A child only renders its blocks
            if self.parent is not None:
                preamble = []
            nodes, _ = self._parse_body(_TOP_LEVEL, (), preamble)
        except TemplateSyntaxError as e:
            raise e.with_template(self.name)

        logger.debug(
            f"Parsed template '{self.name}': {len(nodes)} nodes, "
            f"{len(self.blocks)} blocks, {len(self.macros)} macros"
        )
        return Template(
            name=self.name,
            nodes=nodes,
            parent=self.parent,
            imports=self.imports,
            blocks=self.blocks,
            macros=self.macros,
            path=self.path,
        )

    # ----------------------------- preamble ----------------------------- #

    def _parse_preamble(self) -> TemplateAST:
        """
        Leading comments, then extends and imports in any order.

        Returns the comments and whitespace seen along the way; they are the
        first content nodes of the template.
        """
        preamble: TemplateAST = []
        while True:
            current = self.ctx.current()
            if current.type == TokenType.TEXT and not current.value.strip(_WHITESPACE):
                self._append_text(preamble, self.ctx.advance().value)
                continue
            if current.type == TokenType.COMMENT_START:
                preamble.append(self._parse_comment(preamble))
                continue
            if self._preamble_tag_at(0):
                self._open(preamble)
                keyword = self.ctx.advance()
                if keyword.value == "extends":
                    self._parse_extends(keyword)
                else:
                    self._parse_import()
                continue
            return preamble

    def _preamble_tag_at(self, offset: int) -> bool:
        opener = self.ctx.peek(offset)
        keyword = self.ctx.peek(offset + 1)
        return (opener.type == TokenType.TAG_START and keyword.type == TokenType.IDENTIFIER
                and keyword.value in ("extends", "import"))

    def _parse_extends(self, keyword: Token) -> None:
        if self.parent is not None:
            raise self.ctx.error("A template can only extend one parent", token=keyword)
        self.parent = self._consume_string("template name")
        self._close(TokenType.TAG_END)

    def _parse_import(self) -> None:
        """import "file" as namespace"""
        target = self._consume_string("template name")
        self.ctx.consume_word("as")
        namespace = self.ctx.consume(TokenType.IDENTIFIER, "namespace").value
        if any(alias == namespace for _, alias in self.imports):
            raise self.ctx.error(f"Namespace '{namespace}' is imported more than once")
        self.imports.append((target, namespace))
        self._close(TokenType.TAG_END)

    # ----------------------------- bodies ----------------------------- #

    def _parse_body(self, context: BodyContext, terminators: Tuple[str, ...],
                    body: Optional[TemplateAST] = None) -> Tuple[TemplateAST, Optional[Token]]:
        """
        Parses nodes until one of the terminator tags (or the end of template).

        Returns the body and the terminator keyword token; the caller finishes
        parsing the terminator tag. Nodes are appended to body when given.
        """
        if body is None:
            body = []

        while True:
            current = self.ctx.current()

            if current.type == TokenType.EOF:
                if terminators:
                    expected = [f"{{% {t} %}}" for t in terminators]
                    raise self.ctx.error("Unexpected end of template", expected)
                return body, None

            if current.type == TokenType.TEXT:
                self._append_text(body, self.ctx.advance().value)
            elif current.type == TokenType.VARIABLE_START:
                body.append(self._parse_variable(body, context))
            elif current.type == TokenType.COMMENT_START:
                body.append(self._parse_comment(body))
            elif current.type == TokenType.TAG_START:
                self._open(body)
                keyword = self.ctx.consume(TokenType.IDENTIFIER, "tag name")
                if keyword.value in terminators:
                    return body, keyword
                node = self._parse_tag(keyword, context)
                if node is not None:
                    body.append(node)
            else:
                raise self.ctx.error(f"Unexpected token '{current.value}'")

    def _parse_tag(self, keyword: Token,
                   context: BodyContext) -> Optional[TemplateNode]:
        word = keyword.value

        if word == "if":
            return self._parse_if(context)
        if word == "for":
            return self._parse_for(context)
        if word == "block":
            return self._parse_block(keyword, context)
        if word == "macro":
            self._parse_macro(keyword, context)
            return None
        if word in ("set", "set_global"):
            return self._parse_set(word == "set_global")
        if word == "include":
            return self._parse_include()
        if word == "filter":
            return self._parse_filter_section(context)
        if word == "raw":
            return self._parse_raw()
        if word in ("break", "continue"):
            if not context.in_for:
                raise self.ctx.error(f"'{word}' is only allowed inside a for loop", token=keyword)
            self._close(TokenType.TAG_END)
            return BreakNode() if word == "break" else ContinueNode()
        if word in ("extends", "import"):
            raise self.ctx.error(f"'{word}' must come before any content of the template", token=keyword)
        if word in ("elif", "else", "endif", "endfor", "endblock", "endmacro", "endfilter", "endraw"):
            raise self.ctx.error(f"Unexpected tag '{word}'", token=keyword)

        raise self.ctx.error(f"Unknown tag '{word}'", token=keyword)

    # ----------------------------- delimiters and text ----------------------------- #

    def _open(self, body: TemplateAST) -> Token:
        """Consumes an opening delimiter and applies its left trim marker."""
        opener = self.ctx.advance()
        self._trim_next = False
        if opener.trims_left and body and isinstance(body[-1], TextNode):
            body[-1] = replace(body[-1], trim_end=True)
        return opener

    def _close(self, closer_type: TokenType) -> Token:
        description = "'}}'" if closer_type == TokenType.VARIABLE_END else "'%}'"
        closer = self.ctx.consume(closer_type, description)
        self._trim_next = closer.trims_right
        return closer

    def _append_text(self, body: TemplateAST, text: str) -> None:
        body.append(TextNode(text=text, trim_start=self._trim_next))
        self._trim_next = False

    def _consume_string(self, description: str) -> str:
        return self.ctx.consume(TokenType.STRING, description).value[1:-1]

    def _end_tag_name(self, expected: str) -> None:
        """Optional name after endblock/endmacro must match the opening one."""
        name = self.ctx.accept(TokenType.IDENTIFIER)
        if name is not None and name.value != expected:
            raise self.ctx.error(f"Closing tag name '{name.value}' does not match '{expected}'", token=name)
        self._close(TokenType.TAG_END)

    # ----------------------------- tags ----------------------------- #

    def _parse_variable(self, body: TemplateAST, context: BodyContext) -> TemplateNode:
        """{{ expr }} or {{ super() }}"""
        opener = self._open(body)

        if self._at_super_call():
            if not context.in_block or context.in_macro:
                raise self.ctx.error("super() can only be used inside a block", token=opener)
            for _ in range(3):
                self.ctx.advance()
            self._close(TokenType.VARIABLE_END)
            return SuperNode()

        expression = self.expressions.parse_expression()
        self._close(TokenType.VARIABLE_END)
        return VariableNode(expression=expression)

    def _at_super_call(self) -> bool:
        return (self.ctx.match_word("super")
                and self.ctx.peek(1).type == TokenType.LPAREN
                and self.ctx.peek(2).type == TokenType.RPAREN
                and self.ctx.peek(3).type == TokenType.VARIABLE_END)

    def _parse_comment(self, body: TemplateAST) -> CommentNode:
        self._open(body)
        text = self.ctx.accept(TokenType.COMMENT_TEXT)
        closer = self.ctx.consume(TokenType.COMMENT_END, "'#}'")
        self._trim_next = closer.trims_right
        return CommentNode(text=text.value if text else "")

    def _parse_if(self, context: BodyContext) -> IfNode:
        """if / elif / else / endif"""
        branches = []
        context = replace(context, top_level=False)
        condition = self.expressions.parse_expression()
        self._close(TokenType.TAG_END)

        while True:
            body, terminator = self._parse_body(context, ("elif", "else", "endif"))
            branches.append((condition, body))
            if terminator.value != "elif":
                break
            condition = self.expressions.parse_expression()
            self._close(TokenType.TAG_END)

        else_body = None
        if terminator.value == "else":
            self._close(TokenType.TAG_END)
            else_body, _ = self._parse_body(context, ("endif",))
        self._close(TokenType.TAG_END)

        return IfNode(branches=branches, else_body=else_body)

    def _parse_for(self, context: BodyContext) -> ForNode:
        """for value in expr / for key, value in expr"""
        first = self.ctx.consume(TokenType.IDENTIFIER, "loop variable").value
        key_var, value_var = None, first
        if self.ctx.accept(TokenType.COMMA):
            key_var = first
            value_var = self.ctx.consume(TokenType.IDENTIFIER, "loop variable").value
        self.ctx.consume(TokenType.IN, "'in'")
        iterable = self.expressions.parse_expression()
        self._close(TokenType.TAG_END)

        loop_context = replace(context, top_level=False, in_for=True)
        body, terminator = self._parse_body(loop_context, ("else", "endfor"))

        else_body = None
        if terminator.value == "else":
            self._close(TokenType.TAG_END)
            else_body, _ = self._parse_body(replace(context, top_level=False), ("endfor",))
        self._close(TokenType.TAG_END)

        return ForNode(
            value_var=value_var,
            iterable=iterable,
            body=body,
            key_var=key_var,
            else_body=else_body,
        )

    def _parse_block(self, keyword: Token, context: BodyContext) -> BlockNode:
        if context.in_macro:
            raise self.ctx.error("Blocks cannot be defined inside a macro", token=keyword)
        name = self.ctx.consume(TokenType.IDENTIFIER, "block name").value
        self._close(TokenType.TAG_END)

        block_context = BodyContext(in_block=True)
        body, _ = self._parse_body(block_context, ("endblock",))
        self._end_tag_name(name)

        block = BlockNode(name=name, body=body)
        self.blocks.append(block)
        return block

    def _parse_macro(self, keyword: Token, context: BodyContext) -> None:
        """macro name(param, param=literal) ... endmacro"""
        if not context.top_level:
            raise self.ctx.error("Macros can only be defined at the top level of a template", token=keyword)
        name_token = self.ctx.consume(TokenType.IDENTIFIER, "macro name")
        name = name_token.value
        if name in self.macros:
            raise self.ctx.error(f"Macro '{name}' is defined more than once", token=name_token)

        parameters = self._parse_macro_parameters()
        self._close(TokenType.TAG_END)

        body, _ = self._parse_body(BodyContext(in_macro=True), ("endmacro",))
        self._end_tag_name(name)

        self.macros[name] = MacroDefinition(name=name, parameters=parameters, body=body)

    def _parse_macro_parameters(self) -> List[MacroParameter]:
        self.ctx.consume(TokenType.LPAREN, "'('")
        parameters: List[MacroParameter] = []
        seen = set()

        while not self.ctx.match(TokenType.RPAREN):
            param = self.ctx.consume(TokenType.IDENTIFIER, "parameter name")
            if param.value in seen:
                raise self.ctx.error(f"Duplicate parameter '{param.value}'", token=param)
            seen.add(param.value)
            if self.ctx.accept(TokenType.ASSIGN):
                default = self.expressions.parse_literal()
                parameters.append(MacroParameter(name=param.value, default=default, has_default=True))
            else:
                parameters.append(MacroParameter(name=param.value))
            if not self.ctx.accept(TokenType.COMMA):
                break

        self.ctx.consume(TokenType.RPAREN, "')'")
        return parameters

    def _parse_set(self, is_global: bool) -> SetNode:
        name = self.ctx.consume(TokenType.IDENTIFIER, "variable name").value
        self.ctx.consume(TokenType.ASSIGN, "'='")
        expression = self.expressions.parse_expression()
        self._close(TokenType.TAG_END)
        if is_global:
            return SetGlobalNode(name=name, expression=expression)
        return SetNode(name=name, expression=expression)

    def _parse_include(self) -> IncludeNode:
        """include "name" | include ["a", "b"], optionally followed by ignore missing"""
        candidates: List[str] = []
        if self.ctx.accept(TokenType.LBRACKET):
            while not self.ctx.match(TokenType.RBRACKET):
                candidates.append(self._consume_string("template name"))
                if not self.ctx.accept(TokenType.COMMA):
                    break
            self.ctx.consume(TokenType.RBRACKET, "']'")
            if not candidates:
                raise self.ctx.error("Include needs at least one template name")
        else:
            candidates.append(self._consume_string("template name"))

        ignore_missing = False
        if self.ctx.match_word("ignore"):
            self.ctx.advance()
            self.ctx.consume_word("missing")
            ignore_missing = True

        self._close(TokenType.TAG_END)
        return IncludeNode(candidates=tuple(candidates), ignore_missing=ignore_missing)

    def _parse_filter_section(self, context: BodyContext) -> FilterSectionNode:
        filter_call = self.expressions.parse_filter_call()
        self._close(TokenType.TAG_END)
        body, _ = self._parse_body(replace(context, top_level=False), ("endfilter",))
        self._close(TokenType.TAG_END)
        return FilterSectionNode(filter=filter_call, body=body)

    def _parse_raw(self) -> RawNode:
        self._close(TokenType.TAG_END)
        trim_start = self._trim_next
        text = self.ctx.accept(TokenType.RAW_TEXT)
        raw = text.value if text else ""

        closing = self.ctx.consume(TokenType.TAG_START, "'{% endraw %}'")
        self.ctx.consume_word("endraw")
        self._close(TokenType.TAG_END)

        if trim_start:
            raw = raw.lstrip(_WHITESPACE)
        if closing.trims_left:
            raw = raw.rstrip(_WHITESPACE)
        return RawNode(text=raw)


def parse_template(name: str, source: str, path: Optional[str] = None) -> Template:
    """
    Tokenizes and parses a template source.

    Args:
        name: Template name used in error messages and the cache
        source: Template text
        path: Source file, when loaded from disk

    Returns:
        Parsed template

    Raises:
        TemplateSyntaxError: On lexical or grammar errors
    """
    try:
        tokens = TemplateLexer(source).tokenize()
    except TemplateSyntaxError as e:
        raise e.with_template(name)
    return TemplateParser(tokens, name=name, path=path).parse()


__all__ = ["TemplateParser", "BodyContext", "parse_template"]
