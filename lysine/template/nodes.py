"""
Statement nodes of the template AST.

Nodes are immutable; a template body is a list of nodes rendered in order.
Whitespace-trim markers of tags are stored on the adjacent text nodes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..expressions.model import Expression, FilterCall, LiteralValue, literal_to_source


@dataclass(frozen=True)
class TemplateNode:
    """Base class for all template AST nodes."""
    pass


@dataclass(frozen=True)
class TextNode(TemplateNode):
    """
    Literal text between tags.

    trim_start/trim_end ask the renderer to strip leading/trailing
    whitespace because the neighbouring tag carries a trim marker.
    """
    text: str
    trim_start: bool = False
    trim_end: bool = False

    def rendered_text(self) -> str:
        text = self.text
        if self.trim_start:
            text = text.lstrip(" \t\r\n")
        if self.trim_end:
            text = text.rstrip(" \t\r\n")
        return text


@dataclass(frozen=True)
class VariableNode(TemplateNode):
    """{{ expression }}"""
    expression: Expression


@dataclass(frozen=True)
class CommentNode(TemplateNode):
    """{# text #}, produces no output"""
    text: str


@dataclass(frozen=True)
class RawNode(TemplateNode):
    """{% raw %}...{% endraw %}, body emitted verbatim"""
    text: str


@dataclass(frozen=True)
class IncludeNode(TemplateNode):
    """
    {% include "name" %} / {% include ["a", "b"] ignore missing %}

    The first candidate that exists is rendered with the current scopes.
    """
    candidates: Tuple[str, ...]
    ignore_missing: bool = False


@dataclass(frozen=True)
class BlockNode(TemplateNode):
    """{% block name %}...{% endblock %}"""
    name: str
    body: List[TemplateNode] = field(default_factory=list)


@dataclass(frozen=True)
class SuperNode(TemplateNode):
    """{{ super() }} inside a block body"""
    pass


@dataclass(frozen=True)
class ResolvedBlockNode(TemplateNode):
    """
    Block after inheritance resolution.

    `template_name` is the template that defined the selected body; macro
    namespaces inside the body are looked up there.
    """
    name: str
    template_name: str
    body: List[TemplateNode] = field(default_factory=list)


@dataclass(frozen=True)
class IfNode(TemplateNode):
    """if / elif... / else: ordered (condition, body) pairs plus optional else body"""
    branches: List[Tuple[Expression, List[TemplateNode]]]
    else_body: Optional[List[TemplateNode]] = None


@dataclass(frozen=True)
class ForNode(TemplateNode):
    """
    {% for value in iterable %} / {% for key, value in iterable %}

    The else body runs once when the iterable is empty.
    """
    value_var: str
    iterable: Expression
    body: List[TemplateNode] = field(default_factory=list)
    key_var: Optional[str] = None
    else_body: Optional[List[TemplateNode]] = None


@dataclass(frozen=True)
class BreakNode(TemplateNode):
    pass


@dataclass(frozen=True)
class ContinueNode(TemplateNode):
    pass


@dataclass(frozen=True)
class SetNode(TemplateNode):
    """{% set name = expression %}, binds in the innermost scope"""
    name: str
    expression: Expression


@dataclass(frozen=True)
class SetGlobalNode(SetNode):
    """{% set_global name = expression %}, binds in the outermost scope"""
    pass


@dataclass(frozen=True)
class FilterSectionNode(TemplateNode):
    """{% filter name(args) %}...{% endfilter %}: body rendered, then filtered"""
    filter: FilterCall
    body: List[TemplateNode] = field(default_factory=list)


@dataclass(frozen=True)
class MacroParameter:
    """Macro parameter with an optional literal default."""
    name: str
    default: Optional[LiteralValue] = None
    has_default: bool = False

    def __str__(self) -> str:
        if self.has_default:
            return f"{self.name}={literal_to_source(self.default)}"
        return self.name


@dataclass(frozen=True)
class MacroDefinition:
    """{% macro name(params) %}...{% endmacro %} at template top level"""
    name: str
    parameters: List[MacroParameter]
    body: List[TemplateNode] = field(default_factory=list)


# Alias for a list of nodes (AST)
TemplateAST = List[TemplateNode]


__all__ = [
    "TemplateNode",
    "TextNode",
    "VariableNode",
    "CommentNode",
    "RawNode",
    "IncludeNode",
    "BlockNode",
    "SuperNode",
    "ResolvedBlockNode",
    "IfNode",
    "ForNode",
    "BreakNode",
    "ContinueNode",
    "SetNode",
    "SetGlobalNode",
    "FilterSectionNode",
    "MacroParameter",
    "MacroDefinition",
    "TemplateAST",
]
