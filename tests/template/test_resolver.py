"""
Tests for the inheritance resolver.

Checks lineage building, block substitution, super() wiring and the
graph errors: cycles, missing parents/imports, duplicate blocks.
"""

import pytest

from lysine.errors import (
    CircularExtendsError,
    DuplicateBlockError,
    MissingImportError,
    MissingParentError,
    UnresolvedSuperError,
)
from lysine.template.nodes import ResolvedBlockNode, TextNode
from lysine.template.parser import parse_template
from lysine.template.resolver import TemplateResolver


def make_resolver(**sources):
    templates = {name: parse_template(name, src) for name, src in sources.items()}
    return TemplateResolver(templates)


class TestLineage:

    def test_standalone_template(self):
        resolved = make_resolver(page="hello").resolve("page")

        assert resolved.lineage == ["page"]
        assert resolved.root_name == "page"
        assert resolved.nodes == [TextNode(text="hello")]

    def test_three_level_chain(self):
        resolver = make_resolver(
            base="{% block a %}base{% endblock %}",
            middle='{% extends "base" %}{% block a %}middle{% endblock %}',
            leaf='{% extends "middle" %}',
        )
        resolved = resolver.resolve("leaf")

        assert resolved.lineage == ["leaf", "middle", "base"]
        assert resolved.name == "leaf"
        block = resolved.nodes[0]
        assert isinstance(block, ResolvedBlockNode)
        assert block.template_name == "middle"
        assert block.body == [TextNode(text="middle")]

    def test_results_are_cached(self):
        resolver = make_resolver(page="x")

        assert resolver.resolve("page") is resolver.resolve("page")

    def test_unknown_template(self):
        with pytest.raises(KeyError):
            make_resolver(page="x").resolve("other")


class TestBlockSubstitution:

    def test_super_chain(self):
        resolver = make_resolver(
            base="{% block a %}1{% endblock %}",
            mid='{% extends "base" %}{% block a %}{{ super() }}2{% endblock %}',
            leaf='{% extends "mid" %}{% block a %}{{ super() }}3{% endblock %}',
        )
        block = resolver.resolve("leaf").nodes[0]

        assert block.template_name == "leaf"
        mid_block = block.body[0]
        assert isinstance(mid_block, ResolvedBlockNode)
        assert mid_block.template_name == "mid"
        base_block = mid_block.body[0]
        assert base_block.template_name == "base"
        assert base_block.body == [TextNode(text="1")]

    def test_nested_block_overridden_independently(self):
        resolver = make_resolver(
            base="{% block outer %}[{% block inner %}i{% endblock %}]{% endblock %}",
            child='{% extends "base" %}{% block inner %}I{% endblock %}',
        )
        outer = resolver.resolve("child").nodes[0]

        assert outer.template_name == "base"
        inner = outer.body[1]
        assert inner.template_name == "child"
        assert inner.body == [TextNode(text="I")]

    def test_blocks_inside_control_flow(self):
        resolver = make_resolver(
            base="{% if x %}{% block a %}base{% endblock %}{% endif %}",
            child='{% extends "base" %}{% block a %}child{% endblock %}',
        )
        if_node = resolver.resolve("child").nodes[0]

        block = if_node.branches[0][1][0]
        assert block.template_name == "child"


class TestResolveErrors:

    def test_circular_extends(self):
        resolver = make_resolver(
            a='{% extends "b" %}',
            b='{% extends "c" %}',
            c='{% extends "a" %}',
        )
        with pytest.raises(CircularExtendsError) as exc:
            resolver.resolve("a")

        assert exc.value.cycle == ["a", "b", "c", "a"]
        assert "a -> b -> c -> a" in str(exc.value)

    def test_self_extends(self):
        with pytest.raises(CircularExtendsError):
            make_resolver(a='{% extends "a" %}').resolve("a")

    def test_missing_parent(self):
        with pytest.raises(MissingParentError, match="extends 'nowhere' which is not loaded"):
            make_resolver(a='{% extends "nowhere" %}').resolve("a")

    def test_missing_import(self):
        with pytest.raises(MissingImportError, match="loads macros from 'macros'"):
            make_resolver(a='{% import "macros" as m %}').resolve("a")

    def test_missing_import_in_ancestor(self):
        resolver = make_resolver(
            base='{% import "gone" as g %}',
            child='{% extends "base" %}',
        )
        with pytest.raises(MissingImportError):
            resolver.resolve("child")

    def test_duplicate_block(self):
        with pytest.raises(DuplicateBlockError, match="Block 'a' is defined more than once"):
            make_resolver(page="{% block a %}{% endblock %}{% block a %}{% endblock %}").resolve("page")

    def test_super_without_parent_block(self):
        resolver = make_resolver(
            base="{% block other %}{% endblock %}",
            child='{% extends "base" %}{% block other %}{{ super() }}{% block fresh %}{{ super() }}{% endblock %}{% endblock %}',
        )
        with pytest.raises(UnresolvedSuperError, match="block 'fresh'"):
            resolver.resolve("child")

    def test_resolve_all_reports_first_error(self):
        resolver = make_resolver(ok="fine", broken='{% extends "missing" %}')

        with pytest.raises(MissingParentError):
            resolver.resolve_all()
