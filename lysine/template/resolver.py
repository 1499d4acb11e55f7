"""
Template inheritance resolver.

Resolves extends chains in two phases:
1. Walk the lineage from the template up to its root ancestor (with cycle
   detection) and build a table: block name -> definitions, most derived first.
2. Substitute the root's block nodes with their most derived definitions and
   wire every super() to the next less derived definition of its block.

Also checks that every imported macro template exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Tuple

from .model import Template
from .nodes import (
    BlockNode,
    FilterSectionNode,
    ForNode,
    IfNode,
    ResolvedBlockNode,
    SuperNode,
    TemplateAST,
    TemplateNode,
)
from ..errors import (
    CircularExtendsError,
    DuplicateBlockError,
    MissingImportError,
    MissingParentError,
    UnresolvedSuperError,
)

logger = logging.getLogger(__name__)

# Block name -> (defining template, block) pairs, most derived first
BlockChains = Dict[str, List[Tuple[str, BlockNode]]]


@dataclass(frozen=True)
class ResolvedTemplate:
    """
    Template ready for rendering.

    Attributes:
        template: The template that was resolved (leaf of the lineage)
        lineage: Template names from the leaf up to the root ancestor
        nodes: Root ancestor's top-level nodes with blocks substituted
    """
    template: Template
    lineage: List[str]
    nodes: TemplateAST

    @property
    def name(self) -> str:
        return self.template.name

    @property
    def root_name(self) -> str:
        return self.lineage[-1]


class TemplateResolver:
    """
    Resolver for template inheritance chains.

    Handles:
    - Cycle detection via resolution stack
    - Missing parents and import targets
    - Duplicate block names within one template
    - super() wiring across the whole lineage
    - Caching of resolved templates
    """

    def __init__(self, templates: Mapping[str, Template]):
        """
        Args:
            templates: Parsed templates by name; not modified
        """
        self._templates = templates
        self._cache: Dict[str, ResolvedTemplate] = {}

    def resolve(self, name: str) -> ResolvedTemplate:
        """
        Resolve a template with its whole extends chain applied.

        Raises:
            KeyError: If the template itself is not known
            ResolveError: On broken inheritance or imports
        """
        if name in self._cache:
            return self._cache[name]

        template = self._templates[name]
        lineage = self._build_lineage(template)
        chains = self._build_block_chains(lineage)

        for member in lineage:
            self._check_imports(member)

        root = lineage[-1]
        nodes = _BlockSubstitution(chains).substitute_root(root.nodes)

        resolved = ResolvedTemplate(
            template=template,
            lineage=[t.name for t in lineage],
            nodes=nodes,
        )
        self._cache[name] = resolved
        logger.debug(f"Resolved template '{name}' with lineage {' -> '.join(resolved.lineage)}")
        return resolved

    def resolve_all(self) -> Dict[str, ResolvedTemplate]:
        """Resolve every known template; the first error wins."""
        return {name: self.resolve(name) for name in self._templates}

    # ----------------------------- phase 1 ----------------------------- #

    def _build_lineage(self, template: Template) -> List[Template]:
        """Template first, root ancestor last."""
        lineage = [template]
        resolution_stack = [template.name]

        current = template
        while current.parent is not None:
            parent_name = current.parent
            if parent_name in resolution_stack:
                cycle = resolution_stack[resolution_stack.index(parent_name):] + [parent_name]
                raise CircularExtendsError(cycle=cycle)
            if parent_name not in self._templates:
                raise MissingParentError(template_name=current.name, parent_name=parent_name)

            current = self._templates[parent_name]
            resolution_stack.append(parent_name)
            lineage.append(current)

        return lineage

    def _build_block_chains(self, lineage: List[Template]) -> BlockChains:
        chains: BlockChains = {}
        for member in lineage:
            duplicate = member.duplicate_block()
            if duplicate is not None:
                raise DuplicateBlockError(template_name=member.name, block_name=duplicate)
            for block_name, block in member.block_table().items():
                chains.setdefault(block_name, []).append((member.name, block))
        return chains

    def _check_imports(self, template: Template) -> None:
        for target, _ in template.imports:
            if target not in self._templates:
                raise MissingImportError(template_name=template.name, import_name=target)


class _BlockSubstitution:
    """Phase 2: replaces block and super() placeholders using the chain table."""

    def __init__(self, chains: BlockChains):
        self._chains = chains
        self._in_progress: List[Tuple[str, int]] = []

    def substitute_root(self, nodes: TemplateAST) -> TemplateAST:
        return self._substitute(nodes, None, 0)

    def _resolve_block(self, block_name: str, level: int) -> ResolvedBlockNode:
        key = (block_name, level)
        if key in self._in_progress:
            cycle = [f"{self._chains[n][l][0]}:{n}" for n, l in self._in_progress] + [block_name]
            raise CircularExtendsError(cycle=cycle)

        template_name, block = self._chains[block_name][level]
        self._in_progress.append(key)
        try:
            body = self._substitute(block.body, block_name, level)
        finally:
            self._in_progress.pop()
        return ResolvedBlockNode(name=block_name, template_name=template_name, body=body)

    def _substitute(self, nodes: TemplateAST, block_name, level: int) -> TemplateAST:
        return [self._substitute_node(node, block_name, level) for node in nodes]

    def _substitute_node(self, node: TemplateNode, block_name, level: int) -> TemplateNode:
        if isinstance(node, BlockNode):
            # Nested blocks are overridable on their own
            return self._resolve_block(node.name, 0)

        if isinstance(node, SuperNode):
            chain = self._chains[block_name]
            if level + 1 >= len(chain):
                raise UnresolvedSuperError(template_name=chain[level][0], block_name=block_name)
            return self._resolve_block(block_name, level + 1)

        if isinstance(node, IfNode):
            branches = [(cond, self._substitute(body, block_name, level)) for cond, body in node.branches]
            else_body = None
            if node.else_body is not None:
                else_body = self._substitute(node.else_body, block_name, level)
            return replace(node, branches=branches, else_body=else_body)

        if isinstance(node, ForNode):
            else_body = None
            if node.else_body is not None:
                else_body = self._substitute(node.else_body, block_name, level)
            return replace(node, body=self._substitute(node.body, block_name, level), else_body=else_body)

        if isinstance(node, FilterSectionNode):
            return replace(node, body=self._substitute(node.body, block_name, level))

        return node


__all__ = ["TemplateResolver", "ResolvedTemplate"]
