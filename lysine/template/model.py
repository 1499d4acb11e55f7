"""
Parsed template unit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .nodes import BlockNode, MacroDefinition, TemplateAST


@dataclass(frozen=True)
class Template:
    """
    Immutable result of parsing one template source.

    Attributes:
        name: Name the template is cached under
        nodes: Top-level content nodes
        parent: Target of {% extends %}, if any
        imports: (template name, namespace) pairs in declaration order
        blocks: Every block definition in document order, nested ones included
        macros: Top-level macro definitions by name
        path: Source file, when loaded from disk
    """
    name: str
    nodes: TemplateAST
    parent: Optional[str] = None
    imports: List[Tuple[str, str]] = field(default_factory=list)
    blocks: List[BlockNode] = field(default_factory=list)
    macros: Dict[str, MacroDefinition] = field(default_factory=dict)
    path: Optional[str] = None

    def block_table(self) -> Dict[str, BlockNode]:
        """Block definitions by name (the first one wins for duplicates)."""
        table: Dict[str, BlockNode] = {}
        for block in self.blocks:
            table.setdefault(block.name, block)
        return table

    def duplicate_block(self) -> Optional[str]:
        """Name of the first block defined more than once, or None."""
        seen = set()
        for block in self.blocks:
            if block.name in seen:
                return block.name
            seen.add(block.name)
        return None

    def namespace_target(self, namespace: str) -> Optional[str]:
        """Template imported under the namespace, or None."""
        for target, alias in self.imports:
            if alias == namespace:
                return target
        return None


__all__ = ["Template"]
