"""
Template renderer.

Executes resolved templates against a Context. Output is collected in an
internal buffer and only returned when the whole render succeeded, so a
failing render never yields partial text.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .context import Context, ScopeStack
from .nodes import (
    BlockNode,
    BreakNode,
    CommentNode,
    ContinueNode,
    FilterSectionNode,
    ForNode,
    IfNode,
    IncludeNode,
    RawNode,
    ResolvedBlockNode,
    SetGlobalNode,
    SetNode,
    TemplateAST,
    TemplateNode,
    TextNode,
    VariableNode,
)
from .resolver import ResolvedTemplate
from ..builtins.registry import BuiltinRegistry
from ..errors import (
    LoopControlError,
    MacroArityError,
    MissingIncludeError,
    RenderError,
    ResourceExhaustedError,
    TemplateNotFoundError,
    TypeMismatchError,
    UndefinedMacroError,
)
from ..expressions.evaluator import ExpressionEvaluator
from ..expressions.model import FilterChain, MacroCall
from ..expressions.values import is_truthy, kind_of, stringify

logger = logging.getLogger(__name__)

EscapeFn = Callable[[str], str]


@dataclass(frozen=True)
class RenderLimits:
    """Ceilings that stop runaway renders."""
    max_depth: int = 32
    max_evaluations: int = 1_000_000


class LoopSignal(enum.Enum):
    """Early exit requested by break/continue, passed up to the nearest loop."""
    BREAK = "break"
    CONTINUE = "continue"


class RenderState:
    """
    Mutable state of one render call.

    Never shared between threads: each render call creates its own.
    """

    def __init__(self, scopes: ScopeStack, template_name: str, limits: RenderLimits):
        self.scopes = scopes
        self.template_name = template_name
        self.in_macro = False
        self.depth = 0
        self.evaluations = 0
        self.limits = limits

    def tick(self, count: int = 1) -> None:
        self.evaluations += count
        if self.evaluations > self.limits.max_evaluations:
            raise ResourceExhaustedError("evaluation", self.limits.max_evaluations)

    def enter(self) -> None:
        self.depth += 1
        if self.depth > self.limits.max_depth:
            raise ResourceExhaustedError("recursion depth", self.limits.max_depth)

    def leave(self) -> None:
        self.depth -= 1


class TemplateProcessor:
    """
    Renderer over a fixed set of resolved templates.

    Holds only read-only data, so one processor can serve concurrent renders.
    """

    def __init__(
        self,
        templates: Mapping[str, ResolvedTemplate],
        registry: BuiltinRegistry,
        escape_fn: EscapeFn,
        autoescape_suffixes: Sequence[str] = (),
        limits: Optional[RenderLimits] = None,
    ):
        self.templates = templates
        self.registry = registry
        self.escape_fn = escape_fn
        self.autoescape_suffixes = tuple(autoescape_suffixes)
        self.limits = limits or RenderLimits()

    def render(self, name: str, context: Context) -> str:
        """
        Renders a template by name.

        Raises:
            TemplateNotFoundError: If the template is not loaded
            RenderError: On any evaluation failure
        """
        resolved = self.templates.get(name)
        if resolved is None:
            raise TemplateNotFoundError(name)

        run = _RenderRun(self, resolved, context)
        try:
            output = run.execute()
        except RecursionError:
            # Interpreter stack ran out before max_depth was reached
            raise ResourceExhaustedError("recursion depth", self.limits.max_depth) from None
        logger.debug(f"Rendered '{name}' in {run.state.evaluations} evaluations")
        return output

    def should_escape(self, template: ResolvedTemplate) -> bool:
        if not self.autoescape_suffixes:
            return False
        source = template.template
        candidates = [source.name] + ([source.path] if source.path else [])
        return any(c.endswith(self.autoescape_suffixes) for c in candidates)


class _RenderRun:
    """One render call: owns the scope stack and the output buffer."""

    def __init__(self, processor: TemplateProcessor, resolved: ResolvedTemplate, context: Context):
        self.processor = processor
        self.resolved = resolved
        self.state = RenderState(ScopeStack.for_render(context), resolved.root_name, processor.limits)
        self.evaluator = ExpressionEvaluator(processor.registry, self.state, self._call_macro)
        self.escape = processor.should_escape(resolved)

    def execute(self) -> str:
        out: List[str] = []
        self._in_template(self.resolved.root_name, lambda: self._render_isolated(self.resolved.nodes, out))
        return "".join(out)

    # ----------------------------- nodes ----------------------------- #

    def render_nodes(self, nodes: TemplateAST, out: List[str]) -> Optional[LoopSignal]:
        for node in nodes:
            self.state.tick()
            signal = self._render_node(node, out)
            if signal is not None:
                return signal
        return None

    def _render_isolated(self, nodes: TemplateAST, out: List[str]) -> None:
        """Renders a body that break/continue may not escape from."""
        signal = self.render_nodes(nodes, out)
        if signal is not None:
            raise LoopControlError(signal.value)

    def _render_node(self, node: TemplateNode, out: List[str]) -> Optional[LoopSignal]:
        if isinstance(node, TextNode):
            out.append(node.rendered_text())
        elif isinstance(node, VariableNode):
            out.append(self._render_variable(node))
        elif isinstance(node, RawNode):
            out.append(node.text)
        elif isinstance(node, CommentNode):
            pass
        elif isinstance(node, SetGlobalNode):
            self.state.scopes.set_global(node.name, self.evaluator.evaluate(node.expression))
        elif isinstance(node, SetNode):
            self.state.scopes.set_local(node.name, self.evaluator.evaluate(node.expression))
        elif isinstance(node, IfNode):
            return self._render_if(node, out)
        elif isinstance(node, ForNode):
            return self._render_for(node, out)
        elif isinstance(node, BreakNode):
            return LoopSignal.BREAK
        elif isinstance(node, ContinueNode):
            return LoopSignal.CONTINUE
        elif isinstance(node, ResolvedBlockNode):
            self._render_block(node, out)
        elif isinstance(node, IncludeNode):
            self._render_include(node, out)
        elif isinstance(node, FilterSectionNode):
            return self._render_filter_section(node, out)
        elif isinstance(node, BlockNode):
            raise ValueError(f"Block '{node.name}' was not resolved before rendering")
        else:
            raise ValueError(f"Unknown node type: {type(node).__name__}")
        return None

    def _render_variable(self, node: VariableNode) -> str:
        expression = node.expression
        text = stringify(self.evaluator.evaluate(expression))

        if not self.escape or isinstance(expression, MacroCall):
            return text
        if isinstance(expression, FilterChain) and expression.filters[-1].name == "safe":
            return text
        return self.processor.escape_fn(text)

    def _render_if(self, node: IfNode, out: List[str]) -> Optional[LoopSignal]:
        for condition, body in node.branches:
            if is_truthy(self.evaluator.evaluate(condition)):
                return self.render_nodes(body, out)
        if node.else_body is not None:
            return self.render_nodes(node.else_body, out)
        return None

    def _render_for(self, node: ForNode, out: List[str]) -> Optional[LoopSignal]:
        iterable = self.evaluator.evaluate(node.iterable)
        items = self._loop_items(node, iterable)

        if not items:
            if node.else_body is not None:
                return self.render_nodes(node.else_body, out)
            return None

        length = len(items)
        for index, (key, value) in enumerate(items):
            frame: Dict[str, Any] = {
                node.value_var: value,
                "loop": {
                    "index": index + 1,
                    "index0": index,
                    "first": index == 0,
                    "last": index == length - 1,
                    "length": length,
                },
            }
            if node.key_var is not None:
                frame[node.key_var] = key

            self.state.scopes.push(frame)
            try:
                signal = self.render_nodes(node.body, out)
            finally:
                self.state.scopes.pop()

            if signal == LoopSignal.BREAK:
                break

        return None

    @staticmethod
    def _loop_items(node: ForNode, iterable: Any) -> List[tuple]:
        """(key, value) pairs; arrays have no keys."""
        if isinstance(iterable, dict):
            return list(iterable.items())
        if isinstance(iterable, list):
            if node.key_var is not None:
                raise TypeMismatchError(
                    f"Loop with two variables needs an object, got {kind_of(iterable)}"
                )
            return [(None, item) for item in iterable]
        raise TypeMismatchError(f"Cannot iterate over {kind_of(iterable)}")

    def _render_block(self, node: ResolvedBlockNode, out: List[str]) -> None:
        def body() -> None:
            self.state.scopes.push()
            try:
                self._render_isolated(node.body, out)
            finally:
                self.state.scopes.pop()

        self._nested(node.template_name, body)

    def _render_include(self, node: IncludeNode, out: List[str]) -> None:
        for candidate in node.candidates:
            included = self.processor.templates.get(candidate)
            if included is None:
                continue
            self._nested(included.root_name, lambda: self._render_isolated(included.nodes, out))
            return

        if node.ignore_missing:
            logger.warning(f"Include skipped, none of {list(node.candidates)} is loaded")
            return
        raise MissingIncludeError(list(node.candidates))

    def _render_filter_section(self, node: FilterSectionNode, out: List[str]) -> Optional[LoopSignal]:
        section: List[str] = []
        signal = self.render_nodes(node.body, section)
        args = self.evaluator.evaluate_kwargs(node.filter.kwargs)
        value = self.evaluator.apply_filter(node.filter.name, "".join(section), args)
        out.append(stringify(value))
        return signal

    # ----------------------------- macros ----------------------------- #

    def _call_macro(self, namespace: str, name: str, args: Dict[str, Any]) -> str:
        """
        Renders a macro body in an isolated scope.

        The macro sees globals, its parameters and its own template's
        namespaces, never the caller's locals.
        """
        target = self._macro_template(namespace, name)
        macro = self.processor.templates[target].template.macros.get(name)
        if macro is None:
            raise UndefinedMacroError(namespace, name, f"not defined in '{target}'")

        declared = {p.name for p in macro.parameters}
        unknown = [k for k in args if k not in declared]
        missing = [p.name for p in macro.parameters if not p.has_default and p.name not in args]
        if unknown or missing:
            raise MacroArityError(f"{namespace}::{name}", missing=missing, unknown=unknown)

        frame = {p.name: p.default for p in macro.parameters if p.has_default}
        frame.update(args)

        out: List[str] = []
        saved_scopes, saved_in_macro = self.state.scopes, self.state.in_macro
        self.state.scopes = saved_scopes.isolated(frame)
        self.state.in_macro = True
        try:
            self._nested(target, lambda: self._render_isolated(macro.body, out))
        finally:
            self.state.scopes = saved_scopes
            self.state.in_macro = saved_in_macro
        return "".join(out)

    def _macro_template(self, namespace: str, name: str) -> str:
        current = self.state.template_name
        if namespace == "self":
            if not self.state.in_macro:
                raise UndefinedMacroError(namespace, name, "'self' can only be used inside a macro")
            return current

        target = self.processor.templates[current].template.namespace_target(namespace)
        if target is None:
            raise UndefinedMacroError(namespace, name, f"namespace '{namespace}' is not imported in '{current}'")
        return target

    # ----------------------------- template switching ----------------------------- #

    def _nested(self, template_name: str, action: Callable[[], None]) -> None:
        self.state.enter()
        try:
            self._in_template(template_name, action)
        finally:
            self.state.leave()

    def _in_template(self, template_name: str, action: Callable[[], None]) -> None:
        """Runs `action` with `template_name` as the current template."""
        saved = self.state.template_name
        self.state.template_name = template_name
        try:
            action()
        except RenderError as e:
            if not e.template_name:
                e.template_name = template_name
            raise
        finally:
            self.state.template_name = saved


__all__ = ["TemplateProcessor", "RenderLimits", "RenderState", "LoopSignal"]
