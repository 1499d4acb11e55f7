"""
Engine facade.

Owns the template cache and the builtin registry, keeps the resolved view of
the cache up to date and hands render calls to the template processor.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .builtins.filters import escape_html
from .builtins.registry import BuiltinRegistry, FilterFn, FunctionFn, TesterFn
from .config import EngineConfig
from .errors import ConfigError, ResolveError, TemplateLoadError, TemplateNotFoundError, TemplateSyntaxError
from .loader import iter_template_files, read_template, template_name_for
from .template.context import Context
from .template.model import Template
from .template.parser import parse_template
from .template.processor import EscapeFn, RenderLimits, TemplateProcessor
from .template.resolver import ResolvedTemplate, TemplateResolver

logger = logging.getLogger(__name__)

ONE_OFF_NAME = "__lysine_one_off"

ContextLike = Union[Context, Mapping[str, Any]]
FileSpec = Union[str, Path, Tuple[Union[str, Path], Optional[str]]]


class Lysine:
    """
    Template engine.

    Templates are parsed once and cached by name. The cache is safe to fill
    from several threads: inserts are first-writer-wins, so when the same
    name is added twice the first template is kept. Every change to the
    cache re-runs inheritance resolution over the whole cache, which makes
    broken extends/import graphs fail at load time rather than at render time.

    Builtins can be registered until the first render; after that the
    registry is frozen and shared read-only by concurrent renders.
    """

    def __init__(self, config: Optional[EngineConfig] = None, registry: Optional[BuiltinRegistry] = None):
        self.config = config or EngineConfig()
        self.registry = registry or BuiltinRegistry.with_defaults()

        self._lock = threading.Lock()
        self._templates: Dict[str, Template] = {}
        self._resolved: Dict[str, ResolvedTemplate] = {}
        # Names that came from extend(); full_reload() keeps them
        self._extended: set = set()

        self._escape_fn: EscapeFn = escape_html
        self._autoescape_suffixes: List[str] = list(self.config.autoescape_suffixes)
        self._limits = RenderLimits(max_depth=self.config.max_depth,
                                    max_evaluations=self.config.max_evaluations)
        self._processor: Optional[TemplateProcessor] = None

        self._root: Optional[Path] = None
        self._patterns: Optional[List[str]] = None

    @classmethod
    def from_directory(cls, root: Union[str, Path], patterns: Optional[Sequence[str]] = None,
                       config: Optional[EngineConfig] = None) -> "Lysine":
        """Creates an engine and loads every matching template under `root`."""
        engine = cls(config)
        engine.load_directory(root, patterns)
        return engine

    # ----------------------------- loading ----------------------------- #

    def parse(self, name: str, source: str, path: Optional[str] = None) -> Template:
        """
        Parses a template and adds it to the cache.

        Returns:
            The template kept in the cache (an earlier one if the name was taken)

        Raises:
            TemplateSyntaxError: If the source does not parse
            ResolveError: If the cache no longer resolves; the new template is dropped
        """
        template = parse_template(name, source, path)
        return self._add([template])[0]

    def add_raw_template(self, name: str, source: str) -> Template:
        return self.parse(name, source)

    def add_raw_templates(self, templates: Iterable[Tuple[str, str]]) -> List[Template]:
        """
        Adds several templates at once.

        Resolution runs once after all of them are cached, so a child may
        come before its parent in the batch.
        """
        parsed = [parse_template(name, source) for name, source in templates]
        return self._add(parsed)

    def add_template_file(self, path: Union[str, Path], name: Optional[str] = None) -> Template:
        path = Path(path)
        source = read_template(path)
        return self.parse(template_name_for(path, name), source, str(path))

    def add_template_files(self, files: Iterable[FileSpec]) -> List[Template]:
        """Adds files given as paths or (path, name) pairs; names default to the path."""
        parsed: List[Template] = []
        for spec in files:
            if isinstance(spec, tuple):
                path, name = Path(spec[0]), spec[1]
            else:
                path, name = Path(spec), None
            parsed.append(parse_template(template_name_for(path, name), read_template(path), str(path)))
        return self._add(parsed)

    def load_directory(self, root: Union[str, Path], patterns: Optional[Sequence[str]] = None) -> List[Template]:
        """
        Loads every file under `root` matching the glob patterns.

        Templates are named by their root-relative POSIX path. All read and
        parse failures are collected before anything is cached.

        Raises:
            TemplateLoadError: If any file fails to read or parse
            ResolveError: If the loaded set does not resolve
        """
        root = Path(root)
        patterns = list(patterns) if patterns is not None else list(self.config.templates)
        if not root.is_dir():
            raise ConfigError(f"Template directory not found: {root}")

        parsed: List[Template] = []
        failures: List[str] = []
        for f in iter_template_files(root, patterns):
            try:
                parsed.append(parse_template(f.name, read_template(f.path), str(f.path)))
            except TemplateSyntaxError as e:
                failures.append(str(e))
            except (OSError, UnicodeDecodeError) as e:
                failures.append(f"{f.name}: {e}")

        if failures:
            raise TemplateLoadError(failures)

        self._root, self._patterns = root, patterns
        added = self._add(parsed)
        logger.debug(f"Loaded {len(added)} template(s) from {root}")
        return added

    def full_reload(self) -> None:
        """
        Re-reads the directory the engine was loaded from.

        Templates added through extend() survive the reload; other
        in-memory templates are dropped.

        Raises:
            ConfigError: If no directory was ever loaded
        """
        if self._root is None:
            raise ConfigError("full_reload() needs an engine loaded from a directory")

        with self._lock:
            kept = {n: t for n, t in self._templates.items() if n in self._extended}
            previous = self._templates
            self._templates = kept
            self._resolved = {}
            self._processor = None

        try:
            self.load_directory(self._root, self._patterns)
        except Exception:
            with self._lock:
                self._templates = previous
                self._rebuild_locked()
            raise

    def extend(self, other: "Lysine") -> None:
        """
        Copies templates and builtins of `other` that this engine lacks.

        Raises:
            ConfigError: If this engine's builtins are already frozen
        """
        if self.registry.frozen:
            raise ConfigError("Cannot extend an engine after its first render")
        self.registry.merge_missing(other.registry)

        with self._lock:
            previous = dict(self._templates)
            for name, template in other._snapshot().items():
                if name not in self._templates:
                    self._templates[name] = template
                    self._extended.add(name)
            try:
                self._rebuild_locked()
            except ResolveError:
                self._extended -= set(self._templates) - set(previous)
                self._templates = previous
                raise

    def _snapshot(self) -> Dict[str, Template]:
        with self._lock:
            return dict(self._templates)

    def _add(self, templates: List[Template]) -> List[Template]:
        """Insert-if-absent under the lock, then resolve the whole cache."""
        kept: List[Template] = []
        with self._lock:
            inserted: List[str] = []
            for template in templates:
                existing = self._templates.get(template.name)
                if existing is not None:
                    logger.debug(f"Template '{template.name}' is already cached, keeping the first one")
                    kept.append(existing)
                    continue
                self._templates[template.name] = template
                inserted.append(template.name)
                kept.append(template)

            try:
                self._rebuild_locked()
            except ResolveError:
                for name in inserted:
                    del self._templates[name]
                self._rebuild_locked()
                raise
        return kept

    def _rebuild_locked(self) -> None:
        self._resolved = TemplateResolver(self._templates).resolve_all()
        self._processor = None

    # ----------------------------- lookup ----------------------------- #

    def get_template(self, name: str) -> Template:
        with self._lock:
            template = self._templates.get(name)
        if template is None:
            raise TemplateNotFoundError(name)
        return template

    def get_template_names(self) -> List[str]:
        with self._lock:
            return sorted(self._templates)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._templates

    # ----------------------------- builtins ----------------------------- #

    def register_filter(self, name: str, fn: FilterFn) -> None:
        self.registry.register_filter(name, fn)

    def register_tester(self, name: str, fn: TesterFn) -> None:
        self.registry.register_tester(name, fn)

    def register_function(self, name: str, fn: FunctionFn) -> None:
        self.registry.register_function(name, fn)

    # ----------------------------- escaping ----------------------------- #

    def autoescape_on(self, suffixes: Sequence[str]) -> None:
        """Sets the name suffixes that turn autoescaping on; empty disables it."""
        with self._lock:
            self._autoescape_suffixes = list(suffixes)
            self._processor = None

    def set_escape_fn(self, fn: Callable[[str], str]) -> None:
        with self._lock:
            self._escape_fn = fn
            self._processor = None

    def reset_escape_fn(self) -> None:
        self.set_escape_fn(escape_html)

    # ----------------------------- rendering ----------------------------- #

    def render(self, name: str, context: ContextLike) -> str:
        """
        Renders a cached template.

        Raises:
            TemplateNotFoundError: If no template has that name
            RenderError: On any evaluation failure
        """
        return self._current_processor().render(name, _as_context(context))

    def render_str(self, source: str, context: ContextLike) -> str:
        """
        Renders a source string without caching it.

        The string may extend, include and import cached templates.
        """
        template = parse_template(ONE_OFF_NAME, source)
        processor = self._current_processor()

        with self._lock:
            templates = dict(self._templates)
        templates[ONE_OFF_NAME] = template
        resolved = dict(processor.templates)
        resolved[ONE_OFF_NAME] = TemplateResolver(templates).resolve(ONE_OFF_NAME)

        one_off = TemplateProcessor(resolved, processor.registry, processor.escape_fn,
                                    processor.autoescape_suffixes, processor.limits)
        return one_off.render(ONE_OFF_NAME, _as_context(context))

    @classmethod
    def one_off(cls, source: str, context: ContextLike, autoescape: bool = False) -> str:
        """Renders a source string with a throwaway engine."""
        engine = cls()
        engine.autoescape_on([ONE_OFF_NAME] if autoescape else [])
        return engine.render_str(source, context)

    def _current_processor(self) -> TemplateProcessor:
        """Processor over the current cache; freezes the registry."""
        with self._lock:
            if not self.registry.frozen:
                self.registry.freeze()
                logger.debug("Builtin registry frozen on first render")
            if self._processor is None:
                self._processor = TemplateProcessor(
                    dict(self._resolved),
                    self.registry,
                    self._escape_fn,
                    self._autoescape_suffixes,
                    self._limits,
                )
            return self._processor


def _as_context(context: ContextLike) -> Context:
    if isinstance(context, Context):
        return context
    return Context.from_dict(context)


__all__ = ["Lysine", "ONE_OFF_NAME"]
