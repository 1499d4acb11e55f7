from pathlib import Path
from typing import Any, Dict

import pytest

from lysine import Context, Lysine
from tests.infrastructure.file_utils import write_tree


@pytest.fixture
def engine() -> Lysine:
    return Lysine()


@pytest.fixture
def render_one():
    """Renders a single source string with a fresh engine: render_one(source, **data)."""
    def _render(source: str, **data: Any) -> str:
        return Lysine().render_str(source, Context.from_dict(data))
    return _render


@pytest.fixture
def render_set():
    """Loads several named templates and renders one of them."""
    def _render(templates: Dict[str, str], name: str, **data: Any) -> str:
        engine = Lysine()
        engine.add_raw_templates(templates.items())
        return engine.render(name, data)
    return _render


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """Small template tree: a base layout, a child page, a macro file and a partial."""
    return write_tree(tmp_path / "templates", {
        "base.html": "<title>{% block title %}Site{% endblock %}</title>{% block body %}{% endblock %}",
        "pages/index.html": (
            '{% extends "base.html" %}\n'
            '{% import "macros.txt" as m %}\n'
            "{% block title %}{{ super() }} - Home{% endblock %}"
            "{% block body %}{{ m::greet(name=user) }}{% include \"partials/footer.txt\" %}{% endblock %}"
        ),
        "macros.txt": "{% macro greet(name, greeting=\"Hello\") %}{{ greeting }}, {{ name }}!{% endmacro %}",
        "partials/footer.txt": "<footer>{{ user }}</footer>",
    })
