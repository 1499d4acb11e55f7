"""
Render semantics of the template processor.

Most cases go through the engine fixtures (render_one / render_set), which
parse, resolve and render exactly as user code does.
"""

import pytest

from lysine import Lysine
from lysine.config import EngineConfig
from lysine.errors import (
    MacroArityError,
    MissingIncludeError,
    ResourceExhaustedError,
    TemplateNotFoundError,
    TypeMismatchError,
    UndefinedMacroError,
    UndefinedVariableError,
)


class TestOutput:

    def test_text_and_variables(self, render_one):
        assert render_one("Hello {{ name }}!", name="World") == "Hello World!"

    def test_values_are_stringified(self, render_one):
        out = render_one("{{ a }}|{{ b }}|{{ c }}|{{ d }}|{{ e }}", a=3.0, b=True, c=None, d=[1, "x"], e=7 / 2)

        assert out == '3|true||[1,"x"]|3.5'

    def test_comments_are_dropped(self, render_one):
        assert render_one("a{# note #}b") == "ab"

    def test_whitespace_after_leading_tags_is_kept(self, render_one, render_set):
        assert render_one("{# c #}\n{{ x }}", x="X") == "\nX"

        out = render_set(
            {
                "m": "{% macro a() %}A{% endmacro %}",
                "page": '{% import "m" as m %}\n{{ m::a() }}',
            },
            "page",
        )

        assert out == "\nA"

    def test_raw_is_verbatim(self, render_one):
        assert render_one("{% raw %}{{ x }} {% if %}{% endraw %}") == "{{ x }} {% if %}"

    def test_trim_markers(self, render_one):
        assert render_one("a  {{- x -}}  b", x="X") == "aXb"
        assert render_one("<{%- if true -%}\n  yes\n  {%- endif -%}>") == "<yes>"

    def test_filter_section(self, render_one):
        assert render_one("{% filter upper %}hello {{ name }}{% endfilter %}", name="bob") == "HELLO BOB"


class TestControlFlow:

    def test_if_elif_else(self, render_one):
        source = "{% if n > 5 %}big{% elif n > 1 %}mid{% else %}small{% endif %}"

        assert render_one(source, n=9) == "big"
        assert render_one(source, n=3) == "mid"
        assert render_one(source, n=0) == "small"

    def test_for_loop_variables(self, render_one):
        source = "{% for x in items %}{{ loop.index }}{{ x }}{{ loop.first }}{{ loop.last }}|{% endfor %}"

        assert render_one(source, items=["a", "b"]) == "1atruefalse|2bfalsetrue|"

    def test_for_over_object(self, render_one):
        out = render_one("{% for k, v in obj %}{{ k }}={{ v }};{% endfor %}", obj={"a": 1, "b": 2})

        assert out == "a=1;b=2;"

    def test_for_else_on_empty(self, render_one):
        assert render_one("{% for x in items %}x{% else %}empty{% endfor %}", items=[]) == "empty"

    def test_break_and_continue(self, render_one):
        assert render_one(
            "{% for i in range(end=10) %}{% if i == 3 %}{% break %}{% endif %}{{ i }}{% endfor %}"
        ) == "012"
        assert render_one(
            "{% for i in range(end=10) %}{% if i is odd %}{% continue %}{% endif %}{{ i }}{% endfor %}"
        ) == "02468"

    def test_iterating_a_string_fails(self, render_one):
        with pytest.raises(TypeMismatchError, match="Cannot iterate over string"):
            render_one("{% for c in name %}{{ c }}{% endfor %}", name="abc")

    def test_key_value_loop_needs_object(self, render_one):
        with pytest.raises(TypeMismatchError, match="needs an object"):
            render_one("{% for k, v in items %}{% endfor %}", items=[1])


class TestScoping:

    def test_set_in_loop_stays_in_iteration(self, render_one):
        source = "{% set x = 0 %}{% for i in [1, 2] %}{% set x = i %}{% endfor %}{{ x }}"

        assert render_one(source) == "0"

    def test_set_global_escapes_loop(self, render_one):
        source = "{% set x = 0 %}{% for i in [1, 2] %}{% set_global x = i %}{% endfor %}{{ x }}"

        assert render_one(source) == "2"

    def test_set_global_creates_new_name(self, render_one):
        assert render_one("{% for i in [1, 2] %}{% set_global total = i %}{% endfor %}{{ total }}") == "2"

    def test_block_has_own_frame(self, render_one):
        source = "{% set x = 1 %}{% block b %}{% set x = 2 %}{{ x }}{% endblock %}{{ x }}"

        assert render_one(source) == "21"

    def test_include_sees_caller_variables(self, render_set):
        out = render_set(
            {
                "item": "<{{ x }}>",
                "page": '{% for x in [1, 2] %}{% include "item" %}{% endfor %}',
            },
            "page",
        )

        assert out == "<1><2>"


class TestInheritance:

    def test_child_overrides_and_super(self, render_set):
        out = render_set(
            {
                "base": "[{% block a %}A{% endblock %}][{% block b %}B{% endblock %}]",
                "child": '{% extends "base" %}{% block a %}{{ super() }}+{% endblock %}',
            },
            "child",
        )

        assert out == "[A+][B]"

    def test_three_levels_of_super(self, render_set):
        out = render_set(
            {
                "base": "{% block a %}1{% endblock %}",
                "mid": '{% extends "base" %}{% block a %}{{ super() }}2{% endblock %}',
                "leaf": '{% extends "mid" %}{% block a %}{{ super() }}3{% endblock %}',
            },
            "leaf",
        )

        assert out == "123"

    def test_child_content_outside_blocks_is_ignored(self, render_set):
        out = render_set(
            {
                "base": "[{% block a %}A{% endblock %}]",
                "child": '{% extends "base" %}junk{% block a %}X{% endblock %}more junk',
            },
            "child",
        )

        assert out == "[X]"

    def test_blocks_see_context(self, render_set):
        out = render_set(
            {
                "base": "{% block a %}{% endblock %}",
                "child": '{% extends "base" %}{% block a %}{{ user }}{% endblock %}',
            },
            "child",
            user="ann",
        )

        assert out == "ann"

    def test_directory_layout(self, template_dir):
        engine = Lysine.from_directory(template_dir)

        out = engine.render("pages/index.html", {"user": "bob"})

        assert out == "<title>Site - Home</title>Hello, bob!<footer>bob</footer>"


class TestMacros:

    MACROS = (
        '{% macro greet(name, greeting="Hello") %}{{ greeting }}, {{ name }}!{% endmacro %}'
        "{% macro count(n) %}{{ n }}{% if n > 0 %}{{ self::count(n=n - 1) }}{% endif %}{% endmacro %}"
        "{% macro show() %}{{ secret }}{% endmacro %}"
    )

    def render(self, render_set, body, **data):
        templates = {"macros": self.MACROS, "page": '{% import "macros" as m %}' + body}
        return render_set(templates, "page", **data)

    def test_defaults_and_overrides(self, render_set):
        assert self.render(render_set, '{{ m::greet(name="Ann") }}') == "Hello, Ann!"
        assert self.render(render_set, '{{ m::greet(name="Ann", greeting="Hi") }}') == "Hi, Ann!"

    def test_self_recursion(self, render_set):
        assert self.render(render_set, "{{ m::count(n=3) }}") == "3210"

    def test_missing_argument(self, render_set):
        with pytest.raises(MacroArityError, match="missing argument\\(s\\) name"):
            self.render(render_set, "{{ m::greet() }}")

    def test_unknown_argument(self, render_set):
        with pytest.raises(MacroArityError, match="unknown argument\\(s\\) nick"):
            self.render(render_set, '{{ m::greet(name="a", nick="b") }}')

    def test_macro_does_not_see_caller_data(self, render_set):
        with pytest.raises(UndefinedVariableError, match="'secret'"):
            self.render(render_set, "{% set secret = 1 %}{{ m::show() }}", secret=2)

    def test_macro_sees_globals(self, render_set):
        assert self.render(render_set, "{% set_global secret = 5 %}{{ m::show() }}") == "5"

    def test_unknown_macro(self, render_set):
        with pytest.raises(UndefinedMacroError, match="not defined in 'macros'"):
            self.render(render_set, "{{ m::nope() }}")

    def test_namespace_not_imported(self, render_set):
        with pytest.raises(UndefinedMacroError, match="namespace 'q' is not imported"):
            self.render(render_set, "{{ q::greet(name='x') }}")

    def test_self_outside_macro(self, render_set):
        with pytest.raises(UndefinedMacroError, match="'self' can only be used inside a macro"):
            self.render(render_set, "{{ self::greet(name='x') }}")


class TestIncludes:

    def test_first_existing_candidate(self, render_set):
        out = render_set({"part": "P", "page": '{% include ["nope", "part"] %}'}, "page")

        assert out == "P"

    def test_ignore_missing(self, render_set):
        assert render_set({"page": 'a{% include "nope" ignore missing %}b'}, "page") == "ab"

    def test_missing_include(self, render_set):
        with pytest.raises(MissingIncludeError, match="'nope' not found for include"):
            render_set({"page": '{% include "nope" %}'}, "page")


class TestAutoescape:

    def test_default_suffixes_are_escaped(self, render_set):
        for name in ("page.lisc", "page.lism", "page.lish"):
            assert render_set({name: "{{ v }}"}, name, v="<b>") == "&lt;b&gt;"

    def test_safe_skips_escaping(self, render_set):
        assert render_set({"page.lish": "{{ v | safe }}"}, "page.lish", v="<b>") == "<b>"

    def test_other_suffixes_are_not_escaped(self, render_set):
        assert render_set({"page.txt": "{{ v }}"}, "page.txt", v="<b>") == "<b>"
        assert render_set({"page.html": "{{ v }}"}, "page.html", v="<b>") == "<b>"

    def test_macro_output_is_not_escaped_twice(self, render_set):
        out = render_set(
            {
                "m.lism": "{% macro b(t) %}<b>{{ t }}</b>{% endmacro %}",
                "page.lish": '{% import "m.lism" as m %}{{ m::b(t="<i>") }}',
            },
            "page.lish",
        )

        assert out == "<b>&lt;i&gt;</b>"

    def test_decided_by_rendered_template(self, render_set):
        out = render_set(
            {"part.lish": "{{ v }}", "page.txt": '{% include "part.lish" %}'},
            "page.txt",
            v="<b>",
        )

        assert out == "<b>"


class TestErrors:

    def test_undefined_variable_names_template(self, render_set):
        templates = {
            "base": "{% block a %}{% endblock %}",
            "child": '{% extends "base" %}{% block a %}{{ nope }}{% endblock %}',
        }
        with pytest.raises(UndefinedVariableError) as exc:
            render_set(templates, "child")

        assert exc.value.template_name == "child"
        assert "(while rendering 'child')" in str(exc.value)

    def test_unknown_template(self, engine):
        with pytest.raises(TemplateNotFoundError, match="Template 'nope' not found"):
            engine.render("nope", {})

    def test_runaway_recursion_is_stopped(self, render_set):
        templates = {
            "m": "{% macro r(n) %}{{ self::r(n=n + 1) }}{% endmacro %}",
            "page": '{% import "m" as m %}{{ m::r(n=0) }}',
        }
        with pytest.raises(ResourceExhaustedError, match="recursion depth limit of 32 exceeded"):
            render_set(templates, "page")

    def test_evaluation_budget(self):
        engine = Lysine(EngineConfig(max_evaluations=50))
        engine.add_raw_template("loop", "{% for i in range(end=100) %}{{ i }}{% endfor %}")

        with pytest.raises(ResourceExhaustedError, match="evaluation limit of 50 exceeded"):
            engine.render("loop", {})

    def test_huge_range_is_rejected_before_it_is_built(self):
        engine = Lysine(EngineConfig(max_evaluations=1000))
        engine.add_raw_template("loop", "{% for i in range(end=10000000000) %}{{ i }}{% endfor %}")

        with pytest.raises(ResourceExhaustedError, match="evaluation limit of 1000 exceeded"):
            engine.render("loop", {})

    def test_engine_stays_usable_after_failure(self, engine):
        engine.add_raw_templates([("bad", "{{ nope }}"), ("good", "ok")])

        with pytest.raises(UndefinedVariableError):
            engine.render("bad", {})
        assert engine.render("good", {}) == "ok"


class TestReferenceOutputs:

    @pytest.mark.parametrize("source,expected", [
        ("{{ 1 + 2 * 3 }}", "7"),
        ("{{ (1 + 2) * 3 }}", "9"),
        ("{% for x in [] %}{{x}}{% else %}empty{% endfor %}", "empty"),
        ("{% for x in [1] %}{{x}}{% else %}empty{% endfor %}", "1"),
        ("{% for x in [1,2,3] %}{% if x == 2 %}{% break %}{% endif %}{{x}}{% endfor %}", "1"),
        ("{% if 1 in [1,2] %}yes{% else %}no{% endif %}", "yes"),
        ('{% if "a" in "cat" %}yes{% else %}no{% endif %}', "yes"),
        ("{% if 3 not in [1,2] %}yes{% else %}no{% endif %}", "yes"),
        ("a {{- 'b' -}} c", "abc"),
        ("{{ -7 % 3 }}", "-1"),
    ])
    def test_outputs(self, render_one, source, expected):
        assert render_one(source) == expected

    def test_macro_literal_default(self, render_set):
        templates = {
            "m": '{% macro greet(name="world") %}hi {{ name }}{% endmacro %}',
            "page": '{% import "m" as ns %}{{ ns::greet() }}|{{ ns::greet(name="you") }}',
        }

        assert render_set(templates, "page") == "hi world|hi you"

    def test_repeated_renders_are_identical(self, engine):
        engine.add_raw_template("t", "{% for k, v in o %}{{ k }}{{ v | json_encode }}{% endfor %}")
        data = {"o": {"b": [1, {"x": None}], "a": 2.5}}

        assert engine.render("t", data) == engine.render("t", data) == 'b[1,{"x":null}]a2.5'
