import pytest

from lysine.builtins.registry import BuiltinRegistry
from lysine.errors import ConfigError, UndefinedBuiltinError


def shout(value, args):
    return str(value).upper() + "!"


def test_defaults_are_loaded():
    registry = BuiltinRegistry.with_defaults()

    assert "upper" in registry.filters
    assert "defined" in registry.testers
    assert "range" in registry.functions


def test_register_and_lookup():
    registry = BuiltinRegistry()
    registry.register_filter("shout", shout)

    assert registry.get_filter("shout") is shout


def test_unknown_names():
    registry = BuiltinRegistry()

    with pytest.raises(UndefinedBuiltinError, match="Filter 'x' not found"):
        registry.get_filter("x")
    with pytest.raises(UndefinedBuiltinError, match="Tester 'x' not found"):
        registry.get_tester("x")
    with pytest.raises(UndefinedBuiltinError, match="Function 'x' not found"):
        registry.get_function("x")


def test_frozen_registry_rejects_registration():
    registry = BuiltinRegistry()
    registry.freeze()

    assert registry.frozen
    with pytest.raises(ConfigError, match="Cannot register filter 'shout'"):
        registry.register_filter("shout", shout)


def test_overwrite_is_logged(caplog):
    registry = BuiltinRegistry.with_defaults()

    with caplog.at_level("WARNING", logger="lysine.builtins.registry"):
        registry.register_filter("upper", shout)

    assert registry.get_filter("upper") is shout
    assert "overwrites an existing registration" in caplog.text


def test_merge_missing_keeps_own_entries():
    mine = BuiltinRegistry()
    mine.register_filter("upper", shout)
    theirs = BuiltinRegistry.with_defaults()

    mine.merge_missing(theirs)

    assert mine.get_filter("upper") is shout
    assert "lower" in mine.filters
    assert "range" in mine.functions
