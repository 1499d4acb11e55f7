from pathlib import Path

import pytest

from lysine.config import EngineConfig, load_config
from lysine.errors import ConfigError
from tests.infrastructure.file_utils import write


def test_missing_file_gives_defaults(tmp_path: Path):
    cfg = load_config(tmp_path / "lysine.yaml")

    assert cfg == EngineConfig()
    assert cfg.max_depth == 32
    assert cfg.autoescape_suffixes == [".lisc", ".lism", ".lish"]


def test_empty_file_gives_defaults(tmp_path: Path):
    path = write(tmp_path / "lysine.yaml", "")

    assert load_config(path) == EngineConfig()


def test_values_are_read(tmp_path: Path):
    path = write(tmp_path / "lysine.yaml", """
templates: "*.tera"
autoescape_suffixes: [".html"]
max_depth: 10
max_evaluations: 500
""")

    cfg = load_config(path)

    assert cfg.templates == ["*.tera"]
    assert cfg.autoescape_suffixes == [".html"]
    assert cfg.max_depth == 10
    assert cfg.max_evaluations == 500


@pytest.mark.parametrize("text,message", [
    ("colour: red\n", "Unknown config key 'colour'"),
    ("templates: [1, 2]\n", "must be a list of strings"),
    ("max_depth: 0\n", "must be a positive integer"),
    ("max_depth: true\n", "must be a positive integer"),
    ("- a\n- b\n", "YAML must be a mapping"),
    ("templates: [\n", "Invalid YAML"),
])
def test_invalid_config(tmp_path: Path, text, message):
    path = write(tmp_path / "lysine.yaml", text)

    with pytest.raises(ConfigError, match=message):
        load_config(path)
