from pathlib import Path

from lysine.loader import iter_template_files, read_template, template_name_for
from tests.infrastructure.file_utils import write, write_tree


def names(root: Path, patterns=None):
    return [f.name for f in iter_template_files(root, patterns)]


def test_walks_recursively_in_name_order(tmp_path: Path):
    write_tree(tmp_path, {"b.txt": "", "a/z.html": "", "a/b/c.txt": ""})

    assert names(tmp_path) == ["a/b/c.txt", "a/z.html", "b.txt"]


def test_hidden_directories_are_skipped(tmp_path: Path):
    write_tree(tmp_path, {".git/config": "", "visible/page.txt": ""})

    assert names(tmp_path) == ["visible/page.txt"]


def test_patterns_and_negation(tmp_path: Path):
    write_tree(tmp_path, {"a.html": "", "b.txt": "", "drafts/c.html": ""})

    assert names(tmp_path, ["*.html"]) == ["a.html", "drafts/c.html"]
    assert names(tmp_path, ["*.html", "!drafts/"]) == ["a.html"]


def test_files_carry_their_location(tmp_path: Path):
    write(tmp_path / "x/page.txt", "hello")

    (found,) = list(iter_template_files(tmp_path))

    assert found.path == (tmp_path / "x/page.txt").resolve()
    assert read_template(found.path) == "hello"


def test_template_name_for():
    assert template_name_for(Path("a") / "b.txt") == "a/b.txt"
    assert template_name_for(Path("a/b.txt"), "custom") == "custom"
