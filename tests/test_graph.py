from __future__ import annotations

from pathlib import Path

import pytest

from tagtree.extractor import MalformedDependencyWarning
from tagtree.graph import load_graph
from tagtree.sources import COMPILER_EXCLUDES
from tagtree.walker import dependencies, expand


def _write_manifest(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "tagtree.toml"
    p.write_text(text, encoding="utf-8")
    return p


def test_load_graph_resolves_sources_relative_to_manifest(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path,
        """targets = ["app"]

[packages.app]
src = "."
inputs = ["text"]
relative = true

[packages.text]
src = "deps/text"
prefix = "vendor/text"
""",
    )

    graph = load_graph(manifest)

    app = graph.packages["app"]
    text = graph.packages["text"]
    assert [t.name for t in graph.targets] == ["app"]
    assert app.src == tmp_path.resolve().as_posix()
    assert app.relative is True
    assert text.src == (tmp_path / "deps" / "text").resolve().as_posix()
    assert text.prefix == "vendor/text"
    assert text.relative is None
    assert graph.inputs_of(app) == [text]
    assert graph.base is None


def test_targets_default_to_all_packages(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path,
        """[packages.a]
src = "a"

[packages.b]
src = "b"
""",
    )

    graph = load_graph(manifest)

    assert [t.name for t in graph.targets] == ["a", "b"]


def test_cyclic_manifest_expands_each_package_once(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path,
        """targets = ["a"]

[packages.a]
src = "a"
inputs = ["b"]

[packages.b]
src = "b"
inputs = ["a"]
""",
    )

    graph = load_graph(manifest)

    names = [p.name for p in expand(graph.targets, inputs_of=graph.inputs_of)]
    assert names == ["a", "b"]
    deps = dependencies(graph.targets, inputs_of=graph.inputs_of)
    assert [p.name for p in deps] == ["b"]


def test_unknown_input_is_warned_and_ignored(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path,
        """[packages.a]
src = "a"
inputs = ["missing", "b"]

[packages.b]
src = "b"
""",
    )

    with pytest.warns(MalformedDependencyWarning, match="missing"):
        graph = load_graph(manifest)

    assert [p.name for p in graph.inputs_of(graph.packages["a"])] == ["b"]


def test_non_list_inputs_mean_no_dependencies(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path,
        """[packages.a]
src = "a"
inputs = "b"

[packages.b]
src = "b"
""",
    )

    with pytest.warns(MalformedDependencyWarning, match="not a list"):
        graph = load_graph(manifest)

    assert graph.inputs_of(graph.packages["a"]) == []


def test_unknown_target_is_an_error(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path,
        """targets = ["nope"]

[packages.a]
src = "a"
""",
    )

    with pytest.raises(ValueError, match="unknown target"):
        load_graph(manifest)


def test_missing_src_is_an_error(tmp_path: Path) -> None:
    manifest = _write_manifest(tmp_path, "[packages.a]\nprefix = 'x'\n")

    with pytest.raises(ValueError, match="'src'"):
        load_graph(manifest)


def test_invalid_toml_is_a_value_error(tmp_path: Path) -> None:
    manifest = _write_manifest(tmp_path, "[packages.a\n")

    with pytest.raises(ValueError, match="invalid manifest"):
        load_graph(manifest)


def test_base_defaults_to_compiler_excludes(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path,
        """[base]
name = "ghc"
src = "/opt/ghc/src"

[packages.a]
src = "a"
""",
    )

    graph = load_graph(manifest)

    assert graph.base is not None
    assert graph.base.name == "ghc"
    assert graph.base.src == "/opt/ghc/src"
    assert graph.base.excludes == COMPILER_EXCLUDES


def test_base_excludes_can_be_overridden(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path,
        """[base]
src = "ghc"
excludes = ["testsuite/"]
""",
    )

    graph = load_graph(manifest)

    assert graph.base is not None
    assert graph.base.name == "base"
    assert graph.base.excludes == ("testsuite/",)


def test_resolve_reports_unknown_names(tmp_path: Path) -> None:
    manifest = _write_manifest(tmp_path, "[packages.a]\nsrc = 'a'\n")
    graph = load_graph(manifest)

    assert [p.name for p in graph.resolve(["a"])] == ["a"]
    with pytest.raises(ValueError, match="zzz"):
        graph.resolve(["zzz"])
