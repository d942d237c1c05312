from __future__ import annotations

import warnings
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .extractor import MalformedDependencyWarning
from .model import Package
from .sources import COMPILER_EXCLUDES

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # pyright: ignore[reportMissingImports]


@dataclass(frozen=True)
class PackageGraph:
    """Packages by name plus their declared build inputs (by name).

    Edges are kept apart from the Package records so that cyclic graphs can be
    described.
    """

    packages: dict[str, Package]
    edges: dict[str, tuple[str, ...]]
    targets: list[Package] = field(default_factory=list)
    base: Package | None = None

    def inputs_of(self, package: Package) -> list[Package]:
        names = self.edges.get(package.name)
        if names is None:
            return list(package.inputs)
        return [self.packages[n] for n in names if n in self.packages]

    def resolve(self, names: list[str]) -> list[Package]:
        missing = [n for n in names if n not in self.packages]
        if missing:
            raise ValueError(f"unknown package(s): {', '.join(missing)}")
        return [self.packages[n] for n in names]


def _resolve_src(raw: Any, base_dir: Path, label: str) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"{label}: 'src' must be a non-empty string")
    raw = raw.strip()
    if "://" in raw:
        return raw
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = base_dir / p
    return p.resolve().as_posix()


def _str_list(raw: Any) -> list[str] | None:
    if not isinstance(raw, list):
        return None
    return [str(x) for x in raw]


def _package_from_table(name: str, table: Any, base_dir: Path) -> Package:
    if not isinstance(table, dict):
        raise ValueError(f"package {name}: expected a table")
    relative = table.get("relative")
    excludes = _str_list(table.get("excludes", [])) or []
    prefix = table.get("prefix", "")
    return Package(
        name=name,
        src=_resolve_src(table.get("src"), base_dir, f"package {name}"),
        prefix=str(prefix) if isinstance(prefix, str) else "",
        relative=bool(relative) if isinstance(relative, bool) else None,
        excludes=tuple(excludes),
    )


def _collect_edges(
    name: str, table: dict[str, Any], known: set[str]
) -> tuple[str, ...]:
    raw = table.get("inputs", [])
    inputs = _str_list(raw)
    if inputs is None:
        warnings.warn(
            f"package {name}: 'inputs' is not a list; treating as no dependencies",
            MalformedDependencyWarning,
            stacklevel=3,
        )
        return ()
    unknown = [n for n in inputs if n not in known]
    for n in unknown:
        warnings.warn(
            f"package {name}: unknown input {n!r} ignored",
            MalformedDependencyWarning,
            stacklevel=3,
        )
    return tuple(n for n in inputs if n in known)


def parse_graph(data: dict[str, Any], base_dir: Path) -> PackageGraph:
    tables = data.get("packages", {})
    if not isinstance(tables, dict):
        raise ValueError("'packages' must be a table of package tables")

    packages: dict[str, Package] = {}
    for name, table in tables.items():
        packages[name] = _package_from_table(name, table, base_dir)

    known = set(packages)
    edges = {
        name: _collect_edges(name, table, known) for name, table in tables.items()
    }

    raw_targets = data.get("targets", list(packages))
    if not isinstance(raw_targets, list):
        raise ValueError("'targets' must be a list of package names")
    missing = [str(t) for t in raw_targets if str(t) not in packages]
    if missing:
        raise ValueError(f"unknown target(s): {', '.join(missing)}")
    targets = [packages[str(t)] for t in raw_targets]

    base: Package | None = None
    raw_base = data.get("base")
    if raw_base is not None:
        base_name = raw_base.get("name", "base") if isinstance(raw_base, dict) else "base"
        base = _package_from_table(str(base_name), raw_base, base_dir)
        if "excludes" not in raw_base:
            base = replace(base, excludes=COMPILER_EXCLUDES)

    return PackageGraph(packages=packages, edges=edges, targets=targets, base=base)


def load_graph(path: Path) -> PackageGraph:
    """Load a package graph from a TOML manifest.

    ``src`` entries are resolved relative to the manifest's directory.
    """
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"invalid manifest {path}: {e}") from e
    return parse_graph(data, path.resolve().parent)
