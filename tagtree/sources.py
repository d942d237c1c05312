from __future__ import annotations

import os
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import pathspec

DEFAULT_SUFFIXES: list[str] = ["hs", "lhs", "hsc"]

DEFAULT_EXCLUDES: list[str] = [
    "examples/",
    "benchmarks/",
    "test/",
    "tests/",
    "Setup.hs",
    ".git/",
]

# Compiler source trees carry large internal components that are not library API.
COMPILER_EXCLUDES: tuple[str, ...] = ("compiler/", "utils/", "Cabal/")


@dataclass(frozen=True)
class Staging:
    root: Path  # directory the extractor runs in
    files: list[Path]


def _normalize_suffixes(suffixes: Sequence[str]) -> set[str]:
    return {"." + s.strip().lstrip(".").lower() for s in suffixes if s.strip()}


def _is_confined_to_root(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root)
    except (OSError, ValueError):
        return False
    return True


def _child_path(rel_dir: str, name: str) -> str:
    return name if rel_dir == "." else f"{rel_dir}/{name}"


def select_sources(
    src: Path,
    suffixes: Sequence[str],
    exclude: Sequence[str] | None = None,
) -> list[Path]:
    """List files under ``src`` with an allowed suffix and no excluded path part.

    Excluded directories are pruned before they are listed, so files changing
    underneath them (another package being staged there) cannot disturb the
    walk. Symlinked files are followed as long as they stay inside ``src``.
    """
    root = src.resolve()
    allowed = _normalize_suffixes(suffixes)
    exc = pathspec.PathSpec.from_lines("gitwildmatch", list(exclude or []))

    out: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        rel_dir = base.relative_to(root).as_posix()
        dirnames[:] = [
            d for d in dirnames if not exc.match_file(_child_path(rel_dir, d) + "/")
        ]
        for name in filenames:
            p = base / name
            if allowed and p.suffix.lower() not in allowed:
                continue
            if not p.is_file():
                continue
            if not _is_confined_to_root(p, root):
                continue
            if exc.match_file(_child_path(rel_dir, name)):
                continue
            out.append(p)

    out.sort()
    return out


def stage_sources(
    src: Path,
    dest: Path,
    suffixes: Sequence[str],
    exclude: Sequence[str] | None = None,
    *,
    prefix: str = "",
) -> Staging:
    """Copy the taggable sources of ``src`` into ``dest/prefix``.

    ``dest`` is recreated from scratch, so the tags never point at files from a
    previous run. Only directories holding selected files are created.
    """
    if not src.is_dir():
        raise FileNotFoundError(f"source directory not found: {src}")
    dest = dest.resolve()
    target = (dest / prefix).resolve() if prefix else dest
    if target != dest and dest not in target.parents:
        raise ValueError(f"Refusing to stage outside {dest}: prefix {prefix!r}")
    if dest.exists():
        shutil.rmtree(dest)
    target.mkdir(parents=True, exist_ok=True)

    root = src.resolve()
    copied: list[Path] = []
    for p in select_sources(root, suffixes, exclude):
        out = target / p.relative_to(root)
        out.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(p, out)
        copied.append(out)
    return Staging(root=dest, files=copied)
