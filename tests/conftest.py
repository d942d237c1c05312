from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from tagtree.extractor import ExtractionFailure
from tagtree.tagger import PackageTagger


class FakeExtractor:
    """In-process stand-in for a ctags program.

    Emits one tag per staged file (symbol = file stem) plus the header and bare
    identifier noise real extractors produce. A staged ``BROKEN.hs`` makes the
    extraction fail.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Path, bool]] = []

    def check_available(self) -> None:
        return None

    def extract(
        self,
        directory: Path,
        suffixes: Sequence[str],
        flags: Sequence[str],
        *,
        absolute: bool,
    ) -> list[str]:
        self.calls.append((directory, absolute))
        files = sorted(p for p in directory.rglob("*") if p.is_file())
        if any(p.stem == "BROKEN" for p in files):
            raise ExtractionFailure("exit status 1", log="parse error in BROKEN.hs")
        lines = ["!_TAG_FILE_FORMAT\t2", "garbage"]
        for p in files:
            path = p.as_posix() if absolute else p.relative_to(directory).as_posix()
            lines.append(f"{p.stem}\t{path}\t1")
        return lines


def _write_sources(root: Path, files: dict[str, str]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def write_sources(tmp_path: Path) -> Callable[[str, dict[str, str]], Path]:
    """Create a source tree under tmp_path/src/<name> and return its path."""

    def _write(name: str, files: dict[str, str]) -> Path:
        return _write_sources(tmp_path / "src" / name, files)

    return _write


@pytest.fixture
def tagger(fake_extractor: FakeExtractor, tmp_path: Path) -> PackageTagger:
    return PackageTagger(fake_extractor, work_root=tmp_path / "work")
