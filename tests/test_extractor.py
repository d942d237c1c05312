from __future__ import annotations

import sys
from pathlib import Path

import pytest

from tagtree.extractor import (
    CommandExtractor,
    ExtractionFailure,
    ExtractorUnavailable,
    haskell_suffix_list,
)

# Minimal ctags-like program: tags every file below cwd, honouring --output
# and --tags-absolute. --fail and --sleep simulate a crash and a hang.
_FAKE_TAGGER = """
import os, sys, time
args = sys.argv[1:]
if "--fail" in args:
    sys.stderr.write("boom\\n")
    sys.exit(3)
if "--sleep" in args:
    time.sleep(5)
out = args[args.index("--output") + 1]
absolute = "--tags-absolute" in args
lines = ["!_TAG_FILE_FORMAT\\t2", "lonely"]
for dirpath, _dirs, files in os.walk("."):
    for name in sorted(files):
        rel = os.path.normpath(os.path.join(dirpath, name))
        path = os.path.abspath(rel) if absolute else rel.replace(os.sep, "/")
        lines.append(name.split(".")[0] + "\\t" + path + "\\t1")
with open(out, "w", encoding="utf-8") as fh:
    fh.write("\\n".join(lines) + "\\n")
"""


@pytest.fixture
def fake_program(tmp_path: Path) -> Path:
    script = tmp_path / "fake_tagger.py"
    script.write_text(_FAKE_TAGGER, encoding="utf-8")
    return script


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    d = tmp_path / "work" / "package"
    d.mkdir(parents=True)
    (d / "Lib.hs").write_text("lib = 1\n", encoding="utf-8")
    return d


def test_haskell_suffix_list() -> None:
    assert haskell_suffix_list(["hs", ".lhs"]) == '[".hs", ".lhs"]'


def test_argv_layout() -> None:
    ex = CommandExtractor(["hasktags"])

    argv = ex.argv(Path("/w/tags.raw"), ["hs"], ["--ctags"], absolute=True)

    assert argv == [
        "hasktags",
        "--ctags",
        "--tags-absolute",
        "--suffixes",
        '[".hs"]',
        "--output",
        "/w/tags.raw",
        ".",
    ]


def test_argv_without_optional_flags() -> None:
    ex = CommandExtractor(["ctags"], absolute_flag=None, suffixes_flag=None)

    argv = ex.argv(Path("out"), ["hs"], [], absolute=True)

    assert argv == ["ctags", "--output", "out", "."]


def test_command_line_quotes_arguments(tmp_path: Path) -> None:
    ex = CommandExtractor(["hasktags"], absolute_flag=None)
    staged = tmp_path / "work" / "package"

    line = ex.command_line(staged, ["hs", "lhs"], ["--ctags"], absolute=False)

    assert line == (
        "hasktags --ctags --suffixes '[\".hs\", \".lhs\"]' "
        f"--output {ex.output_path(staged).as_posix()} ."
    )


def test_extract_relative(fake_program: Path, source_dir: Path) -> None:
    ex = CommandExtractor([sys.executable, str(fake_program)])

    lines = ex.extract(source_dir, ["hs"], [], absolute=False)

    assert "Lib\tLib.hs\t1" in lines
    assert "lonely" in lines
    assert not (source_dir.parent / "tags.raw").exists()


def test_extract_absolute(fake_program: Path, source_dir: Path) -> None:
    ex = CommandExtractor([sys.executable, str(fake_program)])

    lines = ex.extract(source_dir, ["hs"], [], absolute=True)

    entry = [ln for ln in lines if ln.startswith("Lib\t")][0]
    assert Path(entry.split("\t")[1]).is_absolute()


def test_nonzero_exit_is_extraction_failure(fake_program: Path, source_dir: Path) -> None:
    ex = CommandExtractor([sys.executable, str(fake_program)])

    with pytest.raises(ExtractionFailure, match="exit status 3") as excinfo:
        ex.extract(source_dir, ["hs"], ["--fail"], absolute=False)

    assert "boom" in excinfo.value.log


def test_timeout_is_extraction_failure(fake_program: Path, source_dir: Path) -> None:
    ex = CommandExtractor([sys.executable, str(fake_program)], timeout=0.5)

    with pytest.raises(ExtractionFailure, match="timed out"):
        ex.extract(source_dir, ["hs"], ["--sleep"], absolute=False)


def test_missing_program_is_unavailable(source_dir: Path) -> None:
    ex = CommandExtractor(["tagtree-no-such-extractor"])

    with pytest.raises(ExtractorUnavailable):
        ex.check_available()
    with pytest.raises(ExtractorUnavailable):
        ex.extract(source_dir, ["hs"], [], absolute=False)


def test_check_available_accepts_interpreter() -> None:
    CommandExtractor([sys.executable]).check_available()


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError):
        CommandExtractor([])
