from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .formats import TagEntry, parse_tag_line, render_tag_file

ArtifactStatus = Literal["succeeded", "failed"]


def source_key(src: str | os.PathLike[str]) -> str:
    """Canonical identity of a source location.

    Filesystem locations are made absolute and normalised; URL-like locations
    (``scheme://...``) are compared verbatim without a trailing slash.
    """
    raw = os.fspath(src)
    if "://" in raw:
        return raw.rstrip("/")
    norm = os.path.normpath(os.path.abspath(os.path.expanduser(raw)))
    return Path(norm).as_posix()


@dataclass(frozen=True)
class Package:
    """A package whose sources can be tagged.

    Traversal identity is ``key`` (the canonical source location), not the
    record as a whole: two records pointing at the same sources are the same
    package even if their names or overrides differ.
    """

    name: str
    src: str
    prefix: str = ""
    relative: bool | None = None  # None: use the caller's default
    inputs: tuple[Package, ...] = ()
    excludes: tuple[str, ...] = ()  # extra filter patterns for this package

    @property
    def key(self) -> str:
        return source_key(self.src)


@dataclass(frozen=True)
class TagArtifact:
    """Tags produced for one package."""

    name: str
    lines: tuple[str, ...]
    status: ArtifactStatus = "succeeded"
    source: str = ""  # Package.key of the tagged package
    log: str = ""  # extractor diagnostics; set on failure
    command: str = ""  # extractor command line, when the extractor reports one
    directory: Path | None = None  # staged sources referenced by the tags

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def parts(self) -> tuple[str, ...]:
        return (self.name,)

    def entries(self) -> list[TagEntry]:
        out: list[TagEntry] = []
        for line in self.lines:
            entry = parse_tag_line(line)
            if entry is not None:
                out.append(entry)
        return out

    def text(self) -> str:
        return render_tag_file((), self.lines)


@dataclass(frozen=True)
class MergedArtifact:
    """A merged tag file: canonical header plus sorted, unique entry lines."""

    header: tuple[str, ...]
    lines: tuple[str, ...]
    parts: tuple[str, ...] = field(default_factory=tuple)

    def entries(self) -> list[TagEntry]:
        out: list[TagEntry] = []
        for line in self.lines:
            entry = parse_tag_line(line)
            if entry is not None:
                out.append(entry)
        return out

    def text(self) -> str:
        return render_tag_file(self.header, self.lines)
