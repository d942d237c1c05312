from __future__ import annotations

import hashlib
import warnings
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .extractor import (
    DEFAULT_EXTRACTOR_FLAGS,
    ExtractionFailure,
    ExtractionWarning,
    TagExtractor,
)
from .formats import is_bare_identifier
from .model import Package, TagArtifact
from .sources import DEFAULT_EXCLUDES, DEFAULT_SUFFIXES, stage_sources


@dataclass(frozen=True)
class TagOptions:
    """Per-call defaults; a package's own ``relative``/``prefix`` take precedence.

    ``tagged_elsewhere`` lists the source locations of packages tagged on their
    own in the same run; any of them nested in this package's sources is left
    out of its tags.
    """

    relative: bool = False
    prefix: str = ""
    tagged_elsewhere: tuple[str, ...] = ()


def slugify_package_name(name: str) -> str:
    safe = "".join(ch if ch.isalnum() or ch in {"-", "_", "."} else "-" for ch in name)
    slug = safe.strip("-.")
    while "--" in slug:
        slug = slug.replace("--", "-")
    return slug or "package"


def package_work_dir(work_root: Path, package: Package) -> Path:
    digest = hashlib.sha1(package.key.encode("utf-8")).hexdigest()[:8]
    return work_root / f"{slugify_package_name(package.name)}-{digest}"


class PackageTagger:
    """Tags one package at a time, turning extraction failures into empty artifacts."""

    def __init__(
        self,
        extractor: TagExtractor,
        *,
        work_root: Path,
        suffixes: Sequence[str] = tuple(DEFAULT_SUFFIXES),
        flags: Sequence[str] = DEFAULT_EXTRACTOR_FLAGS,
        exclude: Sequence[str] = tuple(DEFAULT_EXCLUDES),
        drop_bare_identifiers: bool = True,
    ) -> None:
        self.extractor = extractor
        self.work_root = work_root
        self.suffixes = tuple(suffixes)
        self.flags = tuple(flags)
        self.exclude = tuple(exclude)
        self.drop_bare_identifiers = drop_bare_identifiers

    def tag(self, package: Package, options: TagOptions | None = None) -> TagArtifact:
        opts = options or TagOptions()
        relative = opts.relative if package.relative is None else package.relative
        prefix = package.prefix or opts.prefix
        work_dir = package_work_dir(self.work_root, package)
        staged = work_dir / "package"
        src = Path(package.src)
        command = self._command_line(staged, absolute=not relative)

        try:
            stage_sources(
                src,
                staged,
                self.suffixes,
                self._excludes_for(package, src, opts.tagged_elsewhere),
                prefix=prefix,
            )
            raw = self.extractor.extract(
                staged, self.suffixes, self.flags, absolute=not relative
            )
        except (ExtractionFailure, OSError, ValueError) as e:
            return self._fallback(package, e, staged, command)

        lines = [ln.rstrip("\r\n") for ln in raw]
        lines = [ln for ln in lines if ln]
        if self.drop_bare_identifiers:
            lines = [ln for ln in lines if not is_bare_identifier(ln)]
        return TagArtifact(
            name=package.name,
            lines=tuple(lines),
            source=package.key,
            command=command,
            directory=staged,
        )

    def _command_line(self, staged: Path, *, absolute: bool) -> str:
        # Only extractors that run a program can describe it.
        describe = getattr(self.extractor, "command_line", None)
        if describe is None:
            return ""
        return describe(staged, self.suffixes, self.flags, absolute=absolute)

    def _excludes_for(
        self, package: Package, src: Path, tagged_elsewhere: Sequence[str] = ()
    ) -> list[str]:
        patterns = [*self.exclude, *package.excludes]
        root = src.resolve()
        # Staged copies and separately tagged packages must not be tagged again.
        locations = [self.work_root]
        locations.extend(Path(k) for k in tagged_elsewhere if "://" not in k)
        for location in locations:
            try:
                rel = location.resolve().relative_to(root)
            except (OSError, ValueError):
                continue
            if rel.parts:
                patterns.append(f"/{rel.as_posix()}/")
        return patterns

    def _fallback(
        self, package: Package, error: Exception, staged: Path, command: str = ""
    ) -> TagArtifact:
        log = getattr(error, "log", "") or ""
        detail = f"{error}\n{log}" if log else str(error)
        warnings.warn(
            f"tags failed for {package.name}: {error}",
            ExtractionWarning,
            stacklevel=3,
        )
        return TagArtifact(
            name=package.name,
            lines=(),
            status="failed",
            source=package.key,
            log=detail,
            command=command,
            directory=staged,
        )
