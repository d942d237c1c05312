from __future__ import annotations

import argparse
import importlib.metadata as importlib_metadata
import sys
import warnings
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import Config, load_config
from .extractor import (
    CommandExtractor,
    ExtractionWarning,
    ExtractorUnavailable,
    TaggingCancelled,
)
from .graph import PackageGraph, load_graph
from .merge import safe_merge
from .model import MergedArtifact, TagArtifact
from .tagger import PackageTagger, slugify_package_name
from .tree import MODES, TagRequest, TagTree


def _tagtree_version() -> str:
    try:
        return importlib_metadata.version("tagtree")
    except importlib_metadata.PackageNotFoundError:
        return "0+unknown"


def _add_selection_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("manifest", type=Path, help="Package graph manifest (TOML)")
    p.add_argument(
        "--mode",
        choices=list(MODES),
        default="all",
        help="What to tag: deps|packages|all (default: all)",
    )
    p.add_argument(
        "--target",
        action="append",
        default=None,
        help="Target package name (repeatable; default: manifest 'targets')",
    )
    p.add_argument(
        "--relative",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Tag target packages with relative paths (default: true via config)",
    )
    p.add_argument(
        "--base",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Include the manifest's base package in --mode all (default: true)",
    )


def _add_run_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--work-dir",
        type=Path,
        default=None,
        help="Directory for staged sources (default: config 'work_dir' or .tagtree)",
    )
    p.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Parallel tagging workers (<=0 means auto)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds allowed per package extraction (<=0 disables)",
    )
    p.add_argument(
        "--print-parts",
        action="store_true",
        help="Debug: print the packages that contributed to the output",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tagtree",
        description="Generate ctags files for packages and their dependency trees.",
    )
    p.add_argument(
        "--version",
        action="version",
        version=f"tagtree {_tagtree_version()}",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    combined = sub.add_parser(
        "combined", help="Tag the package tree and merge into one tag file."
    )
    _add_selection_args(combined)
    _add_run_args(combined)
    combined.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output tag file (default: config 'output' or tags)",
    )
    combined.add_argument(
        "--chunk-limit",
        type=int,
        default=None,
        help="Maximum number of tag files merged at once (default: 1024)",
    )

    individual = sub.add_parser(
        "individual", help="Tag the package tree into one tag file per package."
    )
    _add_selection_args(individual)
    _add_run_args(individual)
    individual.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output directory, one <name>-tags/ per package (default: tags.d)",
    )

    plan = sub.add_parser("plan", help="List the packages that would be tagged.")
    _add_selection_args(plan)
    return p


@dataclass
class RunOptions:
    mode: str
    relative: bool
    include_base: bool
    work_dir: Path
    max_workers: int
    timeout: float
    chunk_limit: int


def _resolve_run_options(cfg: Config, args: argparse.Namespace, root: Path) -> RunOptions:
    work_dir = getattr(args, "work_dir", None)
    if work_dir is None:
        work_dir = Path(cfg.work_dir)
        if not work_dir.is_absolute():
            work_dir = root / work_dir
    max_workers = getattr(args, "max_workers", None)
    timeout = getattr(args, "timeout", None)
    chunk_limit = getattr(args, "chunk_limit", None)
    return RunOptions(
        mode=args.mode,
        relative=cfg.relative if args.relative is None else bool(args.relative),
        include_base=cfg.include_base if args.base is None else bool(args.base),
        work_dir=work_dir,
        max_workers=cfg.max_workers if max_workers is None else int(max_workers),
        timeout=cfg.timeout if timeout is None else float(timeout),
        chunk_limit=cfg.chunk_limit if chunk_limit is None else int(chunk_limit),
    )


def _build_extractor(cfg: Config, options: RunOptions) -> CommandExtractor:
    return CommandExtractor(
        cfg.extractor,
        absolute_flag=cfg.absolute_flag or None,
        suffixes_flag=cfg.suffixes_flag or None,
        timeout=options.timeout,
    )


def _build_tree(
    cfg: Config, options: RunOptions, graph: PackageGraph, extractor: CommandExtractor
) -> TagTree:
    tagger = PackageTagger(
        extractor,
        work_root=options.work_dir,
        suffixes=cfg.suffixes,
        flags=cfg.extractor_flags,
        exclude=cfg.exclude,
        drop_bare_identifiers=cfg.drop_bare_identifiers,
    )
    return TagTree(
        tagger,
        base=graph.base,
        inputs_of=graph.inputs_of,
        chunk_limit=options.chunk_limit,
        max_workers=options.max_workers,
        generator=cfg.generator,
    )


def _print_top_level_help(parser: argparse.ArgumentParser) -> None:
    parser.print_help()
    print()
    print("Quick start examples:")
    print("  tagtree combined tagtree.toml -o tags")
    print("  tagtree combined tagtree.toml --mode deps --no-base")
    print("  tagtree individual tagtree.toml -o tags.d")
    print("  tagtree plan tagtree.toml")


def _print_plan(requests: Sequence[TagRequest]) -> None:
    for r in requests:
        paths = "relative" if r.relative else "absolute"
        print(f"{r.package.name}\t{r.role}\t{paths}\t{r.package.key}")


def _emit_recorded_warnings(caught: Sequence[warnings.WarningMessage]) -> None:
    # Extraction failures are summarised separately.
    for w in caught:
        if not issubclass(w.category, ExtractionWarning):
            print(f"Warning: {w.message}", file=sys.stderr)


def _emit_failed_warning(artifacts: Sequence[TagArtifact]) -> None:
    failed = [a.name for a in artifacts if a.failed]
    if not failed:
        return
    preview = ", ".join(failed[:5])
    suffix = "" if len(failed) <= 5 else ", ..."
    print(
        f"Warning: tags failed for {len(failed)} package(s): {preview}{suffix}",
        file=sys.stderr,
    )


def _print_parts(parts: Sequence[str]) -> None:
    print(f"Debug: contributing packages ({len(parts)}):", file=sys.stderr)
    for name in parts:
        print(f"  - {name}", file=sys.stderr)


def _print_tag_summary(
    *, artifacts: Sequence[TagArtifact], entries: int, out_path: Path
) -> None:
    failed = sum(1 for a in artifacts if a.failed)
    print("", file=sys.stderr)
    print("Tag Summary:", file=sys.stderr)
    print("────────────", file=sys.stderr)
    print(f"{'Packages':>10}: {len(artifacts):,}", file=sys.stderr)
    print(f"{'Failed':>10}: {failed:,}", file=sys.stderr)
    print(f"{'Entries':>10}: {entries:,}", file=sys.stderr)
    print(f"{'Output':>10}: {out_path.as_posix()}", file=sys.stderr)


def _parts_path(out_path: Path) -> Path:
    return out_path.with_name(out_path.name + ".parts")


def _write_combined(merged: MergedArtifact, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(merged.text(), encoding="utf-8", newline="\n")
    parts = "".join(f"{name}\n" for name in merged.parts)
    _parts_path(out_path).write_text(parts, encoding="utf-8", newline="\n")


def _write_individual(artifacts: Sequence[TagArtifact], out_dir: Path) -> None:
    used: set[str] = set()
    for artifact in artifacts:
        base = f"{slugify_package_name(artifact.name)}-tags"
        slug = base
        idx = 2
        while slug in used:
            slug = f"{base}-{idx}"
            idx += 1
        used.add(slug)

        target = out_dir / slug
        target.mkdir(parents=True, exist_ok=True)
        (target / "tags").write_text(artifact.text(), encoding="utf-8", newline="\n")
        (target / "log").write_text(artifact.log, encoding="utf-8", newline="\n")
        if artifact.command:
            (target / "cmd").write_text(
                artifact.command + "\n", encoding="utf-8", newline="\n"
            )


def main(argv: list[str] | None = None) -> None:  # noqa: C901
    parser = build_parser()
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    if not raw_argv:
        _print_top_level_help(parser)
        return

    args = parser.parse_args(raw_argv)
    cmd = args.cmd
    manifest: Path = args.manifest
    if not manifest.is_file():
        parser.error(f"{cmd}: manifest not found: {manifest}")
    root = manifest.resolve().parent

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            graph = load_graph(manifest)
            targets = graph.resolve(args.target) if args.target else graph.targets
        except ValueError as e:
            parser.error(f"{cmd}: {e}")
    _emit_recorded_warnings(caught)

    try:
        cfg = load_config(root)
    except (ValueError, OSError) as e:
        parser.error(f"{cmd}: {e}")
    options = _resolve_run_options(cfg, args, root)
    if options.chunk_limit < 1:
        parser.error(f"{cmd}: --chunk-limit must be >= 1")

    extractor = _build_extractor(cfg, options)
    tree = _build_tree(cfg, options, graph, extractor)

    if cmd == "plan":
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            requests = tree.plan(
                targets,
                options.mode,  # type: ignore[arg-type]
                relative=options.relative,
                include_base=options.include_base,
            )
        _emit_recorded_warnings(caught)
        _print_plan(requests)
        return

    try:
        extractor.check_available()
    except ExtractorUnavailable as e:
        parser.error(f"{cmd}: {e}")

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            artifacts = tree.individual(
                targets,
                options.mode,  # type: ignore[arg-type]
                relative=options.relative,
                include_base=options.include_base,
            )
        except (ExtractorUnavailable, TaggingCancelled) as e:
            parser.error(f"{cmd}: {e}")
    _emit_recorded_warnings(caught)
    _emit_failed_warning(artifacts)

    if cmd == "individual":
        out_dir: Path = args.output or (root / cfg.output_dir)
        try:
            _write_individual(artifacts, out_dir)
        except OSError as e:
            parser.error(f"{cmd}: cannot write {out_dir}: {e}")
        if args.print_parts:
            _print_parts([a.name for a in artifacts])
        _print_tag_summary(
            artifacts=artifacts,
            entries=sum(len(a.lines) for a in artifacts),
            out_path=out_dir,
        )
        return

    out_path: Path = args.output or (root / cfg.output)
    merged = safe_merge(
        artifacts,
        options.chunk_limit,
        generator=cfg.generator,
        origin=out_path.resolve().parent.as_posix(),
    )
    try:
        _write_combined(merged, out_path)
    except OSError as e:
        parser.error(f"{cmd}: cannot write {out_path}: {e}")
    if args.print_parts:
        _print_parts(merged.parts)
    _print_tag_summary(artifacts=artifacts, entries=len(merged.lines), out_path=out_path)
