from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .extractor import (
    DEFAULT_ABSOLUTE_FLAG,
    DEFAULT_EXTRACTOR_COMMAND,
    DEFAULT_EXTRACTOR_FLAGS,
    DEFAULT_SUFFIXES_FLAG,
    DEFAULT_TIMEOUT,
)
from .formats import DEFAULT_GENERATOR
from .merge import DEFAULT_CHUNK_LIMIT
from .sources import DEFAULT_EXCLUDES, DEFAULT_SUFFIXES

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # pyright: ignore[reportMissingImports]

CONFIG_FILENAMES: tuple[str, ...] = (".tagtree.toml", "tagtree.toml")
PYPROJECT_FILENAME = "pyproject.toml"


@dataclass
class Config:
    # Default output path for `tagtree combined` when -o/--output is not given
    output: str = "tags"
    # Default output directory for `tagtree individual`
    output_dir: str = "tags.d"
    suffixes: list[str] = field(default_factory=lambda: DEFAULT_SUFFIXES.copy())
    extractor: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXTRACTOR_COMMAND)
    )
    extractor_flags: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXTRACTOR_FLAGS)
    )
    # Empty string disables the flag.
    absolute_flag: str = DEFAULT_ABSOLUTE_FLAG
    suffixes_flag: str = DEFAULT_SUFFIXES_FLAG
    # Seconds per package; <=0 disables the timeout.
    timeout: float = DEFAULT_TIMEOUT
    generator: str = DEFAULT_GENERATOR
    chunk_limit: int = DEFAULT_CHUNK_LIMIT
    # Worker pool size for tagging. <=0 means auto.
    max_workers: int = 0
    relative: bool = True
    include_base: bool = True
    exclude: list[str] = field(default_factory=lambda: DEFAULT_EXCLUDES.copy())
    # Staged sources must outlive the run: the tags point into them.
    work_dir: str = ".tagtree"
    drop_bare_identifiers: bool = True


def _find_config_path(root: Path) -> Path | None:
    root = root.resolve()
    for name in CONFIG_FILENAMES:
        p = root / name
        if p.exists():
            return p
    pyproject = root / PYPROJECT_FILENAME
    if pyproject.exists():
        return pyproject
    return None


def _extract_section(data: Any, *, from_pyproject: bool) -> dict[str, Any]:
    section: dict[str, Any] = {}
    if not isinstance(data, dict):
        return section

    if not from_pyproject:
        # Preferred for dedicated config files: [tagtree]
        tt = data.get("tagtree")
        if isinstance(tt, dict):
            return tt

    # Supported in all files; required for pyproject.toml.
    tool = data.get("tool")
    if isinstance(tool, dict):
        tt2 = tool.get("tagtree")
        if isinstance(tt2, dict):
            return tt2

    return section


def _command_list(raw: Any) -> list[str] | None:
    if isinstance(raw, str) and raw.strip():
        return raw.split()
    if isinstance(raw, list) and raw:
        return [str(x) for x in raw]
    return None


def load_config(root: Path) -> Config:  # noqa: C901
    cfg_path = _find_config_path(root)
    if cfg_path is None:
        return Config()

    try:
        data = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"invalid config {cfg_path}: {e}") from e
    section = _extract_section(data, from_pyproject=cfg_path.name == PYPROJECT_FILENAME)
    cfg = Config()

    out = section.get("output", cfg.output)
    if isinstance(out, str) and out.strip():
        cfg.output = out.strip()

    out_dir = section.get("output_dir", cfg.output_dir)
    if isinstance(out_dir, str) and out_dir.strip():
        cfg.output_dir = out_dir.strip()

    suffixes = section.get("suffixes")
    if isinstance(suffixes, list):
        cfg.suffixes = [str(s).strip().lstrip(".") for s in suffixes if str(s).strip()]

    extractor = _command_list(section.get("extractor"))
    if extractor is not None:
        cfg.extractor = extractor

    flags = section.get("extractor_flags")
    if isinstance(flags, str):
        cfg.extractor_flags = flags.split()
    elif isinstance(flags, list):
        cfg.extractor_flags = [str(x) for x in flags]

    absolute_flag = section.get("absolute_flag", cfg.absolute_flag)
    if isinstance(absolute_flag, str):
        cfg.absolute_flag = absolute_flag.strip()

    suffixes_flag = section.get("suffixes_flag", cfg.suffixes_flag)
    if isinstance(suffixes_flag, str):
        cfg.suffixes_flag = suffixes_flag.strip()

    timeout = section.get("timeout", cfg.timeout)
    try:
        cfg.timeout = float(timeout)
    except Exception:
        pass

    generator = section.get("generator", cfg.generator)
    if isinstance(generator, str) and generator.strip():
        cfg.generator = generator.strip()

    chunk_limit = section.get("chunk_limit", cfg.chunk_limit)
    try:
        limit = int(chunk_limit)
    except Exception:
        limit = cfg.chunk_limit
    if limit >= 1:
        cfg.chunk_limit = limit

    max_workers = section.get("max_workers", cfg.max_workers)
    try:
        cfg.max_workers = int(max_workers)
    except Exception:
        pass

    cfg.relative = bool(section.get("relative", cfg.relative))
    cfg.include_base = bool(section.get("include_base", cfg.include_base))

    exc = section.get("exclude", cfg.exclude)
    if isinstance(exc, list):
        cfg.exclude = [str(x) for x in exc]

    work_dir = section.get("work_dir", cfg.work_dir)
    if isinstance(work_dir, str) and work_dir.strip():
        cfg.work_dir = work_dir.strip()

    drop = section.get("drop_bare_identifiers", cfg.drop_bare_identifiers)
    cfg.drop_bare_identifiers = bool(drop)

    return cfg
