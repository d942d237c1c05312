from __future__ import annotations

import shlex
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from .formats import split_tag_text

DEFAULT_EXTRACTOR_COMMAND: tuple[str, ...] = ("hasktags",)
DEFAULT_EXTRACTOR_FLAGS: tuple[str, ...] = ("--ctags", "--follow-symlinks")
DEFAULT_ABSOLUTE_FLAG = "--tags-absolute"
DEFAULT_SUFFIXES_FLAG = "--suffixes"
DEFAULT_TIMEOUT = 300.0

_LOG_TAIL_CHARS = 4000


class TagTreeError(Exception):
    pass


class ExtractionFailure(TagTreeError):
    """Tag extraction failed for a single package."""

    def __init__(self, message: str, log: str = "") -> None:
        super().__init__(message)
        self.log = log


class ExtractorUnavailable(TagTreeError):
    """The extractor program cannot be run at all."""


class TaggingCancelled(TagTreeError):
    pass


class ExtractionWarning(RuntimeWarning):
    pass


class MalformedDependencyWarning(RuntimeWarning):
    pass


class TagExtractor(Protocol):
    def extract(
        self,
        directory: Path,
        suffixes: Sequence[str],
        flags: Sequence[str],
        *,
        absolute: bool,
    ) -> list[str]:
        """Return raw tag lines for the sources under ``directory``.

        Raises ExtractionFailure when the sources could not be tagged and
        ExtractorUnavailable when the extractor itself is missing.
        """
        ...


def haskell_suffix_list(suffixes: Sequence[str]) -> str:
    # hasktags takes its --suffixes argument as a Haskell list literal.
    items = ", ".join(f'".{s.lstrip(".")}"' for s in suffixes)
    return f"[{items}]"


def _tail(text: str) -> str:
    if len(text) <= _LOG_TAIL_CHARS:
        return text
    return "..." + text[-_LOG_TAIL_CHARS:]


class CommandExtractor:
    """Runs an external ctags-compatible program in the staged source directory."""

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_EXTRACTOR_COMMAND,
        *,
        absolute_flag: str | None = DEFAULT_ABSOLUTE_FLAG,
        suffixes_flag: str | None = DEFAULT_SUFFIXES_FLAG,
        output_flag: str = "--output",
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        if not command:
            raise ValueError("extractor command must not be empty")
        self.command = tuple(command)
        self.absolute_flag = absolute_flag
        self.suffixes_flag = suffixes_flag
        self.output_flag = output_flag
        self.timeout = timeout if timeout and timeout > 0 else None

    def check_available(self) -> None:
        program = self.command[0]
        if shutil.which(program) is None and not Path(program).is_file():
            raise ExtractorUnavailable(f"tag extractor not found: {program}")

    def argv(
        self,
        output: Path,
        suffixes: Sequence[str],
        flags: Sequence[str],
        *,
        absolute: bool,
    ) -> list[str]:
        argv = [*self.command, *flags]
        if absolute and self.absolute_flag:
            argv.append(self.absolute_flag)
        if self.suffixes_flag and suffixes:
            argv.extend([self.suffixes_flag, haskell_suffix_list(suffixes)])
        argv.extend([self.output_flag, str(output), "."])
        return argv

    @staticmethod
    def output_path(directory: Path) -> Path:
        return (directory.parent / "tags.raw").absolute()

    def command_line(
        self,
        directory: Path,
        suffixes: Sequence[str],
        flags: Sequence[str],
        *,
        absolute: bool,
    ) -> str:
        """Shell-quoted command ``extract`` runs (in ``directory``)."""
        output = self.output_path(directory)
        return shlex.join(self.argv(output, suffixes, flags, absolute=absolute))

    def extract(
        self,
        directory: Path,
        suffixes: Sequence[str],
        flags: Sequence[str],
        *,
        absolute: bool,
    ) -> list[str]:
        output = self.output_path(directory)
        argv = self.argv(output, suffixes, flags, absolute=absolute)
        try:
            proc = subprocess.run(
                argv,
                cwd=directory,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ExtractorUnavailable(
                f"tag extractor not found: {self.command[0]}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ExtractionFailure(
                f"timed out after {self.timeout:g}s", log=" ".join(argv)
            ) from e
        except OSError as e:
            raise ExtractionFailure(f"could not run extractor: {e}") from e

        log = _tail((proc.stdout or "") + (proc.stderr or ""))
        if proc.returncode != 0:
            output.unlink(missing_ok=True)
            raise ExtractionFailure(f"exit status {proc.returncode}", log=log)
        try:
            text = output.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExtractionFailure(f"no tag output: {e}", log=log) from e
        finally:
            output.unlink(missing_ok=True)
        return split_tag_text(text)
