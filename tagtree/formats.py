from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

TAG_FILE_FORMAT = "2"
TAG_HEADER_PREFIX = "!_TAG"
DEFAULT_GENERATOR = "hasktags"

HEADER_FILE_FORMAT = "!_TAG_FILE_FORMAT"
HEADER_FILE_SORTED = "!_TAG_FILE_SORTED"
HEADER_PROGRAM_NAME = "!_TAG_PROGRAM_NAME"
HEADER_STORE_PATH = "!_TAG_STORE_PATH"

# hasktags sometimes emits lines consisting of a lone identifier.
_BARE_IDENTIFIER_RE = re.compile(r"^\S*$")


@dataclass(frozen=True)
class TagEntry:
    symbol: str
    path: str
    locator: str  # line number or ex search pattern
    extra: tuple[str, ...] = ()  # extension fields after ;"


def is_header_line(line: str) -> bool:
    return line.startswith(TAG_HEADER_PREFIX)


def is_bare_identifier(line: str) -> bool:
    return bool(_BARE_IDENTIFIER_RE.match(line))


def parse_tag_line(line: str) -> TagEntry | None:
    """Parse one entry line; header and malformed lines yield ``None``."""
    if not line or is_header_line(line):
        return None
    fields = line.split("\t")
    if len(fields) < 3:
        return None
    symbol, path = fields[0], fields[1]
    rest = "\t".join(fields[2:])
    locator, sep, ext = rest.partition(';"')
    extra: tuple[str, ...] = ()
    if sep:
        extra = tuple(x for x in ext.split("\t") if x)
    return TagEntry(symbol=symbol, path=path, locator=locator, extra=extra)


def format_tag_entry(entry: TagEntry) -> str:
    line = f"{entry.symbol}\t{entry.path}\t{entry.locator}"
    if entry.extra:
        line += ';"\t' + "\t".join(entry.extra)
    return line


def canonical_header(
    generator: str = DEFAULT_GENERATOR, origin: str | None = None
) -> tuple[str, ...]:
    header = [
        f"{HEADER_FILE_FORMAT}\t{TAG_FILE_FORMAT}",
        f"{HEADER_FILE_SORTED}\t1",
        f"{HEADER_PROGRAM_NAME}\t{generator}",
    ]
    if origin:
        header.append(f"{HEADER_STORE_PATH}\t{origin}")
    return tuple(header)


def split_tag_text(text: str) -> list[str]:
    return [ln for ln in text.replace("\r\n", "\n").split("\n") if ln]


def render_tag_file(header: Sequence[str], lines: Iterable[str]) -> str:
    body = [*header, *lines]
    return "\n".join(body) + "\n" if body else ""
