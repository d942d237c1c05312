from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Union

from .formats import DEFAULT_GENERATOR, canonical_header, is_header_line
from .model import MergedArtifact, TagArtifact

# Merging shells out with one argument per input file in some setups; 1024
# keeps each batch well below common ARG_MAX limits.
DEFAULT_CHUNK_LIMIT = 1024

Mergeable = Union[TagArtifact, MergedArtifact]


def merge_artifacts(
    artifacts: Sequence[Mergeable],
    *,
    generator: str = DEFAULT_GENERATOR,
    origin: str | None = None,
) -> MergedArtifact:
    """Combine tag artifacts into one sorted, duplicate-free tag file.

    Per-file ``!_TAG`` headers are dropped and replaced by a single canonical
    header. The result depends only on the set of input lines, not on the order
    of ``artifacts``.
    """
    lines: set[str] = set()
    parts: set[str] = set()
    for artifact in artifacts:
        parts.update(artifact.parts)
        for line in artifact.lines:
            if line and not is_header_line(line):
                lines.add(line)
    return MergedArtifact(
        header=canonical_header(generator, origin),
        lines=tuple(sorted(lines)),
        parts=tuple(sorted(parts)),
    )


def _chunks(items: Sequence[Mergeable], size: int) -> Iterator[Sequence[Mergeable]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def safe_merge(
    artifacts: Sequence[Mergeable],
    chunk_limit: int = DEFAULT_CHUNK_LIMIT,
    *,
    generator: str = DEFAULT_GENERATOR,
    origin: str | None = None,
) -> MergedArtifact:
    """Merge in batches of at most ``chunk_limit`` inputs, then merge the batches.

    Yields the same entries as ``merge_artifacts`` on the whole list. Even a
    single input is merged so the header is always normalised.
    """
    if chunk_limit < 1:
        raise ValueError(f"chunk_limit must be >= 1, got {chunk_limit}")
    if not artifacts:
        return merge_artifacts([], generator=generator, origin=origin)

    merged = [
        merge_artifacts(chunk, generator=generator, origin=origin)
        for chunk in _chunks(artifacts, chunk_limit)
    ]
    # With chunk_limit == 1 every round would keep the same count.
    step = max(chunk_limit, 2)
    while len(merged) > 1:
        merged = [
            merge_artifacts(chunk, generator=generator, origin=origin)
            for chunk in _chunks(merged, step)
        ]
    return merged[0]
