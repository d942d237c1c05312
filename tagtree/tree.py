from __future__ import annotations

import os
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Literal

from .extractor import TaggingCancelled
from .formats import DEFAULT_GENERATOR
from .merge import DEFAULT_CHUNK_LIMIT, safe_merge
from .model import MergedArtifact, Package, TagArtifact
from .tagger import PackageTagger, TagOptions
from .walker import InputsOf, declared_inputs, dependencies, expand

Mode = Literal["deps", "packages", "all"]
MODES: tuple[str, ...] = ("deps", "packages", "all")


@dataclass(frozen=True)
class TagRequest:
    package: Package
    relative: bool
    role: Literal["target", "dependency", "base"]


def resolve_worker_count(max_workers: int, item_count: int) -> int:
    if item_count <= 1:
        return 1
    if max_workers > 0:
        return max_workers
    cpu = os.cpu_count() or 1
    return max(2, min(32, cpu * 4, item_count))


class TagTree:
    """Tags target packages and their dependency trees.

    ``individual`` returns one artifact per package, ``combined`` merges them
    into a single tag file. Both take a ``mode``:

    - ``packages``: only the targets, tagged with relative paths by default
    - ``deps``: only the targets' transitive dependencies, tagged absolute
    - ``all``: targets, dependencies and (optionally) the base package
    """

    def __init__(
        self,
        tagger: PackageTagger,
        *,
        base: Package | None = None,
        inputs_of: InputsOf = declared_inputs,
        chunk_limit: int = DEFAULT_CHUNK_LIMIT,
        max_workers: int = 0,
        generator: str = DEFAULT_GENERATOR,
        cancel: threading.Event | None = None,
    ) -> None:
        if chunk_limit < 1:
            raise ValueError(f"chunk_limit must be >= 1, got {chunk_limit}")
        self.tagger = tagger
        self.base = base
        self.inputs_of = inputs_of
        self.chunk_limit = chunk_limit
        self.max_workers = max_workers
        self.generator = generator
        self.cancel = cancel

    def plan(
        self,
        targets: Sequence[Package],
        mode: Mode = "all",
        *,
        relative: bool = True,
        include_base: bool = True,
    ) -> list[TagRequest]:
        if mode not in MODES:
            raise ValueError(f"unknown mode {mode!r}; expected one of {MODES}")

        requests: list[TagRequest] = []
        if mode in {"packages", "all"}:
            # Duplicate targets collapse, but their dependencies are not expanded.
            for target in expand(targets, inputs_of=lambda _p: ()):
                requests.append(TagRequest(target, relative, "target"))
        if mode in {"deps", "all"}:
            for dep in dependencies(targets, inputs_of=self.inputs_of):
                requests.append(TagRequest(dep, False, "dependency"))
        if mode == "all" and include_base and self.base is not None:
            planned = {r.package.key for r in requests} | {t.key for t in targets}
            if self.base.key not in planned:
                requests.append(TagRequest(self.base, False, "base"))
        return requests

    def _tag_one(
        self, request: TagRequest, planned: tuple[str, ...] = ()
    ) -> TagArtifact:
        if self.cancel is not None and self.cancel.is_set():
            raise TaggingCancelled(f"cancelled before tagging {request.package.name}")
        options = TagOptions(relative=request.relative, tagged_elsewhere=planned)
        return self.tagger.tag(request.package, options)

    def tag_requests(self, requests: Sequence[TagRequest]) -> list[TagArtifact]:
        planned = tuple(r.package.key for r in requests)
        worker_count = resolve_worker_count(self.max_workers, len(requests))
        if worker_count == 1:
            artifacts = [self._tag_one(r, planned) for r in requests]
        else:
            with ThreadPoolExecutor(max_workers=worker_count) as pool:
                artifacts = list(
                    pool.map(lambda r: self._tag_one(r, planned), requests)
                )
        if self.cancel is not None and self.cancel.is_set():
            raise TaggingCancelled("cancelled while tagging")
        return artifacts

    def individual(
        self,
        targets: Sequence[Package],
        mode: Mode = "all",
        *,
        relative: bool = True,
        include_base: bool = True,
    ) -> list[TagArtifact]:
        requests = self.plan(
            targets, mode, relative=relative, include_base=include_base
        )
        return self.tag_requests(requests)

    def combined(
        self,
        targets: Sequence[Package],
        mode: Mode = "all",
        *,
        relative: bool = True,
        include_base: bool = True,
        origin: str | None = None,
    ) -> MergedArtifact:
        artifacts = self.individual(
            targets, mode, relative=relative, include_base=include_base
        )
        return safe_merge(
            artifacts,
            self.chunk_limit,
            generator=self.generator,
            origin=origin,
        )
