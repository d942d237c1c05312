"""Dependency tree expansion.

A package is reported the first time its source location is reached; later
occurrences (diamonds, cycles, packages shared between several roots) are
skipped without being expanded again. The seen-set lives inside a single
``expand`` call, so concurrent or repeated calls never observe each other.
"""

from __future__ import annotations

import warnings
from collections.abc import Callable, Iterable, Sequence

from .extractor import MalformedDependencyWarning
from .model import Package

InputsOf = Callable[[Package], Iterable[Package]]


def declared_inputs(package: Package) -> Iterable[Package]:
    return package.inputs


def _seed_keys(seen: Iterable[Package | str]) -> set[str]:
    keys: set[str] = set()
    for item in seen:
        keys.add(item.key if isinstance(item, Package) else str(item))
    return keys


def _direct_inputs(package: Package, inputs_of: InputsOf) -> list[Package]:
    try:
        raw = list(inputs_of(package))
    except Exception as e:  # noqa: BLE001
        warnings.warn(
            f"ignoring dependencies of {package.name}: {e}",
            MalformedDependencyWarning,
            stacklevel=4,
        )
        return []

    out: list[Package] = []
    for dep in raw:
        if isinstance(dep, Package):
            out.append(dep)
        else:
            warnings.warn(
                f"ignoring malformed dependency of {package.name}: {dep!r}",
                MalformedDependencyWarning,
                stacklevel=4,
            )
    return out


def expand(
    roots: Sequence[Package],
    *,
    inputs_of: InputsOf = declared_inputs,
    seen: Iterable[Package | str] = (),
) -> list[Package]:
    """Return every package reachable from ``roots``, each exactly once.

    The result is in depth-first pre-order. When a source location is reachable
    through several paths, the first record encountered in that order wins.
    ``seen`` pre-seeds packages (or keys) that must not be reported; it is
    copied, never mutated.
    """
    visited = _seed_keys(seen)
    result: list[Package] = []
    stack: list[Package] = list(reversed(roots))

    while stack:
        package = stack.pop()
        key = package.key
        if key in visited:
            continue
        visited.add(key)
        result.append(package)
        deps = _direct_inputs(package, inputs_of)
        stack.extend(reversed(deps))

    return result


def dependencies(
    roots: Sequence[Package],
    *,
    inputs_of: InputsOf = declared_inputs,
) -> list[Package]:
    """Expand only the dependencies of ``roots``; the roots themselves are excluded.

    A root that is also a dependency of another root is not reported either.
    """
    deps: list[Package] = []
    for root in roots:
        deps.extend(_direct_inputs(root, inputs_of))
    return expand(deps, inputs_of=inputs_of, seen=roots)
