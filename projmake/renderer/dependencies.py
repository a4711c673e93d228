"""Cross-resource read dependencies between config templates.

``FromConfigFile``, ``FromConfigJSON`` and ``FromSecretEnv`` read another
resource's rendered output, so that resource has to be generated first.
Rendering keeps the allow-list order; this module finds the references by
scanning template sources and rejects cyclic references before anything is
written.
"""

from __future__ import annotations

import re
from collections import defaultdict, deque
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from .tree import strip_prefix

_REFERENCE_RE = re.compile(
    r"""\b(?:FromConfigFile|FromConfigJSON|FromSecretEnv)\s*\(\s*(["'])([^"']+)\1"""
)


class CircularDependencyError(Exception):
    """Raised when config resources read each other's output in a cycle."""

    def __init__(self, resources: Sequence[str]) -> None:
        self.resources = list(resources)
        super().__init__(
            "Circular config dependency detected among: " + ", ".join(self.resources)
        )


def scan_references(source: str) -> set[str]:
    """Return the resource names referenced by cross-resource reads in *source*."""
    return {match.group(2) for match in _REFERENCE_RE.finditer(source)}


def scan_dependencies(layers: Iterable[Path], prefix: str) -> set[str]:
    """Collect references from every template file under the *layers*.

    Missing layers are ignored; unreadable templates are left for the
    renderer to report.
    """
    found: set[str] = set()
    for layer in layers:
        if not layer.is_dir():
            continue
        for path in layer.rglob("*"):
            if not path.is_file() or strip_prefix(path.name, prefix) is None:
                continue
            try:
                found |= scan_references(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError):
                continue
    return found


def topological_order(order: Sequence[str], dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """Order *order* so that every resource follows the ones it reads.

    Only references to resources inside *order* count as edges (self
    references are ignored); ties keep the original order.

    Raises:
        CircularDependencyError: If the references form a cycle.
    """
    names = list(dict.fromkeys(order))
    position = {name: index for index, name in enumerate(names)}
    in_degree: dict[str, int] = {name: 0 for name in names}
    edges: dict[str, list[str]] = defaultdict(list)

    for name in names:
        for dep in set(dependencies.get(name, ())):
            if dep == name or dep not in position:
                continue
            edges[dep].append(name)
            in_degree[name] += 1

    queue = deque(name for name in names if in_degree[name] == 0)
    result: list[str] = []
    while queue:
        current = queue.popleft()
        result.append(current)
        for neighbor in sorted(edges[current], key=position.__getitem__):
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if len(result) != len(names):
        raise CircularDependencyError([name for name in names if in_degree[name] > 0])
    return result


def check_render_order(
    order: Sequence[str], dependencies: Mapping[str, Iterable[str]]
) -> list[tuple[str, str]]:
    """Validate a planned render order.

    Returns:
        ``(resource, dependency)`` pairs where *resource* is scheduled before
        a resource it reads.  Such a read sees the output of a previous run,
        if any.

    Raises:
        CircularDependencyError: If the references form a cycle.
    """
    topological_order(order, dependencies)
    position: dict[str, int] = {}
    for index, name in enumerate(order):
        position.setdefault(name, index)
    late: list[tuple[str, str]] = []
    for name in position:
        for dep in sorted(set(dependencies.get(name, ()))):
            if dep != name and dep in position and position[dep] > position[name]:
                late.append((name, dep))
    return late
