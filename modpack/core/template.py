"""Placeholder resolution and dependency ordering utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence
import heapq
import re


_PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")
_SINGLE_PLACEHOLDER_PATTERN = re.compile(r"^\s*\{\{([^{}]+)\}\}\s*$")


class TemplateError(ValueError):
    """Raised when template resolution fails."""


class CycleError(TemplateError):
    """Raised when a dependency mapping contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        if self.cycle:
            super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")
        else:
            super().__init__("Circular dependency detected")


@dataclass(slots=True)
class TemplateResolver:
    """Resolves ``{{dotted.path}}`` placeholders using a nested mapping context.

    A string consisting of a single placeholder resolves to the referenced
    value itself (which may be a list or mapping); placeholders embedded in
    longer strings are substituted textually. Referenced values are resolved
    recursively and memoized, and self-referencing chains raise
    :class:`CycleError`.
    """

    context: Mapping[str, Any]
    _cache: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def resolve(self, value: Any) -> Any:
        return self._resolve_value(value, stack=[])

    def _resolve_value(self, value: Any, *, stack: list[str]) -> Any:
        if isinstance(value, str):
            return self._resolve_string(value, stack=stack)
        if isinstance(value, list):
            return [self._resolve_value(item, stack=list(stack)) for item in value]
        if isinstance(value, tuple):
            return tuple(self._resolve_value(item, stack=list(stack)) for item in value)
        if isinstance(value, dict):
            return {key: self._resolve_value(val, stack=list(stack)) for key, val in value.items()}
        return value

    def _resolve_string(self, value: str, *, stack: list[str]) -> Any:
        placeholder_match = _SINGLE_PLACEHOLDER_PATTERN.match(value)
        if placeholder_match:
            return self._resolve_path(placeholder_match.group(1).strip(), stack=stack)

        def replacement(match: re.Match[str]) -> str:
            result = self._resolve_path(match.group(1).strip(), stack=stack)
            if isinstance(result, (dict, list, tuple)):
                raise TemplateError(
                    f"Placeholder '{match.group(1).strip()}' refers to a collection and cannot be embedded in text"
                )
            return str(result)

        if not _PLACEHOLDER_PATTERN.search(value):
            return value
        return _PLACEHOLDER_PATTERN.sub(replacement, value)

    def _resolve_path(self, path: str, *, stack: list[str]) -> Any:
        if path in self._cache:
            return self._cache[path]
        if path in stack:
            raise CycleError(stack[stack.index(path):] + [path])

        raw_value = self._lookup_raw(path)
        stack.append(path)
        resolved = self._resolve_value(raw_value, stack=stack)
        stack.pop()
        self._cache[path] = resolved
        return resolved

    def _lookup_raw(self, path: str) -> Any:
        current: Any = self.context
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
                continue
            if isinstance(current, (list, tuple)):
                try:
                    current = current[int(part)]
                except (ValueError, IndexError) as exc:
                    raise TemplateError(f"Cannot resolve index '{part}' for path '{path}'") from exc
                continue
            raise TemplateError(f"Cannot resolve path '{path}' in template context")
        return current


def _find_cycle(dependency_map: Mapping[str, Sequence[str]]) -> list[str]:
    visited: set[str] = set()
    active: set[str] = set()
    path: list[str] = []

    def _dfs(node: str) -> list[str] | None:
        visited.add(node)
        active.add(node)
        path.append(node)
        for dep in dependency_map.get(node, ()):
            if dep not in dependency_map:
                continue
            if dep in active:
                return path[path.index(dep):] + [dep]
            if dep not in visited:
                result = _dfs(dep)
                if result:
                    return result
        active.remove(node)
        path.pop()
        return None

    for node in dependency_map:
        if node not in visited:
            cycle = _dfs(node)
            if cycle:
                return cycle
    return []


def topological_order(dependency_map: Mapping[str, Sequence[str]]) -> list[str]:
    """Return a dependencies-first ordering or raise :class:`CycleError`.

    Ties are broken lexicographically so the result is deterministic.
    Dependencies that are not keys of *dependency_map* are ignored.
    """

    nodes = list(dependency_map.keys())
    dependents: Dict[str, List[str]] = {node: [] for node in nodes}
    indegree: Dict[str, int] = {node: 0 for node in nodes}

    for node, deps in dependency_map.items():
        filtered_deps = sorted({dep for dep in deps if dep in dependency_map})
        indegree[node] = len(filtered_deps)
        for dep in filtered_deps:
            dependents[dep].append(node)

    ready = [node for node, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)
    order: list[str] = []

    while ready:
        node = heapq.heappop(ready)
        order.append(node)
        for dependent in dependents[node]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(nodes):
        raise CycleError(_find_cycle(dependency_map))

    return order


__all__ = [
    "CycleError",
    "TemplateError",
    "TemplateResolver",
    "topological_order",
]
