"""Named tasks composed in series and in parallel.

A task graph is a tree of :class:`Task` leaves (a callable), :class:`Series`
and :class:`Parallel` composites, and :class:`TaskRef` references to other
named tasks. :class:`TaskGraph` interprets the tree with a single walker:

* a series runs its children one after another and stops at the first
  failure;
* a parallel node starts every child on a thread pool, lets all started
  children finish, then fails if any child failed.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence, Tuple, Union
import time

from .console import Console
from .errors import PackagingError


class TaskError(PackagingError):
    """A task failed; ``cause`` is the original exception."""

    def __init__(self, task: str, cause: BaseException):
        self.task = task
        self.cause = cause
        super().__init__(f"Task '{task}' failed: {cause}")


@dataclass(frozen=True)
class Task:
    name: str
    action: Callable[[], Any]


@dataclass(frozen=True)
class TaskRef:
    name: str


@dataclass(frozen=True)
class Series:
    children: Tuple["TaskNode", ...]


@dataclass(frozen=True)
class Parallel:
    children: Tuple["TaskNode", ...]
    max_workers: int | None = None


TaskNode = Union[Task, TaskRef, Series, Parallel]


def _as_node(value: "TaskNode | str") -> TaskNode:
    return TaskRef(value) if isinstance(value, str) else value


def series(*children: "TaskNode | str") -> Series:
    return Series(tuple(_as_node(child) for child in children))


def parallel(*children: "TaskNode | str", max_workers: int | None = None) -> Parallel:
    return Parallel(tuple(_as_node(child) for child in children), max_workers=max_workers)


class TaskGraph:
    """Registry of named task nodes and their executor."""

    def __init__(self, console: Console | None = None) -> None:
        self._nodes: Dict[str, TaskNode] = {}
        self._console = console or Console(level="none")

    def register(self, name: str, node: "TaskNode | Callable[[], Any]") -> None:
        if name in self._nodes:
            raise ValueError(f"Task '{name}' is already registered")
        if callable(node) and not isinstance(node, (Task, TaskRef, Series, Parallel)):
            node = Task(name, node)
        self._nodes[name] = node

    def names(self) -> List[str]:
        return sorted(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def get(self, name: str) -> TaskNode:
        try:
            return self._nodes[name]
        except KeyError:
            available = ", ".join(self.names()) or "<none>"
            raise TaskError(name, KeyError(f"unknown task; available: {available}")) from None

    def run(self, name: str) -> None:
        self._run_named(name, stack=())

    def run_many(self, names: Sequence[str]) -> None:
        """Run several named tasks in order, as a series."""
        self.run_node(series(*names))

    def run_node(self, node: TaskNode) -> None:
        """Run an unnamed composite, e.g. a watch rebuild."""
        self._walk(node, stack=())

    def _run_named(self, name: str, *, stack: Tuple[str, ...]) -> None:
        if name in stack:
            cycle = " -> ".join((*stack, name))
            raise TaskError(name, RecursionError(f"task references itself: {cycle}"))
        node = self.get(name)
        started = time.monotonic()
        self._console.info(f"Starting '{name}'...")
        self._walk(node, stack=(*stack, name))
        self._console.info(f"Finished '{name}' after {time.monotonic() - started:.2f} s")

    def _walk(self, node: TaskNode, *, stack: Tuple[str, ...]) -> None:
        if isinstance(node, TaskRef):
            self._run_named(node.name, stack=stack)
        elif isinstance(node, Task):
            self._invoke(node)
        elif isinstance(node, Series):
            for child in node.children:
                self._walk(child, stack=stack)
        elif isinstance(node, Parallel):
            self._walk_parallel(node, stack=stack)
        else:
            raise TypeError(f"Unsupported task node: {node!r}")

    def _invoke(self, task: Task) -> None:
        try:
            task.action()
        except TaskError:
            raise
        except Exception as exc:
            raise TaskError(task.name, exc) from exc

    def _walk_parallel(self, node: Parallel, *, stack: Tuple[str, ...]) -> None:
        if not node.children:
            return
        with ThreadPoolExecutor(max_workers=node.max_workers or len(node.children)) as executor:
            futures = [executor.submit(self._walk, child, stack=stack) for child in node.children]
            wait(futures)
        for future in futures:
            error = future.exception()
            if error is not None:
                raise error


__all__ = [
    "Parallel",
    "Series",
    "Task",
    "TaskError",
    "TaskGraph",
    "TaskNode",
    "TaskRef",
    "parallel",
    "series",
]
