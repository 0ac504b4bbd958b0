"""Polling file watcher that triggers debounced rebuilds."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, Sequence, Tuple
import threading
import time

from .console import Console


Snapshot = Dict[str, Tuple[int, int]]


class Debouncer:
    """Coalesces bursts of change notifications into a single trigger.

    A trigger becomes due once ``delay`` seconds have passed since the most
    recent notification. Notifications arriving while the owner is busy are
    kept, so they produce exactly one later trigger.
    """

    def __init__(self, delay: float, *, clock: Callable[[], float] = time.monotonic):
        if delay < 0:
            raise ValueError("delay cannot be negative")
        self.delay = delay
        self._clock = clock
        self._last_change: float | None = None

    @property
    def pending(self) -> bool:
        return self._last_change is not None

    def notify(self, now: float | None = None) -> None:
        self._last_change = self._clock() if now is None else now

    def due(self, now: float | None = None) -> bool:
        if self._last_change is None:
            return False
        now = self._clock() if now is None else now
        return now - self._last_change >= self.delay

    def fire(self) -> None:
        self._last_change = None


def take_snapshot(root: Path, patterns: Iterable[str]) -> Snapshot:
    """Modification time and size of every file under *root* matching *patterns*."""

    snapshot: Snapshot = {}
    for pattern in patterns:
        for path in root.glob(pattern):
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            if path.is_file():
                snapshot[path.relative_to(root).as_posix()] = (stat.st_mtime_ns, stat.st_size)
    return snapshot


def changed_paths(previous: Snapshot, current: Snapshot) -> list[str]:
    keys = set(previous) | set(current)
    return sorted(key for key in keys if previous.get(key) != current.get(key))


class Watcher:
    """Watch *patterns* under *root* and run *rebuild* after changes settle.

    A rebuild runs on a background thread and is never cancelled. Changes
    observed while it runs are debounced as usual and start one new rebuild
    after it finishes.
    """

    def __init__(
        self,
        root: Path,
        patterns: Sequence[str],
        rebuild: Callable[[], None],
        *,
        debounce_ms: int = 2000,
        poll_ms: int = 250,
        console: Console | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not patterns:
            raise ValueError("At least one watch pattern is required")
        self.root = root
        self.patterns = list(patterns)
        self.poll_interval = poll_ms / 1000
        self.debouncer = Debouncer(debounce_ms / 1000, clock=clock)
        self.rebuilds = 0
        self._rebuild = rebuild
        self._console = console or Console(level="none")
        self._snapshot = take_snapshot(root, self.patterns)
        self._worker: threading.Thread | None = None

    @property
    def rebuilding(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def poll_once(self) -> bool:
        """Check for changes; return True if a rebuild was started."""

        current = take_snapshot(self.root, self.patterns)
        changes = changed_paths(self._snapshot, current)
        self._snapshot = current
        if changes:
            self._console.debug(f"Changed: {', '.join(changes)}")
            self.debouncer.notify()
        if self.rebuilding or not self.debouncer.due():
            return False
        self.debouncer.fire()
        self._start_rebuild()
        return True

    def _start_rebuild(self) -> None:
        self.rebuilds += 1
        self._console.info(f"Change detected, rebuilding (#{self.rebuilds})")
        self._worker = threading.Thread(target=self._run_rebuild, name="modpack-rebuild", daemon=True)
        self._worker.start()

    def _run_rebuild(self) -> None:
        try:
            self._rebuild()
        except Exception as exc:
            # a failed rebuild is reported; watching continues
            self._console.error(f"Rebuild failed: {exc}")

    def join(self, timeout: float | None = None) -> None:
        """Wait for the rebuild in flight, if any."""
        if self._worker is not None:
            self._worker.join(timeout)

    def run(self, stop: threading.Event | None = None) -> None:
        """Poll until *stop* is set (or forever)."""

        stop = stop or threading.Event()
        self._console.info(f"Watching {len(self.patterns)} pattern(s) under {self.root}")
        while not stop.is_set():
            self.poll_once()
            stop.wait(self.poll_interval)
        self.join()


__all__ = ["Debouncer", "Snapshot", "Watcher", "changed_paths", "take_snapshot"]
