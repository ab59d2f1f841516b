"""
Processing triggers and the pending-work queue.

Decides, per configured trigger, when a changed note gets processed:

- immediate: right away, in the caller's thread
- delayed:   queued; a single debounce timer is (re)armed on every change,
             so a burst of edits produces one flush
- scheduled: queued; flushed once a day at ``schedule_hour``:00
- manual:    queued; only flushed on request

Timers are single-slot: arming one always cancels its predecessor. Timer
callbacks run on their own threads; the ``process`` callback is expected to
serialize actual pipeline work.
"""

import json
import logging
import os
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

STORAGE_KEY = "sane-queue"

# Scheduler states
IDLE = "idle"
PENDING_DELAYED = "pending_delayed"
PENDING_SCHEDULED = "pending_scheduled"


def next_daily_run(now: datetime, hour: int) -> datetime:
    """Today at ``hour``:00 if that is still ahead of ``now``, else tomorrow."""
    scheduled = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if scheduled <= now:
        scheduled += timedelta(days=1)
    return scheduled


class ProcessingQueue:
    """
    Insertion-ordered set of note paths awaiting a flush.

    Adding a path twice has no extra effect. ``drain`` empties the queue
    atomically.
    """

    def __init__(self, paths: Optional[list[str]] = None):
        self._paths: dict[str, None] = dict.fromkeys(paths or [])
        self._lock = threading.Lock()

    def add(self, path: str) -> bool:
        """Queue a path. Returns False if it was already queued."""
        with self._lock:
            if path in self._paths:
                return False
            self._paths[path] = None
            return True

    def discard(self, path: str) -> None:
        with self._lock:
            self._paths.pop(path, None)

    def drain(self) -> list[str]:
        """Remove and return every queued path, oldest first."""
        with self._lock:
            paths = list(self._paths)
            self._paths.clear()
            return paths

    def paths(self) -> list[str]:
        with self._lock:
            return list(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: str) -> bool:
        return path in self._paths

    # Persistence

    def serialize(self) -> str:
        return json.dumps(self.paths())

    def load_from(self, blob: Optional[str]) -> int:
        paths = json.loads(blob) if blob else []
        if not isinstance(paths, list):
            raise ValueError("Pending queue must be a JSON array of paths")
        with self._lock:
            self._paths = dict.fromkeys(str(p) for p in paths)
            return len(self._paths)

    def load_file(self, state_path: Path) -> int:
        path = state_path / f"{STORAGE_KEY}.json"
        if not path.exists():
            return 0
        try:
            return self.load_from(path.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning("Could not load pending queue from %s: %s", path, e)
            return 0

    def save_file(self, state_path: Path) -> Path:
        state_path.mkdir(parents=True, exist_ok=True)
        path = state_path / f"{STORAGE_KEY}.json"
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(self.serialize(), encoding="utf-8")
        os.replace(tmp, path)
        return path


class ProcessingScheduler:
    """
    State machine over processing triggers.

    Args:
        queue: Pending paths
        process: Called with a path to run the pipeline. If it returns an
            object whose ``budget_exceeded`` is true, the current flush
            stops and the unprocessed paths go back on the queue.
        remove_embedding: Called with a path when a note is deleted
        trigger: "immediate" | "delayed" | "scheduled" | "manual"
        delay_minutes: Debounce window for the delayed trigger
        schedule_hour: Local hour (0-23) for the scheduled trigger
        timer_factory: ``threading.Timer``-compatible constructor
        clock: Returns the current local time
    """

    def __init__(
        self,
        queue: ProcessingQueue,
        process: Callable[[str], Any],
        remove_embedding: Callable[[str], Any],
        *,
        trigger: str = "delayed",
        delay_minutes: float = 10,
        schedule_hour: int = 2,
        timer_factory: Callable[..., Any] = threading.Timer,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.queue = queue
        self._process = process
        self._remove_embedding = remove_embedding
        self.trigger = trigger
        self.delay_minutes = delay_minutes
        self.schedule_hour = schedule_hour
        self._timer_factory = timer_factory
        self._clock = clock or datetime.now

        self._lock = threading.RLock()
        self._delayed_timer = None
        self._scheduled_timer = None
        # Bumped on every arm/cancel so a superseded timer that fires late is ignored
        self._delayed_generation = 0
        self._scheduled_generation = 0
        self.next_scheduled_run: Optional[datetime] = None
        self._closed = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._delayed_timer is not None:
                return PENDING_DELAYED
            if self._scheduled_timer is not None:
                return PENDING_SCHEDULED
            return IDLE

    def start(self) -> None:
        """Arm the daily timer if the trigger is "scheduled"."""
        self._closed = False
        self.reschedule()

    def configure(self, trigger: str, delay_minutes: float, schedule_hour: int) -> None:
        """Apply new trigger settings and re-arm timers accordingly."""
        with self._lock:
            self.trigger = trigger
            self.delay_minutes = delay_minutes
            self.schedule_hour = schedule_hour
            if trigger != "delayed":
                self._cancel_delayed()
        self.reschedule()

    def reschedule(self) -> None:
        """Recompute the daily run time (only armed for the scheduled trigger)."""
        with self._lock:
            self._cancel_scheduled()
            if self.trigger == "scheduled" and not self._closed:
                self._arm_scheduled()

    # Events

    def on_document_changed(self, path: str) -> Any:
        """Route a created/modified note according to the trigger."""
        if self.trigger == "immediate":
            return self._process(path)

        added = self.queue.add(path)
        logger.debug("Queued %s (%s, new=%s)", path, self.trigger, added)
        if self.trigger == "delayed":
            self._arm_delayed()
        return None

    def on_document_deleted(self, path: str) -> None:
        """Drop the note's embedding, whatever the trigger or queue state."""
        self._remove_embedding(path)

    # Flushing

    def flush(self) -> list[str]:
        """
        Drain the queue and process each path in order.

        Returns the paths that were handed to ``process``.
        """
        paths = self.queue.drain()
        if not paths:
            return []

        logger.info("Flushing %d queued note(s)", len(paths))
        processed = []
        for i, path in enumerate(paths):
            try:
                result = self._process(path)
            except Exception as e:
                logger.warning("Processing %s failed: %s", path, e)
                processed.append(path)
                continue
            processed.append(path)
            if getattr(result, "budget_exceeded", False):
                remaining = paths[i + 1:]
                for rest in remaining:
                    self.queue.add(rest)
                logger.info("Budget reached; %d note(s) left queued", len(remaining))
                break
        return processed

    def shutdown(self) -> None:
        """Cancel both timers. Safe to call more than once."""
        with self._lock:
            self._closed = True
            self._cancel_delayed()
            self._cancel_scheduled()

    # Timers

    def _new_timer(self, seconds: float, callback: Callable, generation: int):
        timer = self._timer_factory(seconds, callback, args=(generation,))
        timer.daemon = True
        timer.start()
        return timer

    def _arm_delayed(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._cancel_delayed()
            self._delayed_generation += 1
            self._delayed_timer = self._new_timer(
                self.delay_minutes * 60, self._on_delayed_fire, self._delayed_generation
            )

    def _cancel_delayed(self) -> None:
        if self._delayed_timer is not None:
            self._delayed_timer.cancel()
            self._delayed_timer = None
        self._delayed_generation += 1

    def _on_delayed_fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._delayed_generation or self._closed:
                return
            self._delayed_timer = None
        self.flush()

    def _arm_scheduled(self) -> None:
        now = self._clock()
        run_at = next_daily_run(now, self.schedule_hour)
        self.next_scheduled_run = run_at
        self._scheduled_generation += 1
        self._scheduled_timer = self._new_timer(
            (run_at - now).total_seconds(), self._on_scheduled_fire, self._scheduled_generation
        )
        logger.debug("Next scheduled processing at %s", run_at.isoformat(sep=" "))

    def _cancel_scheduled(self) -> None:
        if self._scheduled_timer is not None:
            self._scheduled_timer.cancel()
            self._scheduled_timer = None
        self.next_scheduled_run = None
        self._scheduled_generation += 1

    def _on_scheduled_fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._scheduled_generation or self._closed:
                return
            self._scheduled_timer = None
        try:
            self.flush()
        finally:
            # Daily recurrence: re-arm for tomorrow regardless of the flush outcome
            with self._lock:
                if self.trigger == "scheduled" and not self._closed:
                    self._arm_scheduled()
