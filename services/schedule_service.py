"""
Live schedule editing with debounced persistence.

A ScheduleSession holds the rows of one open Gantt view. Drag updates are
applied immediately; saving is delayed until the user pauses. Each task id
has its own quiet-period timer, but every save writes the complete current
row list, so saves triggered by different tasks never produce partial or
interleaved snapshots.
"""

import logging
import threading
from typing import Iterable, Optional

from models.task import GanttRow, Task
from services.gantt_interaction import CoordinateApi, DragHandle, create_handles
from services.task_store import TaskStore
from config import config

logger = logging.getLogger(__name__)


def rows_from_tasks(tasks: Iterable[Task]) -> list[GanttRow]:
    """Project tasks with valid schedule dates onto Gantt rows."""
    rows = []
    for task in tasks:
        row = GanttRow.from_task(
            task,
            start_key=config.START_DATE_KEY,
            end_key=config.END_DATE_KEY,
            progress_key=config.PROGRESS_KEY,
            depends_key=config.DEPENDS_ON_KEY,
            title_key=config.TITLE_KEY,
        )
        if row:
            rows.append(row)
        else:
            logger.debug(f"Skipped task {task.id} - missing or invalid schedule dates")
    return rows


class ScheduleSession:
    """
    Owns the live rows of an open schedule view.

    Use as a context manager (or call `close`) so pending saves are
    cancelled when the view goes away.
    """

    def __init__(
        self,
        rows: list[GanttRow],
        store: TaskStore,
        debounce_seconds: float = None,
        read_only: bool = False,
    ):
        """
        Initialize the ScheduleSession.

        Args:
            rows: Rows in display order
            store: Where the schedule is saved
            debounce_seconds: Quiet period before saving
            read_only: If True, updates are applied but never saved
        """
        self.store = store
        self.debounce_seconds = (
            config.SAVE_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.read_only = read_only
        self._rows = list(rows)
        self._lock = threading.RLock()
        self._timers: dict[str, threading.Timer] = {}
        self._closed = False

    def __enter__(self) -> "ScheduleSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def rows(self) -> list[GanttRow]:
        """Snapshot of the current rows."""
        with self._lock:
            return [GanttRow(**row.to_dict()) for row in self._rows]

    @property
    def pending(self) -> set[str]:
        """Task ids with a save waiting for its quiet period."""
        with self._lock:
            return set(self._timers)

    def get_row(self, task_id: str) -> Optional[GanttRow]:
        with self._lock:
            for row in self._rows:
                if row.task_id == task_id:
                    return GanttRow(**row.to_dict())
        return None

    def handles(self, api: CoordinateApi) -> list[DragHandle]:
        """Drag handles for the current rows, wired to `update_row`."""
        with self._lock:
            rows = list(self._rows)
        return create_handles(rows, api, self.update_row)

    def update_row(self, task_id: str, new_start: int, new_end: int) -> bool:
        """
        Apply a drag update to one row.

        Updates that would leave the row with end <= start, and updates
        for unknown rows, are rejected.

        Returns:
            True if the row changed
        """
        if not new_start < new_end:
            logger.debug(f"Rejected update of {task_id}: start {new_start} not before end {new_end}")
            return False

        with self._lock:
            if self._closed:
                return False
            for row in self._rows:
                if row.task_id == task_id:
                    break
            else:
                logger.debug(f"Ignored update for unknown row {task_id}")
                return False

            if row.start_time == new_start and row.end_time == new_end:
                return False
            row.start_time = new_start
            row.end_time = new_end
            self._schedule_save(task_id)
        return True

    def replace_rows(self, rows: list[GanttRow]):
        """Swap in a freshly loaded snapshot; pending saves write the new rows."""
        with self._lock:
            self._rows = list(rows)

    def _schedule_save(self, task_id: str):
        if self.read_only:
            return
        existing = self._timers.pop(task_id, None)
        if existing:
            existing.cancel()
        timer = threading.Timer(self.debounce_seconds, self._on_timer, args=(task_id,))
        timer.daemon = True
        self._timers[task_id] = timer
        timer.start()

    def _on_timer(self, task_id: str):
        with self._lock:
            if self._closed:
                return
            # Superseded while waiting for the lock; the newer timer saves
            if self._timers.get(task_id) is not threading.current_thread():
                return
            del self._timers[task_id]
            self._save_locked()

    def _save_locked(self):
        try:
            self.store.save_schedule([GanttRow(**row.to_dict()) for row in self._rows])
            logger.info(f"Saved schedule ({len(self._rows)} rows)")
        except Exception as e:
            logger.error(f"Error saving schedule: {e}")

    def flush(self):
        """Save immediately, cancelling every pending timer."""
        with self._lock:
            if self._closed or self.read_only:
                return
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._save_locked()

    def close(self):
        """Cancel pending saves; later updates are ignored."""
        with self._lock:
            self._closed = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
        logger.debug("Schedule session closed")
