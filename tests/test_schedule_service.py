"""Tests for the live schedule session and its debounced saves."""

import threading
import time
from unittest.mock import Mock

import pytest

from models.task import GanttRow
from services.gantt_interaction import LinearCoordinateApi
from services.schedule_service import ScheduleSession, rows_from_tasks
from services.task_store import TaskStoreError

DEBOUNCE = 0.05


def make_rows():
    return [
        GanttRow("design", "Design", 0, 1000),
        GanttRow("build", "Build", 1000, 5000, depends_on="design"),
    ]


class RecordingStore:
    """Store double that records each saved snapshot."""

    def __init__(self, fail=False):
        self.saves = []
        self.fail = fail
        self.saved = threading.Event()

    def save_schedule(self, rows):
        self.saves.append([row.to_dict() for row in rows])
        self.saved.set()
        if self.fail:
            raise TaskStoreError("disk full")


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def session(store):
    with ScheduleSession(make_rows(), store, debounce_seconds=DEBOUNCE) as session:
        yield session


def wait_quiet(seconds=DEBOUNCE * 6):
    time.sleep(seconds)


class TestUpdateRow:
    def test_applies_update_immediately(self, session):
        assert session.update_row("build", 2000, 6000) is True
        row = session.get_row("build")
        assert (row.start_time, row.end_time) == (2000, 6000)

    @pytest.mark.parametrize("start, end", [(3000, 3000), (5000, 4000)])
    def test_rejects_end_not_after_start(self, session, store, start, end):
        assert session.update_row("build", start, end) is False
        assert session.get_row("build").start_time == 1000
        assert session.pending == set()

    def test_rejects_unknown_row(self, session):
        assert session.update_row("nope", 0, 10) is False
        assert session.pending == set()

    def test_unchanged_times_do_not_schedule_save(self, session):
        assert session.update_row("build", 1000, 5000) is False
        assert session.pending == set()

    def test_rows_are_snapshots(self, session):
        session.rows[0].start_time = -50
        assert session.get_row("design").start_time == 0


class TestDebouncedSave:
    def test_burst_of_updates_saves_once(self, session, store):
        for offset in range(0, 50, 10):
            session.update_row("build", 1000 + offset, 5000 + offset)
        assert session.pending == {"build"}

        assert store.saved.wait(1)
        wait_quiet()

        assert len(store.saves) == 1
        assert store.saves[0][1]["start_time"] == 1040
        assert session.pending == set()

    def test_each_save_writes_every_row(self, session, store):
        session.update_row("design", 100, 900)
        session.update_row("build", 1200, 5200)

        assert store.saved.wait(1)
        wait_quiet()

        assert store.saves
        for snapshot in store.saves:
            assert [row["task_id"] for row in snapshot] == ["design", "build"]
        final = store.saves[-1]
        assert (final[0]["start_time"], final[1]["start_time"]) == (100, 1200)

    def test_close_cancels_pending_saves(self, store):
        session = ScheduleSession(make_rows(), store, debounce_seconds=DEBOUNCE)
        session.update_row("build", 2000, 6000)
        session.close()

        wait_quiet()

        assert store.saves == []
        assert session.pending == set()
        assert session.update_row("build", 3000, 7000) is False

    def test_save_failure_is_logged_not_raised(self, caplog):
        store = RecordingStore(fail=True)
        with ScheduleSession(make_rows(), store, debounce_seconds=DEBOUNCE) as session:
            session.update_row("build", 2000, 6000)
            assert store.saved.wait(1)
            wait_quiet()
            # The session keeps working after a failed save
            assert session.update_row("build", 2500, 6500) is True
        assert "Error saving schedule" in caplog.text

    def test_read_only_never_saves(self, store):
        with ScheduleSession(make_rows(), store, debounce_seconds=0, read_only=True) as session:
            assert session.update_row("build", 2000, 6000) is True
            session.flush()
            wait_quiet()
        assert store.saves == []

    def test_flush_saves_now(self, store):
        with ScheduleSession(make_rows(), store, debounce_seconds=10) as session:
            session.update_row("design", 10, 990)
            session.flush()
            assert len(store.saves) == 1
            assert session.pending == set()

    def test_replace_rows_is_what_pending_save_writes(self, store):
        with ScheduleSession(make_rows(), store, debounce_seconds=10) as session:
            session.update_row("design", 10, 990)
            session.replace_rows([GanttRow("solo", "Solo", 0, 10)])
            session.flush()
        assert [row["task_id"] for row in store.saves[0]] == ["solo"]


def test_drag_handles_feed_the_session():
    store = Mock()
    with ScheduleSession(make_rows(), store, debounce_seconds=10) as session:
        api = LinearCoordinateApi(origin_time=0, ms_per_pixel=1)
        move_build = session.handles(api)[2]

        move_build.drag_by(250)

        row = session.get_row("build")
        assert (row.start_time, row.end_time) == (1250, 5250)
        assert session.pending == {"build"}


def test_rows_from_tasks_skips_unscheduled(project_tasks):
    rows = rows_from_tasks(project_tasks)
    assert [row.task_id for row in rows] == ["design-api", "build-api", "write-docs", "release"]
    assert rows[1].depends_on == "design-api"
    assert rows[1].name == "build api"


def test_superseded_timer_does_not_save(store):
    with ScheduleSession(make_rows(), store, debounce_seconds=10) as session:
        session.update_row("build", 2000, 6000)

        # A timer callback that is no longer the registered timer for the task
        session._on_timer("build")

        assert store.saves == []
        assert session.pending == {"build"}
