"""Shared fixtures for the task analytics tests."""

from datetime import datetime, timezone

import pytest

from models.task import Task


def make_task(task_id, modified=None, content="", **attributes):
    return Task(
        id=task_id,
        attributes=attributes,
        content=content,
        modified_at=modified or datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def task_factory():
    """Build tasks as make_task(id, **attributes)."""
    return make_task


@pytest.fixture
def project_tasks():
    """A small scheduled project."""
    return [
        make_task("design-api", status="done", priority="high",
                  start_date="2024-03-01", end_date="2024-03-05", tags=["backend", "api"]),
        make_task("build-api", status="in-progress", priority="medium",
                  start_date="2024-03-06", end_date="2024-03-20", depends_on="design-api",
                  tags=["backend"]),
        make_task("write-docs", status="todo", priority="low",
                  start_date="2024-03-15", end_date="2024-03-22", depends_on=["build-api"]),
        make_task("release", status="todo",
                  start_date="2024-03-25", end_date="2024-03-26", depends_on=["build-api", "write-docs"]),
        make_task("ideas", content="Unscheduled notes"),
    ]
