"""Tests for the Markdown task store."""

import json
from datetime import date

import pytest

from models.task import GanttRow
from services.task_store import (
    FileTaskStore,
    TaskStoreError,
    parse_task_markdown,
    render_task_markdown,
)
from tests.conftest import make_task

TASK_MD = """---
status: todo
priority: 2
start_date: 2024-03-01
end_date: 2024-03-04
depends_on:
  - design
---

Write the parser.
"""


@pytest.fixture
def store(tmp_path):
    (tmp_path / "parser.md").write_text(TASK_MD, encoding="utf-8")
    (tmp_path / "design.md").write_text("No front matter here.\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    return FileTaskStore(root=tmp_path)


class TestParseMarkdown:
    def test_front_matter_and_body(self):
        task = parse_task_markdown("parser", TASK_MD)
        assert task.get("status") == "todo"
        assert task.get("priority") == 2
        assert task.get("start_date") == date(2024, 3, 1)
        assert task.dependency_ids() == ["design"]
        assert task.content == "Write the parser.\n"

    def test_without_front_matter(self):
        task = parse_task_markdown("plain", "Just text")
        assert task.attributes == {}
        assert task.content == "Just text"

    @pytest.mark.parametrize("text", [
        "---\nstatus: [unclosed\n---\nbody",
        "---\n- a\n- b\n---\nbody",
        "---\nstatus: todo\n",
    ])
    def test_malformed_front_matter(self, text):
        with pytest.raises(ValueError):
            parse_task_markdown("bad", text)

    def test_render_keeps_attributes(self):
        task = make_task("t", content="Body\n", status="done", tags=["a", "b"])
        parsed = parse_task_markdown("t", render_task_markdown(task))
        assert parsed.attributes == {"status": "done", "tags": ["a", "b"]}
        assert parsed.content == "Body\n"


class TestFileTaskStore:
    def test_lists_markdown_stems_sorted(self, store):
        assert store.list_task_ids("") == ["design", "parser"]

    def test_missing_workspace_raises(self, store):
        with pytest.raises(TaskStoreError):
            store.list_task_ids("nowhere")

    def test_get_task_sets_modified_time(self, store):
        task = store.get_task("", "parser")
        assert task.id == "parser"
        assert task.modified_at is not None
        assert task.modified_at.tzinfo is not None

    def test_get_missing_task_raises(self, store):
        with pytest.raises(TaskStoreError):
            store.get_task("", "ghost")

    def test_load_tasks_skips_unreadable(self, store, tmp_path, caplog):
        (tmp_path / "broken.md").write_text("---\nstatus: [unclosed\n---\n", encoding="utf-8")
        tasks = store.load_tasks()
        assert [t.id for t in tasks] == ["design", "parser"]
        assert "Skipped task" in caplog.text

    def test_save_task_writes_markdown(self, store, tmp_path):
        store.save_task("sub", make_task("new", content="hello\n", status="todo"))
        assert store.list_task_ids("sub") == ["new"]
        assert store.get_task("sub", "new").get("status") == "todo"

    def test_schedule_round_trip(self, store, tmp_path):
        rows = [GanttRow("parser", "Parser", 0, 1000, progress=0.5, depends_on="design")]
        store.save_schedule(rows)

        saved = json.loads((tmp_path / "schedule.json").read_text(encoding="utf-8"))
        assert saved["tasks"][0]["task_id"] == "parser"
        assert store.load_schedule() == rows

    def test_schedule_skips_invalid_rows(self, tmp_path):
        path = tmp_path / "schedule.json"
        path.write_text(json.dumps({"tasks": [
            {"task_id": "ok", "start_time": 0, "end_time": 10},
            {"task_id": "backwards", "start_time": 10, "end_time": 0},
            {"name": "no id"},
        ]}), encoding="utf-8")
        store = FileTaskStore(root=tmp_path, schedule_path=path)
        assert [row.task_id for row in store.load_schedule()] == ["ok"]

    def test_no_saved_schedule(self, store):
        assert store.load_schedule() == []

    def test_filters_and_sorts_round_trip(self, store):
        assert store.load_filters_and_sorts() == {"filters": [], "sorts": []}
        definitions = {
            "filters": [{"name": "open", "expression": {"condition": {"tagKey": "status", "operator": "!=", "value": "done"}}}],
            "sorts": [{"name": "by priority", "keys": [{"attribute_key": "priority"}]}],
        }
        store.save_filters_and_sorts("", definitions)
        assert store.load_filters_and_sorts() == definitions


def test_dashes_inside_front_matter_values():
    task = parse_task_markdown("t", "---\ntitle: a---b\nstatus: done\n---\nbody\n---\nmore\n")
    assert task.attributes == {"title": "a---b", "status": "done"}
    assert task.content == "body\n---\nmore\n"


def test_leading_dashes_that_are_not_a_delimiter():
    task = parse_task_markdown("t", "----\nJust a rule")
    assert task.attributes == {}
    assert task.content == "----\nJust a rule"


def test_default_schedule_path_follows_config(tmp_path, monkeypatch):
    from config import Config

    monkeypatch.setattr(Config, "WORKSPACE_PATH", str(tmp_path))
    monkeypatch.setattr(Config, "SCHEDULE_FILE", "plan.json")
    store = FileTaskStore()
    assert store.root == tmp_path
    assert store.schedule_path == tmp_path / "plan.json"


def test_malformed_definitions_file_loads_empty(tmp_path):
    (tmp_path / "filters_and_sorts.json").write_text("[1, 2]", encoding="utf-8")
    assert FileTaskStore(root=tmp_path).load_filters_and_sorts() == {"filters": [], "sorts": []}
