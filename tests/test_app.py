"""Tests for the HTTP surface."""

import json

import pytest

import app as app_module
from services.task_store import FileTaskStore, TaskStoreError

TASKS = {
    "design-api": "---\nstatus: done\npriority: high\nstart_date: 2024-03-01\nend_date: 2024-03-05\n---\n",
    "build-api": (
        "---\nstatus: in-progress\npriority: medium\nstart_date: 2024-03-06\n"
        "end_date: 2024-03-20\ndepends_on: design-api\ntags: [backend]\n---\n"
    ),
    "write-docs": (
        "---\nstatus: todo\npriority: low\nstart_date: 2024-03-15\nend_date: 2024-03-22\n"
        "depends_on: [build-api]\n---\n"
    ),
}


@pytest.fixture
def workspace(tmp_path):
    for task_id, text in TASKS.items():
        (tmp_path / f"{task_id}.md").write_text(text, encoding="utf-8")
    return tmp_path


@pytest.fixture
def client(workspace, monkeypatch):
    monkeypatch.setattr(app_module, "store", FileTaskStore(root=workspace))
    monkeypatch.setattr(app_module, "_cache_timestamp", 0)
    monkeypatch.setattr(app_module, "_task_cache", [])
    monkeypatch.setattr(app_module, "_schedule_session", None)
    app_module.flask_app.config["TESTING"] = True
    with app_module.flask_app.test_client() as client:
        yield client
    app_module.close_schedule_session()


def test_health(client):
    assert client.get("/health").get_json() == {"status": "healthy", "app": "task-analytics"}


class TestTasks:
    def test_default_name_order(self, client):
        body = client.get("/api/tasks").get_json()
        assert body["success"] is True
        assert [t["id"] for t in body["tasks"]] == ["build-api", "design-api", "write-docs"]
        assert body["tasks"][1]["attributes"]["start_date"] == "2024-03-01"

    def test_tag_conditions(self, client):
        body = client.get("/api/tasks?sort=name-desc&tag.status=do").get_json()
        assert [t["id"] for t in body["tasks"]] == ["write-docs", "design-api"]

    def test_unknown_sort(self, client):
        response = client.get("/api/tasks?sort=size-asc")
        assert response.status_code == 400

    def test_missing_workspace_is_503(self, client, tmp_path, monkeypatch):
        monkeypatch.setattr(app_module, "store", FileTaskStore(root=tmp_path / "gone"))
        response = client.get("/api/tasks?refresh=true")
        assert response.status_code == 503
        assert response.get_json()["success"] is False

    def test_custom_query(self, client):
        response = client.post("/api/tasks/query", json={
            "filter": {"condition": {"attribute_key": "status", "operator": "!=", "operand": "done"}},
            "sort": {"keys": [{"attribute_key": "priority", "custom_order": ["low", "medium", "high"]}]},
        })
        body = response.get_json()
        assert [t["id"] for t in body["tasks"]] == ["write-docs", "build-api"]

    def test_named_query(self, client, workspace):
        (workspace / "filters_and_sorts.json").write_text(json.dumps({
            "filters": [{"name": "backend", "expression": {
                "condition": {"tagKey": "tags", "operator": "contains", "value": "backend"}}}],
            "sorts": [],
        }), encoding="utf-8")
        body = client.post("/api/tasks/query", json={"filter_name": "backend"}).get_json()
        assert [t["id"] for t in body["tasks"]] == ["build-api"]


def test_cycles(client, workspace):
    (workspace / "design-api.md").write_text("---\ndepends_on: write-docs\n---\n", encoding="utf-8")
    body = client.get("/api/cycles").get_json()
    assert body["cycles"] == [["build-api", "design-api", "write-docs"]]


class TestCharts:
    def test_pie(self, client):
        body = client.get("/api/charts/pie?category=status").get_json()
        assert body["dsl"]["type"] == "pie"
        assert body["option"]["data"][0]["type"] == "pie"
        assert body["mermaid"].startswith("pie")

    def test_gantt_with_range(self, client):
        body = client.get("/api/charts/gantt?start_date=2024-03-10").get_json()
        ids = [t["id"] for s in body["dsl"]["sections"] for t in s["tasks"]]
        assert ids == ["build-api", "write-docs"]
        assert body["warnings"] == []

    def test_line_with_metric(self, client):
        body = client.get("/api/charts/line?date_field=end_date&metric=count").get_json()
        assert len(body["dsl"]["series"]) == 3

    @pytest.mark.parametrize("url", [
        "/api/charts/pie",
        "/api/charts/line",
        "/api/charts/line?date_field=end_date&metric=median",
        "/api/charts/radar",
    ])
    def test_bad_requests(self, client, url):
        assert client.get(url).status_code == 400

    def test_generation_error_is_retryable(self, client, monkeypatch):
        def explode(dsl):
            raise RuntimeError("renderer down")

        monkeypatch.setattr(app_module.chart_service, "render", explode)
        response = client.get("/api/charts/bar?category=status")
        assert response.status_code == 500
        assert response.get_json()["retryable"] is True


class TestSchedule:
    def test_rows_from_tasks(self, client):
        body = client.get("/api/schedule").get_json()
        assert [row["task_id"] for row in body["rows"]] == ["build-api", "design-api", "write-docs"]

    def test_update_and_close(self, client):
        row = client.get("/api/schedule").get_json()["rows"][0]
        response = client.post(f"/api/schedule/{row['task_id']}", json={
            "start_time": row["start_time"] + 1000,
            "end_time": row["end_time"] + 1000,
        })
        body = response.get_json()
        assert body["changed"] is True
        assert body["row"]["start_time"] == row["start_time"] + 1000
        assert client.get("/api/schedule").get_json()["pending"] == [row["task_id"]]

        assert client.delete("/api/schedule").get_json() == {"success": True}

    @pytest.mark.parametrize("task_id, payload, status", [
        ("build-api", {"start_time": "x"}, 400),
        ("ghost", {"start_time": 0, "end_time": 10}, 404),
        ("build-api", {"start_time": 10, "end_time": 10}, 422),
    ])
    def test_rejected_updates(self, client, task_id, payload, status):
        assert client.post(f"/api/schedule/{task_id}", json=payload).status_code == status


def test_store_errors_map_to_503(client, monkeypatch):
    def fail():
        raise TaskStoreError("offline")

    monkeypatch.setattr(app_module, "get_cached_tasks", lambda force_refresh=False: fail())
    assert client.get("/api/cycles").status_code == 503


class TestMalformedQueries:
    @pytest.mark.parametrize("payload", [
        {"sort": [{"attribute_key": "priority"}]},
        {"sort": {"keys": 5}},
        {"sort": {"keys": [{"attribute_key": "priority", "custom_order": 5}]}},
        {"filter": ["status"]},
        {"filter": {"children": 5}},
        ["not", "an", "object"],
    ])
    def test_degrade_to_unfiltered_listing(self, client, payload):
        response = client.post("/api/tasks/query", json=payload)
        assert response.status_code == 200
        assert response.get_json()["count"] == 3

    def test_malformed_saved_definitions(self, client, workspace):
        (workspace / "filters_and_sorts.json").write_text(
            json.dumps({"filters": ["backend", {"name": "x", "expression": 5}], "sorts": 7}),
            encoding="utf-8",
        )
        body = client.post("/api/tasks/query", json={"filter_name": "x", "sort_name": "y"}).get_json()
        assert body["count"] == 3


def test_concurrent_first_requests_share_one_schedule(client):
    import threading

    sessions = []
    barrier = threading.Barrier(4)

    def open_session():
        barrier.wait()
        sessions.append(app_module.get_schedule_session())

    threads = [threading.Thread(target=open_session) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len({id(session) for session in sessions}) == 1
