"""
Task Analytics - Main Entry Point

This app provides:
- Task browsing with built-in or custom sort and filter definitions
- Dependency cycle warnings
- Chart DSL + Plotly options for pie, bar, line and Gantt charts
- An editable schedule whose drag updates are saved after a pause
"""

import logging
import threading
import time
from typing import Optional

from flask import Flask, jsonify, request

from config import config
from models.chart import UnsupportedChartError, chart_to_dict
from models.filters import FilterExpression, SortSpec
from models.task import Task
from services.analysis_service import METRICS, AnalysisService, DateRange, Metric
from services.chart_service import ChartService, UnsafeChartOptionError, init_chart_defaults
from services.graph_service import build_dependency_graph, detect_cycles
from services.query_service import query_tasks
from services.schedule_service import ScheduleSession, rows_from_tasks
from services.sort_service import SORT_CRITERIA
from services.task_store import FileTaskStore, TaskStoreError
from utils.date_utils import parse_date

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Validate configuration
problems = config.validate()
if problems:
    for problem in problems:
        logger.warning(f"Configuration: {problem}")

# Initialize services
init_chart_defaults()
store = FileTaskStore()
chart_service = ChartService()
analysis_service = AnalysisService()

# Cache for tasks (to avoid re-reading the workspace on every request)
_task_cache: list[Task] = []
_cache_timestamp: float = 0
CACHE_TTL_SECONDS = 5

# The open schedule view, if any
_schedule_session: Optional[ScheduleSession] = None
_schedule_lock = threading.Lock()


def get_cached_tasks(force_refresh: bool = False) -> list[Task]:
    """
    Get the task snapshot, reloading it when the cache has expired.

    Raises:
        TaskStoreError: If the workspace cannot be read
    """
    global _task_cache, _cache_timestamp

    now = time.time()
    cache_expired = (now - _cache_timestamp) > CACHE_TTL_SECONDS

    if force_refresh or cache_expired:
        _task_cache = store.load_tasks()
        _cache_timestamp = now

    return _task_cache


def get_schedule_session() -> ScheduleSession:
    """Open the schedule view on first use, preferring saved rows."""
    global _schedule_session

    with _schedule_lock:
        if _schedule_session is None:
            rows = store.load_schedule() or rows_from_tasks(get_cached_tasks())
            _schedule_session = ScheduleSession(rows, store)
            logger.info(f"Opened schedule with {len(rows)} rows")
        return _schedule_session


def close_schedule_session():
    """Close the schedule view, cancelling pending saves."""
    global _schedule_session

    with _schedule_lock:
        if _schedule_session is not None:
            _schedule_session.close()
            _schedule_session = None


def _date_range_from_args() -> DateRange:
    return DateRange(
        field=request.args.get('filter_date_field') or None,
        start=parse_date(request.args.get('start_date')),
        end=parse_date(request.args.get('end_date')),
    )


def _find_named(definitions: list[dict], name: str) -> Optional[dict]:
    for definition in definitions:
        if isinstance(definition, dict) and definition.get("name") == name:
            return definition
    return None


# ============================================================================
# Flask App
# ============================================================================

flask_app = Flask(__name__)

# Alias for gunicorn compatibility (allows both `app:app` and `app:flask_app`)
app = flask_app


@flask_app.errorhandler(TaskStoreError)
def handle_store_error(e):
    logger.error(f"Task store unavailable: {e}")
    return jsonify({"success": False, "error": str(e)}), 503


@flask_app.route("/api/tasks")
def api_tasks():
    """List tasks with built-in sort (?sort=) and tag conditions (?tag.<key>=text)."""
    force_refresh = request.args.get('refresh', 'false').lower() == 'true'
    criteria = request.args.get('sort', 'name-asc')
    if criteria not in SORT_CRITERIA:
        return jsonify({"success": False, "error": f"Unknown sort: {criteria}"}), 400

    tag_conditions = {
        key[len('tag.'):]: value
        for key, value in request.args.items()
        if key.startswith('tag.')
    }

    tasks = query_tasks(get_cached_tasks(force_refresh), criteria=criteria, tag_conditions=tag_conditions)
    return jsonify({
        "success": True,
        "tasks": [task.to_dict() for task in tasks],
        "count": len(tasks),
    })


@flask_app.route("/api/tasks/query", methods=["POST"])
def api_tasks_query():
    """
    Apply a custom filter and sort.

    Body: {"filter": <expression> | "filter_name": str,
           "sort": {"keys": [...]} | "sort_name": str}
    Named definitions are looked up in the workspace's saved definitions.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}

    filter_data = body.get("filter")
    sort_data = body.get("sort")
    if body.get("filter_name") or body.get("sort_name"):
        definitions = store.load_filters_and_sorts()
        if body.get("filter_name"):
            named = _find_named(definitions["filters"], body["filter_name"])
            filter_data = named.get("expression") if named else None
        if body.get("sort_name"):
            named = _find_named(definitions["sorts"], body["sort_name"])
            sort_data = named if named else None

    tasks = query_tasks(
        get_cached_tasks(),
        sort_spec=SortSpec.from_dict(sort_data),
        expression=FilterExpression.from_dict(filter_data),
        attribute_types=config.get_attribute_types(),
    )
    return jsonify({
        "success": True,
        "tasks": [task.to_dict() for task in tasks],
        "count": len(tasks),
    })


@flask_app.route("/api/cycles")
def api_cycles():
    """Dependency cycles in the workspace."""
    graph = build_dependency_graph(get_cached_tasks())
    cycles = detect_cycles(graph)
    return jsonify({"success": True, "cycles": cycles, "count": len(cycles)})


@flask_app.route("/api/charts/<kind>")
def api_chart(kind: str):
    """
    Chart DSL, Mermaid text and Plotly option for one chart kind.

    Query: category (pie/bar), date_field + metric + metric_key (line),
    filter_date_field/start_date/end_date (all).
    """
    tasks = get_cached_tasks()
    date_range = _date_range_from_args()

    try:
        if kind in ("pie", "bar"):
            category = request.args.get('category')
            if not category:
                return jsonify({"success": False, "error": "category is required"}), 400
            generate = analysis_service.pie_chart if kind == "pie" else analysis_service.bar_chart
            output = generate(tasks, category, date_range)
        elif kind == "line":
            date_field = request.args.get('date_field')
            if not date_field:
                return jsonify({"success": False, "error": "date_field is required"}), 400
            aggregation = request.args.get('metric', 'count')
            if aggregation not in METRICS:
                return jsonify({"success": False, "error": f"Unknown metric: {aggregation}"}), 400
            metric_key = request.args.get('metric_key')
            metric = Metric(name=request.args.get('metric_name', 'Tasks'), aggregation=aggregation,
                            attribute_key=metric_key) if metric_key else None
            output = analysis_service.line_chart(
                tasks, date_field, date_range, y_axis_label=request.args.get('y_axis_label'), metric=metric
            )
        elif kind == "gantt":
            output = analysis_service.gantt_chart(tasks, date_range)
        else:
            raise UnsupportedChartError(f"Unsupported chart type: {kind}")

        option = chart_service.render(output.data)
    except UnsupportedChartError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except UnsafeChartOptionError as e:
        logger.error(f"Rejected chart option: {e}")
        return jsonify({"success": False, "error": str(e), "retryable": True}), 500
    except Exception as e:
        logger.exception(f"Error generating chart: {e}")
        return jsonify({"success": False, "error": str(e), "retryable": True}), 500

    return jsonify({
        "success": True,
        "dsl": chart_to_dict(output.data),
        "mermaid": output.mermaid,
        "option": option,
        "warnings": output.warnings,
    })


@flask_app.route("/api/schedule")
def api_schedule():
    """Current schedule rows."""
    session = get_schedule_session()
    return jsonify({
        "success": True,
        "rows": [row.to_dict() for row in session.rows],
        "pending": sorted(session.pending),
    })


@flask_app.route("/api/schedule/<task_id>", methods=["POST"])
def api_schedule_update(task_id: str):
    """Apply a drag update. Body: {"start_time": ms, "end_time": ms}."""
    body = request.get_json(silent=True) or {}
    try:
        new_start = int(body["start_time"])
        new_end = int(body["end_time"])
    except (KeyError, TypeError, ValueError):
        return jsonify({"success": False, "error": "start_time and end_time are required"}), 400

    session = get_schedule_session()
    changed = session.update_row(task_id, new_start, new_end)
    row = session.get_row(task_id)
    if row is None:
        return jsonify({"success": False, "error": f"Unknown task: {task_id}"}), 404
    if not changed and not new_start < new_end:
        return jsonify({"success": False, "error": "end_time must be after start_time"}), 422
    return jsonify({"success": True, "changed": changed, "row": row.to_dict()})


@flask_app.route("/api/schedule", methods=["DELETE"])
def api_schedule_close():
    """Close the schedule view (pending saves are cancelled)."""
    close_schedule_session()
    return jsonify({"success": True})


@flask_app.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint for deployment platforms."""
    return {"status": "healthy", "app": "task-analytics"}


# ============================================================================
# Main Entry Point
# ============================================================================

def main():
    """Run the web server."""
    logger.info(f"Serving workspace {config.get_workspace_path()} on http://localhost:{config.PORT}/")
    try:
        flask_app.run(host="0.0.0.0", port=config.PORT, debug=config.DEBUG, use_reloader=False)
    finally:
        close_schedule_session()


if __name__ == "__main__":
    main()
