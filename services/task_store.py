"""
Task storage contract and a file-backed implementation.

Tasks live as Markdown files with YAML front matter in a workspace
directory; the file stem is the task id. The schedule edited on the Gantt
surface is written next to them as JSON.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

import yaml

from models.task import Task, GanttRow
from config import config

logger = logging.getLogger(__name__)

FILTERS_AND_SORTS_FILE = "filters_and_sorts.json"
FRONT_MATTER_DELIMITER = re.compile(r"^---[ \t]*$", re.MULTILINE)


class TaskStoreError(Exception):
    """Raised when the store cannot be read or written."""


class TaskStore(Protocol):
    """What the analytics engine needs from task storage."""

    def list_task_ids(self, workspace: str) -> list[str]:
        ...

    def get_task(self, workspace: str, task_id: str) -> Task:
        ...

    def save_schedule(self, rows: list[GanttRow]) -> None:
        ...


def parse_task_markdown(task_id: str, text: str, modified_at: Optional[datetime] = None) -> Task:
    """
    Parse a Markdown document with optional YAML front matter.

    Raises:
        ValueError: If the front matter is not valid YAML or not a mapping
    """
    attributes: dict[str, Any] = {}
    body = text

    if FRONT_MATTER_DELIMITER.match(text):
        parts = FRONT_MATTER_DELIMITER.split(text, 2)
        if len(parts) < 3:
            raise ValueError(f"Unterminated front matter in {task_id}")
        try:
            front_matter = yaml.safe_load(parts[1])
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML front matter in {task_id}: {e}") from e
        if front_matter is None:
            front_matter = {}
        if not isinstance(front_matter, dict):
            raise ValueError(f"Front matter of {task_id} is not a mapping")
        attributes = {str(k): v for k, v in front_matter.items()}
        body = parts[2].lstrip("\n")

    return Task(id=task_id, attributes=attributes, content=body, modified_at=modified_at)


def render_task_markdown(task: Task) -> str:
    """Render a task back to Markdown with YAML front matter."""
    if not task.attributes:
        return task.content
    yaml_str = yaml.safe_dump(task.attributes, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return "\n".join(["---", yaml_str.rstrip(), "---", "", task.content])


class FileTaskStore:
    """
    Reads tasks from `<root>/<workspace>/*.md`.

    An empty workspace name refers to the root directory itself.
    """

    def __init__(self, root: Path = None, schedule_path: Path = None):
        """
        Initialize the FileTaskStore.

        Args:
            root: Directory containing workspaces
            schedule_path: File the schedule rows are saved to
        """
        self.root = Path(root) if root else config.get_workspace_path()
        if schedule_path:
            self.schedule_path = Path(schedule_path)
        elif root:
            self.schedule_path = self.root / config.SCHEDULE_FILE
        else:
            self.schedule_path = config.get_schedule_path()

    def _workspace_dir(self, workspace: str) -> Path:
        return self.root / workspace if workspace else self.root

    def list_task_ids(self, workspace: str = "") -> list[str]:
        directory = self._workspace_dir(workspace)
        if not directory.is_dir():
            raise TaskStoreError(f"Workspace not found: {directory}")
        return sorted(path.stem for path in directory.glob("*.md"))

    def get_task(self, workspace: str, task_id: str) -> Task:
        path = self._workspace_dir(workspace) / f"{task_id}.md"
        try:
            text = path.read_text(encoding="utf-8")
            modified_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        except OSError as e:
            raise TaskStoreError(f"Could not read task {task_id}: {e}") from e
        try:
            return parse_task_markdown(task_id, text, modified_at)
        except ValueError as e:
            raise TaskStoreError(str(e)) from e

    def load_tasks(self, workspace: str = "") -> list[Task]:
        """
        Load every task in the workspace.

        Tasks that fail to parse are logged and skipped.
        """
        tasks = []
        for task_id in self.list_task_ids(workspace):
            try:
                tasks.append(self.get_task(workspace, task_id))
            except TaskStoreError as e:
                logger.warning(f"Skipped task - {e}")
        logger.info(f"Loaded {len(tasks)} tasks from {self._workspace_dir(workspace)}")
        return tasks

    def save_task(self, workspace: str, task: Task) -> None:
        path = self._workspace_dir(workspace) / f"{task.id}.md"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_task_markdown(task), encoding="utf-8")
        except OSError as e:
            raise TaskStoreError(f"Could not write task {task.id}: {e}") from e

    def save_schedule(self, rows: list[GanttRow]) -> None:
        payload = {"tasks": [row.to_dict() for row in rows]}
        try:
            self.schedule_path.parent.mkdir(parents=True, exist_ok=True)
            self.schedule_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            raise TaskStoreError(f"Could not save schedule: {e}") from e
        logger.debug(f"Saved {len(rows)} schedule rows to {self.schedule_path}")

    def load_schedule(self) -> list[GanttRow]:
        """Load saved schedule rows; an absent file means no saved schedule."""
        if not self.schedule_path.exists():
            return []
        try:
            data = json.loads(self.schedule_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise TaskStoreError(f"Could not load schedule: {e}") from e

        rows = []
        for raw in data.get("tasks", []):
            try:
                rows.append(GanttRow.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipped schedule row {raw!r}: {e}")
        return rows

    def load_filters_and_sorts(self, workspace: str = "") -> dict[str, list[dict]]:
        """
        Load the user's named filter and sort definitions.

        Returns:
            {"filters": [{"name", "expression"}...], "sorts": [{"name", "keys"}...]}
        """
        path = self._workspace_dir(workspace) / FILTERS_AND_SORTS_FILE
        if not path.exists():
            return {"filters": [], "sorts": []}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise TaskStoreError(f"Could not load filter/sort definitions: {e}") from e
        if not isinstance(data, dict):
            logger.warning(f"Ignored malformed filter/sort definitions in {path}")
            return {"filters": [], "sorts": []}
        filters = data.get("filters")
        sorts = data.get("sorts")
        return {
            "filters": filters if isinstance(filters, list) else [],
            "sorts": sorts if isinstance(sorts, list) else [],
        }

    def save_filters_and_sorts(self, workspace: str, definitions: dict[str, list[dict]]) -> None:
        path = self._workspace_dir(workspace) / FILTERS_AND_SORTS_FILE
        try:
            path.write_text(json.dumps(definitions, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise TaskStoreError(f"Could not save filter/sort definitions: {e}") from e
