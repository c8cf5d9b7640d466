"""
Task data models for the analytics engine.

A Task is a read-only snapshot of one Markdown task file: its id, the
key/value front matter attributes, the free-text body and the time it was
last modified. A GanttRow is the live, editable projection of a task on the
schedule surface.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Any, Optional

from utils.date_utils import to_epoch_ms


def stringify_value(value: Any) -> str:
    """
    Render an attribute value the way it appears in front matter.

    Booleans become `true`/`false`, lists are comma-joined and whole
    floats lose their trailing `.0`.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(stringify_value(item) for item in value)
    return str(value)


@dataclass(frozen=True)
class Task:
    """
    Represents a task loaded from the workspace.

    Core fields:
        id: Unique identifier (the file stem)
        attributes: Front matter key/value pairs (scalars or lists)
        content: Free-text Markdown body
        modified_at: When the task file was last modified
    """

    id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    content: str = ""
    modified_at: Optional[datetime] = None

    def get(self, key: str, default: Any = None) -> Any:
        """Get an attribute value, or `default` when it is not set."""
        return self.attributes.get(key, default)

    def has(self, key: str) -> bool:
        """Whether the attribute is present on the task."""
        return key in self.attributes

    def dependency_ids(self, key: str = "depends_on") -> list[str]:
        """
        Normalize the dependency attribute to a list of ids.

        A single string becomes a one-element list; from a list only
        non-empty strings are kept; any other value means no dependencies.
        """
        depends = self.attributes.get(key)
        if isinstance(depends, str):
            return [depends] if depends.strip() else []
        if isinstance(depends, (list, tuple)):
            return [d for d in depends if isinstance(d, str) and d]
        return []

    @property
    def display_name(self) -> str:
        """Task id made readable (`-` and `_` become spaces)."""
        return self.id.replace("-", " ").replace("_", " ")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "attributes": {
                key: value.isoformat() if isinstance(value, (date, datetime)) else value
                for key, value in self.attributes.items()
            },
            "content": self.content,
            "modified_at": self.modified_at.isoformat() if self.modified_at else None,
        }


@dataclass
class GanttRow:
    """
    Editable schedule row for one task.

    Times are epoch milliseconds. The row must always satisfy
    start_time < end_time.
    """

    task_id: str
    name: str
    start_time: int
    end_time: int
    progress: float = 0.0
    depends_on: Optional[str] = None

    def __post_init__(self):
        if not self.start_time < self.end_time:
            raise ValueError(
                f"Row {self.task_id}: start {self.start_time} must be before end {self.end_time}"
            )
        self.progress = max(0.0, min(1.0, float(self.progress or 0.0)))

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GanttRow":
        return cls(
            task_id=str(data["task_id"]),
            name=str(data.get("name") or data["task_id"]),
            start_time=int(data["start_time"]),
            end_time=int(data["end_time"]),
            progress=data.get("progress", 0.0),
            depends_on=data.get("depends_on"),
        )

    @classmethod
    def from_task(
        cls,
        task: Task,
        start_key: str = "start_date",
        end_key: str = "end_date",
        progress_key: str = "progress",
        depends_key: str = "depends_on",
        title_key: str = "",
    ) -> Optional["GanttRow"]:
        """
        Create a row from a task's schedule attributes.

        Returns:
            GanttRow instance or None if the dates are missing, unparsable
            or out of order
        """
        start = to_epoch_ms(task.get(start_key))
        end = to_epoch_ms(task.get(end_key))
        if start is None or end is None or end <= start:
            return None

        progress = task.get(progress_key, 0.0)
        try:
            progress = float(progress)
        except (TypeError, ValueError):
            progress = 0.0
        # Percentages are stored as 0-100 in front matter
        if progress > 1:
            progress = progress / 100

        name = task.get(title_key) if title_key else None
        deps = task.dependency_ids(depends_key)
        return cls(
            task_id=task.id,
            name=str(name) if name else task.display_name,
            start_time=start,
            end_time=end,
            progress=progress,
            depends_on=deps[0] if deps else None,
        )
