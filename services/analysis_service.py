"""
Aggregates a task snapshot into chart DSL objects.

Every generator returns a ChartOutput carrying the DSL, its Mermaid
rendering and warnings. Tasks can be restricted to a date range before
aggregation.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional

from models.chart import (
    BarChart,
    CategoryCount,
    ChartOutput,
    GanttChart,
    GanttSection,
    GanttTask,
    LineChart,
    PieChart,
    TimeSeriesPoint,
)
from models.task import Task, stringify_value
from services.chart_service import to_mermaid
from services.graph_service import find_cycles, format_cycle
from utils.date_utils import format_date, parse_date
from config import config

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
METRICS = ("count", "sum", "avg")


@dataclass(frozen=True)
class DateRange:
    """
    Optional date restriction applied before aggregation.

    With `field` set, the task's date in that attribute must fall inside
    [start, end]. Without it, the task's scheduled period must overlap the
    range.
    """

    field: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def active(self) -> bool:
        return bool(self.field) or self.start is not None or self.end is not None

    def contains(self, d: date) -> bool:
        return (self.start is None or d >= self.start) and (self.end is None or d <= self.end)

    def matches(self, task: Task, start_key: str, end_key: str) -> bool:
        if self.field:
            d = parse_date(task.get(self.field))
            return d is not None and self.contains(d)

        task_start = parse_date(task.get(start_key))
        task_end = parse_date(task.get(end_key))
        if task_start is None or task_end is None:
            return False
        return (self.end is None or task_start <= self.end) and (self.start is None or task_end >= self.start)


@dataclass(frozen=True)
class Metric:
    """Value plotted per date on a line chart."""

    name: str = "Tasks"
    aggregation: str = "count"
    attribute_key: Optional[str] = None

    def evaluate(self, tasks: list[Task]) -> float:
        if self.aggregation == "count" or not self.attribute_key:
            return float(len(tasks))

        numbers = []
        for task in tasks:
            try:
                numbers.append(float(task.get(self.attribute_key)))
            except (TypeError, ValueError):
                continue
        if not numbers:
            return 0.0
        if self.aggregation == "sum":
            return sum(numbers)
        return sum(numbers) / len(numbers)


def _category_values(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [stringify_value(v) for v in value]
    if value is None or isinstance(value, dict):
        return []
    return [stringify_value(value)]


class AnalysisService:
    """
    Builds chart DSL objects from tasks.

    Features:
    - Distribution counts for pie and bar charts
    - Time series by date attribute with pluggable metrics
    - Gantt sections grouped by status, with dependency cycle warnings
    """

    def __init__(
        self,
        start_key: str = None,
        end_key: str = None,
        status_key: str = None,
        depends_key: str = None,
        title_key: str = None,
    ):
        self.start_key = start_key or config.START_DATE_KEY
        self.end_key = end_key or config.END_DATE_KEY
        self.status_key = status_key or config.STATUS_KEY
        self.depends_key = depends_key or config.DEPENDS_ON_KEY
        self.title_key = config.TITLE_KEY if title_key is None else title_key

    def _restrict(self, tasks: Iterable[Task], date_range: Optional[DateRange]) -> list[Task]:
        tasks = list(tasks)
        if date_range is None or not date_range.active:
            return tasks
        return [t for t in tasks if date_range.matches(t, self.start_key, self.end_key)]

    def _count_values(self, tasks: list[Task], category: str) -> Counter:
        counts: Counter = Counter()
        for task in tasks:
            if task.has(category):
                counts.update(_category_values(task.get(category)))
        return counts

    def pie_chart(self, tasks: Iterable[Task], category: str, date_range: DateRange = None) -> ChartOutput:
        """Distribution of an attribute's values; list values count each item."""
        counts = self._count_values(self._restrict(tasks, date_range), category)
        dsl = PieChart(
            title=f"{category} Distribution",
            categories=[CategoryCount(label=label, count=count) for label, count in sorted(counts.items())],
        )
        return ChartOutput(mermaid=to_mermaid(dsl), data=dsl)

    def bar_chart(self, tasks: Iterable[Task], category: str, date_range: DateRange = None) -> ChartOutput:
        counts = self._count_values(self._restrict(tasks, date_range), category)
        x_axis = sorted(counts)
        values = [counts[label] for label in x_axis]
        dsl = BarChart(
            title=category,
            x_axis=x_axis,
            values=values,
            y_axis_label="Count",
            max_value=max(values) if values else 0,
        )
        return ChartOutput(mermaid=to_mermaid(dsl), data=dsl)

    def line_chart(
        self,
        tasks: Iterable[Task],
        date_field: str,
        date_range: DateRange = None,
        y_axis_label: str = None,
        metric: Metric = None,
    ) -> ChartOutput:
        """
        Time series of tasks grouped by a date attribute.

        The range's start/end bound the dates; its field is ignored since
        grouping already uses `date_field`.
        """
        by_date: dict[date, list[Task]] = defaultdict(list)
        for task in tasks:
            d = parse_date(task.get(date_field))
            if d is None:
                continue
            if date_range and not date_range.contains(d):
                continue
            by_date[d].append(task)

        series = [
            TimeSeriesPoint(
                date=format_date(d),
                value=metric.evaluate(group) if metric else float(len(group)),
            )
            for d, group in sorted(by_date.items())
        ]
        title = f"{metric.name} by {date_field}" if metric else f"Tasks by {date_field}"
        dsl = LineChart(title=title, y_axis_label=y_axis_label or "Count", series=series)
        return ChartOutput(mermaid=to_mermaid(dsl), data=dsl)

    def gantt_chart(self, tasks: Iterable[Task], date_range: DateRange = None, section_key: str = None) -> ChartOutput:
        """
        Schedule of tasks with valid start and end dates.

        Tasks are sorted by start date and grouped into sections by the
        section attribute (status by default). Dependency cycles among the
        tasks are reported as warnings; they do not prevent the chart.
        """
        all_tasks = list(tasks)
        section_key = self.status_key if section_key is None else section_key

        scheduled = [
            t for t in self._restrict(all_tasks, date_range)
            if parse_date(t.get(self.start_key)) and parse_date(t.get(self.end_key))
        ]
        scheduled.sort(key=lambda t: parse_date(t.get(self.start_key)))

        sections: dict[str, list[GanttTask]] = {}
        for task in scheduled:
            if section_key:
                raw_section = task.get(section_key)
                section = stringify_value(raw_section) if raw_section is not None else UNCATEGORIZED
            else:
                section = "Tasks"
            title = task.get(self.title_key) if self.title_key else None
            deps = task.dependency_ids(self.depends_key)
            status = task.get(self.status_key)
            sections.setdefault(section, []).append(GanttTask(
                id=task.id,
                title=stringify_value(title) if title else task.display_name,
                start=format_date(parse_date(task.get(self.start_key))),
                end=format_date(parse_date(task.get(self.end_key))),
                status=stringify_value(status) if status is not None else None,
                depends_on=deps[0] if deps else None,
            ))

        dsl = GanttChart(
            title=config.CHART_TITLE,
            date_format=config.CHART_DATE_FORMAT,
            sections=[GanttSection(name=name, tasks=rows) for name, rows in sections.items()],
        )

        warnings = [
            f"Dependency cycle: {format_cycle(cycle)}"
            for cycle in find_cycles(all_tasks, self.depends_key)
        ]
        if warnings:
            logger.warning(f"Gantt chart generated with {len(warnings)} dependency cycle(s)")
        return ChartOutput(mermaid=to_mermaid(dsl), data=dsl, warnings=warnings)
