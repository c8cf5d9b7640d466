"""Data models for the task analytics engine."""

from .task import Task, GanttRow
from .filters import Condition, FilterExpression, SortKey, SortSpec
from .chart import (
    BarChart,
    CategoryCount,
    ChartDSL,
    ChartOutput,
    GanttChart,
    GanttSection,
    GanttTask,
    LineChart,
    PieChart,
    TimeSeriesPoint,
    UnsupportedChartError,
)

__all__ = [
    "Task",
    "GanttRow",
    "Condition",
    "FilterExpression",
    "SortKey",
    "SortSpec",
    "BarChart",
    "CategoryCount",
    "ChartDSL",
    "ChartOutput",
    "GanttChart",
    "GanttSection",
    "GanttTask",
    "LineChart",
    "PieChart",
    "TimeSeriesPoint",
    "UnsupportedChartError",
]
