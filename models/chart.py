"""
Chart DSL: the renderer-agnostic description of a chart's data.

A chart is one of four variants (pie, bar, line, gantt), tagged by its
`type` field when serialized. The DSL is the single hand-off artifact
between the analytics aggregation and the chart transformer.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, ClassVar, Optional, Union


class UnsupportedChartError(ValueError):
    """Raised for a chart DSL whose type is not pie, bar, line or gantt."""


@dataclass
class CategoryCount:
    label: str
    count: float


@dataclass
class TimeSeriesPoint:
    date: str
    value: float


@dataclass
class GanttTask:
    id: str
    title: str
    start: str
    end: str
    status: Optional[str] = None
    depends_on: Optional[str] = None


@dataclass
class GanttSection:
    name: str
    tasks: list[GanttTask] = field(default_factory=list)


@dataclass
class PieChart:
    type: ClassVar[str] = "pie"

    title: str
    categories: list[CategoryCount] = field(default_factory=list)


@dataclass
class BarChart:
    """
    Bar chart data. Either `categories` or the parallel `x_axis` and
    `values` lists are filled in.
    """

    type: ClassVar[str] = "bar"

    title: str
    categories: Optional[list[CategoryCount]] = None
    x_axis: Optional[list[str]] = None
    values: Optional[list[float]] = None
    y_axis_label: Optional[str] = None
    max_value: Optional[float] = None


@dataclass
class LineChart:
    type: ClassVar[str] = "line"

    title: str
    y_axis_label: str = "Count"
    series: list[TimeSeriesPoint] = field(default_factory=list)


@dataclass
class GanttChart:
    type: ClassVar[str] = "gantt"

    title: str
    date_format: str = "YYYY-MM-DD"
    sections: list[GanttSection] = field(default_factory=list)


ChartDSL = Union[PieChart, BarChart, LineChart, GanttChart]


def chart_to_dict(chart: ChartDSL) -> dict[str, Any]:
    """Serialize a chart with its `type` tag."""
    return {"type": chart.type, **asdict(chart)}


def _categories(raw: Optional[list[dict]]) -> Optional[list[CategoryCount]]:
    if raw is None:
        return None
    return [CategoryCount(label=str(c["label"]), count=c["count"]) for c in raw]


def chart_from_dict(data: dict[str, Any]) -> ChartDSL:
    """
    Deserialize a tagged chart dictionary.

    Raises:
        UnsupportedChartError: If `type` is not a known chart variant
    """
    chart_type = data.get("type")
    title = data.get("title", "")

    if chart_type == "pie":
        return PieChart(title=title, categories=_categories(data.get("categories")) or [])
    if chart_type == "bar":
        return BarChart(
            title=title,
            categories=_categories(data.get("categories")),
            x_axis=data.get("x_axis"),
            values=data.get("values"),
            y_axis_label=data.get("y_axis_label"),
            max_value=data.get("max_value"),
        )
    if chart_type == "line":
        return LineChart(
            title=title,
            y_axis_label=data.get("y_axis_label", "Count"),
            series=[TimeSeriesPoint(date=str(p["date"]), value=p["value"]) for p in data.get("series", [])],
        )
    if chart_type == "gantt":
        return GanttChart(
            title=title,
            date_format=data.get("date_format", "YYYY-MM-DD"),
            sections=[
                GanttSection(
                    name=s.get("name", ""),
                    tasks=[GanttTask(**t) for t in s.get("tasks", [])],
                )
                for s in data.get("sections", [])
            ],
        )
    raise UnsupportedChartError(f"Unsupported chart type: {chart_type}")


@dataclass
class ChartOutput:
    """
    Result of a chart generation: the DSL, its Mermaid rendering and any
    warnings (such as dependency cycles) to show alongside it.
    """

    mermaid: str
    data: ChartDSL
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mermaid": self.mermaid,
            "data": chart_to_dict(self.data),
            "warnings": list(self.warnings),
        }
