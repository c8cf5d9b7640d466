"""
Chart DSL transformation into interactive Plotly figures.

Each DSL variant has its own transform; the output is the Plotly figure
dictionary (`data` + `layout`) that the dashboard hands to Plotly.js.
Outputs are plain JSON: before leaving this module they are deep-cloned
through a JSON round trip and checked for embedded script.
"""

import json
import logging
import math
from typing import Any

import plotly.graph_objects as go
import plotly.io as pio
from plotly.utils import PlotlyJSONEncoder

from models.chart import (
    BarChart,
    ChartDSL,
    GanttChart,
    LineChart,
    PieChart,
    UnsupportedChartError,
)
from utils.date_utils import duration_days, from_epoch_ms, month_day_label, parse_datetime, to_epoch_ms
from config import config

logger = logging.getLogger(__name__)

# Status palette for Gantt bars (lower-cased status -> color)
STATUS_COLORS = {
    "done": "#67C23A",
    "completed": "#67C23A",
    "progress": "#409EFF",
    "in-progress": "#409EFF",
    "todo": "#909399",
    "pending": "#909399",
    "blocked": "#F56C6C",
    "cancelled": "#909399",
    "unknown": "#C0C4CC",
}

# Substrings that mark an option as carrying executable content
UNSAFE_MARKERS = ("function(", "eval(", "Function(")


class UnsafeChartOptionError(ValueError):
    """Raised when a render option carries executable content."""


def init_chart_defaults(template: str = None):
    """
    Set the Plotly default template used by figures that do not name one.

    Called once by the host at startup.
    """
    pio.templates.default = template or config.CHART_TEMPLATE
    logger.debug(f"Plotly default template set to {pio.templates.default}")


def format_value(value: float) -> str:
    """Integers as-is, fractional values to two decimal places."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def sanitize_option(option: dict[str, Any]) -> dict[str, Any]:
    """Deep-clone an option through JSON, dropping anything non-serializable."""
    return json.loads(json.dumps(option, cls=PlotlyJSONEncoder))


def validate_option(option: dict[str, Any]) -> tuple[bool, str]:
    """
    Validate a render option for common issues.

    Returns:
        (valid, error message)
    """
    if not option:
        return False, "Option is empty"
    if not isinstance(option.get("data"), list) or not option["data"]:
        return False, "Series array is missing or empty"

    option_str = json.dumps(option, cls=PlotlyJSONEncoder)
    if any(marker in option_str for marker in UNSAFE_MARKERS):
        return False, "Option contains potentially malicious code"
    if "http://" in option_str or "https://" in option_str:
        logger.warning("Chart option contains external URLs")
    return True, ""


class ChartService:
    """
    Transforms chart DSL objects into Plotly figure options.

    Features:
    - Pie, bar, line and Gantt variants
    - Status color coding for Gantt bars
    - JSON-only output, checked for embedded script
    """

    def __init__(
        self,
        template: str = None,
        height: int = None,
        status_colors: dict[str, str] = None,
    ):
        """
        Initialize the ChartService.

        Args:
            template: Plotly layout template name
            height: Default figure height in pixels
            status_colors: Overrides for the Gantt status palette
        """
        self.template = template or config.CHART_TEMPLATE
        self.height = height or config.CHART_HEIGHT
        self.status_colors = {**STATUS_COLORS, **(status_colors or config.get_status_colors())}

    def transform(self, dsl: ChartDSL) -> dict[str, Any]:
        """
        Transform a chart DSL into a Plotly figure dictionary.

        Raises:
            UnsupportedChartError: If the DSL is not a pie, bar, line or
                gantt chart
        """
        if isinstance(dsl, PieChart):
            fig = self._transform_pie(dsl)
        elif isinstance(dsl, BarChart):
            fig = self._transform_bar(dsl)
        elif isinstance(dsl, LineChart):
            fig = self._transform_line(dsl)
        elif isinstance(dsl, GanttChart):
            fig = self._transform_gantt(dsl)
        else:
            raise UnsupportedChartError(f"Unsupported chart type: {getattr(dsl, 'type', type(dsl).__name__)}")
        return fig.to_dict()

    def render(self, dsl: ChartDSL) -> dict[str, Any]:
        """
        Transform, sanitize and check a chart for hand-off to the renderer.

        Raises:
            UnsupportedChartError: For an unknown DSL variant
            UnsafeChartOptionError: If the option carries executable content
        """
        option = sanitize_option(self.transform(dsl))
        valid, error = validate_option(option)
        if not valid:
            if "malicious" in error:
                raise UnsafeChartOptionError(error)
            logger.info(f"Chart '{dsl.title}' has no data: {error}")
        return option

    def to_json(self, dsl: ChartDSL) -> str:
        """Render a chart as JSON for embedding in HTML."""
        return json.dumps(self.render(dsl), cls=PlotlyJSONEncoder)

    def _base_layout(self, title: str, **kwargs) -> dict[str, Any]:
        return dict(
            template=self.template,
            title=dict(text=title, x=0.5, xanchor='center', font=dict(size=18, color='#2c3e50')),
            paper_bgcolor='white',
            height=self.height,
            margin=dict(l=40, r=40, t=60, b=60),
            **kwargs,
        )

    def _transform_pie(self, dsl: PieChart) -> go.Figure:
        fig = go.Figure(go.Pie(
            name=dsl.title or 'Distribution',
            labels=[c.label for c in dsl.categories],
            values=[c.count for c in dsl.categories],
            hole=0.4,
            sort=False,
            texttemplate='%{label}: %{value} (%{percent})',
            hovertemplate='%{label}: %{value} (%{percent})<extra></extra>',
            marker=dict(line=dict(color='#ffffff', width=2)),
        ))
        fig.update_layout(**self._base_layout(
            dsl.title or 'Pie Chart',
            showlegend=True,
            legend=dict(orientation='v', x=0, xanchor='left', y=1),
        ))
        return fig

    def _transform_bar(self, dsl: BarChart) -> go.Figure:
        # Handle both formats: categories or x_axis/values
        labels: list[str] = []
        values: list[float] = []
        if dsl.categories:
            labels = [c.label for c in dsl.categories]
            values = [c.count for c in dsl.categories]
        elif dsl.x_axis is not None and dsl.values is not None:
            labels = list(dsl.x_axis)
            values = list(dsl.values)

        yaxis = dict(title=dsl.y_axis_label or '', gridcolor='#e0e0e0')
        if dsl.max_value:
            yaxis['range'] = [0, dsl.max_value]

        fig = go.Figure(go.Bar(
            name=dsl.title or 'Count',
            x=labels,
            y=values,
            width=0.6,
            marker=dict(color='#3498db'),
            hovertemplate='%{x}: %{y}<extra></extra>',
        ))
        fig.update_layout(**self._base_layout(
            dsl.title or 'Bar Chart',
            xaxis=dict(type='category'),
            yaxis=yaxis,
            showlegend=False,
        ))
        return fig

    def _transform_line(self, dsl: LineChart) -> go.Figure:
        # The producer does not guarantee date order
        def sort_key(point):
            parsed = parse_datetime(point.date)
            return (parsed is None, parsed.timestamp() if parsed else 0.0)

        points = sorted(dsl.series, key=sort_key)
        metric_name = dsl.y_axis_label or 'Count'
        dates = [p.date for p in points]

        fig = go.Figure(go.Scatter(
            name=metric_name,
            x=dates,
            y=[p.value for p in points],
            customdata=[format_value(p.value) for p in points],
            mode='lines+markers',
            line=dict(shape='spline', color='#3498db'),
            fill='tozeroy',
            hovertemplate='%{x}<br>' + metric_name + ': %{customdata}<extra></extra>',
        ))
        fig.update_layout(**self._base_layout(
            dsl.title or 'Line Chart',
            xaxis=dict(
                type='category',
                tickmode='array',
                tickvals=dates,
                ticktext=[month_day_label(d) for d in dates],
            ),
            yaxis=dict(title=metric_name, gridcolor='#e0e0e0'),
            hovermode='x unified',
            showlegend=False,
        ))
        return fig

    def _gantt_rows(self, dsl: GanttChart) -> list[dict[str, Any]]:
        """Flatten sections into drawable rows, dropping malformed ones."""
        rows = []
        for section in dsl.sections:
            for task in section.tasks:
                start_ms = to_epoch_ms(task.start)
                end_ms = to_epoch_ms(task.end)
                if start_ms is None or end_ms is None or end_ms <= start_ms:
                    logger.debug(f"Dropped gantt row {task.id}: invalid dates {task.start!r} - {task.end!r}")
                    continue
                rows.append({
                    "id": task.id,
                    "name": task.title,
                    "start_ms": start_ms,
                    "end_ms": end_ms,
                    "status": (task.status or 'unknown').lower(),
                    "section": section.name,
                })
        return rows

    def _transform_gantt(self, dsl: GanttChart) -> go.Figure:
        rows = self._gantt_rows(dsl)
        title = dsl.title or 'Gantt Chart'

        if not rows:
            return self._generate_empty_chart(title)

        fig = go.Figure()
        legend_added = set()

        for row in rows:
            status = row["status"]
            color = self.status_colors.get(status, self.status_colors["unknown"])
            start = from_epoch_ms(row["start_ms"])
            end = from_epoch_ms(row["end_ms"])
            days = duration_days(row["start_ms"], row["end_ms"])

            hover_text = (
                f"<b>{row['id']}</b><br>"
                f"Title: {row['name']}<br>"
                f"Start: {start.strftime('%Y-%m-%d')}<br>"
                f"End: {end.strftime('%Y-%m-%d')}<br>"
                f"Duration: {days} days<br>"
                f"Status: {status}"
            )
            if row["section"]:
                hover_text += f"<br>Section: {row['section']}"

            # Show in legend only once per status
            show_legend = status not in legend_added
            legend_added.add(status)

            fig.add_trace(go.Scatter(
                x=[start.isoformat(), end.isoformat()],
                y=[row["id"], row["id"]],
                mode='lines+text',
                line=dict(color=color, width=20),
                text=['', f"{start.month}/{start.day} - {end.month}/{end.day} ({days}d)"],
                textposition='middle right',
                hovertemplate=hover_text + "<extra></extra>",
                name=status,
                legendgroup=status,
                showlegend=show_legend,
                customdata=[row["id"], row["id"]],
            ))

        fig.update_layout(**self._base_layout(
            title,
            xaxis=dict(
                type='date',
                gridcolor='#e0e0e0',
                showgrid=True,
                rangeslider=dict(visible=True),
            ),
            yaxis=dict(
                type='category',
                categoryorder='array',
                categoryarray=[row["id"] for row in rows],
                tickmode='array',
                tickvals=[row["id"] for row in rows],
                ticktext=[row["name"] for row in rows],
                autorange='reversed',  # First row at the top
                showgrid=False,
            ),
            legend=dict(orientation='h', yanchor='bottom', y=1.02, xanchor='right', x=1, title='Status'),
        ))
        fig.update_layout(height=max(self.height, len(rows) * 40 + 150))
        return fig

    def _generate_empty_chart(self, title: str) -> go.Figure:
        """Generate a placeholder chart when no rows are drawable."""
        fig = go.Figure()
        fig.add_annotation(
            text="No tasks with valid dates found",
            xref="paper",
            yref="paper",
            x=0.5,
            y=0.5,
            showarrow=False,
            font=dict(size=16, color='#7f8c8d')
        )
        fig.update_layout(**self._base_layout(
            title,
            xaxis=dict(visible=False),
            yaxis=dict(visible=False),
        ))
        fig.update_layout(height=300)
        return fig


def _mermaid_label(text: str) -> str:
    return text.replace('"', "'")


def to_mermaid(dsl: ChartDSL) -> str:
    """
    Render a chart DSL as Mermaid text, the sibling output shown in the
    editor preview.

    Raises:
        UnsupportedChartError: For an unknown DSL variant
    """
    if isinstance(dsl, GanttChart):
        lines = ["gantt", f"    dateFormat  {dsl.date_format}", f"    title       {dsl.title}", ""]
        for section in dsl.sections:
            lines.append(f"    section {section.name}")
            for task in section.tasks:
                if task.depends_on:
                    dep_id = task.depends_on.replace("-", "_").replace(" ", "_")
                    lines.append(f"    {task.title} :after {dep_id}, {task.start}~{task.end}")
                else:
                    lines.append(f"    {task.title} :{task.start}, {task.end}")
        return "\n".join(lines)

    if isinstance(dsl, PieChart):
        lines = ["pie", f"    title {dsl.title}"]
        lines.extend(f'    "{_mermaid_label(c.label)}" : {c.count}' for c in dsl.categories)
        return "\n".join(lines)

    if isinstance(dsl, LineChart):
        labels = ", ".join(f'"{month_day_label(p.date)}"' for p in dsl.series)
        max_value = max([p.value for p in dsl.series] + [0])
        values = ", ".join(
            str(int(p.value)) if float(p.value).is_integer() else f"{p.value:.1f}"
            for p in dsl.series
        )
        return "\n".join([
            "xychart-beta",
            f'    title "{_mermaid_label(dsl.title)}"',
            f"    x-axis [{labels}]",
            f'    y-axis "{_mermaid_label(dsl.y_axis_label)}" 0 --> {math.ceil(max_value) + 5}',
            f"    line [{values}]",
        ])

    if isinstance(dsl, BarChart):
        if dsl.categories:
            labels = [c.label for c in dsl.categories]
            values = [c.count for c in dsl.categories]
        else:
            labels = list(dsl.x_axis or [])
            values = list(dsl.values or [])
        max_value = dsl.max_value if dsl.max_value is not None else max(values + [0])
        return "\n".join([
            "xychart-beta",
            f'    title "{_mermaid_label(dsl.title)}"',
            "    x-axis [" + ", ".join(f'"{_mermaid_label(l)}"' for l in labels) + "]",
            f'    y-axis "{_mermaid_label(dsl.y_axis_label or "Count")}" 0 --> {format_value(max_value + 5)}',
            "    bar [" + ", ".join(format_value(v) for v in values) + "]",
        ])

    raise UnsupportedChartError(f"Unsupported chart type: {getattr(dsl, 'type', type(dsl).__name__)}")
