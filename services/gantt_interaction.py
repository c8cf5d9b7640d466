"""
Drag interaction for the editable Gantt timeline.

Every bar gets two handles: a move handle covering the bar, which shifts
start and end together, and a resize handle on the end edge, which changes
only the end. Mapping between data space (time, row index) and pixels is
delegated to the host surface through a CoordinateApi.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from models.task import GanttRow

logger = logging.getLogger(__name__)

Point = tuple[float, float]
UpdateHandler = Callable[[str, int, int], None]

BAR_HEIGHT_RATIO = 0.6
RESIZE_HANDLE_WIDTH = 10


class CoordinateApi(Protocol):
    """Data/pixel conversion provided by the charting surface."""

    def coord(self, point: Point) -> Point:
        """(time, row index) -> (x, y) pixel of the row's center line."""
        ...

    def size(self, delta: Point) -> Point:
        """Data-space delta -> pixel delta."""
        ...

    def convert_from_pixel(self, pixel: Point) -> Point:
        """(x, y) pixel -> (time, row index)."""
        ...


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class DragHandle:
    """
    An invisible, draggable rectangle laid over a Gantt bar.

    `x`/`y` is the top-left corner in pixels. The host moves the handle
    and calls `drag_to` on every drag frame.
    """

    kind: str
    task_id: str
    x: float
    y: float
    width: float
    height: float
    cursor: str
    z: int
    _on_drag: Callable[["DragHandle"], None] = field(repr=False, compare=False, default=None)

    def drag_to(self, x: float, y: float):
        """Move the handle to a new pixel position and report the update."""
        self.x, self.y = x, y
        if self._on_drag:
            self._on_drag(self)

    def drag_by(self, dx: float, dy: float = 0.0):
        self.drag_to(self.x + dx, self.y + dy)

    def to_graphic(self) -> dict[str, Any]:
        """Serializable element description for the renderer."""
        return {
            "type": "rect",
            "id": f"{self.task_id}:{self.kind}",
            "position": [self.x, self.y],
            "shape": {"width": self.width, "height": self.height},
            "style": {"fill": "rgba(0,0,0,0)", "cursor": self.cursor},
            "draggable": True,
            "z": self.z,
        }


def create_move_handle(
    row: GanttRow,
    row_index: int,
    api: CoordinateApi,
    on_update: UpdateHandler,
) -> DragHandle:
    """
    Create the handle that moves a whole bar.

    The duration is captured once here, so repeated rounding of the start
    during a drag never changes the bar's length.
    """
    start_pos = api.coord((row.start_time, row_index))
    end_pos = api.coord((row.end_time, row_index))
    bar_height = api.size((0, 1))[1] * BAR_HEIGHT_RATIO
    duration = row.end_time - row.start_time
    task_id = row.task_id

    def on_drag(handle: DragHandle):
        new_pos = api.convert_from_pixel((handle.x, handle.y + bar_height / 2))
        new_start = _round_half_up(new_pos[0])
        on_update(task_id, new_start, new_start + duration)

    return DragHandle(
        kind="move",
        task_id=task_id,
        x=start_pos[0],
        y=start_pos[1] - bar_height / 2,
        width=end_pos[0] - start_pos[0],
        height=bar_height,
        cursor="move",
        z=100,
        _on_drag=on_drag,
    )


def create_resize_handle(
    row: GanttRow,
    row_index: int,
    api: CoordinateApi,
    on_update: UpdateHandler,
) -> DragHandle:
    """
    Create the handle on a bar's end edge.

    Frames that would put the end at or before the start are dropped.
    """
    end_pos = api.coord((row.end_time, row_index))
    bar_height = api.size((0, 1))[1] * BAR_HEIGHT_RATIO
    start_time = row.start_time
    task_id = row.task_id

    def on_drag(handle: DragHandle):
        new_pos = api.convert_from_pixel((handle.x + RESIZE_HANDLE_WIDTH / 2, handle.y + bar_height / 2))
        new_end = _round_half_up(new_pos[0])
        if new_end > start_time:
            on_update(task_id, start_time, new_end)
        else:
            logger.debug(f"Ignored resize of {task_id}: end {new_end} not after start {start_time}")

    return DragHandle(
        kind="resize",
        task_id=task_id,
        x=end_pos[0] - RESIZE_HANDLE_WIDTH / 2,
        y=end_pos[1] - bar_height / 2,
        width=RESIZE_HANDLE_WIDTH,
        height=bar_height,
        cursor="ew-resize",
        z=101,
        _on_drag=on_drag,
    )


def create_handles(
    rows: list[GanttRow],
    api: CoordinateApi,
    on_update: UpdateHandler,
) -> list[DragHandle]:
    """Move and resize handles for every visible row, in row order."""
    handles = []
    for index, row in enumerate(rows):
        handles.append(create_move_handle(row, index, api, on_update))
        handles.append(create_resize_handle(row, index, api, on_update))
    return handles


class LinearCoordinateApi:
    """
    Linear time axis with fixed-height row bands.

    Used by hosts that lay the timeline out themselves and in tests.
    """

    def __init__(
        self,
        origin_time: float,
        ms_per_pixel: float,
        band_height: float = 40.0,
        grid_left: float = 0.0,
        grid_top: float = 0.0,
    ):
        if ms_per_pixel <= 0:
            raise ValueError("ms_per_pixel must be positive")
        self.origin_time = origin_time
        self.ms_per_pixel = ms_per_pixel
        self.band_height = band_height
        self.grid_left = grid_left
        self.grid_top = grid_top

    @classmethod
    def fit(cls, rows: list[GanttRow], width: float, band_height: float = 40.0) -> Optional["LinearCoordinateApi"]:
        """Scale the time axis so every row fits in `width` pixels."""
        if not rows or width <= 0:
            return None
        start = min(r.start_time for r in rows)
        end = max(r.end_time for r in rows)
        return cls(origin_time=start, ms_per_pixel=(end - start) / width, band_height=band_height)

    def coord(self, point: Point) -> Point:
        time, index = point
        return (
            self.grid_left + (time - self.origin_time) / self.ms_per_pixel,
            self.grid_top + (index + 0.5) * self.band_height,
        )

    def size(self, delta: Point) -> Point:
        return (delta[0] / self.ms_per_pixel, delta[1] * self.band_height)

    def convert_from_pixel(self, pixel: Point) -> Point:
        x, y = pixel
        return (
            self.origin_time + (x - self.grid_left) * self.ms_per_pixel,
            (y - self.grid_top) / self.band_height - 0.5,
        )
