"""
Task ordering: built-in sort criteria and user-defined multi-key sorts.

Both sorts return a new list and are stable, so fully tied tasks keep
their input order.
"""

import logging
import math
from datetime import datetime, timezone
from functools import cmp_to_key
from typing import Any, Optional

from models.filters import SortKey, SortSpec
from models.task import Task, stringify_value
from utils.date_utils import parse_datetime

logger = logging.getLogger(__name__)

SORT_CRITERIA = ("name-asc", "name-desc", "modified-asc", "modified-desc")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def _compare_strings(a: str, b: str) -> int:
    return (a > b) - (a < b)


def _modified_ts(task: Task) -> float:
    modified = task.modified_at or _EPOCH
    if modified.tzinfo is None:
        modified = modified.replace(tzinfo=timezone.utc)
    return modified.timestamp()


def sort_tasks(tasks: list[Task], criteria: str) -> list[Task]:
    """
    Sort by one of the built-in criteria.

    Args:
        tasks: Tasks to sort
        criteria: name-asc, name-desc (by task id) or modified-asc,
                  modified-desc (by modification time)

    Returns:
        New sorted list; unknown criteria keep the input order
    """
    if criteria == "name-asc":
        return sorted(tasks, key=lambda t: t.id)
    if criteria == "name-desc":
        return sorted(tasks, key=lambda t: t.id, reverse=True)
    if criteria == "modified-asc":
        return sorted(tasks, key=_modified_ts)
    if criteria == "modified-desc":
        return sorted(tasks, key=_modified_ts, reverse=True)
    return list(tasks)


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return math.nan


def _compare_custom_order(a: Any, b: Any, custom_order: tuple[str, ...]) -> int:
    a_str, b_str = stringify_value(a), stringify_value(b)
    index_a = custom_order.index(a_str) if a_str in custom_order else -1
    index_b = custom_order.index(b_str) if b_str in custom_order else -1

    if index_a != -1 and index_b != -1:
        return _sign(index_a - index_b)
    if index_a != -1:
        return -1
    if index_b != -1:
        return 1
    return _compare_strings(a_str, b_str)


def _compare_typed(a: Any, b: Any, attribute_type: Optional[str]) -> int:
    if attribute_type == "Number":
        num_a, num_b = _to_number(a), _to_number(b)
        if math.isnan(num_a) or math.isnan(num_b):
            return 0
        return _sign(num_a - num_b)

    if attribute_type == "Date":
        return _sign((parse_datetime(a) - parse_datetime(b)).total_seconds())

    return _compare_strings(stringify_value(a), stringify_value(b))


def _is_present(task: Task, key: SortKey, attribute_type: Optional[str]) -> bool:
    if not task.has(key.attribute_key):
        return False
    # An unparsable date counts as no date
    if attribute_type == "Date" and not key.custom_order:
        return parse_datetime(task.get(key.attribute_key)) is not None
    return True


def compare_by_key(a: Task, b: Task, key: SortKey, attribute_types: dict[str, str]) -> int:
    """
    Compare two tasks on a single sort key.

    A missing value always sorts last, whichever the direction.
    """
    attribute_type = attribute_types.get(key.attribute_key)
    has_a = _is_present(a, key, attribute_type)
    has_b = _is_present(b, key, attribute_type)
    if not has_a and not has_b:
        return 0
    if not has_a:
        return 1
    if not has_b:
        return -1

    value_a = a.get(key.attribute_key)
    value_b = b.get(key.attribute_key)

    if key.custom_order:
        comparison = _compare_custom_order(value_a, value_b, key.custom_order)
    else:
        comparison = _compare_typed(value_a, value_b, attribute_type)

    return -comparison if key.descending else comparison


def sort_tasks_custom(
    tasks: list[Task],
    spec: Optional[SortSpec],
    attribute_types: dict[str, str] = None,
) -> list[Task]:
    """
    Sort by a user-defined multi-key specification.

    Args:
        tasks: Tasks to sort (not modified)
        spec: Sort keys, primary first
        attribute_types: Declared type per attribute (Number, Date, ...)

    Returns:
        New sorted list; the input order if the spec is empty or sorting
        fails
    """
    if not spec or not spec.keys:
        return list(tasks)

    types = attribute_types or {}

    def compare(a: Task, b: Task) -> int:
        for key in spec.keys:
            comparison = compare_by_key(a, b, key, types)
            if comparison != 0:
                return comparison
        return 0

    try:
        return sorted(tasks, key=cmp_to_key(compare))
    except Exception as e:
        logger.exception(f"Error applying custom sort: {e}")
        return list(tasks)
