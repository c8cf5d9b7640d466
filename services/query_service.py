"""Sort-then-filter pipeline behind the task browser."""

import logging
from typing import Optional

from models.filters import FilterExpression, SortSpec
from models.task import Task
from services.filter_service import filter_by_tag_values, filter_tasks
from services.sort_service import sort_tasks, sort_tasks_custom

logger = logging.getLogger(__name__)


def query_tasks(
    tasks: list[Task],
    criteria: str = "name-asc",
    sort_spec: Optional[SortSpec] = None,
    expression: Optional[FilterExpression] = None,
    tag_conditions: Optional[dict[str, str]] = None,
    attribute_types: Optional[dict[str, str]] = None,
) -> list[Task]:
    """
    Order and filter a task snapshot.

    A custom sort spec takes precedence over the built-in criteria, and a
    custom filter expression over the built-in tag conditions.
    """
    if sort_spec and sort_spec.keys:
        ordered = sort_tasks_custom(tasks, sort_spec, attribute_types)
    else:
        ordered = sort_tasks(tasks, criteria)

    if expression is not None:
        result = filter_tasks(ordered, expression)
    elif tag_conditions:
        result = filter_by_tag_values(ordered, tag_conditions)
    else:
        result = ordered

    logger.debug(f"Query returned {len(result)} of {len(tasks)} tasks")
    return result
