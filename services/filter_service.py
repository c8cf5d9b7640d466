"""
Evaluation of user-authored filter expressions against tasks.

An attribute that is not set on a task never matches a condition, not even
a `!=` one: incomplete data should not produce false positives.
"""

import logging
import math
import operator
import re
from typing import Any, Callable, Optional

from models.filters import Condition, FilterExpression
from models.task import Task, stringify_value

logger = logging.getLogger(__name__)

_NUMERIC_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def _parse_float(value: Any) -> Optional[float]:
    """Read a leading floating point number, the way a lenient parser would."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(r"\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?", str(value))
    if not match:
        return None
    return float(match.group(0))


def _compare_numeric(value: Any, operand: Any, compare: Callable[[float, float], bool]) -> bool:
    a = _parse_float(value)
    b = _parse_float(operand)
    if a is None or b is None or math.isnan(a) or math.isnan(b):
        return False
    return compare(a, b)


def compare_values(value: Any, op: str, operand: Any) -> bool:
    """
    Compare a task attribute value with a condition operand.

    Unknown operators, unparsable numbers and malformed regular
    expressions all evaluate to False.
    """
    if op in _NUMERIC_OPERATORS:
        return _compare_numeric(value, operand, _NUMERIC_OPERATORS[op])

    if op == "regex":
        try:
            return re.search(str(operand), stringify_value(value), re.IGNORECASE) is not None
        except re.error:
            return False

    value_str = stringify_value(value).lower()
    operand_str = stringify_value(operand).lower()

    if op == "==":
        return value_str == operand_str
    if op == "!=":
        return value_str != operand_str
    if op == "contains":
        return operand_str in value_str
    if op == "starts_with":
        return value_str.startswith(operand_str)
    if op == "ends_with":
        return value_str.endswith(operand_str)
    return False


def evaluate_condition(task: Task, condition: Condition) -> bool:
    """Evaluate one leaf condition. Errors count as no match."""
    if not task.has(condition.attribute_key):
        return False
    try:
        return compare_values(task.get(condition.attribute_key), condition.operator, condition.operand)
    except Exception as e:
        logger.debug(f"Condition {condition} failed on {task.id}: {e}")
        return False


def evaluate(task: Task, expression: Optional[FilterExpression]) -> bool:
    """
    Evaluate a filter expression against one task.

    Args:
        task: Task to test
        expression: Rule tree; None matches every task

    Returns:
        True if the task passes the filter
    """
    if expression is None:
        return True

    if expression.condition is not None:
        return evaluate_condition(task, expression.condition)

    if not expression.children:
        return True

    logical = expression.logical_operator or "AND"
    if logical == "AND":
        return all(evaluate(task, child) for child in expression.children)
    if logical == "OR":
        return any(evaluate(task, child) for child in expression.children)
    if logical == "NOT":
        return not evaluate(task, expression.children[0])
    return False


def filter_tasks(tasks: list[Task], expression: Optional[FilterExpression]) -> list[Task]:
    """
    Keep the tasks that match the expression, preserving order.

    If evaluation fails for the collection as a whole, every task is
    returned so the user still sees their data.
    """
    if expression is None:
        return list(tasks)

    try:
        return [task for task in tasks if evaluate(task, expression)]
    except Exception as e:
        logger.exception(f"Error evaluating filter expression: {e}")
        return list(tasks)


def filter_by_tag_values(tasks: list[Task], conditions: dict[str, str]) -> list[Task]:
    """
    Built-in filter: every attribute in `conditions` must be set and its
    stringified value must contain the given text (case-sensitive).
    """
    result = []
    for task in tasks:
        if all(
            task.has(key) and text in stringify_value(task.get(key))
            for key, text in conditions.items()
        ):
            result.append(task)
    return result
