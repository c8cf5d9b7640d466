"""
Filter and sort definitions authored by the user.

These are persisted by the settings store as plain dictionaries and loaded
with `from_dict`. Loading is lenient: unknown or missing fields degrade to
harmless defaults rather than raising, so one broken definition never
prevents the task list from rendering.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

COMPARISON_OPERATORS = (
    "==", "!=", ">", "<", ">=", "<=",
    "contains", "starts_with", "ends_with", "regex",
)
LOGICAL_OPERATORS = ("AND", "OR", "NOT")
SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class Condition:
    """Leaf comparison of one task attribute against an operand."""

    attribute_key: str
    operator: str
    operand: Any

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Condition":
        return cls(
            attribute_key=str(data.get("attribute_key", data.get("tagKey", ""))),
            operator=str(data.get("operator", "==")),
            operand=data.get("operand", data.get("value")),
        )


@dataclass(frozen=True)
class FilterExpression:
    """
    Boolean rule tree node.

    Either `condition` is set (leaf) or `children` are combined with
    `logical_operator`. A node with children and no operator is an AND.
    """

    condition: Optional[Condition] = None
    logical_operator: Optional[str] = None
    children: tuple["FilterExpression", ...] = ()

    @classmethod
    def leaf(cls, attribute_key: str, operator: str, operand: Any) -> "FilterExpression":
        return cls(condition=Condition(attribute_key, operator, operand))

    @classmethod
    def all_of(cls, *children: "FilterExpression") -> "FilterExpression":
        return cls(logical_operator="AND", children=tuple(children))

    @classmethod
    def any_of(cls, *children: "FilterExpression") -> "FilterExpression":
        return cls(logical_operator="OR", children=tuple(children))

    @classmethod
    def negate(cls, child: "FilterExpression") -> "FilterExpression":
        return cls(logical_operator="NOT", children=(child,))

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["FilterExpression"]:
        """
        Build an expression tree from its stored form.

        Accepts both `children` and the older `expressions` key. Returns
        None for an empty definition.
        """
        if not data or not isinstance(data, dict):
            return None

        condition = data.get("condition")
        raw_children = data.get("children", data.get("expressions"))
        if not isinstance(raw_children, (list, tuple)):
            raw_children = []
        children = tuple(
            child for child in (cls.from_dict(c) for c in raw_children if isinstance(c, dict))
            if child is not None
        )
        operator = data.get("logical_operator", data.get("logicalOperator"))

        return cls(
            condition=Condition.from_dict(condition) if isinstance(condition, dict) else None,
            logical_operator=str(operator).upper() if operator else None,
            children=children,
        )


@dataclass(frozen=True)
class SortKey:
    """One attribute in a multi-key sort."""

    attribute_key: str
    direction: str = "asc"
    custom_order: tuple[str, ...] = ()

    @property
    def descending(self) -> bool:
        return self.direction == "desc"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SortKey":
        direction = str(data.get("direction", data.get("order", "asc"))).lower()
        custom_order = data.get("custom_order", data.get("customOrder"))
        if not isinstance(custom_order, (list, tuple)):
            custom_order = ()
        return cls(
            attribute_key=str(data.get("attribute_key", data.get("tagKey", ""))),
            direction=direction if direction in SORT_DIRECTIONS else "asc",
            custom_order=tuple(str(v) for v in custom_order),
        )


@dataclass(frozen=True)
class SortSpec:
    """Ordered sort keys; the first key is primary."""

    keys: tuple[SortKey, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, *keys: SortKey) -> "SortSpec":
        return cls(keys=tuple(keys))

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["SortSpec"]:
        if not data or not isinstance(data, dict):
            return None
        raw_keys = data.get("keys", data.get("sortKeys"))
        if not isinstance(raw_keys, (list, tuple)):
            raw_keys = []
        return cls(keys=tuple(SortKey.from_dict(k) for k in raw_keys if isinstance(k, dict)))
