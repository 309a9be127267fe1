"""Visibility evaluator for ``visibleIf`` condition lists.

Pure and stateless: safe to call on every record change from any thread.
Conditions are AND-combined; there is no OR.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

from orgschema.core.types import ConditionExpr, ConditionOperator
from orgschema.exceptions import UnknownOperatorError

RecordContext = Mapping[str, Any]

# Stands for a field absent from the record, as distinct from None
MISSING = object()

OPERATOR_LABELS = {
    ConditionOperator.EQ: "equals",
    ConditionOperator.NE: "not equals",
    ConditionOperator.GT: "greater than",
    ConditionOperator.LT: "less than",
    ConditionOperator.GTE: "greater than or equal",
    ConditionOperator.LTE: "less than or equal",
    ConditionOperator.IN: "is in",
    ConditionOperator.INCLUDES: "includes",
    ConditionOperator.CONTAINS: "contains",
    ConditionOperator.STARTS_WITH: "starts with",
}


def parse_operator(op: Any) -> ConditionOperator:
    """Resolve an operator value.

    Raises:
        UnknownOperatorError: If ``op`` is not a supported operator
    """
    try:
        return ConditionOperator(op)
    except ValueError as e:
        raise UnknownOperatorError(str(op), ConditionOperator.values()) from e


# Decimal literals accepted by JavaScript's Number(); Python-only spellings
# such as "inf", "nan" or "1_000" are not numbers here
_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_RADIX_RE = re.compile(r"0([xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)")
_RADIX_BASES = {"x": 16, "o": 8, "b": 2}


def _parse_numeric_text(text: str) -> float:
    text = text.strip()
    if not text:
        return 0.0
    if _DECIMAL_RE.fullmatch(text):
        return float(text)
    if text in ("Infinity", "+Infinity"):
        return math.inf
    if text == "-Infinity":
        return -math.inf
    if _RADIX_RE.fullmatch(text):
        return float(int(text[2:], _RADIX_BASES[text[1].lower()]))
    return math.nan


def to_number(value: Any) -> float:
    """Numeric coercion used by ordering comparisons, following JavaScript's Number().

    - missing values, non-numeric text and objects are NaN
    - None, blank text and the empty list are 0
    - booleans are 0 or 1
    - a one-element list coerces its element the way its text form would
    """
    if value is MISSING:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return _parse_numeric_text(value)
    if isinstance(value, list):
        if not value:
            return 0.0
        if len(value) == 1 and not isinstance(value[0], bool):
            item = value[0]
            return 0.0 if item is None else to_number(item)
    return math.nan


def strict_equals(left: Any, right: Any) -> bool:
    """Value equality without coercion across string/number/bool."""
    if left is MISSING:
        return False
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return bool(left == right)


def _member(value: Any, items: Iterable[Any]) -> bool:
    return any(strict_equals(value, item) for item in items)


def compare(left: Any, op: ConditionOperator | str, right: Any) -> bool:
    """Apply one operator to a resolved left value and a literal right value."""
    op = parse_operator(op)
    if op == ConditionOperator.EQ:
        return strict_equals(left, right)
    if op == ConditionOperator.NE:
        return not strict_equals(left, right)
    if op in (ConditionOperator.GT, ConditionOperator.LT, ConditionOperator.GTE, ConditionOperator.LTE):
        a, b = to_number(left), to_number(right)
        # NaN makes every ordering comparison false
        if op == ConditionOperator.GT:
            return a > b
        if op == ConditionOperator.LT:
            return a < b
        if op == ConditionOperator.GTE:
            return a >= b
        return a <= b
    if op == ConditionOperator.IN:
        return isinstance(right, list) and _member(left, right)
    if op == ConditionOperator.INCLUDES:
        if isinstance(left, list) and isinstance(right, list):
            return any(_member(item, right) for item in left)
        return False
    if op == ConditionOperator.CONTAINS:
        return isinstance(left, str) and isinstance(right, str) and right in left
    # STARTS_WITH
    return isinstance(left, str) and isinstance(right, str) and left.startswith(right)


def _coerce_condition(condition: ConditionExpr | Mapping[str, Any]) -> tuple[str, ConditionOperator, Any]:
    if isinstance(condition, ConditionExpr):
        return condition.left, ConditionOperator(condition.op), condition.right
    return str(condition.get("left")), parse_operator(condition.get("op")), condition.get("right")


def evaluate_condition(condition: ConditionExpr | Mapping[str, Any], record: RecordContext) -> bool:
    """Evaluate a single condition against the record context."""
    left_name, op, right = _coerce_condition(condition)
    left = record.get(left_name, MISSING)
    return compare(left, op, right)


def evaluate(
    conditions: Iterable[ConditionExpr | Mapping[str, Any]] | None,
    record: RecordContext,
) -> bool:
    """Evaluate an AND-combined condition list.

    An empty or missing list is always visible.

    Raises:
        UnknownOperatorError: If a condition uses an unsupported operator
    """
    if not conditions:
        return True
    return all(evaluate_condition(condition, record) for condition in conditions)


def condition_fields(conditions: Iterable[ConditionExpr] | None) -> list[str]:
    """Field API names referenced on the left side of conditions."""
    return [c.left for c in conditions or []]


def build_condition(field_api_name: str, op: ConditionOperator | str, value: Any) -> ConditionExpr:
    return ConditionExpr(left=field_api_name, op=parse_operator(op), right=value)


def format_condition(condition: ConditionExpr, field_label: str | None = None) -> str:
    """Describe a condition for display, e.g. ``Stage is in Negotiation, Closed Won``."""
    op = ConditionOperator(condition.op)
    right = condition.right
    right_display = ", ".join(str(v) for v in right) if isinstance(right, list) else str(right)
    return f"{field_label or condition.left} {OPERATOR_LABELS[op]} {right_display}"
