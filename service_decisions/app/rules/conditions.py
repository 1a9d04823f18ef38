"""
Condition evaluation for policy eligibility.

Conditions are AND-ed together: all must match for a policy to apply.
Every operator fails closed, so malformed bundle data can only narrow
eligibility, never widen it.
"""

import re
from enum import Enum
from numbers import Number
from typing import Any, Dict, List, Sequence

from shared.logging import get_logger
from ..models import BundleCondition

logger = get_logger("decisions.conditions")


class _Missing:
    """Marker for a field absent from the context."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class ConditionOperator(str, Enum):
    """Condition operators as they appear in the bundle."""
    EQ = "eq"
    NEQ = "neq"
    IN = "in"
    NIN = "nin"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    REGEX = "regex"
    EXISTS = "exists"
    NOT_EXISTS = "notExists"


def get_nested_value(context: Dict[str, Any], path: str) -> Any:
    """Look up a dotted path in the context.

    Dicts are indexed by key and lists by integer index. Returns ``MISSING``
    when a segment is absent or the current value cannot be indexed.

    >>> get_nested_value({"user": {"name": "Alice"}}, "user.name")
    'Alice'
    >>> get_nested_value({"tags": ["a", "b"]}, "tags.0")
    'a'
    """
    current: Any = context
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)):
            if not part.isdecimal() or not part.isascii() or int(part) >= len(current):
                return MISSING
            current = current[int(part)]
        else:
            return MISSING
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion.

    Booleans never equal numbers, numbers compare by value, containers
    compare by identity and everything else must share a type.
    """
    if left is MISSING or right is MISSING:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return left is right
    return type(left) is type(right) and left == right


def _contains(values: Sequence[Any], candidate: Any) -> bool:
    return any(strict_equals(item, candidate) for item in values)


def evaluate_condition(condition: BundleCondition, context: Dict[str, Any]) -> bool:
    """Evaluate a single condition against a context.

    An error while evaluating fails this condition only.
    """
    try:
        return _evaluate_operator(condition, context)
    except Exception as e:
        logger.warning(
            "Error evaluating condition",
            field=condition.field,
            operator=condition.op,
            error=str(e)
        )
        return False


def _evaluate_operator(condition: BundleCondition, context: Dict[str, Any]) -> bool:
    field_value = get_nested_value(context, condition.field)
    operand = condition.value if condition.has_value else MISSING
    operator = condition.op

    if operator == ConditionOperator.EQ:
        return strict_equals(field_value, operand)

    elif operator == ConditionOperator.NEQ:
        return not strict_equals(field_value, operand)

    elif operator == ConditionOperator.IN:
        if not isinstance(condition.values, list):
            return False
        return _contains(condition.values, field_value)

    elif operator == ConditionOperator.NIN:
        if not isinstance(condition.values, list):
            return True
        return not _contains(condition.values, field_value)

    elif operator in (ConditionOperator.GT, ConditionOperator.GTE,
                      ConditionOperator.LT, ConditionOperator.LTE):
        if not _is_number(field_value) or not _is_number(operand):
            return False
        if operator == ConditionOperator.GT:
            return field_value > operand
        if operator == ConditionOperator.GTE:
            return field_value >= operand
        if operator == ConditionOperator.LT:
            return field_value < operand
        return field_value <= operand

    elif operator in (ConditionOperator.CONTAINS, ConditionOperator.STARTS_WITH,
                      ConditionOperator.ENDS_WITH):
        if not isinstance(field_value, str) or not isinstance(operand, str):
            return False
        if operator == ConditionOperator.CONTAINS:
            return operand in field_value
        if operator == ConditionOperator.STARTS_WITH:
            return field_value.startswith(operand)
        return field_value.endswith(operand)

    elif operator == ConditionOperator.REGEX:
        if not isinstance(field_value, str) or not isinstance(operand, str):
            return False
        try:
            return re.search(operand, field_value) is not None
        except re.error as e:
            logger.debug("Invalid regex in condition", field=condition.field, pattern=operand, error=str(e))
            return False

    elif operator == ConditionOperator.EXISTS:
        return field_value is not MISSING and field_value is not None

    elif operator == ConditionOperator.NOT_EXISTS:
        return field_value is MISSING or field_value is None

    else:
        logger.warning("Unknown condition operator", operator=operator, field=condition.field)
        return False


def evaluate_conditions(conditions: List[BundleCondition], context: Dict[str, Any]) -> bool:
    """Evaluate all conditions against a context (AND); empty means match."""
    if not conditions:
        return True

    return all(evaluate_condition(condition, context) for condition in conditions)


# =============================================================================
# Condition builders
# =============================================================================


def eq(field: str, value: Any) -> BundleCondition:
    """Create an equality condition."""
    return BundleCondition(field=field, op=ConditionOperator.EQ.value, value=value)


def neq(field: str, value: Any) -> BundleCondition:
    """Create a not-equal condition."""
    return BundleCondition(field=field, op=ConditionOperator.NEQ.value, value=value)


def in_values(field: str, values: List[Any]) -> BundleCondition:
    """Create an "in" condition."""
    return BundleCondition(field=field, op=ConditionOperator.IN.value, values=values)


def not_in(field: str, values: List[Any]) -> BundleCondition:
    """Create a "not in" condition."""
    return BundleCondition(field=field, op=ConditionOperator.NIN.value, values=values)


def gt(field: str, value: float) -> BundleCondition:
    return BundleCondition(field=field, op=ConditionOperator.GT.value, value=value)


def gte(field: str, value: float) -> BundleCondition:
    return BundleCondition(field=field, op=ConditionOperator.GTE.value, value=value)


def lt(field: str, value: float) -> BundleCondition:
    return BundleCondition(field=field, op=ConditionOperator.LT.value, value=value)


def lte(field: str, value: float) -> BundleCondition:
    return BundleCondition(field=field, op=ConditionOperator.LTE.value, value=value)


def contains(field: str, value: str) -> BundleCondition:
    return BundleCondition(field=field, op=ConditionOperator.CONTAINS.value, value=value)


def starts_with(field: str, value: str) -> BundleCondition:
    return BundleCondition(field=field, op=ConditionOperator.STARTS_WITH.value, value=value)


def ends_with(field: str, value: str) -> BundleCondition:
    return BundleCondition(field=field, op=ConditionOperator.ENDS_WITH.value, value=value)


def regex(field: str, pattern: str) -> BundleCondition:
    """Create a regex match condition."""
    return BundleCondition(field=field, op=ConditionOperator.REGEX.value, value=pattern)


def exists(field: str) -> BundleCondition:
    """Create an exists condition."""
    return BundleCondition(field=field, op=ConditionOperator.EXISTS.value)


def not_exists(field: str) -> BundleCondition:
    """Create a not-exists condition."""
    return BundleCondition(field=field, op=ConditionOperator.NOT_EXISTS.value)
