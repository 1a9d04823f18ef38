"""
Rules package.

Evaluates policy eligibility conditions against a caller context using
dotted-path field lookup. Unknown operators, bad regular expressions and
type mismatches fail the single condition rather than raising.
"""

from .conditions import (
    MISSING,
    ConditionOperator,
    get_nested_value,
    strict_equals,
    evaluate_condition,
    evaluate_conditions,
    eq,
    neq,
    in_values,
    not_in,
    gt,
    gte,
    lt,
    lte,
    contains,
    starts_with,
    ends_with,
    regex,
    exists,
    not_exists,
)
