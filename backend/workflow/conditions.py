"""Condition evaluation for step guards, condition steps and triggers.

Conditions are a mapping of path to clause:

    {
        "triggerData.amount": {"operator": "greater_than", "value": 1000},
        "triggerData.status": {"operator": "equals", "value": "overdue"},
        "variables.region": "EU",          # bare value means equals
    }

All clauses must hold. Evaluation stops at the first failing clause.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, Optional

from core.constants import ConditionOperator
from workflow.interpolation import lookup

logger = logging.getLogger(__name__)


def _strict_equals(actual: Any, expected: Any) -> bool:
    # bool is an int subclass; keep True != 1
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    return actual == expected


def _to_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return str(expected) in actual
    if isinstance(actual, (list, tuple, set, frozenset)):
        return any(_strict_equals(item, expected) for item in actual)
    if isinstance(actual, Mapping):
        try:
            return expected in actual
        except TypeError:
            # unhashable clause value can never be a key
            return False
    return False


def evaluate_clause(operator: str, actual: Any, expected: Any) -> bool:
    """Evaluate a single ``actual <operator> expected`` clause."""
    try:
        op = ConditionOperator(operator)
    except ValueError:
        logger.warning(f"Unknown condition operator '{operator}', clause fails")
        return False

    if op == ConditionOperator.EQUALS:
        return _strict_equals(actual, expected)
    if op == ConditionOperator.NOT_EQUALS:
        return not _strict_equals(actual, expected)
    if op == ConditionOperator.CONTAINS:
        return _contains(actual, expected)

    left, right = _to_number(actual), _to_number(expected)
    if left is None or right is None:
        return False
    if op == ConditionOperator.GREATER_THAN:
        return left > right
    return left < right


def evaluate_conditions(conditions: Optional[Mapping], context: Any) -> bool:
    """Evaluate an AND of clauses against a run context or plain mapping.

    Args:
        conditions: ``{path: clause}`` mapping; empty means true
        context: ``ExecutionContext`` or any nested mapping (e.g. event data)

    Returns:
        True when every clause holds
    """
    if not conditions:
        return True

    for path, clause in conditions.items():
        if isinstance(clause, Mapping) and "operator" in clause:
            operator, expected = clause["operator"], clause.get("value")
        else:
            operator, expected = ConditionOperator.EQUALS.value, clause

        actual = lookup(path, context)
        if not evaluate_clause(operator, actual, expected):
            logger.debug(f"Condition failed: {path} {operator} {expected!r} (actual={actual!r})")
            return False

    return True
