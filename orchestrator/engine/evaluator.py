# ============================================================================
# CONDITION & INPUT EVALUATOR
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Condition node evaluation and reply keyword matching
# PURPOSE: Decide which labelled edge a condition takes and which branch a
#          patient reply selects
# CREATED: 14 SEP 2026
# ============================================================================
"""
Condition & Input Evaluator

Both evaluators are stateless. The one live lookup a condition may need
(the patient's tag set) is done by the caller and passed in as an override,
so evaluation itself never touches storage.

Conditions fail closed: an undefined variable or an unrecognized operator
evaluates to False.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from core.contracts import ConditionOperator

logger = logging.getLogger(__name__)


# ============================================================================
# OPERATORS
# ============================================================================

def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple, set)):
        target = _as_text(expected)
        return any(_as_text(item) == target for item in actual)
    return _as_text(expected) in _as_text(actual)


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def op(actual: Any, expected: Any) -> bool:
        left, right = _as_number(actual), _as_number(expected)
        if left is None or right is None:
            return False
        return compare(left, right)
    return op


class ConditionEvaluator:
    """
    Evaluates condition nodes against instance context.

    Supports:
    - EQUALS / NOT_EQUALS: case-insensitive string comparison
    - CONTAINS: list membership or case-insensitive substring
    - GREATER_THAN / LESS_THAN: numeric comparison (non-numeric is False)
    - Symbolic aliases ==, !=, >, <
    - Dot notation for nested context values (appointment.type)
    """

    OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
        ConditionOperator.EQUALS: lambda a, b: _as_text(a) == _as_text(b),
        ConditionOperator.NOT_EQUALS: lambda a, b: _as_text(a) != _as_text(b),
        ConditionOperator.CONTAINS: _contains,
        ConditionOperator.GREATER_THAN: _numeric(lambda a, b: a > b),
        ConditionOperator.LESS_THAN: _numeric(lambda a, b: a < b),
    }

    def evaluate(
        self,
        variable: str,
        operator: str,
        expected: Any,
        context: Mapping[str, Any],
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Evaluate `variable operator expected`.

        Args:
            variable: Context key (dot notation allowed)
            operator: Operator name or alias
            expected: Configured comparison value
            context: Instance context data
            overrides: Values fetched live by the caller (e.g. tags)

        Returns:
            True if the condition holds
        """
        op = ConditionOperator.parse(operator)
        if op is None:
            logger.warning(f"Unknown condition operator '{operator}' - evaluating as false")
            return False

        if overrides and variable in overrides:
            actual = overrides[variable]
        else:
            actual = self._get_value(variable, context)

        if actual is None:
            logger.debug(f"Condition variable '{variable}' is undefined - evaluating as false")
            return False

        try:
            return bool(self.OPERATORS[op](actual, expected))
        except Exception as e:
            logger.warning(f"Failed to evaluate condition '{variable} {operator} {expected}': {e}")
            return False

    def _get_value(self, expr: str, context: Mapping[str, Any]) -> Any:
        """Get value from context; exact key first, then dot notation."""
        if expr in context:
            return context[expr]

        value: Any = context
        for part in expr.split("."):
            if isinstance(value, Mapping):
                value = value.get(part)
            else:
                return None
            if value is None:
                return None
        return value


# ============================================================================
# INPUT MATCHING
# ============================================================================

class InputMatcher:
    """
    Matches a free-text patient reply against a wait_for_input branch map.

    Reply text is trimmed and lower-cased. An exact key match wins; otherwise
    the first key (in map order) contained in the reply is used.
    """

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        return (text or "").strip().lower()

    def match(self, text: Optional[str], branches: Mapping[str, str]) -> Optional[Tuple[str, str]]:
        """
        Returns:
            (matched keyword, target node id) or None
        """
        normalized = self.normalize(text)
        if not normalized:
            return None

        if normalized in branches:
            return normalized, branches[normalized]

        for keyword, target in branches.items():
            if keyword and keyword in normalized:
                return keyword, target

        return None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ConditionEvaluator",
    "InputMatcher",
]
