"""Validation rule evaluation for record-save collaborators.

A rule whose condition evaluates truthy blocks the save with its error
message. Inactive rules are always skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from orgschema.core.types import RuleViolation, ValidationRule
from orgschema.exceptions import ExpressionError
from orgschema.rules.expressions import evaluate_expression

logger = logging.getLogger(__name__)


def rule_fires(rule: ValidationRule, record: Mapping[str, Any]) -> bool:
    """Return True when an active rule's condition holds for ``record``.

    Raises:
        ExpressionError: If the condition cannot be parsed
    """
    if not rule.active:
        return False
    return bool(evaluate_expression(rule.condition, record))


def evaluate_rules(
    rules: Iterable[ValidationRule],
    record: Mapping[str, Any],
    strict: bool = True,
) -> list[RuleViolation]:
    """Evaluate every active rule and collect the ones that block the save.

    Args:
        rules: Validation rules of the record's object
        record: Candidate record values keyed by field API name
        strict: If False, a rule whose condition fails to parse is logged
            and skipped instead of raising

    Returns:
        One RuleViolation per firing rule, in rule order
    """
    violations: list[RuleViolation] = []
    for rule in rules:
        if not rule.active:
            continue
        try:
            fires = rule_fires(rule, record)
        except ExpressionError as e:
            if strict:
                raise
            logger.warning(f"Skipping validation rule '{rule.name}': {e.message}")
            continue
        if fires:
            violations.append(
                RuleViolation(rule_id=rule.id, rule_name=rule.name, error_message=rule.error_message)
            )
    return violations
