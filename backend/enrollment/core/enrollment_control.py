"""Enrollment Control — attribute-based rules that restrict which programs a person may enter.

Invariants:
    - A program without rules is always enrollable
    - A program with rules is enrollable only if every rule is met
    - A rule whose attribute the person lacks is not met
    - Unknown conditions never match
    - Filtering preserves input order and never adds entries

Design Decisions:
    - condition kept as plain str: rules arrive as JSON from settings and an unknown name
      must still parse, then never match (ControlCondition is a str Enum, so == works)
    - Numeric comparisons mirror the workflow config: unparsable numbers count as 0.0 for
      greater_than/less_than, but make "between" fail
"""

from collections.abc import Iterable, Mapping, Sequence
from enum import Enum

from pydantic import BaseModel

from enrollment.core.domain_types import ProgramCatalogEntry


class ControlCondition(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    BETWEEN = "between"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class ProgramEnrollmentControl(BaseModel):
    """One rule: enrolling into program_uid requires attribute_uid to satisfy condition."""
    program_uid: str
    attribute_uid: str
    attribute_value: str
    condition: str

    def is_condition_met(self, value: str) -> bool:
        match self.condition:
            case ControlCondition.EQUALS:
                return value == self.attribute_value
            case ControlCondition.NOT_EQUALS:
                return value != self.attribute_value
            case ControlCondition.BETWEEN:
                return _in_range(value, self.attribute_value)
            case ControlCondition.CONTAINS:
                return self.attribute_value in value
            case ControlCondition.NOT_CONTAINS:
                return self.attribute_value not in value
            case ControlCondition.GREATER_THAN:
                return _to_float(value, 0.0) > _to_float(self.attribute_value, 0.0)
            case ControlCondition.LESS_THAN:
                return _to_float(value, 0.0) < _to_float(self.attribute_value, 0.0)
        return False


def _to_float(raw: str, default: float | None = None) -> float | None:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _in_range(value: str, bounds: str) -> bool:
    parts = [p.strip() for p in bounds.split(",")]
    if len(parts) != 2:
        return False
    lower, upper, number = _to_float(parts[0]), _to_float(parts[1]), _to_float(value)
    if lower is None or upper is None or number is None:
        return False
    return lower <= number <= upper


def is_enrollable(
    program_uid: str,
    rules: Iterable[ProgramEnrollmentControl],
    attributes: Mapping[str, str],
) -> bool:
    for rule in rules:
        if rule.program_uid != program_uid:
            continue
        value = attributes.get(rule.attribute_uid)
        if value is None or not rule.is_condition_met(value):
            return False
    return True


def filter_enrollable(
    entries: Sequence[ProgramCatalogEntry],
    rules: Sequence[ProgramEnrollmentControl],
    attributes: Mapping[str, str],
) -> list[ProgramCatalogEntry]:
    return [
        entry for entry in entries
        if is_enrollable(entry.uid, rules, attributes)
    ]
