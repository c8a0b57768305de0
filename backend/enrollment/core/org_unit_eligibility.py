"""Org Unit Eligibility — which organisation units are open on a given enrollment date.

Invariants:
    - Eligible iff opening_date <= date <= closed_date, both bounds inclusive
    - Missing opening/closed date means unbounded on that side
    - Time of day never participates: reference date is truncated to midnight first
    - Input order preserved; empty in, empty out
"""

from collections.abc import Iterable
from datetime import date, datetime

from enrollment.core.domain_types import OrgUnit


def to_enrollment_date(value: date | datetime) -> date:
    """Truncate a timestamp to its calendar day (midnight)."""
    if isinstance(value, datetime):
        return value.date()
    return value


def is_open_on(org_unit: OrgUnit, reference_date: date | datetime) -> bool:
    day = to_enrollment_date(reference_date)
    if org_unit.opening_date is not None and day < to_enrollment_date(org_unit.opening_date):
        return False
    if org_unit.closed_date is not None and day > to_enrollment_date(org_unit.closed_date):
        return False
    return True


def eligible_org_units(
    org_units: Iterable[OrgUnit], reference_date: date | datetime,
) -> list[OrgUnit]:
    """Org units whose validity window contains reference_date."""
    return [ou for ou in org_units if is_open_on(ou, reference_date)]
