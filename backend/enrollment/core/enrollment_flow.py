"""Enrollment Flow — explicit state machine for one enrollment attempt.

Invariants:
    - AWAITING_DATE -> RESOLVING_ORG_UNITS -> BRANCHING -> (NO_ORG_UNITS | PERSISTING | AWAITING_ORG_UNIT_SELECTION)
    - AWAITING_ORG_UNIT_SELECTION -> PERSISTING only with a unit from the eligible candidates
    - PERSISTING -> COMPLETED (enrollment_uid set) or ABORTED (failure_code set)
    - Cancelled moves any non-terminal state to ABORTED; terminal states accept no event
    - Branching is by cardinality only: 0 -> notice, 1 -> auto-select, >1 -> ask the person
    - A confirmed date later than max_date is rejected; the attempt stays in AWAITING_DATE
    - A program that allows one enrollment cannot be entered again once the person has it

Design Decisions:
    - Frozen EnrollmentAttempt + pure transition(): the async shell owns IO and locking,
      this module owns every legal move (no nested callbacks)
    - Pure match-case dispatch on event dataclasses: no inheritance, no polymorphism
    - BRANCHING is a real state reached by OrgUnitsResolved and left by Branch, so the
      shell can log it and tests can observe it
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime

from enrollment.core.domain_types import (
    TERMINAL_STATES, AttemptId, AttemptState, EnrollmentUid, OrgUnit,
    OrgUnitUid, PersonUid, Program, ProgramUid,
)
from enrollment.core.errors import (
    AlreadyEnrolledError, DateOutOfRangeError, ErrorContext,
    InvalidTransitionError, OrgUnitNotEligibleError,
)
from enrollment.core.org_unit_eligibility import (
    eligible_org_units, to_enrollment_date,
)


@dataclass(frozen=True)
class EnrollmentAttempt:
    attempt_id: AttemptId
    program_uid: ProgramUid
    person_uid: PersonUid
    state: AttemptState = AttemptState.AWAITING_DATE
    date_title: str = ""
    max_date: date | None = None
    enrollment_date: date | None = None
    candidates: tuple[OrgUnit, ...] = ()
    org_unit_uid: OrgUnitUid | None = None
    enrollment_uid: EnrollmentUid | None = None
    failure_code: str | None = None
    only_enroll_once: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def auto_selected(self) -> bool:
        return len(self.candidates) == 1 and self.org_unit_uid is not None


# ─── Events ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class DateConfirmed:
    enrollment_date: date | datetime


@dataclass(frozen=True)
class OrgUnitsResolved:
    org_units: tuple[OrgUnit, ...]


@dataclass(frozen=True)
class Branch:
    pass


@dataclass(frozen=True)
class OrgUnitSelected:
    org_unit_uid: OrgUnitUid


@dataclass(frozen=True)
class EnrollmentPersisted:
    enrollment_uid: EnrollmentUid


@dataclass(frozen=True)
class AttemptFailed:
    code: str


@dataclass(frozen=True)
class Cancelled:
    pass


FlowEvent = (
    DateConfirmed | OrgUnitsResolved | Branch | OrgUnitSelected
    | EnrollmentPersisted | AttemptFailed | Cancelled
)


# ─── Start ───────────────────────────────────────────────────────

def date_cap(program: Program, today: date) -> date | None:
    """Latest selectable enrollment date, or None when future dates are allowed."""
    if program.allows_future_enrollment_date:
        return None
    return today


def start_attempt(
    attempt_id: AttemptId,
    program: Program,
    person_uid: PersonUid,
    today: date,
) -> EnrollmentAttempt:
    return EnrollmentAttempt(
        attempt_id=attempt_id,
        program_uid=program.uid,
        person_uid=person_uid,
        date_title=program.enrollment_date_label,
        max_date=date_cap(program, today),
        only_enroll_once=program.only_enroll_once,
    )


def ensure_not_enrolled(
    program_uid: ProgramUid,
    only_enroll_once: bool,
    already_enrolled: Iterable[Program],
    context: ErrorContext | None = None,
) -> None:
    """Raise AlreadyEnrolledError when a single-enrollment program is already taken."""
    if not only_enroll_once:
        return
    if any(program.uid == program_uid for program in already_enrolled):
        raise AlreadyEnrolledError(program_uid, context)


# ─── Transition ──────────────────────────────────────────────────

def transition(attempt: EnrollmentAttempt, event: FlowEvent) -> EnrollmentAttempt:
    """Apply one event. Raises InvalidTransitionError for moves the machine forbids."""
    state = attempt.state
    match event:
        case Cancelled() if not attempt.is_terminal:
            return replace(attempt, state=AttemptState.ABORTED)

        case DateConfirmed(enrollment_date=value) if state == AttemptState.AWAITING_DATE:
            day = to_enrollment_date(value)
            if attempt.max_date is not None and day > attempt.max_date:
                raise DateOutOfRangeError(
                    attempt.max_date.isoformat(), _context(attempt),
                )
            return replace(
                attempt, state=AttemptState.RESOLVING_ORG_UNITS,
                enrollment_date=day,
            )

        case OrgUnitsResolved(org_units=org_units) if state == AttemptState.RESOLVING_ORG_UNITS:
            return replace(
                attempt, state=AttemptState.BRANCHING,
                candidates=tuple(
                    eligible_org_units(org_units, attempt.enrollment_date),
                ),
            )

        case Branch() if state == AttemptState.BRANCHING:
            return _branch(attempt)

        case OrgUnitSelected(org_unit_uid=uid) if state == AttemptState.AWAITING_ORG_UNIT_SELECTION:
            if uid not in {ou.uid for ou in attempt.candidates}:
                raise OrgUnitNotEligibleError(uid, _context(attempt))
            return replace(
                attempt, state=AttemptState.PERSISTING, org_unit_uid=uid,
            )

        case EnrollmentPersisted(enrollment_uid=uid) if state == AttemptState.PERSISTING:
            return replace(
                attempt, state=AttemptState.COMPLETED, enrollment_uid=uid,
            )

        case AttemptFailed(code=code) if state in (
            AttemptState.RESOLVING_ORG_UNITS, AttemptState.PERSISTING,
        ):
            return replace(
                attempt, state=AttemptState.ABORTED, failure_code=code,
            )

    raise InvalidTransitionError(
        state.value, type(event).__name__, _context(attempt),
    )


def _branch(attempt: EnrollmentAttempt) -> EnrollmentAttempt:
    count = len(attempt.candidates)
    if count == 0:
        return replace(attempt, state=AttemptState.NO_ORG_UNITS)
    if count == 1:
        return replace(
            attempt, state=AttemptState.PERSISTING,
            org_unit_uid=attempt.candidates[0].uid,
        )
    return replace(attempt, state=AttemptState.AWAITING_ORG_UNIT_SELECTION)


def _context(attempt: EnrollmentAttempt) -> ErrorContext:
    return ErrorContext(
        person_uid=attempt.person_uid,
        program_uid=attempt.program_uid,
        attempt_id=attempt.attempt_id,
    )
