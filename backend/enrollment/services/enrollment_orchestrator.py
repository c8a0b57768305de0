"""Enrollment Orchestrator — async driver for enrollment attempts.

Invariants:
    - Every state change goes through core.enrollment_flow.transition (no ad-hoc state writes)
    - Transitions of one attempt are serialized by a per-attempt asyncio.Lock
    - Parks in AWAITING_DATE / AWAITING_ORG_UNIT_SELECTION without holding any task or lock
    - Exactly one persist_enrollment call per COMPLETED attempt; none for any other outcome
    - A single-enrollment program is checked against existing enrollments at start and
      again right before the write; writes for one program are serialized
    - Navigation (on_enrollment_created) is emitted only after a successful write
    - FetchError / PersistenceError / AlreadyEnrolledError abort the attempt and surface via
      on_enrollment_failed, never via on_no_eligible_org_units
    - Cancellation before the write starts leaves the attempt ABORTED with nothing written
    - A write that has started always settles the attempt: COMPLETED when the row landed,
      ABORTED when it failed. Cancellation only suppresses navigation
    - Finished attempts are kept for lookup up to finished_limit, oldest evicted first

Design Decisions:
    - Prompts are presenter events, not awaited callbacks: the person answers through
      confirm_date / select_org_unit / cancel, which resume the machine
    - The write runs as its own task behind asyncio.shield: a teardown cannot interrupt
      commit, so the attempt never reports ABORTED for a row that exists
    - Clock injected (today) so the future-date cap is testable
"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from collections.abc import Callable
from datetime import date, datetime

from enrollment.core.domain_types import (
    AttemptId, AttemptState, EnrollmentUid, OrgUnitUid, PersonUid, ProgramUid,
)
from enrollment.core.enrollment_flow import (
    AttemptFailed, Branch, Cancelled, DateConfirmed, EnrollmentAttempt,
    EnrollmentPersisted, FlowEvent, OrgUnitSelected, OrgUnitsResolved,
    ensure_not_enrolled, start_attempt, transition,
)
from enrollment.core.errors import (
    AlreadyEnrolledError, EnrollmentServiceError, ErrorContext, FetchError,
    PersistenceError, ResourceNotFoundError,
)
from enrollment.core.repository_protocols import (
    EnrollmentPresenter, EnrollmentRepository, OrgUnitRepository,
    ProgramRepository,
)
from enrollment.services.fetch_pool import FetchPool

logger = logging.getLogger(__name__)


class EnrollmentOrchestrator:
    """Owns the attempts of one workflow instance and moves them through the state machine."""

    def __init__(
        self,
        programs: ProgramRepository,
        enrollments: EnrollmentRepository,
        org_units: OrgUnitRepository,
        presenter: EnrollmentPresenter,
        pool: FetchPool,
        today: Callable[[], date] = date.today,
        on_enrolled: Callable[[EnrollmentAttempt], None] | None = None,
        finished_limit: int = 200,
    ):
        self._programs = programs
        self._enrollments = enrollments
        self._org_units = org_units
        self._presenter = presenter
        self._pool = pool
        self._today = today
        self._on_enrolled = on_enrolled
        self._finished_limit = finished_limit
        self._attempts: dict[AttemptId, EnrollmentAttempt] = {}
        self._finished: OrderedDict[AttemptId, EnrollmentAttempt] = OrderedDict()
        self._locks: dict[AttemptId, asyncio.Lock] = {}
        self._write_locks: dict[ProgramUid, asyncio.Lock] = {}

    # ─── Queries ─────────────────────────────────────────────────

    def get(self, attempt_id: AttemptId) -> EnrollmentAttempt:
        attempt = self._attempts.get(attempt_id) or self._finished.get(attempt_id)
        if attempt is None:
            raise ResourceNotFoundError("Enrollment attempt", attempt_id)
        return attempt

    def attempts(self) -> list[EnrollmentAttempt]:
        return [*self._finished.values(), *self._attempts.values()]

    # ─── Events from the person ──────────────────────────────────

    async def start(
        self, program_uid: ProgramUid, person_uid: PersonUid,
    ) -> EnrollmentAttempt:
        """AWAITING_DATE: look up the program and ask for an enrollment date."""
        ctx = ErrorContext(person_uid=person_uid, program_uid=program_uid)
        program = await self._pool.fetch(
            "program", lambda: self._programs.lookup_program(program_uid), ctx,
        )
        if program is None:
            raise ResourceNotFoundError("Program", program_uid, ctx)
        if program.only_enroll_once:
            already_enrolled = await self._pool.fetch(
                "already enrolled programs",
                lambda: self._enrollments.fetch_already_enrolled_programs(person_uid),
                ctx,
            )
            ensure_not_enrolled(program.uid, True, already_enrolled, ctx)

        attempt_id = AttemptId(uuid.uuid4().hex)
        attempt = start_attempt(attempt_id, program, person_uid, self._today())
        self._attempts[attempt_id] = attempt
        self._locks[attempt_id] = asyncio.Lock()
        logger.info(
            "Enrollment attempt started", extra=_log_extra(attempt),
        )
        self._presenter.on_date_selection_required(
            attempt_id, attempt.max_date, attempt.date_title,
        )
        return attempt

    async def confirm_date(
        self, attempt_id: AttemptId, enrollment_date: date | datetime,
    ) -> EnrollmentAttempt:
        """RESOLVING_ORG_UNITS -> BRANCHING -> notice | prompt | persist."""
        async with self._lock(attempt_id):
            attempt = self._apply(attempt_id, DateConfirmed(enrollment_date))
            try:
                org_units = await self._pool.fetch(
                    "org units",
                    lambda: self._org_units.fetch_org_units(attempt.program_uid),
                    _error_context(attempt),
                )
            except FetchError as e:
                self._fail(attempt_id, e)
                return self.get(attempt_id)
            except asyncio.CancelledError:
                self._abort_cancelled(attempt_id)
                raise

            self._apply(attempt_id, OrgUnitsResolved(tuple(org_units)))
            attempt = self._apply(attempt_id, Branch())

            if attempt.state == AttemptState.NO_ORG_UNITS:
                self._presenter.on_no_eligible_org_units(attempt_id)
            elif attempt.state == AttemptState.AWAITING_ORG_UNIT_SELECTION:
                self._presenter.on_org_unit_selection_required(
                    attempt_id, list(attempt.candidates),
                )
            elif attempt.state == AttemptState.PERSISTING:
                await self._persist(attempt_id)
            return self.get(attempt_id)

    async def select_org_unit(
        self, attempt_id: AttemptId, org_unit_uid: OrgUnitUid,
    ) -> EnrollmentAttempt:
        async with self._lock(attempt_id):
            self._apply(attempt_id, OrgUnitSelected(org_unit_uid))
            await self._persist(attempt_id)
            return self.get(attempt_id)

    async def cancel(self, attempt_id: AttemptId) -> EnrollmentAttempt:
        async with self._lock(attempt_id):
            return self._apply(attempt_id, Cancelled())

    def abort_all(self) -> int:
        """Teardown: move every parked or in-flight attempt to ABORTED."""
        aborted = 0
        for attempt_id in list(self._attempts):
            self._apply(attempt_id, Cancelled())
            aborted += 1
        return aborted

    # ─── Internals ───────────────────────────────────────────────

    async def _persist(self, attempt_id: AttemptId) -> None:
        attempt = self.get(attempt_id)
        try:
            async with self._write_lock(attempt.program_uid):
                if attempt.only_enroll_once:
                    already_enrolled = await self._pool.fetch(
                        "already enrolled programs",
                        lambda: self._enrollments.fetch_already_enrolled_programs(
                            attempt.person_uid,
                        ),
                        _error_context(attempt),
                    )
                    ensure_not_enrolled(
                        attempt.program_uid, True, already_enrolled,
                        _error_context(attempt),
                    )
                enrollment_uid = await self._write(attempt)
        except (AlreadyEnrolledError, FetchError, PersistenceError) as e:
            self._fail(attempt_id, e)
            return
        except asyncio.CancelledError:
            self._abort_cancelled(attempt_id)
            raise

        attempt = self._apply(attempt_id, EnrollmentPersisted(enrollment_uid))
        logger.info(
            "Enrollment %s created", enrollment_uid, extra=_log_extra(attempt),
        )
        self._presenter.on_enrollment_created(enrollment_uid, attempt.program_uid)
        if self._on_enrolled is not None:
            self._on_enrolled(attempt)

    async def _write(self, attempt: EnrollmentAttempt) -> EnrollmentUid:
        """Run the write as a shielded task; once it has started it runs to the end."""
        started = asyncio.Event()

        async def call() -> EnrollmentUid:
            started.set()
            return await self._enrollments.persist_enrollment(
                attempt.org_unit_uid,
                attempt.program_uid,
                attempt.person_uid,
                attempt.enrollment_date,
            )

        write = asyncio.ensure_future(
            self._pool.write(call, _error_context(attempt)),
        )
        try:
            return await asyncio.shield(write)
        except asyncio.CancelledError:
            if not started.is_set():
                write.cancel()
                raise
            await asyncio.wait({write})
            self._settle_interrupted_write(attempt.attempt_id, write)
            raise

    def _settle_interrupted_write(
        self, attempt_id: AttemptId, write: asyncio.Future,
    ) -> None:
        """Record the outcome of a write whose caller was cancelled. No navigation."""
        if write.cancelled():
            return
        error = write.exception()
        if isinstance(error, EnrollmentServiceError):
            attempt = self._apply(attempt_id, AttemptFailed(error.code))
            logger.error(
                "Enrollment write failed during teardown: %s", error.message,
                extra={**_log_extra(attempt), "error_code": error.code},
            )
            return
        if error is not None:
            raise error
        attempt = self._apply(attempt_id, EnrollmentPersisted(write.result()))
        logger.info(
            "Enrollment %s created during teardown, navigation suppressed",
            attempt.enrollment_uid, extra=_log_extra(attempt),
        )

    def _apply(self, attempt_id: AttemptId, event: FlowEvent) -> EnrollmentAttempt:
        before = self.get(attempt_id)
        after = transition(before, event)
        if after.is_terminal:
            self._retire(after)
        else:
            self._attempts[attempt_id] = after
        if after.state != before.state:
            logger.debug(
                "Attempt %s: %s -> %s", attempt_id,
                before.state.value, after.state.value, extra=_log_extra(after),
            )
        return after

    def _retire(self, attempt: EnrollmentAttempt) -> None:
        self._attempts.pop(attempt.attempt_id, None)
        self._locks.pop(attempt.attempt_id, None)
        self._finished[attempt.attempt_id] = attempt
        while len(self._finished) > self._finished_limit:
            self._finished.popitem(last=False)

    def _fail(self, attempt_id: AttemptId, error: EnrollmentServiceError) -> None:
        error.context.attempt_id = attempt_id
        attempt = self._apply(attempt_id, AttemptFailed(error.code))
        logger.error(
            "Enrollment attempt aborted: %s", error.message,
            extra={**_log_extra(attempt), "error_code": error.code},
        )
        self._presenter.on_enrollment_failed(attempt_id, error)

    def _abort_cancelled(self, attempt_id: AttemptId) -> None:
        if self.get(attempt_id).is_terminal:
            return
        attempt = self._apply(attempt_id, Cancelled())
        logger.info("Enrollment attempt cancelled in flight", extra=_log_extra(attempt))

    def _lock(self, attempt_id: AttemptId) -> asyncio.Lock:
        self.get(attempt_id)
        # finished attempts hold no lock; any event on them is rejected by transition()
        return self._locks.get(attempt_id) or asyncio.Lock()

    def _write_lock(self, program_uid: ProgramUid) -> asyncio.Lock:
        return self._write_locks.setdefault(program_uid, asyncio.Lock())


def _error_context(attempt: EnrollmentAttempt) -> ErrorContext:
    return ErrorContext(
        person_uid=attempt.person_uid,
        program_uid=attempt.program_uid,
        attempt_id=attempt.attempt_id,
    )


def _log_extra(attempt: EnrollmentAttempt) -> dict:
    return {
        "attempt_id": attempt.attempt_id,
        "person_uid": attempt.person_uid,
        "program_uid": attempt.program_uid,
        "state": attempt.state.value,
    }
