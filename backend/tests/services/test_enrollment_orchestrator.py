"""Enrollment Orchestrator — drives attempts through the flow with real IO boundaries faked.

Tests:
    - start: date prompt with cap; unknown program is not found
    - 0 / 1 / many eligible units -> notice / auto-enroll / selection prompt
    - Exactly one write per completed attempt, navigation only after the write
    - Fetch and persistence failures abort via on_enrollment_failed, never the notice
    - Cancellation while parked or before the write leaves the attempt ABORTED without a write
    - Cancellation after the write started settles the attempt without navigation
    - Single-enrollment programs: rejected at start and re-checked before the write
    - Consecutive validity windows pick the unit open on the chosen date
    - Finished attempts are bounded
"""

import asyncio
from datetime import date

import pytest

from enrollment.core.domain_types import AttemptState
from enrollment.core.errors import (
    AlreadyEnrolledError, DateOutOfRangeError, InvalidTransitionError,
    OrgUnitNotEligibleError, ResourceNotFoundError,
)
from enrollment.services.enrollment_orchestrator import EnrollmentOrchestrator
from enrollment.services.fetch_pool import FetchPool

from tests.services.fakes import (
    FakeEnrollmentRepository, FakeOrgUnitRepository, FakeProgramRepository,
    RecordingPresenter, org_unit, program, settle,
)

TODAY = date(2024, 3, 15)


def _orchestrator(
    org_units=(), allows_future=False, on_enrolled=None,
    only_enroll_once=False, already_enrolled=(), finished_limit=200,
):
    presenter = RecordingPresenter()
    prog = program(
        "prog", "Program", enrollment_date_label="Enrollment date",
        allows_future_enrollment_date=allows_future,
        only_enroll_once=only_enroll_once,
    )
    enrollments = FakeEnrollmentRepository(
        already_enrolled=already_enrolled, programs=[prog],
    )
    units = FakeOrgUnitRepository(org_units)
    orchestrator = EnrollmentOrchestrator(
        FakeProgramRepository(programs=[prog]),
        enrollments, units, presenter, FetchPool(4),
        today=lambda: TODAY, on_enrolled=on_enrolled,
        finished_limit=finished_limit,
    )
    return orchestrator, presenter, enrollments, units


# Two units with consecutive validity windows; the second one is still open.
YEAR_2024 = org_unit("U1", opening=date(2024, 1, 1), closed=date(2024, 12, 31))
FROM_2025 = org_unit("U2", opening=date(2025, 1, 1))


async def test_start_prompts_for_date_with_cap():
    orchestrator, presenter, _, _ = _orchestrator()
    attempt = await orchestrator.start("prog", "tei")
    assert attempt.state == AttemptState.AWAITING_DATE
    assert presenter.last("on_date_selection_required") == (
        attempt.attempt_id, TODAY, "Enrollment date",
    )


async def test_start_without_cap_when_future_allowed():
    orchestrator, presenter, _, _ = _orchestrator(allows_future=True)
    attempt = await orchestrator.start("prog", "tei")
    assert presenter.last("on_date_selection_required")[1] is None
    assert attempt.max_date is None


async def test_start_unknown_program_raises_not_found():
    orchestrator, presenter, _, _ = _orchestrator()
    with pytest.raises(ResourceNotFoundError):
        await orchestrator.start("missing", "tei")
    assert presenter.calls == []


async def test_no_eligible_units_shows_notice_and_writes_nothing():
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [org_unit("closed", closed=date(2023, 6, 30))],
    )
    attempt = await orchestrator.start("prog", "tei")

    result = await orchestrator.confirm_date(attempt.attempt_id, TODAY)

    assert result.state == AttemptState.NO_ORG_UNITS
    assert presenter.last("on_no_eligible_org_units") == (attempt.attempt_id,)
    assert "on_enrollment_failed" not in presenter.names()
    assert enrollments.persisted == []


async def test_single_unit_enrolls_without_prompt():
    enrolled = []
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [org_unit("ou1"), org_unit("late", opening=date(2024, 4, 1))],
        on_enrolled=enrolled.append,
    )
    attempt = await orchestrator.start("prog", "tei")

    result = await orchestrator.confirm_date(attempt.attempt_id, TODAY)

    assert result.state == AttemptState.COMPLETED
    assert enrollments.persisted == [("ou1", "prog", "tei", TODAY)]
    assert "on_org_unit_selection_required" not in presenter.names()
    assert presenter.last("on_enrollment_created") == ("enr-1", "prog")
    assert [a.enrollment_uid for a in enrolled] == ["enr-1"]


async def test_several_units_prompt_then_enroll_selected():
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [org_unit("ou1"), org_unit("ou2")],
    )
    attempt = await orchestrator.start("prog", "tei")

    parked = await orchestrator.confirm_date(attempt.attempt_id, TODAY)
    assert parked.state == AttemptState.AWAITING_ORG_UNIT_SELECTION
    _, candidates = presenter.last("on_org_unit_selection_required")
    assert [ou.uid for ou in candidates] == ["ou1", "ou2"]
    assert enrollments.persisted == []

    done = await orchestrator.select_org_unit(attempt.attempt_id, "ou2")
    assert done.state == AttemptState.COMPLETED
    assert enrollments.persisted == [("ou2", "prog", "tei", TODAY)]


async def test_selecting_ineligible_unit_keeps_attempt_parked():
    orchestrator, _, enrollments, _ = _orchestrator([org_unit("ou1"), org_unit("ou2")])
    attempt = await orchestrator.start("prog", "tei")
    await orchestrator.confirm_date(attempt.attempt_id, TODAY)

    with pytest.raises(OrgUnitNotEligibleError):
        await orchestrator.select_org_unit(attempt.attempt_id, "elsewhere")

    assert orchestrator.get(attempt.attempt_id).state == AttemptState.AWAITING_ORG_UNIT_SELECTION
    assert enrollments.persisted == []


async def test_future_date_rejected_and_attempt_keeps_waiting():
    orchestrator, _, _, units = _orchestrator([org_unit("ou1")])
    attempt = await orchestrator.start("prog", "tei")

    with pytest.raises(DateOutOfRangeError):
        await orchestrator.confirm_date(attempt.attempt_id, date(2024, 3, 16))

    assert orchestrator.get(attempt.attempt_id).state == AttemptState.AWAITING_DATE
    assert units.calls == []


async def test_org_unit_fetch_failure_aborts_with_error_not_notice():
    orchestrator, presenter, enrollments, units = _orchestrator([org_unit("ou1")])
    units.fail = True
    attempt = await orchestrator.start("prog", "tei")

    result = await orchestrator.confirm_date(attempt.attempt_id, TODAY)

    assert result.state == AttemptState.ABORTED
    assert result.failure_code == "FETCH_ERROR"
    assert "on_no_eligible_org_units" not in presenter.names()
    attempt_id, error = presenter.last("on_enrollment_failed")
    assert attempt_id == attempt.attempt_id
    assert error.context.attempt_id == attempt.attempt_id
    assert enrollments.persisted == []


async def test_persistence_failure_aborts_without_navigation():
    orchestrator, presenter, enrollments, _ = _orchestrator([org_unit("ou1")])
    enrollments.fail_persist = True
    attempt = await orchestrator.start("prog", "tei")

    result = await orchestrator.confirm_date(attempt.attempt_id, TODAY)

    assert result.state == AttemptState.ABORTED
    assert result.failure_code == "PERSISTENCE_ERROR"
    assert "on_enrollment_created" not in presenter.names()
    _, error = presenter.last("on_enrollment_failed")
    assert error.code == "PERSISTENCE_ERROR"


async def test_cancel_parked_attempt():
    orchestrator, _, enrollments, _ = _orchestrator([org_unit("ou1"), org_unit("ou2")])
    attempt = await orchestrator.start("prog", "tei")
    await orchestrator.confirm_date(attempt.attempt_id, TODAY)

    cancelled = await orchestrator.cancel(attempt.attempt_id)

    assert cancelled.state == AttemptState.ABORTED
    with pytest.raises(InvalidTransitionError):
        await orchestrator.select_org_unit(attempt.attempt_id, "ou1")
    assert enrollments.persisted == []


async def test_cancelled_task_while_resolving_aborts_attempt():
    orchestrator, presenter, enrollments, units = _orchestrator([org_unit("ou1")])
    units.gate = asyncio.Event()
    attempt = await orchestrator.start("prog", "tei")

    task = asyncio.create_task(orchestrator.confirm_date(attempt.attempt_id, TODAY))
    await settle()
    assert orchestrator.get(attempt.attempt_id).state == AttemptState.RESOLVING_ORG_UNITS
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert orchestrator.get(attempt.attempt_id).state == AttemptState.ABORTED
    assert enrollments.persisted == []
    assert "on_enrollment_created" not in presenter.names()


async def test_cancelled_task_during_started_write_completes_without_navigation():
    enrolled = []
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [org_unit("ou1")], on_enrolled=enrolled.append,
    )
    enrollments.gate_persist = asyncio.Event()
    attempt = await orchestrator.start("prog", "tei")

    task = asyncio.create_task(orchestrator.confirm_date(attempt.attempt_id, TODAY))
    await settle()
    assert orchestrator.get(attempt.attempt_id).state == AttemptState.PERSISTING
    task.cancel()
    await settle()
    assert not task.done()
    enrollments.gate_persist.set()
    with pytest.raises(asyncio.CancelledError):
        await task

    result = orchestrator.get(attempt.attempt_id)
    assert result.state == AttemptState.COMPLETED
    assert result.enrollment_uid == "enr-1"
    assert enrollments.persisted == [("ou1", "prog", "tei", TODAY)]
    assert "on_enrollment_created" not in presenter.names()
    assert enrolled == []


async def test_cancel_after_row_written_never_reports_aborted():
    orchestrator, presenter, enrollments, _ = _orchestrator([org_unit("ou1")])
    enrollments.hold_after_persist = asyncio.Event()
    attempt = await orchestrator.start("prog", "tei")

    task = asyncio.create_task(orchestrator.confirm_date(attempt.attempt_id, TODAY))
    await settle()
    assert len(enrollments.persisted) == 1
    task.cancel()
    await settle()
    enrollments.hold_after_persist.set()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert orchestrator.get(attempt.attempt_id).state == AttemptState.COMPLETED
    assert "on_enrollment_created" not in presenter.names()
    assert "on_enrollment_failed" not in presenter.names()


async def test_write_failing_after_cancel_aborts_with_persistence_code():
    orchestrator, presenter, enrollments, _ = _orchestrator([org_unit("ou1")])
    enrollments.gate_persist = asyncio.Event()
    enrollments.fail_persist = True
    attempt = await orchestrator.start("prog", "tei")

    task = asyncio.create_task(orchestrator.confirm_date(attempt.attempt_id, TODAY))
    await settle()
    task.cancel()
    await settle()
    enrollments.gate_persist.set()
    with pytest.raises(asyncio.CancelledError):
        await task

    result = orchestrator.get(attempt.attempt_id)
    assert result.state == AttemptState.ABORTED
    assert result.failure_code == "PERSISTENCE_ERROR"
    assert "on_enrollment_created" not in presenter.names()


async def test_cancelled_during_recheck_aborts_before_write():
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [org_unit("ou1")], only_enroll_once=True,
    )
    attempt = await orchestrator.start("prog", "tei")
    enrollments.gate_already_enrolled = asyncio.Event()

    task = asyncio.create_task(orchestrator.confirm_date(attempt.attempt_id, TODAY))
    await settle()
    assert orchestrator.get(attempt.attempt_id).state == AttemptState.PERSISTING
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    result = orchestrator.get(attempt.attempt_id)
    assert result.state == AttemptState.ABORTED
    assert result.failure_code is None
    assert enrollments.persisted == []
    assert "on_enrollment_created" not in presenter.names()


# ─── Single-enrollment programs ──────────────────────────────────

async def test_start_rejects_program_already_enrolled():
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [org_unit("ou1")], only_enroll_once=True,
        already_enrolled=[program("prog", only_enroll_once=True)],
    )

    with pytest.raises(AlreadyEnrolledError) as excinfo:
        await orchestrator.start("prog", "tei")

    assert excinfo.value.http_status == 409
    assert excinfo.value.program_uid == "prog"
    assert "on_date_selection_required" not in presenter.names()
    assert orchestrator.attempts() == []
    assert enrollments.persisted == []


async def test_start_allows_repeat_enrollment_when_program_permits_it():
    orchestrator, presenter, _, _ = _orchestrator(
        [org_unit("ou1")], already_enrolled=[program("prog")],
    )
    attempt = await orchestrator.start("prog", "tei")
    assert attempt.state == AttemptState.AWAITING_DATE
    assert "on_date_selection_required" in presenter.names()


async def test_second_completed_attempt_of_single_enrollment_program_is_rejected():
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [org_unit("ou1")], only_enroll_once=True,
    )
    first = await orchestrator.start("prog", "tei")
    second = await orchestrator.start("prog", "tei")

    results = await asyncio.gather(
        orchestrator.confirm_date(first.attempt_id, TODAY),
        orchestrator.confirm_date(second.attempt_id, TODAY),
    )

    states = sorted(r.state.value for r in results)
    assert states == sorted([AttemptState.COMPLETED.value, AttemptState.ABORTED.value])
    rejected = next(r for r in results if r.state == AttemptState.ABORTED)
    assert rejected.failure_code == "ALREADY_ENROLLED"
    assert len(enrollments.persisted) == 1
    assert presenter.names().count("on_enrollment_created") == 1
    _, error = presenter.last("on_enrollment_failed")
    assert isinstance(error, AlreadyEnrolledError)
    assert error.context.attempt_id == rejected.attempt_id


# ─── Validity-window scenarios ───────────────────────────────────

async def test_date_inside_first_window_auto_enrolls_first_unit():
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [YEAR_2024, FROM_2025], allows_future=True,
    )
    attempt = await orchestrator.start("prog", "tei")

    result = await orchestrator.confirm_date(attempt.attempt_id, date(2024, 6, 15))

    assert result.state == AttemptState.COMPLETED
    assert result.auto_selected
    assert enrollments.persisted == [("U1", "prog", "tei", date(2024, 6, 15))]
    assert "on_org_unit_selection_required" not in presenter.names()


async def test_date_in_open_ended_window_auto_enrolls_second_unit():
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [YEAR_2024, FROM_2025], allows_future=True,
    )
    attempt = await orchestrator.start("prog", "tei")

    result = await orchestrator.confirm_date(attempt.attempt_id, date(2025, 2, 1))

    assert result.state == AttemptState.COMPLETED
    assert enrollments.persisted == [("U2", "prog", "tei", date(2025, 2, 1))]
    assert "on_org_unit_selection_required" not in presenter.names()


async def test_date_before_every_window_shows_notice_only():
    orchestrator, presenter, enrollments, _ = _orchestrator(
        [YEAR_2024, FROM_2025], allows_future=True,
    )
    attempt = await orchestrator.start("prog", "tei")

    result = await orchestrator.confirm_date(attempt.attempt_id, date(2020, 1, 1))

    assert result.state == AttemptState.NO_ORG_UNITS
    assert presenter.last("on_no_eligible_org_units") == (attempt.attempt_id,)
    assert "on_org_unit_selection_required" not in presenter.names()
    assert enrollments.persisted == []


# ─── Bookkeeping ─────────────────────────────────────────────────

async def test_finished_attempts_are_evicted_oldest_first():
    orchestrator, _, _, _ = _orchestrator(finished_limit=2)
    started = [await orchestrator.start("prog", "tei") for _ in range(3)]
    for attempt in started:
        await orchestrator.cancel(attempt.attempt_id)

    assert len(orchestrator.attempts()) == 2
    with pytest.raises(ResourceNotFoundError):
        orchestrator.get(started[0].attempt_id)
    assert orchestrator.get(started[2].attempt_id).state == AttemptState.ABORTED
    assert orchestrator._locks == {}


async def test_abort_all_skips_terminal_attempts():
    orchestrator, _, _, _ = _orchestrator([org_unit("ou1")])
    done = await orchestrator.start("prog", "tei")
    await orchestrator.confirm_date(done.attempt_id, TODAY)
    parked = await orchestrator.start("prog", "tei")

    assert orchestrator.abort_all() == 1
    assert orchestrator.get(done.attempt_id).state == AttemptState.COMPLETED
    assert orchestrator.get(parked.attempt_id).state == AttemptState.ABORTED


async def test_unknown_attempt_is_not_found():
    orchestrator, _, _, _ = _orchestrator()
    with pytest.raises(ResourceNotFoundError):
        await orchestrator.confirm_date("nope", TODAY)
