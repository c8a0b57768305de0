"""Enrollment Workspace — lifecycle of one person's program list.

Tests:
    - open() publishes the catalog and both enrollment lists
    - refresh() re-runs the pipeline; a completed enrollment refreshes everything
    - close() cancels in-flight attempts, aborts parked ones, and nothing is published after
    - close() waits for a write already under way; the row is kept without navigation
"""

import asyncio
from datetime import date

from enrollment.core.domain_types import AttemptState
from enrollment.services.enrollment_workspace import EnrollmentWorkspace
from enrollment.services.event_presenter import EventPresenter
from enrollment.services.fetch_pool import FetchPool

from tests.services.fakes import (
    FakeEnrollmentRepository, FakeOrgUnitRepository, FakeProgramRepository,
    entry, org_unit, program, settle, summary, sync_store,
)

TODAY = date(2024, 3, 15)


def _workspace(org_units=()):
    programs = FakeProgramRepository(
        entries=[entry("prog", "Program", ), entry("other", "Another")],
        programs=[program("prog", "Program", only_enroll_once=True)],
    )
    enrollments = FakeEnrollmentRepository(active=[summary("1", "Existing")])
    units = FakeOrgUnitRepository(org_units)
    workspace = EnrollmentWorkspace(
        "tei", programs, enrollments, units, sync_store(), FetchPool(4),
        presenter=EventPresenter(), today=lambda: TODAY,
    )
    return workspace, programs, enrollments, units


async def test_open_publishes_catalog_and_lists():
    workspace, _, _, _ = _workspace()
    workspace.open()
    await settle()

    presenter = workspace.presenter
    assert [e.uid for e in presenter.catalog] == ["other", "prog"]
    assert [s.program_name for s in presenter.active_enrollments] == ["Existing"]
    assert presenter.other_enrollments == []
    await workspace.close()


async def test_refresh_reruns_pipeline():
    workspace, programs, _, _ = _workspace()
    workspace.open()
    await settle()

    programs.entries.append(entry("new", "Brand new"))
    workspace.refresh()
    await settle()

    assert [e.uid for e in workspace.presenter.catalog] == ["other", "new", "prog"]
    assert programs.catalog_calls == 2
    await workspace.close()


async def test_enrollment_refreshes_catalog_and_lists():
    workspace, programs, enrollments, _ = _workspace([org_unit("ou1")])
    workspace.open()
    await settle()
    enrollments.already_enrolled.append(program("prog", only_enroll_once=True))
    enrollments.active.append(summary("2", "Program"))

    attempt = await workspace.start_attempt("prog")
    result = await workspace.confirm_date(attempt.attempt_id, TODAY)
    await settle()

    assert result.state == AttemptState.COMPLETED
    assert [e.uid for e in workspace.presenter.catalog] == ["other"]
    assert len(workspace.presenter.active_enrollments) == 2
    types = [event["type"] for event in workspace.presenter.history]
    assert types.index("enrollment_created") < len(types) - 1
    await workspace.close()


async def test_close_aborts_parked_attempt_and_ends_streams():
    workspace, _, _, _ = _workspace([org_unit("ou1"), org_unit("ou2")])
    workspace.open()
    await settle()
    queue = workspace.presenter.listen()
    attempt = await workspace.start_attempt("prog")
    await workspace.confirm_date(attempt.attempt_id, TODAY)

    await workspace.close()

    assert workspace.closed
    assert workspace.orchestrator.get(attempt.attempt_id).state == AttemptState.ABORTED
    events = []
    while not queue.empty():
        events.append(queue.get_nowait()["type"])
    assert events[-1] == "workspace_closed"


async def test_close_during_started_write_waits_and_suppresses_navigation():
    workspace, _, enrollments, _ = _workspace([org_unit("ou1")])
    enrollments.gate_persist = asyncio.Event()
    workspace.open()
    await settle()
    attempt = await workspace.start_attempt("prog")

    request = asyncio.create_task(workspace.confirm_date(attempt.attempt_id, TODAY))
    await settle()
    closing = asyncio.create_task(workspace.close())
    await settle()
    assert not closing.done()
    enrollments.gate_persist.set()
    await closing
    result = await request

    assert result.state == AttemptState.COMPLETED
    assert len(enrollments.persisted) == 1
    types = [event["type"] for event in workspace.presenter.history]
    assert "enrollment_created" not in types


async def test_close_before_write_returns_aborted_attempt_without_write():
    workspace, _, enrollments, units = _workspace([org_unit("ou1")])
    units.gate = asyncio.Event()
    workspace.open()
    await settle()
    attempt = await workspace.start_attempt("prog")

    request = asyncio.create_task(workspace.confirm_date(attempt.attempt_id, TODAY))
    await settle()
    await workspace.close()
    result = await request

    assert result.state == AttemptState.ABORTED
    assert enrollments.persisted == []


def test_workspace_exposes_the_pool_it_was_given():
    pool = FetchPool(2)
    workspace = EnrollmentWorkspace(
        "tei", FakeProgramRepository(), FakeEnrollmentRepository(),
        FakeOrgUnitRepository(), sync_store(), pool,
    )
    assert workspace.pool is pool
    assert workspace.pipeline._pool is pool


async def test_close_is_idempotent():
    workspace, _, _, _ = _workspace()
    workspace.open()
    await workspace.close()
    await workspace.close()
    assert workspace.closed
