"""Enrollment Workspace — one person's program list: catalog pipeline, enrollment lists, attempts.

Invariants:
    - open() starts the catalog pipeline (runs once immediately) and loads both enrollment lists
    - refresh() re-runs the full catalog pipeline; bursts coalesce
    - Attempt work runs inside the workspace CancellationScope
    - close() is idempotent: cancels every outstanding task, then aborts parked attempts;
      no persistence or navigation can happen afterwards
    - A created enrollment refreshes the catalog and reloads both enrollment lists

Design Decisions:
    - Scoped attempt calls are awaited with asyncio.wait: a teardown cancellation ends the
      request with the ABORTED attempt instead of cancelling the caller
"""

import asyncio
import logging
from collections.abc import Coroutine
from datetime import date, datetime
from typing import Any

from enrollment.core.domain_types import (
    AttemptId, OrgUnitUid, PersonUid, ProgramUid,
)
from enrollment.core.enrollment_flow import EnrollmentAttempt
from enrollment.core.repository_protocols import (
    EnrollableProgramsFilter, EnrollmentRepository, OrgUnitRepository,
    ProgramRepository, SyncStateSource,
)
from enrollment.services.cancellation_scope import CancellationScope
from enrollment.services.catalog_pipeline import CatalogPipeline
from enrollment.services.enrollment_orchestrator import EnrollmentOrchestrator
from enrollment.services.event_presenter import EventPresenter
from enrollment.services.fetch_pool import FetchPool
from enrollment.services.refresh_bus import RefreshBus

logger = logging.getLogger(__name__)


class EnrollmentWorkspace:
    """Workflow instance for one person; owns a single cancellation scope."""

    def __init__(
        self,
        person_uid: PersonUid,
        programs: ProgramRepository,
        enrollments: EnrollmentRepository,
        org_units: OrgUnitRepository,
        sync_state: SyncStateSource,
        pool: FetchPool,
        presenter: EventPresenter | None = None,
        enrollable_filter: EnrollableProgramsFilter | None = None,
        today=date.today,
    ):
        self.person_uid = person_uid
        self.pool = pool
        self.presenter = presenter or EventPresenter()
        self.bus = RefreshBus()
        self.scope = CancellationScope(f"workspace:{person_uid}")
        self.pipeline = CatalogPipeline(
            person_uid, programs, enrollments, sync_state,
            self.presenter, pool, enrollable_filter,
        )
        self.orchestrator = EnrollmentOrchestrator(
            programs, enrollments, org_units, self.presenter, pool,
            today=today, on_enrolled=self._after_enrollment,
        )
        self._opened = False

    @property
    def closed(self) -> bool:
        return self.scope.closed

    def open(self) -> None:
        if self._opened:
            return
        self._opened = True
        subscription = self.bus.subscribe()
        self.scope.spawn(self.pipeline.run(subscription), name="catalog-pipeline")
        self.scope.spawn(self.pipeline.load_enrollment_lists(), name="enrollment-lists")
        logger.info("Workspace opened", extra={"person_uid": self.person_uid})

    def refresh(self) -> None:
        self.bus.trigger()

    async def close(self) -> None:
        if self.scope.closed:
            return
        await self.scope.close()
        aborted = self.orchestrator.abort_all()
        self.presenter.close()
        logger.info(
            "Workspace closed (%d attempt(s) aborted)", aborted,
            extra={"person_uid": self.person_uid},
        )

    # ─── Attempts ────────────────────────────────────────────────

    async def start_attempt(self, program_uid: ProgramUid) -> EnrollmentAttempt:
        return await self._scoped(
            self.orchestrator.start(program_uid, self.person_uid),
        )

    async def confirm_date(
        self, attempt_id: AttemptId, enrollment_date: date | datetime,
    ) -> EnrollmentAttempt:
        self.orchestrator.get(attempt_id)
        return await self._scoped(
            self.orchestrator.confirm_date(attempt_id, enrollment_date),
            attempt_id,
        )

    async def select_org_unit(
        self, attempt_id: AttemptId, org_unit_uid: OrgUnitUid,
    ) -> EnrollmentAttempt:
        self.orchestrator.get(attempt_id)
        return await self._scoped(
            self.orchestrator.select_org_unit(attempt_id, org_unit_uid),
            attempt_id,
        )

    async def cancel_attempt(self, attempt_id: AttemptId) -> EnrollmentAttempt:
        return await self.orchestrator.cancel(attempt_id)

    async def _scoped(
        self, coro: Coroutine[Any, Any, EnrollmentAttempt],
        attempt_id: AttemptId | None = None,
    ) -> EnrollmentAttempt:
        task = self.scope.spawn(coro)
        await asyncio.wait({task})
        if task.cancelled():
            if attempt_id is None:
                raise RuntimeError("Workspace closed before the attempt started")
            return self.orchestrator.get(attempt_id)
        return task.result()

    def _after_enrollment(self, attempt: EnrollmentAttempt) -> None:
        self.refresh()
        if not self.scope.closed:
            self.scope.spawn(
                self.pipeline.load_enrollment_lists(), name="enrollment-lists",
            )
