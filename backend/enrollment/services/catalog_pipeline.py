"""Catalog Pipeline — fetches, merges and publishes the enrollable-program catalog for one person.

Invariants:
    - One run: fetch catalog -> (sync snapshot || already-enrolled fetch) -> merge -> filter -> publish
    - Merge waits for both concurrent inputs (join, not first-wins)
    - A FetchError ends the run unpublished; no retry until the next refresh tick
    - Publication is one atomic list replacement (on_catalog_updated), never a patch
    - Active and other enrollment lists load concurrently and publish independently:
      one failing never blocks the other
    - A failing filter stage is logged and the unfiltered catalog is published

Design Decisions:
    - Pipeline re-runs from scratch per tick: no diffing, stale results are simply replaced
    - The last completed run wins; overlapping runs are prevented by the single consumer loop
"""

import asyncio
import logging

from enrollment.core.catalog_merge import merge_catalog, sort_enrollments
from enrollment.core.domain_types import (
    EnrollmentSummary, PersonUid, ProgramCatalogEntry,
)
from enrollment.core.errors import ErrorContext, FetchError
from enrollment.core.repository_protocols import (
    EnrollableProgramsFilter, EnrollmentPresenter, EnrollmentRepository,
    ProgramRepository, SyncStateLookup, SyncStateSource,
)
from enrollment.services.enrollable_filter import PassThroughFilter
from enrollment.services.fetch_pool import FetchPool
from enrollment.services.refresh_bus import RefreshSubscription

logger = logging.getLogger(__name__)


class CatalogPipeline:
    """Re-runnable catalog computation bound to one person and one presenter."""

    def __init__(
        self,
        person_uid: PersonUid,
        programs: ProgramRepository,
        enrollments: EnrollmentRepository,
        sync_state: SyncStateSource,
        presenter: EnrollmentPresenter,
        pool: FetchPool,
        enrollable_filter: EnrollableProgramsFilter | None = None,
    ):
        self.person_uid = person_uid
        self._programs = programs
        self._enrollments = enrollments
        self._sync_state = sync_state
        self._presenter = presenter
        self._pool = pool
        self._filter = enrollable_filter or PassThroughFilter()
        self._ctx = ErrorContext(person_uid=person_uid)
        self.runs_completed = 0

    async def run(self, subscription: RefreshSubscription) -> None:
        """Consume refresh ticks until the subscription or the owning scope closes."""
        async for _ in subscription:
            await self.run_once()

    async def run_once(self) -> list[ProgramCatalogEntry] | None:
        try:
            raw = await self._pool.fetch(
                "program catalog",
                lambda: self._programs.fetch_all_program_entries(self.person_uid),
                self._ctx,
            )
            snapshot, already_enrolled = await asyncio.gather(
                self._take_snapshot(),
                self._pool.fetch(
                    "already enrolled programs",
                    lambda: self._enrollments.fetch_already_enrolled_programs(
                        self.person_uid,
                    ),
                    self._ctx,
                ),
            )
        except FetchError as e:
            logger.error(
                "Catalog run failed, nothing published: %s", e.message,
                extra={"person_uid": self.person_uid, "error_code": e.code},
            )
            return None

        catalog = merge_catalog(raw, snapshot, already_enrolled)
        catalog = await self._apply_filter(catalog)
        self._presenter.on_catalog_updated(catalog)
        self.runs_completed += 1
        logger.info(
            "Catalog published (%d program(s))", len(catalog),
            extra={"person_uid": self.person_uid},
        )
        return catalog

    async def load_enrollment_lists(self) -> None:
        await asyncio.gather(self._load_active(), self._load_other())

    async def _take_snapshot(self) -> SyncStateLookup:
        return self._sync_state.snapshot()

    async def _apply_filter(
        self, catalog: list[ProgramCatalogEntry],
    ) -> list[ProgramCatalogEntry]:
        try:
            return await self._filter.filter(self.person_uid, catalog)
        except FetchError as e:
            logger.warning(
                "Enrollable filter unavailable, publishing unfiltered catalog: %s",
                e.message,
                extra={"person_uid": self.person_uid, "error_code": e.code},
            )
            return catalog

    async def _load_active(self) -> None:
        enrollments = await self._load_list(
            "active enrollments", self._enrollments.fetch_active_enrollments,
        )
        if enrollments is not None:
            self._presenter.on_active_enrollments_updated(enrollments)

    async def _load_other(self) -> None:
        enrollments = await self._load_list(
            "other enrollments", self._enrollments.fetch_other_enrollments,
        )
        if enrollments is not None:
            self._presenter.on_other_enrollments_updated(enrollments)

    async def _load_list(self, source, fetch) -> list[EnrollmentSummary] | None:
        try:
            enrollments = await self._pool.fetch(
                source, lambda: fetch(self.person_uid), self._ctx,
            )
        except FetchError as e:
            logger.error(
                "Loading %s failed, list not published: %s", source, e.message,
                extra={"person_uid": self.person_uid, "error_code": e.code},
            )
            return None
        return sort_enrollments(enrollments)
