"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: boundary methods are async because implementations do IO,
      but core pure functions that USE these protocols are never async themselves —
      the shell orchestrates the async calls around the pure logic
    - SyncStateLookup is sync: it is answered from an in-memory point-in-time snapshot
"""

from collections.abc import Sequence
from datetime import date
from typing import Protocol

from enrollment.core.domain_types import (
    AttemptId, ColorToken, EnrollmentSummary, EnrollmentUid, OrgUnit,
    OrgUnitUid, PersonUid, Program, ProgramCatalogEntry, ProgramUid,
)
from enrollment.core.errors import EnrollmentServiceError


class SyncStateLookup(Protocol):
    """Point-in-time view of the download subsystem."""
    def is_downloading(self, program_uid: ProgramUid) -> bool: ...
    def is_downloaded(self, program_uid: ProgramUid) -> bool: ...


class SyncStateSource(Protocol):
    """Externally owned sync store; the core only ever reads snapshots of it."""
    def snapshot(self) -> SyncStateLookup: ...


class ProgramRepository(Protocol):
    """Contract for program reference data — implemented by shell."""
    async def fetch_all_program_entries(
        self, person_uid: PersonUid,
    ) -> list[ProgramCatalogEntry]: ...
    async def lookup_program(self, program_uid: ProgramUid) -> Program | None: ...
    async def lookup_program_color(self, program_uid: ProgramUid) -> ColorToken | None: ...


class EnrollmentRepository(Protocol):
    """Contract for enrollment reads and the single enrollment write."""
    async def fetch_active_enrollments(
        self, person_uid: PersonUid,
    ) -> list[EnrollmentSummary]: ...
    async def fetch_other_enrollments(
        self, person_uid: PersonUid,
    ) -> list[EnrollmentSummary]: ...
    async def fetch_already_enrolled_programs(
        self, person_uid: PersonUid,
    ) -> list[Program]: ...
    async def persist_enrollment(
        self,
        org_unit_uid: OrgUnitUid,
        program_uid: ProgramUid,
        person_uid: PersonUid,
        enrollment_date: date,
    ) -> EnrollmentUid: ...


class OrgUnitRepository(Protocol):
    """Contract for org units within a program's capture scope."""
    async def fetch_org_units(self, program_uid: ProgramUid) -> list[OrgUnit]: ...


class PersonRepository(Protocol):
    """Contract for person attribute values used by enrollment control."""
    async def fetch_person_attributes(
        self, person_uid: PersonUid,
    ) -> dict[str, str]: ...


class EnrollableProgramsFilter(Protocol):
    """Optional last catalog stage. Must preserve order; may only remove entries."""
    async def filter(
        self, person_uid: PersonUid, entries: Sequence[ProgramCatalogEntry],
    ) -> list[ProgramCatalogEntry]: ...


class EnrollmentPresenter(Protocol):
    """Presentation boundary — receives every result and prompt the workflow produces."""
    def on_catalog_updated(self, entries: list[ProgramCatalogEntry]) -> None: ...
    def on_active_enrollments_updated(
        self, enrollments: list[EnrollmentSummary],
    ) -> None: ...
    def on_other_enrollments_updated(
        self, enrollments: list[EnrollmentSummary],
    ) -> None: ...
    def on_date_selection_required(
        self, attempt_id: AttemptId, max_date: date | None, title: str,
    ) -> None: ...
    def on_no_eligible_org_units(self, attempt_id: AttemptId) -> None: ...
    def on_org_unit_selection_required(
        self, attempt_id: AttemptId, candidates: list[OrgUnit],
    ) -> None: ...
    def on_enrollment_created(
        self, enrollment_uid: EnrollmentUid, program_uid: ProgramUid,
    ) -> None: ...
    def on_enrollment_failed(
        self, attempt_id: AttemptId, error: EnrollmentServiceError,
    ) -> None: ...
