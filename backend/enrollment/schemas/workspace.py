"""Workspace Schemas — Pydantic request/response models for the enrollment API.

Invariants:
    - Request bodies validated at the boundary (dates parsed, uids non-empty)
    - Responses expose domain state by value (enum .value strings), never ORM rows

Design Decisions:
    - from_* classmethods build responses from frozen core records (one mapping place)
"""

from datetime import date

from pydantic import BaseModel, Field

from enrollment.core.domain_types import (
    DownloadState, EnrollmentSummary, OrgUnit, ProgramCatalogEntry,
)
from enrollment.core.enrollment_flow import EnrollmentAttempt


class AttemptCreate(BaseModel):
    program_uid: str = Field(min_length=1, max_length=36)


class DateConfirmation(BaseModel):
    enrollment_date: date


class OrgUnitSelection(BaseModel):
    org_unit_uid: str = Field(min_length=1, max_length=36)


class SyncStatusReport(BaseModel):
    state: DownloadState


class OrgUnitResponse(BaseModel):
    uid: str
    name: str
    opening_date: date | None = None
    closed_date: date | None = None

    @classmethod
    def from_org_unit(cls, ou: OrgUnit) -> "OrgUnitResponse":
        return cls(
            uid=ou.uid, name=ou.name,
            opening_date=ou.opening_date, closed_date=ou.closed_date,
        )


class AttemptResponse(BaseModel):
    attempt_id: str
    program_uid: str
    person_uid: str
    state: str
    date_title: str
    max_date: date | None = None
    enrollment_date: date | None = None
    candidates: list[OrgUnitResponse] = []
    org_unit_uid: str | None = None
    enrollment_uid: str | None = None
    failure_code: str | None = None

    @classmethod
    def from_attempt(cls, attempt: EnrollmentAttempt) -> "AttemptResponse":
        return cls(
            attempt_id=attempt.attempt_id,
            program_uid=attempt.program_uid,
            person_uid=attempt.person_uid,
            state=attempt.state.value,
            date_title=attempt.date_title,
            max_date=attempt.max_date,
            enrollment_date=attempt.enrollment_date,
            candidates=[OrgUnitResponse.from_org_unit(ou) for ou in attempt.candidates],
            org_unit_uid=attempt.org_unit_uid,
            enrollment_uid=attempt.enrollment_uid,
            failure_code=attempt.failure_code,
        )


class CatalogEntryResponse(BaseModel):
    uid: str
    title: str
    download_state: str

    @classmethod
    def from_entry(cls, entry: ProgramCatalogEntry) -> "CatalogEntryResponse":
        return cls(
            uid=entry.uid, title=entry.title,
            download_state=entry.download_state.value,
        )


class EnrollmentSummaryResponse(BaseModel):
    uid: str
    program_uid: str
    program_name: str
    status: str
    enrollment_date: date | None = None
    color: str | None = None

    @classmethod
    def from_summary(cls, s: EnrollmentSummary) -> "EnrollmentSummaryResponse":
        return cls(
            uid=s.uid, program_uid=s.program_uid, program_name=s.program_name,
            status=s.status.value, enrollment_date=s.enrollment_date,
            color=s.color,
        )


class WorkspaceResponse(BaseModel):
    """Latest published lists. None means not (yet) published."""
    person_uid: str
    catalog: list[CatalogEntryResponse] | None = None
    active_enrollments: list[EnrollmentSummaryResponse] | None = None
    other_enrollments: list[EnrollmentSummaryResponse] | None = None


class ProgramResponse(BaseModel):
    uid: str
    name: str
    enrollment_date_label: str
    allows_future_enrollment_date: bool
    only_enroll_once: bool
    color: str | None = None
