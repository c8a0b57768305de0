"""Domain Types — identities, enums and immutable reference records.

Invariants:
    - ProgramUid, PersonUid, OrgUnitUid, EnrollmentUid, AttemptId wrap str — never bare str in domain logic
    - Program, OrgUnit, ProgramCatalogEntry, EnrollmentSummary are frozen (reference data, never patched)
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over wrapper classes: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (SSE events + REST bodies)
    - Frozen dataclasses: a catalog run builds new entries instead of mutating old ones
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

ProgramUid = NewType("ProgramUid", str)
PersonUid = NewType("PersonUid", str)
OrgUnitUid = NewType("OrgUnitUid", str)
EnrollmentUid = NewType("EnrollmentUid", str)
AttemptId = NewType("AttemptId", str)

ColorToken = NewType("ColorToken", str)


# ─── Enums ───────────────────────────────────────────────────────

class DownloadState(str, Enum):
    """Program download status as shown next to each catalog entry."""
    NONE = "none"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    ERROR = "error"


class EnrollmentStatus(str, Enum):
    """Enrollment lifecycle — maps to DB `status` column."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AttemptState(str, Enum):
    """Enrollment attempt states. Terminal: ABORTED, COMPLETED, NO_ORG_UNITS."""
    AWAITING_DATE = "awaiting_date"
    RESOLVING_ORG_UNITS = "resolving_org_units"
    BRANCHING = "branching"
    AWAITING_ORG_UNIT_SELECTION = "awaiting_org_unit_selection"
    PERSISTING = "persisting"
    ABORTED = "aborted"
    COMPLETED = "completed"
    NO_ORG_UNITS = "no_org_units"


TERMINAL_STATES = frozenset({
    AttemptState.ABORTED,
    AttemptState.COMPLETED,
    AttemptState.NO_ORG_UNITS,
})


# ─── Reference Records ───────────────────────────────────────────

@dataclass(frozen=True)
class Program:
    uid: ProgramUid
    name: str
    enrollment_date_label: str = ""
    allows_future_enrollment_date: bool = False
    only_enroll_once: bool = False


@dataclass(frozen=True)
class OrgUnit:
    """Facility node. Validity window is [opening_date, closed_date], None = unbounded."""
    uid: OrgUnitUid
    name: str = ""
    opening_date: date | None = None
    closed_date: date | None = None


@dataclass(frozen=True)
class ProgramCatalogEntry:
    uid: ProgramUid
    title: str
    download_state: DownloadState = DownloadState.NONE


@dataclass(frozen=True)
class EnrollmentSummary:
    """An existing enrollment as listed for a person."""
    uid: EnrollmentUid
    program_uid: ProgramUid
    program_name: str
    status: EnrollmentStatus
    enrollment_date: date | None = None
    color: ColorToken | None = None
