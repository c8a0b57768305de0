"""SQL Repositories — SQLAlchemy implementations of the core collaborator Protocols.

Invariants:
    - Each call opens one short session through DatabaseSessionManager.read / write
    - ORM rows never leave this module: callers receive core domain records
    - Catalog entries carry ERROR only when the program's last download failed
    - "Already enrolled" means any enrollment record for the person, active or not
    - persist_enrollment refuses a second enrollment into a single-enrollment program

Design Decisions:
    - One class per Protocol, all sharing the session manager (no session leakage across calls)
"""

import logging
from datetime import date

from sqlalchemy import or_, select

from enrollment.core.domain_types import (
    ColorToken, DownloadState, EnrollmentStatus, EnrollmentSummary,
    EnrollmentUid, OrgUnit, OrgUnitUid, PersonUid, Program, ProgramCatalogEntry,
    ProgramUid,
)
from enrollment.core.errors import AlreadyEnrolledError, PersistenceError
from enrollment.infrastructure.database import DatabaseSessionManager
from enrollment.models.enrollment import Enrollment as EnrollmentModel
from enrollment.models.org_unit import OrgUnit as OrgUnitModel, program_org_units
from enrollment.models.person import Person as PersonModel
from enrollment.models.program import Program as ProgramModel

logger = logging.getLogger(__name__)


def to_program(row: ProgramModel) -> Program:
    return Program(
        uid=ProgramUid(row.uid),
        name=row.name,
        enrollment_date_label=row.enrollment_date_label or "",
        allows_future_enrollment_date=row.allows_future_enrollment_date,
        only_enroll_once=row.only_enroll_once,
    )


def to_org_unit(row: OrgUnitModel) -> OrgUnit:
    return OrgUnit(
        uid=OrgUnitUid(row.uid),
        name=row.name,
        opening_date=row.opening_date,
        closed_date=row.closed_date,
    )


def to_summary(row: EnrollmentModel) -> EnrollmentSummary:
    return EnrollmentSummary(
        uid=EnrollmentUid(row.uid),
        program_uid=ProgramUid(row.program_uid),
        program_name=row.program.name,
        status=EnrollmentStatus(row.status),
        enrollment_date=row.enrollment_date,
        color=ColorToken(row.program.color) if row.program.color else None,
    )


class SqlProgramRepository:

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def fetch_all_program_entries(
        self, person_uid: PersonUid,
    ) -> list[ProgramCatalogEntry]:
        async with self._db.read("program catalog") as session:
            person = await session.get(PersonModel, person_uid)
            query = select(ProgramModel).order_by(ProgramModel.uid)
            if person is not None and person.tracked_entity_type:
                query = query.where(or_(
                    ProgramModel.tracked_entity_type.is_(None),
                    ProgramModel.tracked_entity_type == person.tracked_entity_type,
                ))
            rows = (await session.execute(query)).scalars().all()
        return [
            ProgramCatalogEntry(
                uid=ProgramUid(row.uid),
                title=row.name,
                download_state=(
                    DownloadState.ERROR if row.download_failed else DownloadState.NONE
                ),
            )
            for row in rows
        ]

    async def lookup_program(self, program_uid: ProgramUid) -> Program | None:
        async with self._db.read("program") as session:
            row = await session.get(ProgramModel, program_uid)
        return to_program(row) if row else None

    async def lookup_program_color(self, program_uid: ProgramUid) -> ColorToken | None:
        async with self._db.read("program color") as session:
            row = await session.get(ProgramModel, program_uid)
        if row is None or not row.color:
            return None
        return ColorToken(row.color)


class SqlEnrollmentRepository:

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def fetch_active_enrollments(
        self, person_uid: PersonUid,
    ) -> list[EnrollmentSummary]:
        return await self._fetch_summaries(
            "active enrollments", person_uid, active=True,
        )

    async def fetch_other_enrollments(
        self, person_uid: PersonUid,
    ) -> list[EnrollmentSummary]:
        return await self._fetch_summaries(
            "other enrollments", person_uid, active=False,
        )

    async def fetch_already_enrolled_programs(
        self, person_uid: PersonUid,
    ) -> list[Program]:
        async with self._db.read("already enrolled programs") as session:
            query = (
                select(ProgramModel)
                .join(EnrollmentModel, EnrollmentModel.program_uid == ProgramModel.uid)
                .where(EnrollmentModel.person_uid == person_uid)
                .distinct()
            )
            rows = (await session.execute(query)).scalars().all()
        return [to_program(row) for row in rows]

    async def persist_enrollment(
        self,
        org_unit_uid: OrgUnitUid,
        program_uid: ProgramUid,
        person_uid: PersonUid,
        enrollment_date: date,
    ) -> EnrollmentUid:
        async with self._db.write() as session:
            if await session.get(PersonModel, person_uid) is None:
                raise PersistenceError(f"person '{person_uid}' does not exist")
            program = await session.get(ProgramModel, program_uid)
            if program is not None and program.only_enroll_once:
                existing = await session.scalar(
                    select(EnrollmentModel.uid)
                    .where(EnrollmentModel.person_uid == person_uid)
                    .where(EnrollmentModel.program_uid == program_uid)
                    .limit(1)
                )
                if existing is not None:
                    raise AlreadyEnrolledError(program_uid)
            row = EnrollmentModel(
                program_uid=program_uid,
                person_uid=person_uid,
                org_unit_uid=org_unit_uid,
                enrollment_date=enrollment_date,
                status=EnrollmentStatus.ACTIVE.value,
            )
            session.add(row)
            await session.commit()
            logger.info(
                "Enrollment %s persisted", row.uid,
                extra={"person_uid": person_uid, "program_uid": program_uid},
            )
            return EnrollmentUid(row.uid)

    async def _fetch_summaries(
        self, source: str, person_uid: PersonUid, active: bool,
    ) -> list[EnrollmentSummary]:
        async with self._db.read(source) as session:
            query = select(EnrollmentModel).where(
                EnrollmentModel.person_uid == person_uid,
            )
            if active:
                query = query.where(
                    EnrollmentModel.status == EnrollmentStatus.ACTIVE.value,
                )
            else:
                query = query.where(
                    EnrollmentModel.status != EnrollmentStatus.ACTIVE.value,
                )
            rows = (await session.execute(query)).scalars().all()
            return [to_summary(row) for row in rows]


class SqlOrgUnitRepository:

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def fetch_org_units(self, program_uid: ProgramUid) -> list[OrgUnit]:
        async with self._db.read("org units") as session:
            query = (
                select(OrgUnitModel)
                .join(program_org_units, program_org_units.c.org_unit_uid == OrgUnitModel.uid)
                .where(program_org_units.c.program_uid == program_uid)
                .order_by(OrgUnitModel.name, OrgUnitModel.uid)
            )
            rows = (await session.execute(query)).scalars().all()
        return [to_org_unit(row) for row in rows]


class SqlPersonRepository:

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def fetch_person_attributes(self, person_uid: PersonUid) -> dict[str, str]:
        async with self._db.read("person attributes") as session:
            person = await session.get(PersonModel, person_uid)
        if person is None:
            return {}
        return {str(k): str(v) for k, v in (person.attributes or {}).items()}
