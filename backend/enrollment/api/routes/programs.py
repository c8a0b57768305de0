"""Program Routes — program reference lookups and sync-status reporting.

Invariants:
    - GET /programs/{uid} returns the program with its color token, 404 when unknown
    - PUT /sync-status/{uid} is the sync subsystem's only write path into the store;
      ERROR is persisted on the program (download_failed) so catalog runs carry it

Design Decisions:
    - Program lookups reuse SqlProgramRepository (same mapping as the catalog pipeline)
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from enrollment.core.domain_types import DownloadState, ProgramUid
from enrollment.core.errors import ResourceNotFoundError
from enrollment.infrastructure.database import get_db, get_db_manager
from enrollment.infrastructure.sql_repositories import SqlProgramRepository
from enrollment.infrastructure.sync_status import sync_status_store
from enrollment.models.program import Program as ProgramModel
from enrollment.schemas.workspace import ProgramResponse, SyncStatusReport

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["programs"])


@router.get("/programs/{program_uid}", response_model=ProgramResponse)
async def get_program(program_uid: str):
    repository = SqlProgramRepository(get_db_manager())
    program = await repository.lookup_program(ProgramUid(program_uid))
    if program is None:
        raise ResourceNotFoundError("Program", program_uid)
    color = await repository.lookup_program_color(program.uid)
    return ProgramResponse(
        uid=program.uid,
        name=program.name,
        enrollment_date_label=program.enrollment_date_label,
        allows_future_enrollment_date=program.allows_future_enrollment_date,
        only_enroll_once=program.only_enroll_once,
        color=color,
    )


@router.put("/sync-status/{program_uid}", status_code=status.HTTP_200_OK)
async def report_sync_status(
    program_uid: str, body: SyncStatusReport, db: AsyncSession = Depends(get_db),
):
    """Sync subsystem reports a program's download status."""
    program = await db.get(ProgramModel, program_uid)
    if program is None:
        raise ResourceNotFoundError("Program", program_uid)
    program.download_failed = body.state == DownloadState.ERROR
    await db.commit()
    sync_status_store.report(program_uid, body.state)
    logger.info(
        "Sync status %s reported", body.state.value,
        extra={"program_uid": program_uid},
    )
    return {"program_uid": program_uid, "state": body.state.value}
