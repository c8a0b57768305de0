"""Workspace Routes — open/close a person's program list, refresh it, stream it, and enroll.

Invariants:
    - Opening requires an existing person (404 otherwise); re-opening returns the live workspace
    - Attempt routes operate only on attempts of that person's open workspace
    - The event stream first replays the latest published lists, then forwards live events,
      and ends when the workspace closes

Design Decisions:
    - StreamingResponse for SSE: event_generator yields formatted SSE lines
    - Attempt state returned synchronously from each call as well as streamed, so simple
      clients can drive the flow without the stream
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from enrollment.api.routes.workspace_helpers import (
    SSE_HEADERS, close_workspace, get_workspace_or_404, open_workspace,
    sse_line,
)
from enrollment.core.domain_types import (
    AttemptId, OrgUnitUid, PersonUid, ProgramUid,
)
from enrollment.core.errors import ResourceNotFoundError
from enrollment.infrastructure.database import get_db
from enrollment.models.person import Person as PersonModel
from enrollment.schemas.workspace import (
    AttemptCreate, AttemptResponse, CatalogEntryResponse, DateConfirmation,
    EnrollmentSummaryResponse, OrgUnitSelection, WorkspaceResponse,
)
from enrollment.services.enrollment_workspace import EnrollmentWorkspace

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/people/{person_uid}/workspace", tags=["workspace"])


def _workspace_response(workspace: EnrollmentWorkspace) -> WorkspaceResponse:
    presenter = workspace.presenter
    return WorkspaceResponse(
        person_uid=workspace.person_uid,
        catalog=(
            [CatalogEntryResponse.from_entry(e) for e in presenter.catalog]
            if presenter.catalog is not None else None
        ),
        active_enrollments=(
            [EnrollmentSummaryResponse.from_summary(s) for s in presenter.active_enrollments]
            if presenter.active_enrollments is not None else None
        ),
        other_enrollments=(
            [EnrollmentSummaryResponse.from_summary(s) for s in presenter.other_enrollments]
            if presenter.other_enrollments is not None else None
        ),
    )


@router.post("", response_model=WorkspaceResponse)
async def open_person_workspace(
    person_uid: str, response: Response, db: AsyncSession = Depends(get_db),
):
    """Open (or reuse) the workspace; the catalog pipeline runs once immediately."""
    if await db.get(PersonModel, person_uid) is None:
        raise ResourceNotFoundError("Person", person_uid)
    workspace, created = open_workspace(PersonUid(person_uid))
    response.status_code = (
        status.HTTP_201_CREATED if created else status.HTTP_200_OK
    )
    return _workspace_response(workspace)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def close_person_workspace(person_uid: str):
    """Close the workspace; every outstanding fetch, write and attempt is cancelled."""
    if not await close_workspace(person_uid):
        raise ResourceNotFoundError("Workspace", person_uid)


@router.post("/refresh", status_code=status.HTTP_202_ACCEPTED)
async def refresh_workspace(person_uid: str):
    workspace = get_workspace_or_404(person_uid)
    workspace.refresh()
    return {"status": "refresh_scheduled"}


@router.get("/catalog", response_model=WorkspaceResponse)
async def get_catalog(person_uid: str):
    """Latest published catalog and enrollment lists."""
    return _workspace_response(get_workspace_or_404(person_uid))


@router.get("/events")
async def stream_events(person_uid: str):
    """SSE stream of presenter events for this workspace."""
    workspace = get_workspace_or_404(person_uid)
    presenter = workspace.presenter
    queue = presenter.listen()

    async def event_generator():
        try:
            for event in presenter.snapshot_events():
                yield sse_line(event)
            while True:
                event = await queue.get()
                yield sse_line(event)
                if event["type"] == "workspace_closed":
                    return
        except asyncio.CancelledError:
            logger.info(
                "Client disconnected from event stream",
                extra={"person_uid": person_uid},
            )
            return
        finally:
            presenter.unlisten(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ─── Enrollment attempts ────────────────────────────────────────

@router.post(
    "/attempts", response_model=AttemptResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_attempt(person_uid: str, body: AttemptCreate):
    """Start enrolling into a program; responds in AWAITING_DATE with the date prompt."""
    workspace = get_workspace_or_404(person_uid)
    attempt = await workspace.start_attempt(ProgramUid(body.program_uid))
    return AttemptResponse.from_attempt(attempt)


@router.get("/attempts/{attempt_id}", response_model=AttemptResponse)
async def get_attempt(person_uid: str, attempt_id: str):
    workspace = get_workspace_or_404(person_uid)
    return AttemptResponse.from_attempt(
        workspace.orchestrator.get(AttemptId(attempt_id)),
    )


@router.post("/attempts/{attempt_id}/date", response_model=AttemptResponse)
async def confirm_date(person_uid: str, attempt_id: str, body: DateConfirmation):
    workspace = get_workspace_or_404(person_uid)
    attempt = await workspace.confirm_date(AttemptId(attempt_id), body.enrollment_date)
    return AttemptResponse.from_attempt(attempt)


@router.post("/attempts/{attempt_id}/org-unit", response_model=AttemptResponse)
async def select_org_unit(person_uid: str, attempt_id: str, body: OrgUnitSelection):
    workspace = get_workspace_or_404(person_uid)
    attempt = await workspace.select_org_unit(
        AttemptId(attempt_id), OrgUnitUid(body.org_unit_uid),
    )
    return AttemptResponse.from_attempt(attempt)


@router.post("/attempts/{attempt_id}/cancel", response_model=AttemptResponse)
async def cancel_attempt(person_uid: str, attempt_id: str):
    workspace = get_workspace_or_404(person_uid)
    attempt = await workspace.cancel_attempt(AttemptId(attempt_id))
    return AttemptResponse.from_attempt(attempt)
