"""Workspace Helpers — workspace registry, wiring and SSE formatting for the workspace routes.

Invariants:
    - At most one open EnrollmentWorkspace per person (module-level registry)
    - A closed workspace is removed from the registry before its scope finishes closing
    - close_all_workspaces() is called once on shutdown
    - Every workspace shares one FetchPool, so the bound holds per process

Design Decisions:
    - _workspaces as module-level dict: single-process uvicorn, workspaces are in-memory
      and rebuilt on demand after a restart (lists are recomputed, attempts are lost)
    - All wiring (repositories, pool, filter) lives here so routes stay thin
"""

import json
import logging

from enrollment.config import get_settings
from enrollment.core.domain_types import PersonUid
from enrollment.core.errors import ResourceNotFoundError
from enrollment.infrastructure.database import get_db_manager
from enrollment.infrastructure.sql_repositories import (
    SqlEnrollmentRepository, SqlOrgUnitRepository, SqlPersonRepository,
    SqlProgramRepository,
)
from enrollment.infrastructure.sync_status import sync_status_store
from enrollment.services.enrollable_filter import (
    EnrollmentControlFilter, PassThroughFilter,
)
from enrollment.services.enrollment_workspace import EnrollmentWorkspace
from enrollment.services.event_presenter import EventPresenter
from enrollment.services.fetch_pool import FetchPool

logger = logging.getLogger(__name__)

# SSE headers prevent proxy/browser buffering of streamed events.
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}

_workspaces: dict[str, EnrollmentWorkspace] = {}
_fetch_pool: FetchPool | None = None


def sse_line(event: dict) -> str:
    """Format event as SSE data line."""
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


def get_fetch_pool() -> FetchPool:
    """Process-wide pool: fetch_pool_size bounds collaborator calls across all workspaces."""
    global _fetch_pool
    if _fetch_pool is None:
        _fetch_pool = FetchPool(get_settings().fetch_pool_size)
    return _fetch_pool


def build_workspace(person_uid: PersonUid) -> EnrollmentWorkspace:
    settings = get_settings()
    db = get_db_manager()
    pool = get_fetch_pool()
    if settings.enrollment_control_enabled:
        enrollable_filter = EnrollmentControlFilter(
            settings.enrollment_control_rules, SqlPersonRepository(db), pool,
        )
    else:
        enrollable_filter = PassThroughFilter()
    return EnrollmentWorkspace(
        person_uid,
        programs=SqlProgramRepository(db),
        enrollments=SqlEnrollmentRepository(db),
        org_units=SqlOrgUnitRepository(db),
        sync_state=sync_status_store,
        pool=pool,
        presenter=EventPresenter(settings.event_queue_size),
        enrollable_filter=enrollable_filter,
    )


def open_workspace(person_uid: PersonUid) -> tuple[EnrollmentWorkspace, bool]:
    """Return (workspace, created). An already open workspace is reused."""
    existing = _workspaces.get(person_uid)
    if existing is not None and not existing.closed:
        return existing, False
    workspace = build_workspace(person_uid)
    _workspaces[person_uid] = workspace
    workspace.open()
    return workspace, True


def get_workspace_or_404(person_uid: str) -> EnrollmentWorkspace:
    workspace = _workspaces.get(person_uid)
    if workspace is None or workspace.closed:
        raise ResourceNotFoundError("Workspace", person_uid)
    return workspace


async def close_workspace(person_uid: str) -> bool:
    workspace = _workspaces.pop(person_uid, None)
    if workspace is None:
        return False
    await workspace.close()
    return True


async def close_all_workspaces() -> None:
    global _fetch_pool
    for person_uid in list(_workspaces):
        await close_workspace(person_uid)
    _fetch_pool = None


def open_workspace_count() -> int:
    return sum(1 for workspace in _workspaces.values() if not workspace.closed)
