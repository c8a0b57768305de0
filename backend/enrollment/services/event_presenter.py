"""Event Presenter — EnrollmentPresenter that keeps the latest lists and fans events out to streams.

Invariants:
    - catalog / active_enrollments / other_enrollments always hold the last published list
      (None until the first successful publish)
    - Every presenter call produces exactly one event dict {"type": ..., "data": ...}
    - Each listener gets its own bounded queue; a full queue drops that listener's oldest event
    - enrollment_failed and no_eligible_org_units are distinct event types

Design Decisions:
    - Event dicts mirror the SSE envelope used by the stream route (type + data)
    - Listeners are queues, not callbacks: the SSE generator drains at its own pace
"""

import asyncio
import logging
from collections import deque
from datetime import date

from enrollment.core.domain_types import (
    AttemptId, EnrollmentSummary, EnrollmentUid, OrgUnit, ProgramCatalogEntry,
    ProgramUid,
)
from enrollment.core.errors import EnrollmentServiceError

logger = logging.getLogger(__name__)


def catalog_entry_data(entry: ProgramCatalogEntry) -> dict:
    return {
        "uid": entry.uid,
        "title": entry.title,
        "download_state": entry.download_state.value,
    }


def enrollment_data(enrollment: EnrollmentSummary) -> dict:
    return {
        "uid": enrollment.uid,
        "program_uid": enrollment.program_uid,
        "program_name": enrollment.program_name,
        "status": enrollment.status.value,
        "enrollment_date": (
            enrollment.enrollment_date.isoformat()
            if enrollment.enrollment_date else None
        ),
        "color": enrollment.color,
    }


def org_unit_data(org_unit: OrgUnit) -> dict:
    return {
        "uid": org_unit.uid,
        "name": org_unit.name,
        "opening_date": (
            org_unit.opening_date.isoformat() if org_unit.opening_date else None
        ),
        "closed_date": (
            org_unit.closed_date.isoformat() if org_unit.closed_date else None
        ),
    }


class EventPresenter:
    """In-memory presentation boundary for one workspace."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self.catalog: list[ProgramCatalogEntry] | None = None
        self.active_enrollments: list[EnrollmentSummary] | None = None
        self.other_enrollments: list[EnrollmentSummary] | None = None
        self.history: deque[dict] = deque(maxlen=500)
        self._listeners: set[asyncio.Queue] = set()

    # ─── Listener management ─────────────────────────────────────

    def listen(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._listeners.add(queue)
        return queue

    def unlisten(self, queue: asyncio.Queue) -> None:
        self._listeners.discard(queue)

    def snapshot_events(self) -> list[dict]:
        """Events that bring a new listener up to date with the published lists."""
        events = []
        if self.catalog is not None:
            events.append(self._catalog_event(self.catalog))
        if self.active_enrollments is not None:
            events.append(_enrollments_event(
                "active_enrollments_updated", self.active_enrollments,
            ))
        if self.other_enrollments is not None:
            events.append(_enrollments_event(
                "other_enrollments_updated", self.other_enrollments,
            ))
        return events

    # ─── EnrollmentPresenter ─────────────────────────────────────

    def on_catalog_updated(self, entries: list[ProgramCatalogEntry]) -> None:
        self.catalog = list(entries)
        self._emit(self._catalog_event(self.catalog))

    def on_active_enrollments_updated(
        self, enrollments: list[EnrollmentSummary],
    ) -> None:
        self.active_enrollments = list(enrollments)
        self._emit(_enrollments_event(
            "active_enrollments_updated", self.active_enrollments,
        ))

    def on_other_enrollments_updated(
        self, enrollments: list[EnrollmentSummary],
    ) -> None:
        self.other_enrollments = list(enrollments)
        self._emit(_enrollments_event(
            "other_enrollments_updated", self.other_enrollments,
        ))

    def on_date_selection_required(
        self, attempt_id: AttemptId, max_date: date | None, title: str,
    ) -> None:
        self._emit({
            "type": "date_selection_required",
            "data": {
                "attempt_id": attempt_id,
                "max_date": max_date.isoformat() if max_date else None,
                "title": title,
            },
        })

    def on_no_eligible_org_units(self, attempt_id: AttemptId) -> None:
        self._emit({
            "type": "no_eligible_org_units",
            "data": {"attempt_id": attempt_id},
        })

    def on_org_unit_selection_required(
        self, attempt_id: AttemptId, candidates: list[OrgUnit],
    ) -> None:
        self._emit({
            "type": "org_unit_selection_required",
            "data": {
                "attempt_id": attempt_id,
                "candidates": [org_unit_data(ou) for ou in candidates],
            },
        })

    def on_enrollment_created(
        self, enrollment_uid: EnrollmentUid, program_uid: ProgramUid,
    ) -> None:
        self._emit({
            "type": "enrollment_created",
            "data": {"enrollment_uid": enrollment_uid, "program_uid": program_uid},
        })

    def on_enrollment_failed(
        self, attempt_id: AttemptId, error: EnrollmentServiceError,
    ) -> None:
        payload = error.to_sse_event()["data"]
        payload["attempt_id"] = attempt_id
        self._emit({"type": "enrollment_failed", "data": payload})

    def close(self) -> None:
        """Tell every listener the workspace is gone; streams end on this event."""
        self._emit({"type": "workspace_closed", "data": {}})
        self._listeners.clear()

    # ─── Internals ───────────────────────────────────────────────

    @staticmethod
    def _catalog_event(entries: list[ProgramCatalogEntry]) -> dict:
        return {
            "type": "catalog_updated",
            "data": [catalog_entry_data(e) for e in entries],
        }

    def _emit(self, event: dict) -> None:
        self.history.append(event)
        for queue in list(self._listeners):
            if queue.full():
                queue.get_nowait()
                logger.warning("Listener queue full, dropped oldest event")
            queue.put_nowait(event)


def _enrollments_event(event_type: str, enrollments: list[EnrollmentSummary]) -> dict:
    return {
        "type": event_type,
        "data": [enrollment_data(e) for e in enrollments],
    }
