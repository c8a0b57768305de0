"""Enrollable Filters — pluggable last stage of the catalog pipeline.

Invariants:
    - Filters only remove entries and preserve order
    - PassThroughFilter is the default: the pipeline never depends on a filter being present
"""

import logging
from collections.abc import Sequence

from enrollment.core.domain_types import PersonUid, ProgramCatalogEntry
from enrollment.core.enrollment_control import (
    ProgramEnrollmentControl, filter_enrollable,
)
from enrollment.core.errors import ErrorContext
from enrollment.core.repository_protocols import PersonRepository
from enrollment.services.fetch_pool import FetchPool

logger = logging.getLogger(__name__)


class PassThroughFilter:
    async def filter(
        self, person_uid: PersonUid, entries: Sequence[ProgramCatalogEntry],
    ) -> list[ProgramCatalogEntry]:
        return list(entries)


class EnrollmentControlFilter:
    """Keeps programs whose enrollment-control rules the person's attributes satisfy."""

    def __init__(
        self,
        rules: Sequence[ProgramEnrollmentControl],
        persons: PersonRepository,
        pool: FetchPool,
    ):
        self.rules = list(rules)
        self._persons = persons
        self._pool = pool

    async def filter(
        self, person_uid: PersonUid, entries: Sequence[ProgramCatalogEntry],
    ) -> list[ProgramCatalogEntry]:
        if not self.rules:
            return list(entries)
        attributes = await self._pool.fetch(
            "person attributes",
            lambda: self._persons.fetch_person_attributes(person_uid),
            ErrorContext(person_uid=person_uid),
        )
        allowed = filter_enrollable(entries, self.rules, attributes)
        logger.debug(
            "Enrollment control kept %d of %d program(s)",
            len(allowed), len(entries), extra={"person_uid": person_uid},
        )
        return allowed
