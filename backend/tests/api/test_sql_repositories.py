"""SQL Repositories — enrollment write guard and relationship loading against SQLite.

Tests:
    - A single-enrollment program refuses a second row for the same person
    - Other programs accept repeat enrollments
    - Program <-> OrgUnit links load lazily (catalog queries never pull them)
"""

from datetime import date

import pytest

from enrollment.core.errors import AlreadyEnrolledError
from enrollment.infrastructure.sql_repositories import SqlEnrollmentRepository
from enrollment.models import OrgUnit, Program


async def test_second_write_for_single_enrollment_program_is_rejected(seeded):
    repository = SqlEnrollmentRepository(seeded)
    first = await repository.persist_enrollment(
        "ou-open", "anc", "tei-1", date(2024, 1, 10),
    )
    assert first

    with pytest.raises(AlreadyEnrolledError) as excinfo:
        await repository.persist_enrollment(
            "ou-open", "anc", "tei-1", date(2024, 2, 10),
        )

    assert excinfo.value.http_status == 409
    enrolled = await repository.fetch_already_enrolled_programs("tei-1")
    assert [p.uid for p in enrolled] == ["anc"]


async def test_repeatable_program_accepts_second_write(seeded):
    repository = SqlEnrollmentRepository(seeded)
    first = await repository.persist_enrollment("ou-open", "tb", "tei-1", date(2024, 1, 10))
    second = await repository.persist_enrollment("ou-2", "tb", "tei-1", date(2024, 2, 10))
    assert first != second


def test_program_org_unit_links_load_lazily():
    assert Program.org_units.property.lazy == "select"
    assert OrgUnit.programs.property.lazy == "select"
