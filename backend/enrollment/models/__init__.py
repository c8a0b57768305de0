"""ORM Models — SQLAlchemy declarative models for reference data and enrollments.

Invariants:
    - All models inherit from Base (db/base.py)
    - uid columns are the DHIS-style string identities used throughout the domain

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from enrollment.models.program import Program  # noqa: F401
from enrollment.models.org_unit import OrgUnit, program_org_units  # noqa: F401
from enrollment.models.person import Person  # noqa: F401
from enrollment.models.enrollment import Enrollment  # noqa: F401
