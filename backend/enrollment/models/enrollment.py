"""Enrollment ORM — links a person, a program, an org unit and a start date.

Invariants:
    - uid assigned on insert (uuid4 hex)
    - enrollment_date is a calendar date (no time component)
    - status: active | completed | cancelled (EnrollmentStatus values)
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from enrollment.core.domain_types import EnrollmentStatus
from enrollment.db.base import Base


class Enrollment(Base):
    __tablename__ = "enrollments"

    uid: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex,
    )
    program_uid: Mapped[str] = mapped_column(
        String(36), ForeignKey("programs.uid"), nullable=False, index=True,
    )
    person_uid: Mapped[str] = mapped_column(
        String(36), ForeignKey("persons.uid"), nullable=False, index=True,
    )
    org_unit_uid: Mapped[str] = mapped_column(
        String(36), ForeignKey("org_units.uid"), nullable=False,
    )
    enrollment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EnrollmentStatus.ACTIVE.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    program: Mapped["Program"] = relationship("Program", lazy="selectin")
