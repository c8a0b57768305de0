"""OrgUnit ORM — facilities with a validity window, linked to programs by capture scope.

Invariants:
    - opening_date / closed_date NULL means unbounded on that side
    - program_org_units defines which org units can capture data for a program
"""

from datetime import date

from sqlalchemy import Column, Date, ForeignKey, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from enrollment.db.base import Base

program_org_units = Table(
    "program_org_units",
    Base.metadata,
    Column("program_uid", String(36), ForeignKey("programs.uid", ondelete="CASCADE"), primary_key=True),
    Column("org_unit_uid", String(36), ForeignKey("org_units.uid", ondelete="CASCADE"), primary_key=True),
)


class OrgUnit(Base):
    __tablename__ = "org_units"

    uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(230), nullable=False, default="")
    opening_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    closed_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    programs: Mapped[list["Program"]] = relationship(
        "Program", secondary=program_org_units,
        back_populates="org_units", lazy="select",
    )
