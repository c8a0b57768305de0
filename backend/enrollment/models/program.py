"""Program ORM — health-tracking program reference data.

Invariants:
    - uid is the primary key
    - download_failed carries the last download ERROR until the sync subsystem clears it
    - tracked_entity_type NULL means the program accepts any person type

Design Decisions:
    - color stored as a plain token string; rendering is the client's concern
    - org_units loads lazily: repositories join program_org_units directly, so catalog
      queries never pull capture scopes along
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from enrollment.db.base import Base


class Program(Base):
    __tablename__ = "programs"

    uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(230), nullable=False)
    enrollment_date_label: Mapped[str] = mapped_column(
        String(230), nullable=False, default="",
    )
    allows_future_enrollment_date: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    only_enroll_once: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    tracked_entity_type: Mapped[str | None] = mapped_column(
        String(36), nullable=True,
    )
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    download_failed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    org_units: Mapped[list["OrgUnit"]] = relationship(
        "OrgUnit", secondary="program_org_units",
        back_populates="programs", lazy="select",
    )
