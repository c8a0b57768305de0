"""Person ORM — the tracked person enrollments belong to.

Invariants:
    - attributes maps attribute uid -> string value (enrollment-control input)

Design Decisions:
    - JSON column for attributes: read whole, never queried by value
"""

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from enrollment.db.base import Base


class Person(Base):
    __tablename__ = "persons"

    uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    tracked_entity_type: Mapped[str | None] = mapped_column(
        String(36), nullable=True,
    )
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
