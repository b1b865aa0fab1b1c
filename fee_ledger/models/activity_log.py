"""
Module: fee_ledger.models.activity_log
Responsibility: ORM persistence for the user-facing activity feed
    ("Payment recorded: ...", "Invoice generated ...").
Architecture position: Ledger > Models.

Rows are append-only; the ledger never updates or deletes them.
"""

from uuid import UUID

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fee_ledger.db.base import TrackedBase
from fee_ledger.domain.types import ActivityEntry, ActivityType


class ActivityLogModel(TrackedBase):
    """ORM model for activity log entries."""

    __tablename__ = "activity_logs"

    __table_args__ = (
        Index("idx_activity_logs_entity", "entity_type", "entity_id"),
        Index("idx_activity_logs_created_at", "created_at"),
    )

    user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def to_dto(self) -> ActivityEntry:
        return ActivityEntry(
            id=self.id,
            activity_type=ActivityType(self.activity_type),
            description=self.description,
            created_at=self.created_at,
            user_id=self.user_id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
        )
