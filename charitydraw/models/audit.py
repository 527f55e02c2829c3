from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .id_type import ID_TYPE


class ActivityLog(Base):
    """Append-only trail of admin actions on draws and settlements."""

    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    subject_table: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @classmethod
    def record(
        cls,
        session: Session,
        action: str,
        subject_table: str,
        subject_id: Optional[int] = None,
        *,
        actor_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> "ActivityLog":
        """Add an entry to ``session``; flushing is left to the caller."""

        entry = cls(
            action=action,
            subject_table=subject_table,
            subject_id=subject_id,
            actor_id=actor_id,
            details=details,
        )
        session.add(entry)
        return entry
