"""SQLAlchemy ORM models for persisted form sessions."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stepform.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FormSessionRow(Base):
    """One snapshot per form id and client session. The snapshot is stored as the raw JSON text."""

    __tablename__ = "form_sessions"

    form_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(64), primary_key=True, default="")
    snapshot: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
