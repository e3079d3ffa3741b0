# app/domains/transparency/models.py
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.mixins import TimestampMixin
from app.shared.models.base import Base


class SorExportItem(Base, TimestampMixin):
    """Outbox row for submitting one statement of reasons to the Transparency DB."""

    __tablename__ = "sor_export_queue"
    __table_args__ = (Index("ix_sor_export_queue_due", "status", "next_attempt_at"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    statement_id: Mapped[str] = mapped_column(String, unique=True)
    decision_id: Mapped[str] = mapped_column(String, index=True)
    idempotency_key: Mapped[str] = mapped_column(String, unique=True)
    status: Mapped[str] = mapped_column(String, default="pending")  # pending, retry, submitted, failed, dlq
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(DateTime)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transparency_db_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    response: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
