# app/domains/reports/models.py
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.mixins import TimestampMixin
from app.shared.models.base import Base


class ContentReport(Base, TimestampMixin):
    __tablename__ = "content_reports"
    __table_args__ = (
        Index("ix_content_reports_dedupe", "content_hash", "reporter_id", "submitted_at"),
        Index("ix_content_reports_open", "status", "sla_deadline"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    content_id: Mapped[str] = mapped_column(String, index=True)
    content_type: Mapped[str] = mapped_column(String)
    content_locator: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    content_hash: Mapped[str] = mapped_column(String(64))
    reporter_id: Mapped[str] = mapped_column(String, index=True)
    reporter_contact: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    trusted_flagger: Mapped[bool] = mapped_column(Boolean, default=False)
    trusted_flagger_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    report_type: Mapped[str] = mapped_column(String)  # illegal, policy_violation
    jurisdiction: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    legal_reference: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    explanation: Mapped[str] = mapped_column(Text)
    good_faith_declaration: Mapped[bool] = mapped_column(Boolean)
    evidence_urls: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String, default="pending")
    priority: Mapped[int] = mapped_column(Integer)
    priority_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    sla_lane: Mapped[str] = mapped_column(String)
    submitted_at: Mapped[datetime] = mapped_column(DateTime)
    sla_deadline: Mapped[datetime] = mapped_column(DateTime)
    content_snapshot_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    duplicate_of_report_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class ContentSnapshot(Base):
    __tablename__ = "content_snapshots"
    __table_args__ = (Index("ix_content_snapshots_hash", "snapshot_hash", "captured_at"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    content_id: Mapped[str] = mapped_column(String, index=True)
    snapshot_hash: Mapped[str] = mapped_column(String(64))
    snapshot_data: Mapped[dict] = mapped_column(JSON)
    captured_at: Mapped[datetime] = mapped_column(DateTime)
    captured_by_report_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class TrustedFlagger(Base, TimestampMixin):
    __tablename__ = "trusted_flaggers"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, unique=True)
    organization_name: Mapped[str] = mapped_column(String)
    contact_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    specialization: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String, default="active")  # active, suspended, revoked
    total_reports: Mapped[int] = mapped_column(Integer, default=0)
    upheld_decisions: Mapped[int] = mapped_column(Integer, default=0)
