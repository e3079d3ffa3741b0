# app/domains/appeals/models.py
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.mixins import TimestampMixin
from app.shared.models.base import Base


class Appeal(Base, TimestampMixin):
    __tablename__ = "appeals"
    __table_args__ = (
        # one active appeal per (decision, user)
        Index(
            "uq_appeals_active_per_decision_user",
            "original_decision_id",
            "user_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'in_review')"),
            sqlite_where=text("status IN ('pending', 'in_review')"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    original_decision_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    appeal_type: Mapped[str] = mapped_column(String)
    counter_arguments: Mapped[str] = mapped_column(Text)
    supporting_evidence: Mapped[list] = mapped_column(JSON, default=list)
    reviewer_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    decision: Mapped[Optional[str]] = mapped_column(String, nullable=True)  # upheld, rejected, partial
    decision_reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, default="pending")
    submitted_at: Mapped[datetime] = mapped_column(DateTime)
    deadline: Mapped[datetime] = mapped_column(DateTime)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ods_escalation_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    ods_body_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    ods_submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ods_resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class OdsEscalation(Base, TimestampMixin):
    __tablename__ = "ods_escalations"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    appeal_id: Mapped[str] = mapped_column(String, unique=True)
    ods_body_id: Mapped[str] = mapped_column(String, index=True)
    case_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="submitted")
    submitted_at: Mapped[datetime] = mapped_column(DateTime)
    target_resolution_date: Mapped[datetime] = mapped_column(DateTime)
    actual_resolution_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    outcome: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    outcome_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    platform_action_required: Mapped[bool] = mapped_column(Boolean, default=False)
    platform_action_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    platform_action_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class OdsBody(Base, TimestampMixin):
    """Directory of certified out-of-court dispute settlement bodies."""

    __tablename__ = "ods_bodies"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, unique=True)
    jurisdictions: Mapped[list] = mapped_column(JSON, default=list)
    specialization: Mapped[list] = mapped_column(JSON, default=list)
    submission_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="certified")  # certified, suspended, revoked
