# app/domains/moderation/models.py
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.mixins import TimestampMixin
from app.shared.models.base import Base


class ModerationClaim(Base):
    """One row per report; the claim is active while expires_at > now."""

    __tablename__ = "moderation_claims"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    report_id: Mapped[str] = mapped_column(String, unique=True)
    moderator_id: Mapped[str] = mapped_column(String, index=True)
    claimed_at: Mapped[datetime] = mapped_column(DateTime)
    expires_at: Mapped[datetime] = mapped_column(DateTime)


class ModerationDecision(Base, TimestampMixin):
    __tablename__ = "moderation_decisions"
    __table_args__ = (
        # at most one live decision per report
        Index(
            "uq_moderation_decisions_live_report",
            "report_id",
            unique=True,
            postgresql_where=text("status <> 'reversed'"),
            sqlite_where=text("status <> 'reversed'"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    report_id: Mapped[str] = mapped_column(String, index=True)
    moderator_id: Mapped[str] = mapped_column(String, index=True)
    supervisor_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    action: Mapped[str] = mapped_column(String)
    policy_violations: Mapped[list] = mapped_column(JSON, default=list)
    reasoning: Mapped[str] = mapped_column(Text)
    evidence: Mapped[list] = mapped_column(JSON, default=list)
    content_id: Mapped[str] = mapped_column(String)
    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    duration_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    territorial_scope: Mapped[list] = mapped_column(JSON, default=list)
    statement_of_reasons_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="pending")  # pending, approved, executed, reversed
    requires_supervisor_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    reversal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class StatementOfReasons(Base):
    __tablename__ = "statements_of_reasons"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    decision_id: Mapped[str] = mapped_column(String, unique=True)
    decision_ground: Mapped[str] = mapped_column(String)  # illegal, terms
    legal_reference: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    content_type: Mapped[str] = mapped_column(String)
    category: Mapped[list] = mapped_column(JSON, default=list)
    facts_and_circumstances: Mapped[str] = mapped_column(Text)
    automated_detection: Mapped[bool] = mapped_column(Boolean, default=False)
    automated_decision: Mapped[bool] = mapped_column(Boolean, default=False)
    territorial_scope: Mapped[list] = mapped_column(JSON, default=list)
    redress: Mapped[list] = mapped_column(JSON, default=list)
    transparency_db_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    transparency_submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)


class ActionExecution(Base):
    __tablename__ = "action_executions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    decision_id: Mapped[str] = mapped_column(String, unique=True)
    action: Mapped[str] = mapped_column(String)
    content_id: Mapped[str] = mapped_column(String)
    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    reason_code: Mapped[str] = mapped_column(String)
    duration_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    territorial_scope: Mapped[list] = mapped_column(JSON, default=list)
    executed_by: Mapped[str] = mapped_column(String)
    executed_at: Mapped[datetime] = mapped_column(DateTime)
    reverted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class RestrictionColumns:
    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    decision_id: Mapped[str] = mapped_column(String, index=True)
    reason_code: Mapped[str] = mapped_column(String)
    starts_at: Mapped[datetime] = mapped_column(DateTime)
    expires_at: Mapped[datetime] = mapped_column(DateTime)
    lifted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class UserRateLimit(RestrictionColumns, Base):
    __tablename__ = "user_rate_limits"

    posts_per_hour: Mapped[int] = mapped_column(Integer)


class UserShadowBan(RestrictionColumns, Base):
    __tablename__ = "user_shadow_bans"


class UserSuspension(RestrictionColumns, Base):
    __tablename__ = "user_suspensions"


class ModerationNotification(Base, TimestampMixin):
    __tablename__ = "moderation_notifications"
    __table_args__ = (Index("ix_moderation_notifications_due", "status", "scheduled_for"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    decision_id: Mapped[str] = mapped_column(String, index=True)
    action: Mapped[str] = mapped_column(String)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String, default="pending")  # pending, sent, failed
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
