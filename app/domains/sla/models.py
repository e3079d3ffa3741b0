# app/domains/sla/models.py
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.mixins import TimestampMixin
from app.shared.models.base import Base


class SlaAlert(Base):
    __tablename__ = "sla_alerts"
    __table_args__ = (UniqueConstraint("report_id", "alert_level", name="uq_sla_alerts_report_level"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    report_id: Mapped[str] = mapped_column(String, index=True)
    alert_level: Mapped[str] = mapped_column(String)  # warning_75, warning_90, breached
    threshold_percent: Mapped[int] = mapped_column(Integer)
    severity: Mapped[str] = mapped_column(String)  # medium, high, critical
    elapsed_percent: Mapped[float] = mapped_column(Float)
    sla_deadline: Mapped[datetime] = mapped_column(DateTime)
    assigned_moderator_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class SlaIncident(Base, TimestampMixin):
    __tablename__ = "sla_incidents"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    report_id: Mapped[str] = mapped_column(String, unique=True)
    breached_at: Mapped[datetime] = mapped_column(DateTime)
    breach_duration_hours: Mapped[float] = mapped_column(Float)
    severity: Mapped[str] = mapped_column(String)
    escalated_to: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String, default="open")  # open, closed
    root_cause: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    corrective_actions: Mapped[list] = mapped_column(JSON, default=list)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
