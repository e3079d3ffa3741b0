# app/domains/auth/models.py
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.mixins import TimestampMixin
from app.shared.models.base import Base


class UserAccount(Base, TimestampMixin):
    """Local mirror of the identity provider's user, carrying moderation status."""

    __tablename__ = "auth_users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    roles: Mapped[list] = mapped_column(JSON, default=list)
    account_status: Mapped[str] = mapped_column(String, default="active")  # active, suspended
    suspended: Mapped[bool] = mapped_column(Boolean, default=False)
    suspension_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
