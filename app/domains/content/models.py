# app/domains/content/models.py
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.mixins import TimestampMixin
from app.shared.models.base import Base


class ContentItem(Base, TimestampMixin):
    """Posts, comments, images and profiles as owned by the community domain."""

    __tablename__ = "community_content"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    content_type: Mapped[str] = mapped_column(String)  # post, comment, image, profile, other
    author_id: Mapped[str] = mapped_column(String, index=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    visibility: Mapped[str] = mapped_column(String, default="public")  # public, limited
    quarantined: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    deletion_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class ContentGeoBlock(Base):
    __tablename__ = "content_geo_blocks"
    __table_args__ = (UniqueConstraint("content_id", "territory_code", "reason_code"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    content_id: Mapped[str] = mapped_column(String, index=True)
    territory_code: Mapped[str] = mapped_column(String, index=True)
    reason_code: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime)
