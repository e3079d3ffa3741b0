from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.utils import clock


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: clock.utcnow(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, onupdate=lambda: clock.utcnow()
    )
