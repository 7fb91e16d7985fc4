from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class Source(BaseModel):
    """A website monitored for new articles."""

    __tablename__ = "sources"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False
    )

    url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        unique=True
    )

    category: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="General"
    )

    is_paused: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True
    )

    # "feed" sources are polled elsewhere; this pipeline handles "scrape"
    monitoring_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="scrape"
    )

    last_checked: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    last_scrape_result: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True
    )

    __table_args__ = (
        CheckConstraint("monitoring_type IN ('feed', 'scrape')", name="sources_monitoring_type_check"),
    )

    def __repr__(self) -> str:
        return f"<Source(id={self.id}, name='{self.name}', url='{self.url}')>"
