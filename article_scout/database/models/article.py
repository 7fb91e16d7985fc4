from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class Article(BaseModel):
    __tablename__ = "articles"

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False
    )

    link: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        unique=True
    )

    content: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    preview: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    publisher_description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    pub_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )

    source_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("sources.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    source_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True
    )

    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="new"
    )

    __table_args__ = (
        Index("idx_articles_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Article(id={self.id}, title='{self.title[:50]}...')>"
