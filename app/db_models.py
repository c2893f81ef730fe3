"""SQLAlchemy ORM models mirroring the host media library."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


collection_items = Table(
    "collection_items",
    Base.metadata,
    Column(
        "collection_id",
        String(64),
        ForeignKey("items.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "item_id",
        String(64),
        ForeignKey("items.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class UserRecord(Base):
    """A host account allowed to request the carousel."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    max_parental_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # ``None`` grants access to every library folder.
    enabled_folders: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)


class ItemRecord(Base):
    """Movies, series, seasons, episodes and the folders that contain them."""

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    kind: Mapped[str] = mapped_column(String(16), index=True)
    parent_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("items.id", ondelete="CASCADE"), nullable=True
    )
    tagline: Mapped[str | None] = mapped_column(String(255), nullable=True)
    official_rating: Mapped[str | None] = mapped_column(String(32), nullable=True)
    parental_rating_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    overview: Mapped[str | None] = mapped_column(Text, nullable=True)
    critic_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    community_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    premiere_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    image_types: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class UserItemDataRecord(Base):
    """Per-user favourite and played flags."""

    __tablename__ = "user_item_data"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    item_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("items.id", ondelete="CASCADE"), primary_key=True
    )
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    played: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
