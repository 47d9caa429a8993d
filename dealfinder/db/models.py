"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ExchangeRate(Base):
    """Latest exchange rates for a base currency (one row per base)."""

    __tablename__ = "exchange_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_currency: Mapped[str] = mapped_column(String(8), nullable=False, unique=True)
    rates: Mapped[dict] = mapped_column(JSON, nullable=False)  # code -> rate per base unit
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class SearchCache(Base):
    """Ranked search result cached by normalized query text."""

    __tablename__ = "search_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    query: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    deals: Mapped[list] = mapped_column(JSON, nullable=False)
    total_valid: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class Watch(Base):
    """Saved search re-run on a schedule for its owner."""

    __tablename__ = "watches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    owner_contact: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # email / phone
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    search_query: Mapped[str] = mapped_column(Text, nullable=False)
    region: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    frequency_hours: Mapped[float] = mapped_column(Float, default=12.0, nullable=False)
    min_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    max_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    notification_channel: Mapped[str] = mapped_column(
        String(16), default="in_app", nullable=False
    )  # in_app, email, whatsapp
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    notifications: Mapped[list["WatchNotification"]] = relationship(
        "WatchNotification", back_populates="watch", cascade="all, delete-orphan"
    )


class WatchNotification(Base):
    """Deals found by a watch run, addressed to the watch owner."""

    __tablename__ = "watch_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    watch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("watches.id"), nullable=False, index=True
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    deals: Mapped[list] = mapped_column(JSON, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    # Relationships
    watch: Mapped["Watch"] = relationship("Watch", back_populates="notifications")
