"""
Booking model - service bookings between customers and workers.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Numeric,
    Date,
    Time,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    CheckConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from rozgaar.lib.db import Base


class BookingStatus(str, enum.Enum):
    """
    Canonical booking status set.

    The customer view only shows pending, negotiating, accepted, completed and
    cancelled; the worker view adds confirmed and in_progress.
    """
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Booking(Base):
    """
    Booking entity - one customer asking one worker for one service.

    Never deleted; ends in completed or cancelled. The negotiated price is not
    stored here, it is derived from the negotiation ledger.
    """
    __tablename__ = "service_bookings"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Parties and service (immutable)
    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    worker_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Request details
    description: Mapped[str] = mapped_column(String(2000), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    preferred_date: Mapped[date] = mapped_column(Date, nullable=False)
    preferred_time: Mapped[time] = mapped_column(Time, nullable=False)
    special_instructions: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)

    # Customer's original ask; reference price for the negotiation
    offered_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )

    # Set by the worker on confirm / complete
    final_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("offered_price > 0", name="booking_offered_price_positive"),
        CheckConstraint("customer_id <> worker_id", name="booking_distinct_parties"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, customer_id={self.customer_id})>"
