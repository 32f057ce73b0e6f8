"""
Negotiation ledger - append-only messages exchanged on a booking.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID
import enum

from sqlalchemy import (
    Integer,
    String,
    Numeric,
    Date,
    Time,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from rozgaar.lib.db import Base


class MessageType(str, enum.Enum):
    """Negotiation message types."""
    MESSAGE = "message"
    PRICE_OFFER = "price_offer"
    TIME_CHANGE = "time_change"
    ACCEPTANCE = "acceptance"
    REJECTION = "rejection"


class BookingNegotiation(Base):
    """
    One ledger entry. Rows are inserted and never updated.

    Order within a booking is (created_at, id); the integer id breaks ties
    between rows written in the same instant. The sender's role is not stored,
    it is derived from the booking's party ids.
    """
    __tablename__ = "booking_negotiations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("service_bookings.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    message_type: Mapped[MessageType] = mapped_column(
        SQLEnum(
            MessageType,
            name="negotiation_message_type",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    proposed_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    proposed_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    proposed_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    message: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_booking_negotiations_booking_created", "booking_id", "created_at", "id"),
    )

    def __repr__(self) -> str:
        return (
            f"<BookingNegotiation(id={self.id}, booking_id={self.booking_id}, "
            f"type={self.message_type}, price={self.proposed_price})>"
        )
