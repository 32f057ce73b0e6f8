"""
Bookings API routes.

Provides:
- POST /bookings: customer books a worker's service
- GET /bookings: caller's bookings as customer or worker
- GET /bookings/{id}: one booking with its effective price and open actions
- PATCH /bookings/{id}: customer edits a pending request
- GET /bookings/{id}/negotiations: negotiation ledger, oldest first
- POST /bookings/{id}/negotiations: price offer, time change or message
- POST /bookings/{id}/resolve: accept or reject
- POST /bookings/{id}/advance: worker confirms, starts or completes
- GET /bookings/{id}/price: effective price
"""
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from rozgaar.api.dependencies import get_current_user_id, get_db
from rozgaar.models.bookings import BookingStatus
from rozgaar.models.negotiations import MessageType
from rozgaar.services.booking_service import BookingRequest, BookingService, BookingView
from rozgaar.services.lifecycle import PartyRole
from rozgaar.services.negotiation_service import LedgerEntry, NegotiationPayload, NegotiationService
from rozgaar.services.pricing import as_money


router = APIRouter(prefix="/bookings", tags=["bookings"])


# Request models
class BookingCreateRequest(BaseModel):
    """Booking form submitted by a customer."""
    service_id: UUID
    worker_id: UUID
    description: str = Field(max_length=2000)
    location: str = Field(max_length=255)
    preferred_date: date
    preferred_time: time
    offered_price: Decimal
    customer_phone: str = Field(max_length=20)
    special_instructions: Optional[str] = Field(default=None, max_length=2000)


class BookingUpdateRequest(BaseModel):
    """Request details a customer may still change."""
    description: Optional[str] = Field(default=None, max_length=2000)
    location: Optional[str] = Field(default=None, max_length=255)
    preferred_date: Optional[date] = None
    preferred_time: Optional[time] = None
    special_instructions: Optional[str] = Field(default=None, max_length=2000)
    customer_phone: Optional[str] = Field(default=None, max_length=20)


class NegotiationCreateRequest(BaseModel):
    """A negotiation message from either party.

    message_type and proposed_price are checked by the negotiation engine
    once the caller is known to be a party to the booking.
    """
    message_type: str = Field(default=MessageType.MESSAGE.value, description="price_offer, time_change or message")
    proposed_price: Union[Decimal, str, None] = None
    proposed_date: Optional[date] = None
    proposed_time: Optional[time] = None
    message: Optional[str] = Field(default=None, max_length=2000)


class ResolveRequest(BaseModel):
    action: str = Field(description="accept or reject")
    message: Optional[str] = Field(default=None, max_length=2000)


class AdvanceRequest(BaseModel):
    action: str = Field(description="confirm, start or complete")
    scheduled_at: Optional[datetime] = None


# Response models
class BookingResponse(BaseModel):
    """Booking as seen by the caller."""
    id: UUID
    customer_id: UUID
    worker_id: UUID
    service_id: UUID
    description: str
    location: str
    preferred_date: date
    preferred_time: time
    special_instructions: Optional[str] = None
    customer_phone: str
    offered_price: Decimal
    effective_price: Decimal
    final_price: Optional[Decimal] = None
    status: str = Field(description="Status as shown in the caller's view")
    role: str = Field(description="Caller's side of the booking: customer or worker")
    allowed_actions: List[str]
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class NegotiationResponse(BaseModel):
    """One negotiation ledger entry."""
    id: int
    booking_id: UUID
    sender_id: UUID
    sender_role: Optional[str] = None
    message_type: str
    proposed_price: Optional[Decimal] = None
    proposed_date: Optional[date] = None
    proposed_time: Optional[time] = None
    message: Optional[str] = None
    created_at: datetime


class SubmitNegotiationResponse(BaseModel):
    negotiation: NegotiationResponse
    booking: BookingResponse


class PriceResponse(BaseModel):
    booking_id: UUID
    offered_price: Decimal
    effective_price: Decimal


def _booking_response(view: BookingView) -> BookingResponse:
    booking = view.booking
    return BookingResponse(
        id=booking.id,
        customer_id=booking.customer_id,
        worker_id=booking.worker_id,
        service_id=booking.service_id,
        description=booking.description,
        location=booking.location,
        preferred_date=booking.preferred_date,
        preferred_time=booking.preferred_time,
        special_instructions=booking.special_instructions,
        customer_phone=booking.customer_phone,
        offered_price=as_money(booking.offered_price),
        effective_price=as_money(view.effective_price),
        final_price=as_money(booking.final_price),
        status=view.status.value,
        role=view.role.value,
        allowed_actions=[action.value for action in view.allowed_actions],
        scheduled_at=booking.scheduled_at,
        completed_at=booking.completed_at,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


def _negotiation_response(entry: LedgerEntry) -> NegotiationResponse:
    negotiation = entry.negotiation
    return NegotiationResponse(
        id=negotiation.id,
        booking_id=negotiation.booking_id,
        sender_id=negotiation.sender_id,
        sender_role=entry.sender_role.value if entry.sender_role else None,
        message_type=negotiation.message_type.value,
        proposed_price=as_money(negotiation.proposed_price),
        proposed_date=negotiation.proposed_date,
        proposed_time=negotiation.proposed_time,
        message=negotiation.message,
        created_at=negotiation.created_at,
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    body: BookingCreateRequest,
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> BookingResponse:
    """Create a pending booking; the caller is the customer."""
    service = BookingService(db)
    booking = service.create_booking(caller_id, BookingRequest(**body.model_dump()))
    return _booking_response(service.get_booking(booking.id, caller_id))


@router.get("", response_model=List[BookingResponse])
def list_bookings(
    as_role: PartyRole = Query(PartyRole.CUSTOMER, alias="as", description="customer or worker view"),
    status_filter: Optional[BookingStatus] = Query(None, alias="status", description="Filter by displayed status"),
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> List[BookingResponse]:
    """List the caller's bookings, newest first."""
    views = BookingService(db).list_bookings_for(caller_id, as_role, status_filter)
    return [_booking_response(view) for view in views]


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: UUID,
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> BookingResponse:
    return _booking_response(BookingService(db).get_booking(booking_id, caller_id))


@router.patch("/{booking_id}", response_model=BookingResponse)
def update_booking(
    booking_id: UUID,
    body: BookingUpdateRequest,
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> BookingResponse:
    """Customer edits request details before the worker responds."""
    service = BookingService(db)
    service.update_request(booking_id, caller_id, body.model_dump(exclude_unset=True))
    return _booking_response(service.get_booking(booking_id, caller_id))


@router.get("/{booking_id}/negotiations", response_model=List[NegotiationResponse])
def list_negotiations(
    booking_id: UUID,
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> List[NegotiationResponse]:
    """Negotiation ledger, oldest first."""
    entries = NegotiationService(db).list_negotiations(booking_id, caller_id)
    return [_negotiation_response(entry) for entry in entries]


@router.post(
    "/{booking_id}/negotiations",
    response_model=SubmitNegotiationResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_negotiation(
    booking_id: UUID,
    body: NegotiationCreateRequest,
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> SubmitNegotiationResponse:
    """Send a price offer, time change or message."""
    payload = NegotiationPayload(
        proposed_price=body.proposed_price,
        proposed_date=body.proposed_date,
        proposed_time=body.proposed_time,
        message=body.message,
    )
    negotiation = NegotiationService(db).submit_negotiation(booking_id, caller_id, body.message_type, payload)
    view = BookingService(db).get_booking(booking_id, caller_id)
    return SubmitNegotiationResponse(
        negotiation=_negotiation_response(LedgerEntry(negotiation, view.role)),
        booking=_booking_response(view),
    )


@router.post("/{booking_id}/resolve", response_model=BookingResponse)
def resolve_booking(
    booking_id: UUID,
    body: ResolveRequest,
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> BookingResponse:
    """Accept or reject the current offer."""
    NegotiationService(db).resolve_booking(booking_id, caller_id, body.action, body.message)
    return _booking_response(BookingService(db).get_booking(booking_id, caller_id))


@router.post("/{booking_id}/advance", response_model=BookingResponse)
def advance_booking(
    booking_id: UUID,
    body: AdvanceRequest,
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> BookingResponse:
    """Worker confirms, starts or completes an accepted booking."""
    NegotiationService(db).advance_booking(booking_id, caller_id, body.action, body.scheduled_at)
    return _booking_response(BookingService(db).get_booking(booking_id, caller_id))


@router.get("/{booking_id}/price", response_model=PriceResponse)
def get_effective_price(
    booking_id: UUID,
    caller_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PriceResponse:
    view = BookingService(db).get_booking(booking_id, caller_id)
    return PriceResponse(
        booking_id=view.booking.id,
        offered_price=as_money(view.booking.offered_price),
        effective_price=as_money(view.effective_price),
    )
