"""Booking service - creating bookings and reading them per party.

Customers create a booking for a worker's service at an offered price. Until
the worker responds the customer may still edit the request details. Reads are
limited to the two parties and return each booking with its effective price,
the status as the caller's view shows it, and the actions open to the caller.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rozgaar.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    NotFoundException,
    ValidationError,
)
from rozgaar.lib.logging import get_logger, log_booking_event
from rozgaar.lib.settings import settings
from rozgaar.models.bookings import Booking, BookingStatus
from rozgaar.models.negotiations import BookingNegotiation
from rozgaar.models.services import Service
from rozgaar.models.users import User, UserRole
from rozgaar.services.lifecycle import (
    BookingAction,
    Lifecycle,
    PartyRole,
    allowed_actions,
    project_status,
    role_of,
)
from rozgaar.services.pricing import parse_price, resolve_effective_price
from rozgaar.services.store import load_booking, parse_id, store_errors, store_retrying


logger = get_logger(__name__)

# Fields the customer may change while the booking is still pending
EDITABLE_FIELDS = frozenset({
    "description",
    "location",
    "preferred_date",
    "preferred_time",
    "special_instructions",
    "customer_phone",
})

_REQUIRED_TEXT_FIELDS = ("description", "location", "customer_phone")


@dataclass
class BookingRequest:
    """Fields a customer fills in on the booking form."""
    service_id: UUID
    worker_id: UUID
    description: str
    location: str
    preferred_date: date
    preferred_time: time
    offered_price: Any
    customer_phone: str
    special_instructions: Optional[str] = None


@dataclass
class BookingView:
    """A booking as seen by one of its parties."""
    booking: Booking
    role: PartyRole
    status: BookingStatus
    effective_price: Decimal
    allowed_actions: List[BookingAction] = field(default_factory=list)


class BookingService:
    """Booking creation and party-scoped reads."""

    def __init__(self, session: Session, lifecycle: Union[Lifecycle, str, None] = None):
        self.session = session
        self.lifecycle = Lifecycle(lifecycle or settings.lifecycle)

    def create_booking(self, customer_id: Union[UUID, str], request: BookingRequest) -> Booking:
        """
        Create a pending booking.

        Raises:
            NotFoundException: customer, worker or service does not exist
            ValidationError: missing fields, non-positive price, past date,
                booking yourself, inactive service, or target is not a worker
        """
        offered_price = parse_price(request.offered_price, field="offered_price")
        values = {name: getattr(request, name) for name in EDITABLE_FIELDS}
        self._validate_request_fields(values)

        customer_uuid = parse_id(customer_id, "User")
        worker_uuid = parse_id(request.worker_id, "Worker")
        if customer_uuid == worker_uuid:
            raise ValidationError(
                "You cannot book yourself",
                errors={"worker_id": str(worker_uuid)},
            )

        def create() -> Booking:
            try:
                with store_errors(self.session):
                    if self.session.get(User, customer_uuid) is None:
                        raise NotFoundException("User", str(customer_uuid))

                    worker = self.session.get(User, worker_uuid)
                    if worker is None:
                        raise NotFoundException("Worker", str(worker_uuid))
                    if worker.role != UserRole.WORKER:
                        raise ValidationError(
                            "Selected user is not a worker",
                            errors={"worker_id": str(worker_uuid)},
                        )

                    service = self.session.get(Service, parse_id(request.service_id, "Service"))
                    if service is None:
                        raise NotFoundException("Service", str(request.service_id))
                    if not service.active:
                        raise ValidationError(
                            "Service is no longer available",
                            errors={"service_id": str(service.id)},
                        )

                    booking = Booking(
                        customer_id=customer_uuid,
                        worker_id=worker_uuid,
                        service_id=service.id,
                        offered_price=offered_price,
                        status=BookingStatus.PENDING,
                        **values,
                    )
                    self.session.add(booking)
                    self.session.commit()
                    self.session.refresh(booking)
            except Exception:
                self.session.rollback()
                raise
            return booking

        booking = store_retrying()(create)
        log_booking_event(
            logger,
            "Booking created",
            booking.id,
            customer_id=str(booking.customer_id),
            worker_id=str(booking.worker_id),
            offered_price=str(booking.offered_price),
        )
        return booking

    def update_request(
        self,
        booking_id: Union[UUID, str],
        caller_id: Union[UUID, str],
        changes: Dict[str, Any],
    ) -> Booking:
        """
        Edit request details. Only the customer, only while pending, and only
        before the worker has written anything on the ledger.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "These fields cannot be changed",
                errors={name: "read-only" for name in sorted(unknown)},
            )
        if not changes:
            raise ValidationError("Nothing to update")
        self._validate_request_fields(changes)

        def apply() -> Booking:
            try:
                with store_errors(self.session):
                    booking = load_booking(self.session, booking_id)
                    role = role_of(caller_id, booking)
                    if role is None:
                        raise AuthorizationError()
                    if role is not PartyRole.CUSTOMER:
                        raise AuthorizationError("Only the customer can edit the request")
                    if booking.status != BookingStatus.PENDING:
                        raise ValidationError(
                            f"Booking is already {booking.status.value}",
                            errors={"status": booking.status.value},
                        )
                    worker_wrote = self.session.execute(
                        select(BookingNegotiation.id)
                        .where(
                            BookingNegotiation.booking_id == booking.id,
                            BookingNegotiation.sender_id == booking.worker_id,
                        )
                        .limit(1)
                    ).first()
                    if worker_wrote is not None:
                        raise ValidationError("The worker has already responded to this request")

                    result = self.session.execute(
                        update(Booking)
                        .where(Booking.id == booking.id, Booking.status == BookingStatus.PENDING)
                        .values(updated_at=datetime.now(timezone.utc), **changes)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise ConflictError(str(booking.id), BookingStatus.PENDING.value)
                    self.session.commit()
                    self.session.refresh(booking)
            except Exception:
                self.session.rollback()
                raise
            return booking

        booking = store_retrying()(apply)
        log_booking_event(
            logger,
            "Booking request edited",
            booking.id,
            fields=sorted(changes),
        )
        return booking

    def get_booking(self, booking_id: Union[UUID, str], caller_id: Union[UUID, str]) -> BookingView:
        """Booking with effective price and the caller's view of its status."""
        def read() -> BookingView:
            with store_errors(self.session):
                booking = load_booking(self.session, booking_id)
                role = role_of(caller_id, booking)
                if role is None:
                    raise AuthorizationError()
                history = self._load_histories([booking.id]).get(booking.id, [])
            return self._view(booking, role, history)

        return store_retrying()(read)

    def list_bookings_for(
        self,
        user_id: Union[UUID, str],
        as_role: Union[PartyRole, str],
        status: Union[BookingStatus, str, None] = None,
    ) -> List[BookingView]:
        """
        Bookings where the user is the customer (or worker), newest first.

        The status filter matches the status as that view displays it, so a
        customer asking for accepted bookings also gets confirmed and
        in-progress ones.
        """
        as_role = PartyRole(as_role)
        user_uuid = parse_id(user_id, "User")
        party_column = Booking.customer_id if as_role is PartyRole.CUSTOMER else Booking.worker_id

        stmt = select(Booking).where(party_column == user_uuid)
        if status is not None:
            wanted = BookingStatus(status)
            view = self._view_lifecycle(as_role)
            matching = [s for s in BookingStatus if project_status(s, view) == wanted]
            stmt = stmt.where(Booking.status.in_(matching))
        stmt = stmt.order_by(Booking.created_at.desc())

        def read() -> List[BookingView]:
            with store_errors(self.session):
                bookings = list(self.session.execute(stmt).scalars().all())
                histories = self._load_histories([b.id for b in bookings])
            return [self._view(b, as_role, histories.get(b.id, [])) for b in bookings]

        return store_retrying()(read)

    # ===== Helpers =====

    def _view_lifecycle(self, role: PartyRole) -> Lifecycle:
        return Lifecycle.BASIC if role is PartyRole.CUSTOMER else self.lifecycle

    def _view(self, booking: Booking, role: PartyRole, history: List[BookingNegotiation]) -> BookingView:
        return BookingView(
            booking=booking,
            role=role,
            status=project_status(booking.status, self._view_lifecycle(role)),
            effective_price=resolve_effective_price(booking.offered_price, history),
            allowed_actions=allowed_actions(booking.status, role, self.lifecycle),
        )

    def _load_histories(self, booking_ids: List[UUID]) -> Dict[UUID, List[BookingNegotiation]]:
        if not booking_ids:
            return {}
        stmt = (
            select(BookingNegotiation)
            .where(BookingNegotiation.booking_id.in_(booking_ids))
            .order_by(BookingNegotiation.created_at, BookingNegotiation.id)
        )
        grouped: Dict[UUID, List[BookingNegotiation]] = defaultdict(list)
        for entry in self.session.execute(stmt).scalars():
            grouped[entry.booking_id].append(entry)
        return grouped

    @staticmethod
    def _validate_request_fields(values: Dict[str, Any]) -> None:
        errors = {}
        for name in _REQUIRED_TEXT_FIELDS:
            if name in values and not (values[name] or "").strip():
                errors[name] = "required"
        if "preferred_date" in values:
            preferred = values["preferred_date"]
            if preferred is None:
                errors["preferred_date"] = "required"
            elif preferred < datetime.now(timezone.utc).date():
                errors["preferred_date"] = "must not be in the past"
        if "preferred_time" in values and values["preferred_time"] is None:
            errors["preferred_time"] = "required"
        if errors:
            raise ValidationError("Booking request is incomplete", errors=errors)

