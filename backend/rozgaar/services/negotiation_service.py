"""Booking negotiation engine.

Appends to the negotiation ledger and moves bookings through their lifecycle:

1. submit_negotiation: price offers, time changes and plain messages
2. resolve_booking: accept or reject the current offer
3. advance_booking: worker-side confirm / start / complete
4. get_effective_price / list_negotiations: derived reads over the ledger

The service holds no state between calls. Every write re-reads the booking and
its history, then performs a compare-and-swap on the booking status together
with the ledger insert in one transaction. A lost race surfaces as
ConflictError and is re-applied once against the fresh state; store timeouts
surface as TransientStoreError and are retried with exponential backoff.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rozgaar.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    ValidationError,
)
from rozgaar.lib.logging import get_logger, log_booking_event
from rozgaar.lib.settings import settings
from rozgaar.models.bookings import Booking, BookingStatus
from rozgaar.models.negotiations import BookingNegotiation, MessageType
from rozgaar.services.lifecycle import (
    BookingAction,
    Lifecycle,
    PartyRole,
    is_terminal,
    next_status,
    role_of,
)
from rozgaar.services.pricing import parse_price, resolve_effective_price
from rozgaar.services.store import load_booking, parse_id, store_errors, store_retrying


logger = get_logger(__name__)

RESOLVE_ACTIONS = frozenset({BookingAction.ACCEPT, BookingAction.REJECT})
ADVANCE_ACTIONS = frozenset({BookingAction.CONFIRM, BookingAction.START, BookingAction.COMPLETE})


@dataclass
class NegotiationPayload:
    """Client-supplied body of a negotiation message."""
    proposed_price: Any = None
    proposed_date: Optional[date] = None
    proposed_time: Optional[time] = None
    message: Optional[str] = None


@dataclass
class LedgerEntry:
    """A ledger row paired with its sender's derived role."""
    negotiation: BookingNegotiation
    sender_role: Optional[PartyRole]


@dataclass
class _Write:
    expected_status: BookingStatus
    new_status: BookingStatus
    values: Dict[str, Any] = field(default_factory=dict)
    entry: Optional[BookingNegotiation] = None


class NegotiationService:
    """Negotiation engine over the bookings and booking_negotiations tables."""

    def __init__(self, session: Session, lifecycle: Union[Lifecycle, str, None] = None):
        """Initialize the engine.

        Args:
            session: SQLAlchemy session used for every read and write
            lifecycle: basic or extended lifecycle; defaults to settings.lifecycle
        """
        self.session = session
        self.lifecycle = Lifecycle(lifecycle or settings.lifecycle)

    # ===== Reads =====

    def list_negotiations(
        self,
        booking_id: Union[UUID, str],
        caller_id: Union[UUID, str, None] = None,
    ) -> List[LedgerEntry]:
        """Ledger of a booking, oldest first, each entry tagged with the sender's role.

        When caller_id is given it must be a party to the booking.
        """
        def read() -> List[LedgerEntry]:
            with store_errors(self.session):
                booking = load_booking(self.session, booking_id)
                if caller_id is not None:
                    self._require_party(booking, caller_id)
                history = self._load_history(booking.id)
            return [LedgerEntry(entry, role_of(entry.sender_id, booking)) for entry in history]

        return store_retrying()(read)

    def get_effective_price(
        self,
        booking_id: Union[UUID, str],
        caller_id: Union[UUID, str, None] = None,
    ) -> Decimal:
        """Latest positive offer on the ledger, or the booking's offered_price."""
        def read() -> Decimal:
            with store_errors(self.session):
                booking = load_booking(self.session, booking_id)
                if caller_id is not None:
                    self._require_party(booking, caller_id)
                history = self._load_history(booking.id)
            return resolve_effective_price(booking.offered_price, history)

        return store_retrying()(read)

    # ===== Writes =====

    def submit_negotiation(
        self,
        booking_id: Union[UUID, str],
        sender_id: Union[UUID, str],
        message_type: Union[MessageType, str],
        payload: Union[NegotiationPayload, Dict[str, Any], None] = None,
    ) -> BookingNegotiation:
        """Append a negotiation message.

        A message carrying a price is a counter-offer and moves a pending or
        negotiating booking to negotiating. Messages and time changes without a
        price leave the status as is and are allowed until the booking ends.

        Raises:
            AuthorizationError: sender is not a party
            ValidationError: empty or malformed payload, or a counter-offer
                outside the negotiation phase
        """
        plan = partial(self._plan_submission, message_type, payload)
        _, entry = self._execute(booking_id, sender_id, "submit_negotiation", plan)
        return entry

    def resolve_booking(
        self,
        booking_id: Union[UUID, str],
        sender_id: Union[UUID, str],
        action: Union[BookingAction, str],
        message: Optional[str] = None,
    ) -> Booking:
        """Accept or reject the booking at its current effective price.

        Accepting appends an acceptance message carrying the effective price;
        rejecting appends a rejection message and cancels the booking.
        """
        plan = partial(self._plan_resolution, action, message)
        booking, _ = self._execute(booking_id, sender_id, "resolve_booking", plan)
        return booking

    def advance_booking(
        self,
        booking_id: Union[UUID, str],
        sender_id: Union[UUID, str],
        action: Union[BookingAction, str],
        scheduled_at: Optional[datetime] = None,
    ) -> Booking:
        """Worker-side lifecycle after acceptance: confirm, start, complete.

        confirm fixes final_price at the effective price and sets scheduled_at
        (default: the customer's preferred date and time). complete stamps
        completed_at.
        """
        plan = partial(self._plan_advance, action, scheduled_at)
        booking, _ = self._execute(booking_id, sender_id, "advance_booking", plan)
        return booking

    # ===== Plans =====

    def _plan_submission(
        self,
        message_type: Union[MessageType, str],
        payload: Union[NegotiationPayload, Dict[str, Any], None],
        booking: Booking,
        role: PartyRole,
        sender_id: UUID,
        history: List[BookingNegotiation],
    ) -> _Write:
        message_type = self._coerce_message_type(message_type)
        payload = self._coerce_payload(payload)
        text = (payload.message or "").strip() or None
        price = None
        if payload.proposed_price is not None and str(payload.proposed_price).strip() != "":
            price = parse_price(payload.proposed_price)

        proposed_date = None
        proposed_time = None

        if message_type is MessageType.PRICE_OFFER and price is None:
            raise ValidationError(
                "A price offer needs a proposed price",
                errors={"proposed_price": "required"},
            )
        if message_type is MessageType.TIME_CHANGE:
            proposed_date = payload.proposed_date
            proposed_time = payload.proposed_time
            if proposed_date is None and proposed_time is None:
                raise ValidationError(
                    "A time change needs a proposed date or time",
                    errors={"proposed_date": "required", "proposed_time": "required"},
                )
        if message_type is MessageType.MESSAGE and text is None and price is None:
            raise ValidationError(
                "Enter a message or a proposed price",
                errors={"message": "required"},
            )

        if price is not None:
            new_status = next_status(booking.status, BookingAction.COUNTER, role, self.lifecycle)
        elif is_terminal(booking.status):
            raise ValidationError(
                f"Booking is already {booking.status.value}",
                errors={"status": booking.status.value},
            )
        else:
            new_status = booking.status

        entry = BookingNegotiation(
            booking_id=booking.id,
            sender_id=sender_id,
            message_type=message_type,
            proposed_price=price,
            proposed_date=proposed_date,
            proposed_time=proposed_time,
            message=text,
        )
        return _Write(expected_status=booking.status, new_status=new_status, entry=entry)

    def _plan_resolution(
        self,
        action: Union[BookingAction, str],
        message: Optional[str],
        booking: Booking,
        role: PartyRole,
        sender_id: UUID,
        history: List[BookingNegotiation],
    ) -> _Write:
        action = self._coerce_action(action, RESOLVE_ACTIONS)
        new_status = next_status(booking.status, action, role, self.lifecycle)
        text = (message or "").strip() or None

        if action is BookingAction.ACCEPT:
            entry = BookingNegotiation(
                booking_id=booking.id,
                sender_id=sender_id,
                message_type=MessageType.ACCEPTANCE,
                proposed_price=resolve_effective_price(booking.offered_price, history),
                message=text,
            )
        else:
            entry = BookingNegotiation(
                booking_id=booking.id,
                sender_id=sender_id,
                message_type=MessageType.REJECTION,
                message=text,
            )
        return _Write(expected_status=booking.status, new_status=new_status, entry=entry)

    def _plan_advance(
        self,
        action: Union[BookingAction, str],
        scheduled_at: Optional[datetime],
        booking: Booking,
        role: PartyRole,
        sender_id: UUID,
        history: List[BookingNegotiation],
    ) -> _Write:
        action = self._coerce_action(action, ADVANCE_ACTIONS)
        new_status = next_status(booking.status, action, role, self.lifecycle)
        values: Dict[str, Any] = {}

        if action is BookingAction.CONFIRM:
            values["final_price"] = resolve_effective_price(booking.offered_price, history)
            values["scheduled_at"] = scheduled_at or datetime.combine(
                booking.preferred_date,
                booking.preferred_time,
                tzinfo=timezone.utc,
            )
        elif action is BookingAction.COMPLETE:
            values["completed_at"] = datetime.now(timezone.utc)
            if booking.final_price is None:
                values["final_price"] = resolve_effective_price(booking.offered_price, history)

        return _Write(expected_status=booking.status, new_status=new_status, values=values)

    # ===== Execution =====

    def _execute(
        self,
        booking_id: Union[UUID, str],
        actor_id: Union[UUID, str],
        operation: str,
        plan: Callable[..., _Write],
    ) -> tuple:
        """Run a write plan with one automatic re-attempt on status conflict."""
        attempts = settings.conflict_retry_attempts + 1
        for attempt in range(1, attempts + 1):
            try:
                return store_retrying()(self._attempt, booking_id, actor_id, plan)
            except ConflictError as exc:
                log_booking_event(
                    logger,
                    "Booking status conflict",
                    exc.booking_id,
                    level="warning",
                    operation=operation,
                    expected_status=exc.expected_status,
                    attempt=attempt,
                )
                if attempt >= attempts:
                    raise

    def _attempt(
        self,
        booking_id: Union[UUID, str],
        actor_id: Union[UUID, str],
        plan: Callable[..., _Write],
    ) -> tuple:
        try:
            with store_errors(self.session):
                booking = load_booking(self.session, booking_id)
                role = self._require_party(booking, actor_id)
                history = self._load_history(booking.id)

            write = plan(booking, role, parse_id(actor_id, "User"), history)

            with store_errors(self.session):
                self._commit(booking, write)
        except Exception:
            self.session.rollback()
            raise

        log_booking_event(
            logger,
            "Booking updated",
            booking.id,
            actor_role=role,
            status_from=write.expected_status,
            status_to=write.new_status,
            message_type=write.entry.message_type if write.entry is not None else None,
        )
        return booking, write.entry

    def _commit(self, booking: Booking, write: _Write) -> None:
        """Status compare-and-swap plus ledger insert, committed together."""
        stmt = (
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == write.expected_status)
            .values(status=write.new_status, updated_at=datetime.now(timezone.utc), **write.values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            raise ConflictError(str(booking.id), write.expected_status.value)

        if write.entry is not None:
            self.session.add(write.entry)

        self.session.commit()
        self.session.refresh(booking)

    # ===== Helpers =====

    def _load_history(self, booking_id: UUID) -> List[BookingNegotiation]:
        stmt = (
            select(BookingNegotiation)
            .where(BookingNegotiation.booking_id == booking_id)
            .order_by(BookingNegotiation.created_at, BookingNegotiation.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def _require_party(self, booking: Booking, caller_id: Union[UUID, str]) -> PartyRole:
        role = role_of(caller_id, booking)
        if role is None:
            log_booking_event(
                logger,
                "Non-party access to booking rejected",
                booking.id,
                level="warning",
                caller_id=str(caller_id),
            )
            raise AuthorizationError()
        return role

    @staticmethod
    def _coerce_payload(payload: Union[NegotiationPayload, Dict[str, Any], None]) -> NegotiationPayload:
        if payload is None:
            return NegotiationPayload()
        if isinstance(payload, dict):
            unknown = set(payload) - set(NegotiationPayload.__dataclass_fields__)
            if unknown:
                raise ValidationError(
                    "Unexpected negotiation fields",
                    errors={name: "not allowed" for name in sorted(unknown)},
                )
            return NegotiationPayload(**payload)
        return payload

    @staticmethod
    def _coerce_action(action: Union[BookingAction, str], allowed: frozenset) -> BookingAction:
        try:
            action = BookingAction(action)
        except ValueError:
            raise ValidationError(f"Unknown action '{action}'", errors={"action": str(action)})
        if action not in allowed:
            raise ValidationError(
                f"Action '{action.value}' is not available here",
                errors={"action": action.value, "allowed": sorted(a.value for a in allowed)},
            )
        return action

    @staticmethod
    def _coerce_message_type(message_type: Union[MessageType, str]) -> MessageType:
        try:
            message_type = MessageType(message_type)
        except ValueError:
            raise ValidationError(
                f"Unknown message type '{message_type}'",
                errors={"message_type": str(message_type)},
            )
        if message_type in (MessageType.ACCEPTANCE, MessageType.REJECTION):
            raise ValidationError(
                "Acceptance and rejection are recorded by resolving the booking",
                errors={"message_type": message_type.value},
            )
        return message_type
