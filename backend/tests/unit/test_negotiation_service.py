"""Tests for the negotiation engine against an in-memory database."""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import event, func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError

from rozgaar.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    NotFoundException,
    TransientStoreError,
    ValidationError,
)
from rozgaar.models.bookings import Booking, BookingStatus
from rozgaar.models.negotiations import BookingNegotiation, MessageType
from rozgaar.services import negotiation_service as negotiation_module
from rozgaar.services.lifecycle import PartyRole
from rozgaar.services.negotiation_service import NegotiationPayload, NegotiationService


def _ledger_size(session, booking):
    return session.execute(
        select(func.count()).select_from(BookingNegotiation).where(BookingNegotiation.booking_id == booking.id)
    ).scalar_one()


@pytest.fixture
def engine_service(db_session):
    return NegotiationService(db_session, lifecycle="extended")


# ===== Negotiation walkthrough =====

@pytest.mark.unit
def test_worker_counter_offer_moves_to_negotiating(engine_service, booking, worker):
    entry = engine_service.submit_negotiation(
        booking.id,
        worker.id,
        MessageType.PRICE_OFFER,
        NegotiationPayload(proposed_price=650, message="extra materials needed"),
    )

    assert entry.proposed_price == Decimal("650")
    assert entry.message == "extra materials needed"
    assert booking.status == BookingStatus.NEGOTIATING
    assert engine_service.get_effective_price(booking.id) == Decimal("650")


@pytest.mark.unit
def test_full_negotiation_to_acceptance(engine_service, booking, customer, worker):
    engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": 650})

    engine_service.submit_negotiation(booking.id, customer.id, "message", {"message": "can you do 600?"})
    assert booking.status == BookingStatus.NEGOTIATING
    assert engine_service.get_effective_price(booking.id) == Decimal("650")

    engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": "600"})
    assert engine_service.get_effective_price(booking.id) == Decimal("600")

    accepted = engine_service.resolve_booking(booking.id, customer.id, "accept")
    assert accepted.status == BookingStatus.ACCEPTED
    assert engine_service.get_effective_price(booking.id) == Decimal("600")

    entries = engine_service.list_negotiations(booking.id)
    assert [e.negotiation.message_type for e in entries] == [
        MessageType.PRICE_OFFER,
        MessageType.MESSAGE,
        MessageType.PRICE_OFFER,
        MessageType.ACCEPTANCE,
    ]
    assert [e.sender_role for e in entries] == [
        PartyRole.WORKER,
        PartyRole.CUSTOMER,
        PartyRole.WORKER,
        PartyRole.CUSTOMER,
    ]
    assert entries[-1].negotiation.proposed_price == Decimal("600")


@pytest.mark.unit
def test_fresh_booking_effective_price_is_offer(engine_service, booking):
    assert engine_service.get_effective_price(booking.id) == Decimal("500")


@pytest.mark.unit
def test_outsider_cannot_submit(engine_service, booking, outsider, db_session):
    with pytest.raises(AuthorizationError):
        engine_service.submit_negotiation(booking.id, outsider.id, "price_offer", {"proposed_price": 100})

    assert _ledger_size(db_session, booking) == 0
    assert db_session.get(Booking, booking.id).status == BookingStatus.PENDING


@pytest.mark.unit
@pytest.mark.parametrize("operation,args", [
    ("submit_negotiation", ("bogus-type", {})),
    ("submit_negotiation", ("message", {"message": "x", "from_worker": True})),
    ("submit_negotiation", ("price_offer", {"proposed_price": "abc"})),
    ("resolve_booking", ("confirm",)),
    ("resolve_booking", ("shrug",)),
    ("advance_booking", ("accept",)),
])
def test_outsider_gets_authorization_error_before_payload_checks(engine_service, booking, outsider, operation, args):
    with pytest.raises(AuthorizationError):
        getattr(engine_service, operation)(booking.id, outsider.id, *args)


@pytest.mark.unit
def test_outsider_cannot_read_ledger_or_price(engine_service, booking, outsider):
    with pytest.raises(AuthorizationError):
        engine_service.list_negotiations(booking.id, caller_id=outsider.id)
    with pytest.raises(AuthorizationError):
        engine_service.get_effective_price(booking.id, caller_id=outsider.id)


@pytest.mark.unit
def test_unknown_booking_is_not_found(engine_service, customer):
    with pytest.raises(NotFoundException):
        engine_service.get_effective_price("00000000-0000-0000-0000-000000000000")
    with pytest.raises(NotFoundException):
        engine_service.submit_negotiation("not-a-uuid", customer.id, "message", {"message": "hi"})


# ===== Payload validation =====

@pytest.mark.unit
@pytest.mark.parametrize("price", [0, -10, "abc"])
def test_invalid_price_is_rejected_and_not_written(engine_service, booking, worker, db_session, price):
    with pytest.raises(ValidationError):
        engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": price})

    assert _ledger_size(db_session, booking) == 0
    assert db_session.get(Booking, booking.id).status == BookingStatus.PENDING


@pytest.mark.unit
def test_price_offer_requires_price(engine_service, booking, worker):
    with pytest.raises(ValidationError) as exc_info:
        engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"message": "more please"})

    assert exc_info.value.details["errors"] == {"proposed_price": "required"}


@pytest.mark.unit
def test_empty_message_is_rejected(engine_service, booking, customer):
    with pytest.raises(ValidationError):
        engine_service.submit_negotiation(booking.id, customer.id, "message", {"message": "   "})


@pytest.mark.unit
def test_unknown_payload_fields_are_rejected(engine_service, booking, customer):
    with pytest.raises(ValidationError) as exc_info:
        engine_service.submit_negotiation(booking.id, customer.id, "message", {"message": "hi", "from_worker": True})

    assert "from_worker" in exc_info.value.details["errors"]


@pytest.mark.unit
@pytest.mark.parametrize("message_type", ["acceptance", "rejection", "shout"])
def test_resolution_types_cannot_be_submitted(engine_service, booking, customer, message_type):
    with pytest.raises(ValidationError):
        engine_service.submit_negotiation(booking.id, customer.id, message_type, {"message": "ok"})


@pytest.mark.unit
def test_time_change_keeps_status_and_price(engine_service, make_booking, customer, db_session):
    booking = make_booking(status=BookingStatus.NEGOTIATING)
    proposed_date = booking.preferred_date

    entry = engine_service.submit_negotiation(
        booking.id,
        customer.id,
        MessageType.TIME_CHANGE,
        NegotiationPayload(proposed_date=proposed_date, message="same day, later?"),
    )

    assert entry.proposed_date == proposed_date
    assert entry.proposed_price is None
    assert db_session.get(Booking, booking.id).status == BookingStatus.NEGOTIATING
    assert engine_service.get_effective_price(booking.id) == Decimal("500")


@pytest.mark.unit
def test_time_change_requires_date_or_time(engine_service, booking, customer):
    with pytest.raises(ValidationError):
        engine_service.submit_negotiation(booking.id, customer.id, "time_change", {"message": "later"})


@pytest.mark.unit
def test_message_allowed_after_acceptance(engine_service, make_booking, worker):
    booking = make_booking(status=BookingStatus.ACCEPTED)

    entry = engine_service.submit_negotiation(booking.id, worker.id, "message", {"message": "On my way"})

    assert entry.message == "On my way"
    assert booking.status == BookingStatus.ACCEPTED


@pytest.mark.unit
def test_counter_offer_after_acceptance_is_rejected(engine_service, make_booking, worker):
    booking = make_booking(status=BookingStatus.ACCEPTED)

    with pytest.raises(ValidationError):
        engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": 900})


# ===== Terminal statuses =====

@pytest.mark.unit
@pytest.mark.parametrize("status", [BookingStatus.COMPLETED, BookingStatus.CANCELLED])
def test_terminal_bookings_accept_nothing(engine_service, make_booking, customer, worker, db_session, status):
    booking = make_booking(status=status)

    with pytest.raises(ValidationError):
        engine_service.submit_negotiation(booking.id, customer.id, "message", {"message": "hello?"})
    with pytest.raises(ValidationError):
        engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": 10})
    with pytest.raises(ValidationError):
        engine_service.resolve_booking(booking.id, customer.id, "accept")
    with pytest.raises(ValidationError):
        engine_service.advance_booking(booking.id, worker.id, "complete")

    assert _ledger_size(db_session, booking) == 0
    assert db_session.get(Booking, booking.id).status == status


# ===== Resolution =====

@pytest.mark.unit
def test_accept_directly_from_pending(engine_service, booking, worker):
    accepted = engine_service.resolve_booking(booking.id, worker.id, "accept", message="See you then")

    assert accepted.status == BookingStatus.ACCEPTED
    entry = engine_service.list_negotiations(booking.id)[-1].negotiation
    assert entry.message_type == MessageType.ACCEPTANCE
    assert entry.proposed_price == Decimal("500")
    assert entry.message == "See you then"


@pytest.mark.unit
def test_reject_cancels_without_price(engine_service, make_booking, customer):
    booking = make_booking(status=BookingStatus.NEGOTIATING)

    cancelled = engine_service.resolve_booking(booking.id, customer.id, "reject")

    assert cancelled.status == BookingStatus.CANCELLED
    entry = engine_service.list_negotiations(booking.id)[-1].negotiation
    assert entry.message_type == MessageType.REJECTION
    assert entry.proposed_price is None


@pytest.mark.unit
def test_resolve_rejects_worker_actions(engine_service, booking, worker):
    with pytest.raises(ValidationError):
        engine_service.resolve_booking(booking.id, worker.id, "confirm")


# ===== Worker lifecycle =====

@pytest.mark.unit
def test_worker_confirms_starts_and_completes(engine_service, make_booking, worker, db_session):
    booking = make_booking(status=BookingStatus.NEGOTIATING)
    db_session.add(BookingNegotiation(
        booking_id=booking.id,
        sender_id=worker.id,
        message_type=MessageType.PRICE_OFFER,
        proposed_price=Decimal("720.00"),
    ))
    db_session.execute(update(Booking).where(Booking.id == booking.id).values(status=BookingStatus.ACCEPTED))
    db_session.commit()

    confirmed = engine_service.advance_booking(booking.id, worker.id, "confirm")
    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.final_price == Decimal("720")
    assert confirmed.scheduled_at.replace(tzinfo=None) == datetime.combine(
        confirmed.preferred_date, confirmed.preferred_time
    )

    started = engine_service.advance_booking(booking.id, worker.id, "start")
    assert started.status == BookingStatus.IN_PROGRESS

    completed = engine_service.advance_booking(booking.id, worker.id, "complete")
    assert completed.status == BookingStatus.COMPLETED
    assert completed.completed_at is not None


@pytest.mark.unit
def test_confirm_uses_given_schedule(engine_service, make_booking, worker):
    booking = make_booking(status=BookingStatus.ACCEPTED)
    when = datetime(2031, 5, 4, 9, 0, tzinfo=timezone.utc)

    confirmed = engine_service.advance_booking(booking.id, worker.id, "confirm", scheduled_at=when)

    assert confirmed.scheduled_at.replace(tzinfo=None) == when.replace(tzinfo=None)


@pytest.mark.unit
def test_customer_cannot_confirm(engine_service, make_booking, customer):
    booking = make_booking(status=BookingStatus.ACCEPTED)

    with pytest.raises(AuthorizationError):
        engine_service.advance_booking(booking.id, customer.id, "confirm")


@pytest.mark.unit
def test_basic_lifecycle_completes_from_accepted(db_session, make_booking, worker):
    booking = make_booking(status=BookingStatus.ACCEPTED)
    service = NegotiationService(db_session, lifecycle="basic")

    completed = service.advance_booking(booking.id, worker.id, "complete")

    assert completed.status == BookingStatus.COMPLETED
    assert completed.final_price == Decimal("500")


# ===== Concurrency =====

@pytest.mark.unit
def test_conflict_is_retried_once(engine_service, booking, worker):
    real_commit = engine_service._commit
    calls = []

    def flaky_commit(target, write):
        calls.append(write.expected_status)
        if len(calls) == 1:
            raise ConflictError(str(target.id), write.expected_status.value)
        return real_commit(target, write)

    with patch.object(engine_service, "_commit", side_effect=flaky_commit):
        entry = engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": 650})

    assert len(calls) == 2
    assert entry.proposed_price == Decimal("650")


@pytest.mark.unit
def test_conflict_surfaces_after_retry(engine_service, booking, customer, db_session):
    def always_conflict(target, write):
        raise ConflictError(str(target.id), write.expected_status.value)

    with patch.object(engine_service, "_commit", side_effect=always_conflict) as commit:
        with pytest.raises(ConflictError) as exc_info:
            engine_service.resolve_booking(booking.id, customer.id, "accept")

    assert commit.call_count == 2
    assert exc_info.value.status_code == 409
    assert exc_info.value.expected_status == "pending"
    assert _ledger_size(db_session, booking) == 0


@pytest.mark.unit
def test_lost_race_is_revalidated_against_new_status(engine_service, booking, customer, db_session):
    """The other party cancels between our read and our write."""
    real_commit = engine_service._commit
    raced = []

    def racing_commit(target, write):
        if not raced:
            raced.append(True)
            db_session.execute(
                update(Booking).where(Booking.id == target.id).values(status=BookingStatus.CANCELLED)
            )
            db_session.commit()
        return real_commit(target, write)

    with patch.object(engine_service, "_commit", side_effect=racing_commit):
        with pytest.raises(ValidationError):
            engine_service.resolve_booking(booking.id, customer.id, "accept")

    assert db_session.get(Booking, booking.id).status == BookingStatus.CANCELLED
    assert _ledger_size(db_session, booking) == 0


@pytest.mark.unit
def test_failed_ledger_insert_rolls_back_status(engine_service, booking, worker, db_session):
    def fail_ledger_insert(session, flush_context, instances):
        if any(isinstance(obj, BookingNegotiation) for obj in session.new):
            raise IntegrityError("INSERT INTO booking_negotiations", {}, Exception("insert failed"))

    event.listen(db_session, "before_flush", fail_ledger_insert)
    try:
        with pytest.raises(IntegrityError):
            engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": 650})
    finally:
        event.remove(db_session, "before_flush", fail_ledger_insert)

    assert db_session.get(Booking, booking.id).status == BookingStatus.PENDING
    assert _ledger_size(db_session, booking) == 0


# ===== Transient store failures =====

@pytest.mark.unit
def test_transient_error_is_retried(engine_service, booking, worker):
    real_load = negotiation_module.load_booking
    calls = []

    def flaky_load(session, booking_id):
        calls.append(booking_id)
        if len(calls) == 1:
            raise OperationalError("SELECT", {}, Exception("server closed the connection"))
        return real_load(session, booking_id)

    with patch.object(negotiation_module, "load_booking", side_effect=flaky_load):
        entry = engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": 650})

    assert len(calls) == 2
    assert entry.proposed_price == Decimal("650")


@pytest.mark.unit
def test_transient_error_surfaces_after_retries(engine_service, booking, worker, db_session):
    error = OperationalError("SELECT", {}, Exception("timeout expired"))

    with patch.object(negotiation_module, "load_booking", side_effect=error) as load:
        with pytest.raises(TransientStoreError) as exc_info:
            engine_service.submit_negotiation(booking.id, worker.id, "price_offer", {"proposed_price": 650})

    assert load.call_count == 3
    assert exc_info.value.status_code == 503
    assert _ledger_size(db_session, booking) == 0


@pytest.mark.unit
def test_authorization_error_is_not_retried(engine_service, booking, outsider):
    real_load = negotiation_module.load_booking

    with patch.object(negotiation_module, "load_booking", side_effect=real_load) as load:
        with pytest.raises(AuthorizationError):
            engine_service.resolve_booking(booking.id, outsider.id, "reject")

    assert load.call_count == 1
