"""Booking lifecycle state machine.

One canonical status set (see BookingStatus) with two lifecycle variants:

- basic: the customer-facing flow
  pending -> negotiating -> accepted -> completed, or cancelled
- extended: the worker-facing flow, which schedules and starts the job
  accepted -> confirmed -> in_progress -> completed

Both variants share the negotiation phase. Views project the canonical status
onto what they display instead of keeping separate enumerations.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple, Union
from uuid import UUID
import enum

from rozgaar.api.middleware.error_handler import AuthorizationError, ValidationError
from rozgaar.models.bookings import Booking, BookingStatus


class PartyRole(str, enum.Enum):
    """Which side of a booking an actor is on."""
    CUSTOMER = "customer"
    WORKER = "worker"


class BookingAction(str, enum.Enum):
    """Actions that may move a booking between statuses."""
    COUNTER = "counter"
    ACCEPT = "accept"
    REJECT = "reject"
    CONFIRM = "confirm"
    START = "start"
    COMPLETE = "complete"


class Lifecycle(str, enum.Enum):
    """Lifecycle variant of the booking state machine."""
    BASIC = "basic"
    EXTENDED = "extended"


@dataclass(frozen=True)
class Transition:
    """Target status and the roles allowed to trigger it."""
    target: BookingStatus
    actors: FrozenSet[PartyRole]


EITHER_PARTY = frozenset({PartyRole.CUSTOMER, PartyRole.WORKER})
WORKER_ONLY = frozenset({PartyRole.WORKER})

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

_NEGOTIATION_PHASE: Dict[Tuple[BookingStatus, BookingAction], Transition] = {
    (BookingStatus.PENDING, BookingAction.ACCEPT): Transition(BookingStatus.ACCEPTED, EITHER_PARTY),
    (BookingStatus.PENDING, BookingAction.COUNTER): Transition(BookingStatus.NEGOTIATING, EITHER_PARTY),
    (BookingStatus.PENDING, BookingAction.REJECT): Transition(BookingStatus.CANCELLED, EITHER_PARTY),
    (BookingStatus.NEGOTIATING, BookingAction.COUNTER): Transition(BookingStatus.NEGOTIATING, EITHER_PARTY),
    (BookingStatus.NEGOTIATING, BookingAction.ACCEPT): Transition(BookingStatus.ACCEPTED, EITHER_PARTY),
    (BookingStatus.NEGOTIATING, BookingAction.REJECT): Transition(BookingStatus.CANCELLED, EITHER_PARTY),
}

TRANSITIONS: Dict[Lifecycle, Dict[Tuple[BookingStatus, BookingAction], Transition]] = {
    Lifecycle.BASIC: {
        **_NEGOTIATION_PHASE,
        (BookingStatus.ACCEPTED, BookingAction.COMPLETE): Transition(BookingStatus.COMPLETED, WORKER_ONLY),
    },
    Lifecycle.EXTENDED: {
        **_NEGOTIATION_PHASE,
        (BookingStatus.ACCEPTED, BookingAction.CONFIRM): Transition(BookingStatus.CONFIRMED, WORKER_ONLY),
        (BookingStatus.CONFIRMED, BookingAction.START): Transition(BookingStatus.IN_PROGRESS, WORKER_ONLY),
        (BookingStatus.IN_PROGRESS, BookingAction.COMPLETE): Transition(BookingStatus.COMPLETED, WORKER_ONLY),
    },
}

# Statuses shown in each view; anything else is projected
_BASIC_PROJECTION = {
    BookingStatus.CONFIRMED: BookingStatus.ACCEPTED,
    BookingStatus.IN_PROGRESS: BookingStatus.ACCEPTED,
}


def _as_uuid(value: Union[UUID, str, None]) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def role_of(user_id: Union[UUID, str, None], booking: Booking) -> Optional[PartyRole]:
    """
    Derive the caller's role on a booking from the stored party ids.

    Returns None for anyone who is not a party. This is the only place a
    customer/worker flag is computed; client-supplied flags are never trusted.
    """
    uid = _as_uuid(user_id)
    if uid is None:
        return None
    if uid == _as_uuid(booking.customer_id):
        return PartyRole.CUSTOMER
    if uid == _as_uuid(booking.worker_id):
        return PartyRole.WORKER
    return None


def is_terminal(status: BookingStatus) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES


def next_status(
    current: BookingStatus,
    action: BookingAction,
    role: Optional[PartyRole],
    lifecycle: Lifecycle = Lifecycle.EXTENDED,
) -> BookingStatus:
    """
    Status a booking moves to when ``role`` performs ``action``.

    Raises:
        AuthorizationError: role is None (not a party) or the action belongs
            to the other party
        ValidationError: the action is not available in the current status
    """
    if role is None:
        raise AuthorizationError()

    current = BookingStatus(current)
    action = BookingAction(action)

    if current in TERMINAL_STATUSES:
        raise ValidationError(
            f"Booking is already {current.value}",
            errors={"status": current.value, "action": action.value},
        )

    transition = TRANSITIONS[Lifecycle(lifecycle)].get((current, action))
    if transition is None:
        raise ValidationError(
            f"Cannot {action.value} a booking that is {current.value}",
            errors={"status": current.value, "action": action.value},
        )

    if role not in transition.actors:
        raise AuthorizationError(
            f"Only the worker can {action.value} a booking",
            details={"action": action.value, "role": role.value},
        )

    return transition.target


def allowed_actions(
    current: BookingStatus,
    role: Optional[PartyRole],
    lifecycle: Lifecycle = Lifecycle.EXTENDED,
) -> List[BookingAction]:
    """Actions ``role`` may take on a booking in ``current`` status."""
    if role is None:
        return []
    table = TRANSITIONS[Lifecycle(lifecycle)]
    actions = []
    for action in BookingAction:
        transition = table.get((BookingStatus(current), action))
        if transition is not None and role in transition.actors:
            actions.append(action)
    return actions


def reachable_statuses(current: BookingStatus, lifecycle: Lifecycle = Lifecycle.EXTENDED) -> FrozenSet[BookingStatus]:
    """Statuses one transition away from ``current``."""
    return frozenset(
        transition.target
        for (status, _), transition in TRANSITIONS[Lifecycle(lifecycle)].items()
        if status == BookingStatus(current)
    )


def project_status(status: BookingStatus, lifecycle: Lifecycle) -> BookingStatus:
    """Map a canonical status onto the statuses a lifecycle view displays."""
    status = BookingStatus(status)
    if Lifecycle(lifecycle) is Lifecycle.BASIC:
        return _BASIC_PROJECTION.get(status, status)
    return status
