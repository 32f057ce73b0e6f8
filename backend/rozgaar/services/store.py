"""Store access policy shared by the booking services.

Timeouts and dropped connections become TransientStoreError, which is retried
with exponential backoff up to settings.store_retry_attempts.
"""
from contextlib import contextmanager
from typing import Iterator, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from tenacity import Retrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from rozgaar.api.middleware.error_handler import NotFoundException, TransientStoreError
from rozgaar.lib.logging import get_logger, log_with_context
from rozgaar.lib.settings import settings
from rozgaar.models.bookings import Booking


logger = get_logger(__name__)


@contextmanager
def store_errors(session: Session) -> Iterator[None]:
    """Roll back and raise TransientStoreError on timeouts and lost connections."""
    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        session.rollback()
        raise TransientStoreError() from exc
    except DBAPIError as exc:
        session.rollback()
        if exc.connection_invalidated:
            raise TransientStoreError() from exc
        raise


def _log_transient_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log_with_context(
        logger,
        "warning",
        "Transient store error, retrying",
        attempt=retry_state.attempt_number,
        error=repr(exc.__cause__ if exc is not None and exc.__cause__ else exc),
    )


def store_retrying() -> Retrying:
    """Retry policy for a unit of store work; built per call so settings changes apply."""
    return Retrying(
        stop=stop_after_attempt(settings.store_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.store_retry_min_wait,
            min=settings.store_retry_min_wait,
            max=settings.store_retry_max_wait,
        ),
        retry=retry_if_exception_type(TransientStoreError),
        before_sleep=_log_transient_retry,
        reraise=True,
    )


def parse_id(value: Union[UUID, str], resource: str) -> UUID:
    """UUID from a path or body value; malformed ids cannot match a row."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundException(resource, str(value))


def load_booking(session: Session, booking_id: Union[UUID, str]) -> Booking:
    """Fresh copy of a booking, overwriting anything cached in the session."""
    booking = session.execute(
        select(Booking)
        .where(Booking.id == parse_id(booking_id, "Booking"))
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if booking is None:
        raise NotFoundException("Booking", str(booking_id))
    return booking
