"""Effective price resolution over the negotiation ledger.

The price both parties are negotiating over is never stored on the booking.
It is always recomputed from the immutable ledger: the latest message with a
positive proposed_price wins, otherwise the customer's original offer stands.
Plain messages and time changes carry no price, so they never reset it.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Protocol, Sequence

from rozgaar.api.middleware.error_handler import ValidationError
from rozgaar.models.negotiations import MessageType


# Numeric(10, 2)
MAX_PRICE = Decimal("99999999.99")
_CENTS = Decimal("0.01")


class PricedEntry(Protocol):
    proposed_price: Optional[Decimal]


def has_price(entry: PricedEntry) -> bool:
    price = entry.proposed_price
    return price is not None and Decimal(price) > 0


def resolve_effective_price(offered_price: Any, messages: Sequence[PricedEntry]) -> Decimal:
    """
    Current price of a booking.

    Args:
        offered_price: The customer's original ask
        messages: Ledger entries ordered oldest first

    Returns:
        proposed_price of the most recent entry with a positive price, or
        offered_price when there is none
    """
    for entry in reversed(messages):
        if has_price(entry):
            return Decimal(entry.proposed_price)
    return Decimal(offered_price)


def as_money(value: Any) -> Optional[Decimal]:
    """Stored amount as a Decimal with exactly two places, for API output."""
    if value is None:
        return None
    return Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)


def parse_price(value: Any, field: str = "proposed_price") -> Decimal:
    """
    Validate a price coming from a client.

    Accepts ints, floats, Decimals and numeric strings. Returns a Decimal
    rounded to paise.

    Raises:
        ValidationError: value is not a finite positive number or is too large
    """
    if isinstance(value, bool):
        raise ValidationError("Price must be a number", errors={field: value})

    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Price must be a number", errors={field: str(value)})

    if not price.is_finite():
        raise ValidationError("Price must be a number", errors={field: str(value)})
    if price <= 0:
        raise ValidationError("Price must be greater than zero", errors={field: str(value)})

    price = price.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if price <= 0:
        raise ValidationError("Price must be greater than zero", errors={field: str(value)})
    if price > MAX_PRICE:
        raise ValidationError("Price is too large", errors={field: str(value)})
    return price


def counter_offer_prefill(
    offered_price: Any,
    messages: Sequence[PricedEntry],
    message_type: MessageType,
) -> Optional[Decimal]:
    """Default price shown when a party opens a form; only price offers are pre-filled."""
    if MessageType(message_type) is MessageType.PRICE_OFFER:
        return resolve_effective_price(offered_price, messages)
    return None

