"""Pure business rules shared by the workflow use-cases (no DB access)."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

INBOUND_TRANSACTION_TYPES = frozenset({"delivery", "return"})
OUTBOUND_TRANSACTION_TYPES = frozenset({"usage", "adjustment"})

_HOURS_QUANTUM = Decimal("0.01")


def signed_delta(transaction_type: str, quantity: Decimal | int | float) -> Decimal:
    """Effect of a ledger entry on the balance: deliveries/returns add, usage/adjustments subtract."""
    amount = Decimal(str(quantity))
    if transaction_type in INBOUND_TRANSACTION_TYPES:
        return amount
    if transaction_type in OUTBOUND_TRANSACTION_TYPES:
        return -amount
    raise ValueError(f"Unknown transaction type: {transaction_type}")


def is_low_stock(quantity, min_threshold) -> bool:
    """At or below the threshold counts as low."""
    if quantity is None or min_threshold is None:
        return False
    return Decimal(str(quantity)) <= Decimal(str(min_threshold))


def as_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(clock_in: datetime, clock_out: datetime) -> Decimal:
    """Elapsed hours rounded to two decimals."""
    elapsed = as_utc(clock_out) - as_utc(clock_in)
    hours = Decimal(str(elapsed.total_seconds())) / Decimal(3600)
    return hours.quantize(_HOURS_QUANTUM, rounding=ROUND_HALF_UP)


def format_quantity(quantity) -> str:
    """Human form for messages: 20.00 -> "20", 12.50 -> "12.5"."""
    value = Decimal(str(quantity))
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")
