"""
Ticket price calculation.

A ticket's unit price starts at its base price and may be reduced by either
an early-bird date discount attached to the ticket or an event discount code.
When a valid code is supplied it replaces the date discount: the code's
reduction is subtracted from the base price, but a percentage code is taken
of the date-discounted price. Amounts are Decimal rounded half-up to cents.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, TypedDict

from .db import fetch_one
from .logging import get_logger

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


class PriceBreakdown(TypedDict):
    """Result of a price calculation (per-unit discount, order total)."""

    base_price: Decimal
    unit_price: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    quantity: int
    applied_discount: Optional[str]
    discount_code_id: Optional[int]


def to_money(value: Any) -> Decimal:
    """Coerce a DECIMAL column, float or string to a cent-rounded Decimal."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Euros to cents for the payment provider."""
    return int((amount * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def discount_value(discount_type: str, value: Any, base_price: Decimal) -> Decimal:
    """Per-unit reduction for a percentage or fixed discount."""
    amount = to_money(value)
    if discount_type == "percentage":
        return to_money(base_price * amount / HUNDRED)
    return amount


def calculate_price(
    base_price: Any,
    quantity: int,
    date_discount: Optional[Dict[str, Any]] = None,
    discount_code: Optional[Dict[str, Any]] = None,
) -> PriceBreakdown:
    """
    Compute unit price, per-unit discount and total from already-selected discounts.

    Args:
        base_price: Ticket price
        quantity: Number of tickets (>= 1)
        date_discount: Active ticket_discounts row, if any
        discount_code: Valid discount_codes row, if any (replaces the date discount)
    """
    base = to_money(base_price)
    reduction = Decimal("0.00")
    applied: Optional[str] = None
    code_id: Optional[int] = None

    if date_discount:
        reduction = discount_value(date_discount["discount_type"], date_discount["discount_value"], base)
        applied = f"date_{date_discount['discount_type']}"

    if discount_code:
        # Percentage codes apply to the date-discounted price
        date_unit = max(Decimal("0.00"), base - reduction)
        reduction = discount_value(discount_code["discount_type"], discount_code["discount_value"], date_unit)
        applied = f"code_{discount_code['discount_type']}"
        code_id = discount_code.get("id")

    unit = max(Decimal("0.00"), base - reduction)
    return {
        "base_price": base,
        "unit_price": unit,
        "discount_amount": base - unit,
        "total_amount": to_money(unit * quantity),
        "quantity": quantity,
        "applied_discount": applied,
        "discount_code_id": code_id,
    }


def find_date_discount(connection: Any, ticket_id: Any, today: date) -> Optional[Dict[str, Any]]:
    """The active date discount expiring soonest that is still valid today."""
    return fetch_one(
        connection,
        """
        SELECT id, discount_type, discount_value, valid_until
        FROM ticket_discounts
        WHERE ticket_id = %s AND is_active = 1 AND valid_until >= %s
        ORDER BY valid_until ASC
        LIMIT 1
        """,
        (ticket_id, today),
    )


def find_discount_code(connection: Any, event_id: Any, code: str, now: datetime) -> Optional[Dict[str, Any]]:
    """A redeemable code for the event: active, in its window, uses left."""
    return fetch_one(
        connection,
        """
        SELECT id, code, discount_type, discount_value, max_uses, used_count
        FROM discount_codes
        WHERE event_id = %s
          AND UPPER(code) = %s
          AND is_active = 1
          AND (valid_from IS NULL OR valid_from <= %s)
          AND (valid_until IS NULL OR valid_until >= %s)
          AND (max_uses IS NULL OR used_count < max_uses)
        LIMIT 1
        """,
        (event_id, code.strip().upper(), now, now),
    )


def calculate_ticket_price(
    connection: Any,
    ticket: Dict[str, Any],
    quantity: int,
    discount_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PriceBreakdown:
    """
    Price an order for a ticket row, looking up the applicable discounts.

    An unknown, expired or exhausted code is ignored and the date discount
    (if any) applies instead.
    """
    logger = get_logger(__name__)
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)

    code_row = None
    if discount_code and discount_code.strip():
        code_row = find_discount_code(connection, ticket["event_id"], discount_code, now)
        if code_row is None:
            logger.info("Discount code not applicable", event_id=ticket["event_id"], code=discount_code.strip().upper())

    date_row = find_date_discount(connection, ticket["id"], now.date())

    breakdown = calculate_price(ticket["price"], quantity, date_discount=date_row, discount_code=code_row)
    logger.info(
        "Calculated ticket price",
        ticket_id=ticket["id"],
        quantity=quantity,
        unit_price=str(breakdown["unit_price"]),
        applied_discount=breakdown["applied_discount"],
    )
    return breakdown
