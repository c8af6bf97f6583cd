"""
Test data builders for Lambda function tests.

Provides factory functions for database rows and response helpers with
sensible defaults. Use these to create test rows without repeating
boilerplate across test files.
"""

import base64
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

BUCKET_NAME = "cachao-media-test"
REGION = "eu-west-1"
OWNER_SUB = "owner-sub-1111"
OTHER_SUB = "other-sub-2222"


def make_event_row(event_id: int = 1, owner: str = OWNER_SUB, **overrides: Any) -> Dict[str, Any]:
    """Build an events row as mysql-connector returns it."""
    row: Dict[str, Any] = {
        "id": event_id,
        "name": "Salsa Congress",
        "description": "Three days of dancing",
        "start_date": datetime(2026, 11, 20, 18, 0),
        "end_date": datetime(2026, 11, 22, 23, 0),
        "image_url": None,
        "cognito_sub": owner,
        "created_at": datetime(2026, 1, 1, 12, 0),
        "updated_at": None,
    }
    row.update(overrides)
    return row


def make_ticket_row(ticket_id: int = 5, event_id: int = 1, **overrides: Any) -> Dict[str, Any]:
    """Build a tickets row. Price is a Decimal like a DECIMAL(10,2) column."""
    row: Dict[str, Any] = {
        "id": ticket_id,
        "event_id": event_id,
        "name": "Full Pass",
        "price": Decimal("100.00"),
        "image_url": None,
        "max_quantity": None,
        "sold_quantity": 0,
        "is_active": 1,
    }
    row.update(overrides)
    return row


def make_discount_code_row(code_id: int = 9, **overrides: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id": code_id,
        "code": "EARLY10",
        "discount_type": "percentage",
        "discount_value": Decimal("10.00"),
        "max_uses": None,
        "used_count": 0,
    }
    row.update(overrides)
    return row


def make_date_discount_row(discount_id: int = 3, **overrides: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id": discount_id,
        "discount_type": "fixed",
        "discount_value": Decimal("15.00"),
        "valid_until": date(2026, 12, 31),
    }
    row.update(overrides)
    return row


def make_order_row(order_id: int = 42, **overrides: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id": order_id,
        "event_id": 1,
        "ticket_id": 5,
        "quantity": 2,
        "discount_code_id": None,
        "status": "pending",
        "email": "buyer@example.com",
        "validated": 0,
    }
    row.update(overrides)
    return row


def make_checkout_session(order_id: Any = 42, **overrides: Any) -> Dict[str, Any]:
    """Build the data.object of a checkout.session.* Stripe event."""
    session: Dict[str, Any] = {
        "id": "cs_test_123",
        "object": "checkout.session",
        "payment_intent": "pi_test_123",
        "customer_email": "buyer@example.com",
        "metadata": {"order_id": str(order_id), "event_id": "1", "ticket_id": "5"},
    }
    session.update(overrides)
    return session


def response_body(response: Dict[str, Any]) -> Dict[str, Any]:
    """Decode a proxy response body."""
    return json.loads(response["body"])


def bearer_token(claims: Dict[str, Any]) -> str:
    """Unsigned JWT carrying ``claims``, as a guest route would receive it."""

    def segment(data: Dict[str, Any]) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    return f"Bearer {segment({'alg': 'none'})}.{segment(claims)}.signature"
