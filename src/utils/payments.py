"""
Stripe SDK access for ticket checkout.

Wraps Checkout Session creation and webhook signature verification so the
handler deals only in plain dicts and AppError.
"""

import json
import os
from typing import Any, Dict, List, Optional

import stripe

from .db import get_required_env
from .errors import AppError, ErrorCode
from .logging import get_logger

STRIPE_API_VERSION = "2024-11-20.acacia"
CURRENCY = "eur"


def get_stripe() -> Any:
    """
    Configure the Stripe module from the environment.

    Raises:
        AppError: If STRIPE_SECRET_KEY is not set
    """
    try:
        stripe.api_key = get_required_env("STRIPE_SECRET_KEY")
    except ValueError:
        get_logger(__name__).error("Stripe secret key not configured")
        raise AppError(ErrorCode.CONFIGURATION_ERROR, "Payment provider not configured")
    stripe.api_version = os.getenv("STRIPE_API_VERSION", STRIPE_API_VERSION)
    return stripe


def build_line_item(name: str, description: str, unit_amount: int, quantity: int) -> Dict[str, Any]:
    return {
        "price_data": {
            "currency": CURRENCY,
            "product_data": {"name": name, "description": description},
            "unit_amount": unit_amount,
        },
        "quantity": quantity,
    }


def create_checkout_session(
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    customer_email: str,
    metadata: Dict[str, str],
) -> Dict[str, Optional[str]]:
    """
    Create a card-payment Checkout Session.

    Returns:
        ``{"id": ..., "url": ...}``

    Raises:
        AppError: If Stripe rejects the request
    """
    logger = get_logger(__name__)
    client = get_stripe()

    try:
        session = client.checkout.Session.create(
            payment_method_types=["card"],
            line_items=line_items,
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=customer_email,
            metadata=metadata,
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout session creation failed", error=str(e), order_id=metadata.get("order_id"))
        raise AppError(ErrorCode.PAYMENT_ERROR, "Failed to create checkout session")

    logger.info("Created Stripe checkout session", session_id=session.id, order_id=metadata.get("order_id"))
    return {"id": session.id, "url": session.url}


def construct_webhook_event(payload: str, signature: str) -> Dict[str, Any]:
    """
    Verify a webhook payload against its Stripe-Signature header.

    Raises:
        AppError: CONFIGURATION_ERROR when no webhook secret is set,
            INVALID_INPUT when verification fails
    """
    try:
        secret = get_required_env("STRIPE_WEBHOOK_SECRET")
    except ValueError:
        raise AppError(ErrorCode.CONFIGURATION_ERROR, "Webhook secret not configured")

    try:
        stripe.Webhook.construct_event(payload, signature, secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise AppError(ErrorCode.INVALID_INPUT, f"Webhook Error: {e}")

    return json.loads(payload)
