"""
Lambda handlers for Stripe ticket payments.

Checkout creates a pending order and a Stripe Checkout Session for it.
Payment confirmation arrives either through the Stripe partner event bus
(EventBridge) or through the signed webhook endpoint; both paths share
handle_stripe_event, which moves the order from pending to paid exactly once.
"""

import os
from typing import Any, Dict, Optional

try:  # pragma: no cover
    from utils.auth import get_cognito_sub
    from utils.db import execute, fetch_one, get_connection, transaction
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, get_header, json_response, parse_body, raw_body
    from utils.logging import StructuredLogger, get_correlation_id, get_logger
    from utils.payments import build_line_item, construct_webhook_event, create_checkout_session
    from utils.pricing import calculate_ticket_price, to_minor_units
    from utils.validation import parse_positive_int, validate_email
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import get_cognito_sub
    from ..utils.db import execute, fetch_one, get_connection, transaction
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, get_header, json_response, parse_body, raw_body
    from ..utils.logging import StructuredLogger, get_correlation_id, get_logger
    from ..utils.payments import build_line_item, construct_webhook_event, create_checkout_session
    from ..utils.pricing import calculate_ticket_price, to_minor_units
    from ..utils.validation import parse_positive_int, validate_email


DEFAULT_FRONTEND_URL = "http://localhost:3000"
EVENTBRIDGE_SOURCES = ("stripe.com", "aws.events")

router = Router()


# ----------------------------------------------------------------------
# Checkout
# ----------------------------------------------------------------------


def _frontend_base_url(event: Dict[str, Any]) -> str:
    origin = get_header(event, "Origin")
    return (origin or os.getenv("FRONTEND_URL") or DEFAULT_FRONTEND_URL).rstrip("/")


def _check_availability(ticket: Dict[str, Any], quantity: int) -> None:
    if not ticket.get("is_active"):
        raise AppError(ErrorCode.INVALID_INPUT, "Ticket is not available for purchase")

    max_quantity = ticket.get("max_quantity")
    if max_quantity:
        sold = int(ticket.get("sold_quantity") or 0)
        if sold + quantity > int(max_quantity):
            remaining = max(0, int(max_quantity) - sold)
            raise AppError(
                ErrorCode.INVALID_INPUT,
                f"Only {remaining} tickets available",
                {"available": remaining},
            )


@router.route("POST", r"/events/(?P<event_id>\d+)/tickets/(?P<ticket_id>\d+)/checkout")
def create_ticket_checkout(event: Dict[str, Any], event_id: str, ticket_id: str) -> Dict[str, Any]:
    """
    Start a ticket purchase.

    Body: ``{"email": str, "quantity": int = 1, "discount_code": str | None}``.
    Guests may buy; a signed-in buyer's Cognito sub is stored on the order.
    """
    logger = get_logger(__name__, get_correlation_id(event))
    body = parse_body(event)
    email = validate_email(body.get("email"))
    quantity = parse_positive_int(body.get("quantity", 1), "quantity")
    discount_code = body.get("discount_code")
    if discount_code is not None and not isinstance(discount_code, str):
        raise AppError(ErrorCode.INVALID_INPUT, "discount_code must be a string")
    cognito_sub = get_cognito_sub(event)

    with get_connection() as connection:
        ticket = fetch_one(
            connection,
            "SELECT * FROM tickets WHERE id = %s AND event_id = %s",
            (ticket_id, event_id),
        )
        if ticket is None:
            raise AppError(ErrorCode.NOT_FOUND, "Ticket not found")
        _check_availability(ticket, quantity)

        event_row = fetch_one(connection, "SELECT name FROM events WHERE id = %s", (event_id,))
        event_name = (event_row or {}).get("name") or "Event"

        price = calculate_ticket_price(connection, ticket, quantity, discount_code)

        order_id = execute(
            connection,
            """
            INSERT INTO ticket_orders
                (event_id, ticket_id, user_id, cognito_sub, email, quantity, unit_price,
                 discount_amount, discount_code_id, total_amount, status, created_at)
            VALUES (%s, %s, NULL, %s, %s, %s, %s, %s, %s, %s, 'pending', NOW())
            """,
            (
                event_id,
                ticket_id,
                cognito_sub,
                email,
                quantity,
                price["unit_price"],
                price["discount_amount"],
                price["discount_code_id"],
                price["total_amount"],
            ),
        ).lastrowid
        logger.info(
            "Created pending ticket order",
            order_id=order_id,
            event_id=event_id,
            ticket_id=ticket_id,
            quantity=quantity,
            guest=cognito_sub is None,
        )

        base_url = _frontend_base_url(event)
        try:
            session = create_checkout_session(
                line_items=[
                    build_line_item(
                        name=f"{ticket['name']} - {event_name}",
                        description=f"Ticket for {event_name}",
                        unit_amount=to_minor_units(price["unit_price"]),
                        quantity=quantity,
                    )
                ],
                success_url=f"{base_url}/events/{event_id}?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/events/{event_id}?payment=cancelled",
                customer_email=email,
                metadata={"order_id": str(order_id), "event_id": str(event_id), "ticket_id": str(ticket_id)},
            )
        except AppError:
            execute(
                connection,
                "UPDATE ticket_orders SET status = 'failed', updated_at = NOW() WHERE id = %s AND status = 'pending'",
                (order_id,),
            )
            raise

        try:
            execute(
                connection,
                "UPDATE ticket_orders SET stripe_checkout_session_id = %s, updated_at = NOW() WHERE id = %s",
                (session["id"], order_id),
            )
        except Exception as e:
            # The session metadata still carries the order id
            logger.error("Failed to store checkout session id", order_id=order_id, error=str(e))

    return json_response(
        200,
        {
            "success": True,
            "checkout_url": session["url"],
            "session_id": session["id"],
            "order_id": order_id,
            "unit_price": float(price["unit_price"]),
            "discount_amount": float(price["discount_amount"]),
            "total_amount": float(price["total_amount"]),
            "applied_discount": price["applied_discount"],
        },
    )


# ----------------------------------------------------------------------
# Payment confirmation
# ----------------------------------------------------------------------


def is_eventbridge_event(event: Dict[str, Any]) -> bool:
    """True when the invocation came from EventBridge rather than API Gateway."""
    source = event.get("source") or ""
    if source in EVENTBRIDGE_SOURCES or source.startswith("aws.partner/stripe.com"):
        return True
    if "detail-type" in event:
        return True
    return isinstance(event.get("detail"), dict) and "body" not in event


def extract_stripe_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recover the Stripe event object from an EventBridge envelope.

    Raises:
        AppError: If no event type or data object can be found
    """
    detail = event.get("detail") or {}
    if all(key in detail for key in ("type", "id", "data")):
        stripe_event = detail
    elif isinstance(detail.get("data"), dict) and "object" in detail["data"]:
        stripe_event = {
            "id": detail.get("id") or event.get("id"),
            "type": detail.get("type") or event.get("detail-type"),
            "data": detail["data"],
        }
    else:
        stripe_event = detail

    if not stripe_event.get("type") or not (stripe_event.get("data") or {}).get("object"):
        raise AppError(ErrorCode.INVALID_INPUT, "EventBridge event does not contain a Stripe event")
    return stripe_event


def _order_id_from_session(session: Dict[str, Any]) -> str:
    order_id = (session.get("metadata") or {}).get("order_id")
    if not order_id:
        raise AppError(
            ErrorCode.INVALID_INPUT,
            "Checkout session has no order_id metadata",
            {"session_id": session.get("id")},
        )
    return str(order_id)


def mark_order_paid(connection: Any, session: Dict[str, Any], logger: StructuredLogger) -> bool:
    """
    Move an order from pending to paid and count the sale.

    Runs in one transaction. Returns False when the order was not pending
    (already paid, replayed delivery), in which case nothing is counted twice.
    """
    order_id = _order_id_from_session(session)
    email = session.get("customer_email") or (session.get("customer_details") or {}).get("email")

    with transaction(connection):
        order = fetch_one(
            connection,
            "SELECT id, ticket_id, quantity, discount_code_id, status FROM ticket_orders WHERE id = %s FOR UPDATE",
            (order_id,),
        )
        if order is None:
            raise AppError(ErrorCode.NOT_FOUND, "Order not found", {"order_id": order_id})

        updated = execute(
            connection,
            """
            UPDATE ticket_orders
            SET status = 'paid', stripe_payment_intent_id = %s, email = COALESCE(%s, email), updated_at = NOW()
            WHERE id = %s AND status = 'pending'
            """,
            (session.get("payment_intent"), email, order_id),
        )
        if updated.rowcount == 0:
            logger.info("Order already processed", order_id=order_id, status=order.get("status"))
            return False

        execute(
            connection,
            "UPDATE tickets SET sold_quantity = sold_quantity + %s, updated_at = NOW() WHERE id = %s",
            (order["quantity"], order["ticket_id"]),
        )
        if order.get("discount_code_id"):
            execute(
                connection,
                "UPDATE discount_codes SET used_count = used_count + 1, updated_at = NOW() WHERE id = %s",
                (order["discount_code_id"],),
            )

    logger.info("Order marked as paid", order_id=order_id, quantity=order["quantity"], session_id=session.get("id"))
    return True


def close_pending_order(connection: Any, session: Dict[str, Any], status: str, logger: StructuredLogger) -> bool:
    """Mark a still-pending order as cancelled or failed."""
    order_id = _order_id_from_session(session)
    result = execute(
        connection,
        "UPDATE ticket_orders SET status = %s, updated_at = NOW() WHERE id = %s AND status = 'pending'",
        (status, order_id),
    )
    logger.info("Closed pending order", order_id=order_id, status=status, changed=result.rowcount > 0)
    return result.rowcount > 0


def handle_stripe_event(stripe_event: Dict[str, Any], logger: StructuredLogger) -> Dict[str, Any]:
    """Apply a Stripe event to the order it belongs to."""
    event_type = stripe_event.get("type")
    session = (stripe_event.get("data") or {}).get("object") or {}
    logger.info("Processing Stripe event", stripe_event_id=stripe_event.get("id"), event_type=event_type)

    if event_type == "checkout.session.completed":
        with get_connection() as connection:
            changed = mark_order_paid(connection, session, logger)
        return {"handled": True, "type": event_type, "changed": changed}

    if event_type in ("checkout.session.expired", "checkout.session.async_payment_failed"):
        status = "cancelled" if event_type == "checkout.session.expired" else "failed"
        with get_connection() as connection:
            changed = close_pending_order(connection, session, status, logger)
        return {"handled": True, "type": event_type, "changed": changed}

    logger.info("Ignoring Stripe event type", event_type=event_type)
    return {"handled": False, "type": event_type}


@router.route("POST", r"/webhooks/stripe")
def stripe_webhook(event: Dict[str, Any]) -> Dict[str, Any]:
    logger = get_logger(__name__, get_correlation_id(event))
    signature = get_header(event, "Stripe-Signature")
    if not os.getenv("STRIPE_WEBHOOK_SECRET"):
        logger.error("Stripe webhook secret not configured")
        return json_response(500, {"success": False, "error": "Webhook secret not configured"})
    if not signature:
        return json_response(400, {"success": False, "error": "Missing stripe-signature header"})

    try:
        stripe_event = construct_webhook_event(raw_body(event), signature)
    except AppError as e:
        logger.warning("Stripe webhook verification failed", error=e.message)
        return json_response(400, {"success": False, "error": e.message})

    try:
        handle_stripe_event(stripe_event, logger)
    except Exception as e:
        logger.error("Stripe webhook processing failed", stripe_event_id=stripe_event.get("id"), error=str(e))
        return json_response(500, {"success": False, "error": "Webhook processing failed"})

    return json_response(200, {"received": True})


def event_bridge_handler(event: Dict[str, Any], context: Any) -> Optional[Dict[str, Any]]:
    """
    EventBridge entry point for the Stripe partner event bus.

    Errors propagate so EventBridge retries the delivery.
    """
    logger = get_logger(__name__, event.get("id"))
    stripe_event = extract_stripe_event(event)
    return handle_stripe_event(stripe_event, logger)


def lambda_handler(event: Dict[str, Any], context: Any) -> Any:
    """API Gateway entry point; EventBridge deliveries are forwarded."""
    if is_eventbridge_event(event):
        return event_bridge_handler(event, context)
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
