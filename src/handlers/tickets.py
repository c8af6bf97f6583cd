"""
Lambda handler for tickets, date discounts, discount codes and ticket orders.

Everything that changes data or exposes buyer information requires the
caller to own the event; ticket and discount listings are public.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from mysql.connector import errorcode
from mysql.connector import errors as mysql_errors

try:  # pragma: no cover
    from utils.auth import require_event_owner, require_user
    from utils.db import build_update, execute, fetch_all, fetch_one, get_connection
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, json_response, parse_body, query_params, serialize_row, serialize_rows
    from utils.logging import get_correlation_id, get_logger
    from utils.storage import timestamped_key, upload_url_payload
    from utils.validation import (
        is_iso_date,
        parse_non_negative_amount,
        parse_positive_int,
        require_fields,
        validate_discount_type,
    )
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import require_event_owner, require_user
    from ..utils.db import build_update, execute, fetch_all, fetch_one, get_connection
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, json_response, parse_body, query_params, serialize_row, serialize_rows
    from ..utils.logging import get_correlation_id, get_logger
    from ..utils.storage import timestamped_key, upload_url_payload
    from ..utils.validation import (
        is_iso_date,
        parse_non_negative_amount,
        parse_positive_int,
        require_fields,
        validate_discount_type,
    )


TICKET_FIELDS = ("name", "price", "image_url", "max_quantity", "is_active")
TICKET_DISCOUNT_FIELDS = ("discount_type", "discount_value", "valid_until", "is_active")
DISCOUNT_CODE_FIELDS = ("code", "discount_type", "discount_value", "max_uses", "valid_from", "valid_until", "is_active")
ORDER_STATUSES = ("pending", "paid", "failed", "cancelled")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

EVENT = r"/events/(?P<event_id>\d+)"
TICKET = EVENT + r"/tickets/(?P<ticket_id>\d+)"

router = Router()
logger = get_logger(__name__)


def _require_ticket(connection: Any, event_id: str, ticket_id: str) -> Dict[str, Any]:
    ticket = fetch_one(connection, "SELECT * FROM tickets WHERE id = %s AND event_id = %s", (ticket_id, event_id))
    if ticket is None:
        raise AppError(ErrorCode.NOT_FOUND, "Ticket not found")
    return ticket


def _validate_amounts(body: Dict[str, Any], *fields: str) -> None:
    for field in fields:
        if field in body and body[field] is not None:
            parse_non_negative_amount(body[field], field)


def _validate_percentage(body: Dict[str, Any]) -> None:
    if body.get("discount_type") == "percentage" and body.get("discount_value") is not None:
        if float(body["discount_value"]) > 100:
            raise AppError(ErrorCode.INVALID_INPUT, "Percentage discount cannot exceed 100")


# ----------------------------------------------------------------------
# Tickets
# ----------------------------------------------------------------------


@router.route("GET", EVENT + r"/tickets")
def list_tickets(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        tickets = fetch_all(
            connection,
            """
            SELECT id, event_id, name, price, image_url, max_quantity, sold_quantity, is_active, created_at
            FROM tickets WHERE event_id = %s ORDER BY created_at DESC
            """,
            (event_id,),
        )
    return json_response(200, {"success": True, "tickets": serialize_rows(tickets)})


@router.route("POST", EVENT + r"/tickets")
def create_ticket(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    require_fields(body, "name", "price")
    price = parse_non_negative_amount(body["price"], "price")
    max_quantity = body.get("max_quantity")
    if max_quantity not in (None, ""):
        max_quantity = parse_positive_int(max_quantity, "max_quantity")
    else:
        max_quantity = None

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        result = execute(
            connection,
            """
            INSERT INTO tickets (event_id, name, price, image_url, max_quantity, sold_quantity, is_active)
            VALUES (%s, %s, %s, %s, %s, 0, TRUE)
            """,
            (event_id, str(body["name"]).strip(), price, body.get("image_url") or None, max_quantity),
        )
        ticket = fetch_one(connection, "SELECT * FROM tickets WHERE id = %s", (result.lastrowid,))

    logger.info("Created ticket", event_id=event_id, ticket_id=result.lastrowid)
    return json_response(201, {"success": True, "ticket": serialize_row(ticket)})


@router.route("PUT", TICKET)
def update_ticket(event: Dict[str, Any], event_id: str, ticket_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    _validate_amounts(body, "price")

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        _require_ticket(connection, event_id, ticket_id)
        clause, values = build_update(TICKET_FIELDS, body)
        if clause:
            execute(connection, f"UPDATE tickets SET {clause} WHERE id = %s AND event_id = %s", (*values, ticket_id, event_id))
        ticket = fetch_one(connection, "SELECT * FROM tickets WHERE id = %s", (ticket_id,))

    return json_response(200, {"success": True, "ticket": serialize_row(ticket)})


@router.route("DELETE", TICKET)
def delete_ticket(event: Dict[str, Any], event_id: str, ticket_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        execute(connection, "DELETE FROM tickets WHERE id = %s AND event_id = %s", (ticket_id, event_id))

    logger.info("Deleted ticket", event_id=event_id, ticket_id=ticket_id)
    return json_response(200, {"success": True, "message": "Ticket deleted"})


@router.route("POST", TICKET + r"/image-upload-url")
def create_ticket_image_upload_url(event: Dict[str, Any], event_id: str, ticket_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    require_fields(body, "filename")

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)

    key = timestamped_key(f"events/{event_id}/tickets/{ticket_id}", str(body["filename"]))
    return json_response(200, upload_url_payload(key, body.get("mime_type") or "image/jpeg"))


# ----------------------------------------------------------------------
# Ticket date discounts
# ----------------------------------------------------------------------


@router.route("GET", TICKET + r"/discounts")
def list_ticket_discounts(event: Dict[str, Any], event_id: str, ticket_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        _require_ticket(connection, event_id, ticket_id)
        discounts = fetch_all(
            connection,
            "SELECT * FROM ticket_discounts WHERE ticket_id = %s ORDER BY valid_until ASC",
            (ticket_id,),
        )
    return json_response(200, {"success": True, "discounts": serialize_rows(discounts)})


@router.route("POST", TICKET + r"/discounts")
def create_ticket_discount(event: Dict[str, Any], event_id: str, ticket_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    require_fields(body, "discount_type", "discount_value", "valid_until")
    validate_discount_type(body["discount_type"])
    value = parse_non_negative_amount(body["discount_value"], "discount_value")
    _validate_percentage(body)
    if not is_iso_date(body["valid_until"]):
        raise AppError(ErrorCode.INVALID_INPUT, "valid_until must be a YYYY-MM-DD date")

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        _require_ticket(connection, event_id, ticket_id)
        result = execute(
            connection,
            """
            INSERT INTO ticket_discounts (ticket_id, discount_type, discount_value, valid_until, is_active)
            VALUES (%s, %s, %s, %s, TRUE)
            """,
            (ticket_id, body["discount_type"], value, body["valid_until"]),
        )
        discount = fetch_one(connection, "SELECT * FROM ticket_discounts WHERE id = %s", (result.lastrowid,))

    logger.info("Created ticket discount", ticket_id=ticket_id, discount_id=result.lastrowid)
    return json_response(201, {"success": True, "discount": serialize_row(discount)})


@router.route("PUT", TICKET + r"/discounts/(?P<discount_id>\d+)")
def update_ticket_discount(event: Dict[str, Any], event_id: str, ticket_id: str, discount_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    if "discount_type" in body:
        validate_discount_type(body["discount_type"])
    _validate_amounts(body, "discount_value")
    _validate_percentage(body)
    if "valid_until" in body and not is_iso_date(body["valid_until"]):
        raise AppError(ErrorCode.INVALID_INPUT, "valid_until must be a YYYY-MM-DD date")

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        _require_ticket(connection, event_id, ticket_id)
        clause, values = build_update(TICKET_DISCOUNT_FIELDS, body)
        if clause:
            execute(
                connection,
                f"UPDATE ticket_discounts SET {clause} WHERE id = %s AND ticket_id = %s",
                (*values, discount_id, ticket_id),
            )
        discount = fetch_one(
            connection, "SELECT * FROM ticket_discounts WHERE id = %s AND ticket_id = %s", (discount_id, ticket_id)
        )

    if discount is None:
        raise AppError(ErrorCode.NOT_FOUND, "Discount not found")
    return json_response(200, {"success": True, "discount": serialize_row(discount)})


@router.route("DELETE", TICKET + r"/discounts/(?P<discount_id>\d+)")
def delete_ticket_discount(event: Dict[str, Any], event_id: str, ticket_id: str, discount_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        _require_ticket(connection, event_id, ticket_id)
        execute(connection, "DELETE FROM ticket_discounts WHERE id = %s AND ticket_id = %s", (discount_id, ticket_id))

    return json_response(200, {"success": True, "message": "Discount deleted"})


# ----------------------------------------------------------------------
# Discount codes
# ----------------------------------------------------------------------


def _insert_or_conflict(connection: Any, sql: str, params: Tuple[Any, ...], code: str) -> int:
    try:
        return execute(connection, sql, params).lastrowid or 0
    except mysql_errors.IntegrityError as e:
        if e.errno == errorcode.ER_DUP_ENTRY:
            raise AppError(ErrorCode.ALREADY_EXISTS, f"Discount code {code} already exists for this event")
        raise


@router.route("GET", EVENT + r"/discount-codes")
def list_discount_codes(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        codes = fetch_all(
            connection,
            """
            SELECT id, event_id, code, discount_type, discount_value, max_uses, used_count,
                   valid_from, valid_until, is_active
            FROM discount_codes WHERE event_id = %s ORDER BY created_at DESC
            """,
            (event_id,),
        )
    return json_response(200, {"success": True, "discount_codes": serialize_rows(codes)})


@router.route("POST", EVENT + r"/discount-codes")
def create_discount_code(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    require_fields(body, "code", "discount_type", "discount_value")
    validate_discount_type(body["discount_type"])
    value = parse_non_negative_amount(body["discount_value"], "discount_value")
    _validate_percentage(body)
    max_uses = body.get("max_uses")
    max_uses = parse_positive_int(max_uses, "max_uses") if max_uses not in (None, "") else None
    code = str(body["code"]).strip().upper()

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        code_id = _insert_or_conflict(
            connection,
            """
            INSERT INTO discount_codes
                (event_id, code, discount_type, discount_value, max_uses, used_count, valid_from, valid_until, is_active)
            VALUES (%s, %s, %s, %s, %s, 0, %s, %s, TRUE)
            """,
            (
                event_id,
                code,
                body["discount_type"],
                value,
                max_uses,
                body.get("valid_from") or None,
                body.get("valid_until") or None,
            ),
            code,
        )
        row = fetch_one(connection, "SELECT * FROM discount_codes WHERE id = %s", (code_id,))

    logger.info("Created discount code", event_id=event_id, code=code)
    return json_response(201, {"success": True, "discount_code": serialize_row(row)})


@router.route("PUT", EVENT + r"/discount-codes/(?P<code_id>\d+)")
def update_discount_code(event: Dict[str, Any], event_id: str, code_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    if "discount_type" in body:
        validate_discount_type(body["discount_type"])
    _validate_amounts(body, "discount_value")
    _validate_percentage(body)
    if "code" in body:
        body["code"] = str(body["code"] or "").strip().upper()
        if not body["code"]:
            raise AppError(ErrorCode.INVALID_INPUT, "code must not be empty")

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        clause, values = build_update(DISCOUNT_CODE_FIELDS, body)
        if clause:
            try:
                execute(
                    connection,
                    f"UPDATE discount_codes SET {clause} WHERE id = %s AND event_id = %s",
                    (*values, code_id, event_id),
                )
            except mysql_errors.IntegrityError as e:
                if e.errno == errorcode.ER_DUP_ENTRY:
                    raise AppError(ErrorCode.ALREADY_EXISTS, f"Discount code {body.get('code')} already exists for this event")
                raise
        row = fetch_one(connection, "SELECT * FROM discount_codes WHERE id = %s AND event_id = %s", (code_id, event_id))

    if row is None:
        raise AppError(ErrorCode.NOT_FOUND, "Discount code not found")
    return json_response(200, {"success": True, "discount_code": serialize_row(row)})


@router.route("DELETE", EVENT + r"/discount-codes/(?P<code_id>\d+)")
def delete_discount_code(event: Dict[str, Any], event_id: str, code_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        execute(connection, "DELETE FROM discount_codes WHERE id = %s AND event_id = %s", (code_id, event_id))

    return json_response(200, {"success": True, "message": "Discount code deleted"})


# ----------------------------------------------------------------------
# Ticket orders
# ----------------------------------------------------------------------


def _parse_flag(value: Any) -> Optional[bool]:
    """true/false/1/0 (bool, int or string) to a bool; None for anything else."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower() if value is not None else ""
    if text in ("true", "1"):
        return True
    if text in ("false", "0"):
        return False
    return None


def _order_filters(event_id: str, params: Dict[str, str]) -> Tuple[str, List[Any]]:
    """WHERE clause for the order listing filters."""
    conditions = ["tord.event_id = %s"]
    values: List[Any] = [event_id]

    status = (params.get("status") or "").strip().lower()
    if status:
        if status not in ORDER_STATUSES:
            raise AppError(ErrorCode.INVALID_INPUT, f"status must be one of {', '.join(ORDER_STATUSES)}")
        conditions.append("tord.status = %s")
        values.append(status)

    validated = _parse_flag(params.get("validated"))
    if validated is True:
        conditions.append("tord.validated = 1")
    elif validated is False:
        conditions.append("(tord.validated = 0 OR tord.validated IS NULL)")

    search = (params.get("search") or "").strip()
    if search:
        conditions.append("(tord.email LIKE %s OR t.name LIKE %s)")
        pattern = f"%{search}%"
        values.extend([pattern, pattern])

    return " AND ".join(conditions), values


@router.route("GET", EVENT + r"/ticket-orders")
def list_ticket_orders(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    params = query_params(event)
    page = parse_positive_int(params.get("page", 1), "page")
    limit = min(parse_positive_int(params.get("limit", DEFAULT_PAGE_SIZE), "limit"), MAX_PAGE_SIZE)
    where, values = _order_filters(event_id, params)

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        count_row = fetch_one(
            connection,
            f"""
            SELECT COUNT(*) AS total
            FROM ticket_orders tord LEFT JOIN tickets t ON tord.ticket_id = t.id
            WHERE {where}
            """,
            values,
        )
        orders = fetch_all(
            connection,
            f"""
            SELECT tord.*, t.name AS ticket_name
            FROM ticket_orders tord LEFT JOIN tickets t ON tord.ticket_id = t.id
            WHERE {where}
            ORDER BY tord.created_at DESC
            LIMIT %s OFFSET %s
            """,
            (*values, limit, (page - 1) * limit),
        )

    total = int((count_row or {}).get("total") or 0)
    return json_response(
        200,
        {
            "success": True,
            "orders": serialize_rows(orders),
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    )


@router.route("PATCH", EVENT + r"/ticket-orders/(?P<order_id>\d+)/validate")
def validate_ticket_order(event: Dict[str, Any], event_id: str, order_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    if "validated" not in body:
        raise AppError(ErrorCode.INVALID_INPUT, "validated is required")
    validated = _parse_flag(body["validated"])
    if validated is None:
        raise AppError(ErrorCode.INVALID_INPUT, "validated must be true or false")

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        order = fetch_one(
            connection, "SELECT id FROM ticket_orders WHERE id = %s AND event_id = %s", (order_id, event_id)
        )
        if order is None:
            raise AppError(ErrorCode.NOT_FOUND, "Order not found")

        execute(
            connection,
            f"""
            UPDATE ticket_orders
            SET validated = %s, validated_at = {"NOW()" if validated else "NULL"}, updated_at = NOW()
            WHERE id = %s AND event_id = %s
            """,
            (1 if validated else 0, order_id, event_id),
        )
        order = fetch_one(connection, "SELECT * FROM ticket_orders WHERE id = %s", (order_id,))

    logger.info("Updated ticket order validation", order_id=order_id, validated=validated)
    return json_response(200, {"success": True, "order": serialize_row(order)})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for ticket, discount and order routes."""
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
