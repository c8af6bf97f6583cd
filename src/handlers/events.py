"""
Lambda handler for the events resource.

Public listing and detail, owner-only create/update/delete, and presigned
uploads for event cover images.
"""

from typing import Any, Dict

try:  # pragma: no cover
    from utils.auth import require_event_owner, require_user
    from utils.db import build_update, execute, fetch_all, fetch_one, get_connection
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, json_response, parse_body, serialize_row
    from utils.logging import get_correlation_id, get_logger
    from utils.storage import presign_fields, timestamped_key, upload_url_payload
    from utils.validation import is_iso_date, require_fields
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import require_event_owner, require_user
    from ..utils.db import build_update, execute, fetch_all, fetch_one, get_connection
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, json_response, parse_body, serialize_row
    from ..utils.logging import get_correlation_id, get_logger
    from ..utils.storage import presign_fields, timestamped_key, upload_url_payload
    from ..utils.validation import is_iso_date, require_fields


UPDATABLE_FIELDS = ("name", "description", "start_date", "end_date", "image_url")

router = Router()
logger = get_logger(__name__)


def _event_payload(row: Dict[str, Any]) -> Dict[str, Any]:
    return presign_fields(serialize_row(row) or {}, "image_url")


def _validate_dates(body: Dict[str, Any]) -> None:
    for field in ("start_date", "end_date"):
        value = body.get(field)
        if value and not is_iso_date(str(value)[:10]):
            raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be a YYYY-MM-DD date")


@router.route("GET", r"/events")
def list_events(event: Dict[str, Any]) -> Dict[str, Any]:
    with get_connection() as connection:
        rows = fetch_all(connection, "SELECT * FROM events ORDER BY start_date DESC")
    events = [_event_payload(row) for row in rows]
    return json_response(200, {"success": True, "count": len(events), "events": events})


@router.route("GET", r"/events/(?P<event_id>\d+)")
def get_event(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        row = fetch_one(connection, "SELECT * FROM events WHERE id = %s", (event_id,))
    if row is None:
        raise AppError(ErrorCode.NOT_FOUND, "Event not found")
    return json_response(200, {"success": True, "event": _event_payload(row)})


@router.route("POST", r"/events")
def create_event(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    require_fields(body, "name", "start_date")
    _validate_dates(body)

    with get_connection() as connection:
        result = execute(
            connection,
            """
            INSERT INTO events (name, description, start_date, end_date, image_url, cognito_sub, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, NOW())
            """,
            (
                str(body["name"]).strip(),
                body.get("description") or None,
                body["start_date"],
                body.get("end_date") or None,
                body.get("image_url") or None,
                cognito_sub,
            ),
        )
        row = fetch_one(connection, "SELECT * FROM events WHERE id = %s", (result.lastrowid,))

    logger.info("Created event", event_id=result.lastrowid, owner=cognito_sub)
    return json_response(201, {"success": True, "event": _event_payload(row or {})})


@router.route("PUT", r"/events/(?P<event_id>\d+)")
@router.route("PATCH", r"/events/(?P<event_id>\d+)")
def update_event(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    _validate_dates(body)
    if "name" in body and not str(body["name"] or "").strip():
        raise AppError(ErrorCode.INVALID_INPUT, "name must not be empty")

    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        clause, values = build_update(UPDATABLE_FIELDS, body)
        if clause:
            execute(connection, f"UPDATE events SET {clause} WHERE id = %s", (*values, event_id))
            logger.info("Updated event", event_id=event_id)
        row = fetch_one(connection, "SELECT * FROM events WHERE id = %s", (event_id,))

    return json_response(200, {"success": True, "event": _event_payload(row or {})})


@router.route("DELETE", r"/events/(?P<event_id>\d+)")
def delete_event(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    with get_connection() as connection:
        require_event_owner(connection, event_id, cognito_sub)
        execute(connection, "DELETE FROM events WHERE id = %s", (event_id,))

    logger.info("Deleted event", event_id=event_id)
    return json_response(200, {"success": True, "message": "Event deleted"})


@router.route("POST", r"/events/image-upload-url")
def create_image_upload_url(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    require_fields(body, "filename")

    key = timestamped_key(f"events/{cognito_sub}", str(body["filename"]))
    return json_response(200, upload_url_payload(key, body.get("mime_type") or "image/jpeg"))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for /events routes."""
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
