"""
Lambda handler for the signed-in user's own profile, events, tickets and videos.
"""

from typing import Any, Dict, List

try:  # pragma: no cover
    from utils.auth import get_email, require_user
    from utils.db import execute, fetch_all, fetch_one, get_connection
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, json_response, parse_body, serialize_row, serialize_rows
    from utils.logging import get_correlation_id, get_logger
    from utils.storage import presign_fields, timestamped_key, upload_url_payload
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import get_email, require_user
    from ..utils.db import execute, fetch_all, fetch_one, get_connection
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, json_response, parse_body, serialize_row, serialize_rows
    from ..utils.logging import get_correlation_id, get_logger
    from ..utils.storage import presign_fields, timestamped_key, upload_url_payload


ORDER_COLUMNS = """
    tord.*,
    e.name AS event_name,
    e.start_date AS event_start_date,
    e.end_date AS event_end_date,
    t.name AS ticket_name,
    t.price AS ticket_price,
    t.image_url AS ticket_image_url
"""

router = Router()
logger = get_logger(__name__)


def _profile_payload(user: Dict[str, Any]) -> Dict[str, Any]:
    return presign_fields(serialize_row(user) or {}, "photo_url", "cover_photo_url")


def _load_user(connection: Any, cognito_sub: str) -> Dict[str, Any]:
    return fetch_one(connection, "SELECT * FROM users WHERE cognito_sub = %s", (cognito_sub,)) or {}


@router.route("GET", r"/user/profile")
def get_profile(event: Dict[str, Any]) -> Dict[str, Any]:
    """Return the caller's profile, creating it on first visit."""
    cognito_sub = require_user(event)

    with get_connection() as connection:
        user = fetch_one(connection, "SELECT * FROM users WHERE cognito_sub = %s", (cognito_sub,))
        if user is None:
            email = get_email(event)
            default_name = email.split("@", 1)[0] if email else None
            execute(
                connection,
                "INSERT INTO users (cognito_sub, name, created_at) VALUES (%s, %s, NOW())",
                (cognito_sub, default_name),
            )
            logger.info("Created user profile", cognito_sub=cognito_sub)
            user = _load_user(connection, cognito_sub)

    return json_response(200, {"success": True, "profile": _profile_payload(user)})


@router.route("PATCH", r"/user/profile")
def update_profile(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)

    with get_connection() as connection:
        user = fetch_one(connection, "SELECT * FROM users WHERE cognito_sub = %s", (cognito_sub,))
        if user is None:
            execute(
                connection,
                "INSERT INTO users (cognito_sub, name, photo_url, created_at) VALUES (%s, %s, %s, NOW())",
                (cognito_sub, body.get("name") or None, body.get("photo_url") or None),
            )
        else:
            execute(
                connection,
                "UPDATE users SET name = %s, photo_url = %s, updated_at = NOW() WHERE cognito_sub = %s",
                (body.get("name", user.get("name")), body.get("photo_url", user.get("photo_url")), cognito_sub),
            )
        user = _load_user(connection, cognito_sub)

    return json_response(200, {"success": True, "profile": _profile_payload(user)})


@router.route("POST", r"/user/profile-photo-upload-url")
def create_photo_upload_url(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    if not body.get("filename") or not body.get("file_size"):
        raise AppError(ErrorCode.INVALID_INPUT, "Filename and file_size are required")

    key = timestamped_key(f"users/{cognito_sub}/photos", str(body["filename"]))
    return json_response(200, upload_url_payload(key, body.get("mime_type") or "image/jpeg"))


@router.route("GET", r"/user/events")
def list_my_events(event: Dict[str, Any]) -> Dict[str, Any]:
    """Events the caller owns plus events where their email is on the staff list."""
    cognito_sub = require_user(event)
    email = get_email(event)

    with get_connection() as connection:
        owned = fetch_all(
            connection,
            "SELECT *, 'owner' AS user_role FROM events WHERE cognito_sub = %s",
            (cognito_sub,),
        )
        staffed: List[Dict[str, Any]] = []
        if email:
            staffed = fetch_all(
                connection,
                """
                SELECT DISTINCT e.*, es.role AS user_role
                FROM events e
                INNER JOIN event_staff es ON e.id = es.event_id
                WHERE LOWER(TRIM(es.email)) = %s AND e.cognito_sub != %s
                ORDER BY e.start_date DESC
                """,
                (email, cognito_sub),
            )

    by_id: Dict[Any, Dict[str, Any]] = {}
    for row in owned + staffed:
        by_id.setdefault(row["id"], row)
    rows = sorted(by_id.values(), key=lambda row: str(row.get("start_date") or ""), reverse=True)

    events = [presign_fields(row, "image_url") for row in serialize_rows(rows)]
    return json_response(200, {"success": True, "count": len(events), "events": events})


@router.route("GET", r"/user/tickets")
def list_my_tickets(event: Dict[str, Any]) -> Dict[str, Any]:
    """Orders placed by the caller, including guest orders under their email."""
    cognito_sub = require_user(event)
    email = get_email(event)

    with get_connection() as connection:
        if email:
            orders = fetch_all(
                connection,
                f"""
                SELECT {ORDER_COLUMNS}
                FROM ticket_orders tord
                INNER JOIN events e ON tord.event_id = e.id
                INNER JOIN tickets t ON tord.ticket_id = t.id
                WHERE tord.cognito_sub = %s
                   OR (tord.email IS NOT NULL AND LOWER(TRIM(tord.email)) = %s)
                ORDER BY tord.created_at DESC
                """,
                (cognito_sub, email),
            )
        else:
            orders = fetch_all(
                connection,
                f"""
                SELECT {ORDER_COLUMNS}
                FROM ticket_orders tord
                INNER JOIN events e ON tord.event_id = e.id
                INNER JOIN tickets t ON tord.ticket_id = t.id
                WHERE tord.cognito_sub = %s
                ORDER BY tord.created_at DESC
                """,
                (cognito_sub,),
            )

    payload = [presign_fields(row, "ticket_image_url") for row in serialize_rows(orders)]
    return json_response(200, {"success": True, "count": len(payload), "orders": payload})


@router.route("GET", r"/user/videos")
def list_my_videos(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)

    with get_connection() as connection:
        videos = fetch_all(
            connection,
            """
            SELECT v.*, e.name AS event_name, a.name AS album_name
            FROM videos v
            LEFT JOIN events e ON v.event_id = e.id
            LEFT JOIN albums a ON v.album_id = a.id
            WHERE v.cognito_sub = %s
            ORDER BY v.created_at DESC
            """,
            (cognito_sub,),
        )

    payload = [presign_fields(row, "video_url", "thumbnail_url") for row in serialize_rows(videos)]
    return json_response(200, {"success": True, "count": len(payload), "videos": payload})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for /user routes."""
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
