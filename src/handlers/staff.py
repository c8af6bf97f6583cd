"""
Lambda handler for event staff, artists, flights and accommodations.
"""

import json
from typing import Any, Dict

try:  # pragma: no cover
    from utils.auth import get_cognito_sub, require_event_owner, require_user
    from utils.db import build_update, execute, fetch_all, fetch_one, get_connection
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, json_response, parse_body, serialize_row, serialize_rows
    from utils.logging import get_correlation_id, get_logger
    from utils.storage import presign_fields, timestamped_key, upload_url_payload
    from utils.validation import require_fields
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import get_cognito_sub, require_event_owner, require_user
    from ..utils.db import build_update, execute, fetch_all, fetch_one, get_connection
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, json_response, parse_body, serialize_row, serialize_rows
    from ..utils.logging import get_correlation_id, get_logger
    from ..utils.storage import presign_fields, timestamped_key, upload_url_payload
    from ..utils.validation import require_fields


STAFF_ROLES = ("staff", "artist")
STAFF_FIELDS = (
    "name",
    "email",
    "role",
    "image_url",
    "bio",
    "instagram_url",
    "tiktok_url",
    "youtube_url",
    "website_url",
    "country",
    "city",
    "partner_name",
    "partner_id",
    "styles",
)
FLIGHT_FIELDS = (
    "flight_number",
    "departure_airport",
    "arrival_airport",
    "departure_datetime",
    "arrival_datetime",
    "airline",
    "flight_type",
    "notes",
)
FLIGHT_TYPES = ("arrival", "departure", "return")
ACCOMMODATION_FIELDS = (
    "name",
    "address",
    "check_in_date",
    "check_out_date",
    "room_type",
    "max_guests",
    "notes",
    "booking_reference",
    "cost_per_night",
)

EVENT = r"/events/(?P<event_id>\d+)"
STAFF = EVENT + r"/staff/(?P<staff_id>\d+)"
ACCOMMODATION = EVENT + r"/accommodations/(?P<accommodation_id>\d+)"

router = Router()
logger = get_logger(__name__)


def _staff_payload(row: Dict[str, Any]) -> Dict[str, Any]:
    return presign_fields(serialize_row(row) or {}, "image_url")


def _validate_role(body: Dict[str, Any]) -> None:
    if "role" in body and body["role"] not in STAFF_ROLES:
        raise AppError(ErrorCode.INVALID_INPUT, "role must be 'staff' or 'artist'")


def _validate_flight_type(body: Dict[str, Any]) -> None:
    if body.get("flight_type") and body["flight_type"] not in FLIGHT_TYPES:
        raise AppError(ErrorCode.INVALID_INPUT, f"flight_type must be one of {', '.join(FLIGHT_TYPES)}")


def _require_staff(connection: Any, event_id: str, staff_id: Any) -> Dict[str, Any]:
    staff = fetch_one(connection, "SELECT * FROM event_staff WHERE id = %s AND event_id = %s", (staff_id, event_id))
    if staff is None:
        raise AppError(ErrorCode.NOT_FOUND, "Staff member not found")
    return staff


def _require_accommodation(connection: Any, event_id: str, accommodation_id: Any) -> None:
    found = fetch_one(
        connection,
        "SELECT id FROM event_accommodations WHERE id = %s AND event_id = %s",
        (accommodation_id, event_id),
    )
    if found is None:
        raise AppError(ErrorCode.NOT_FOUND, "Accommodation not found")


def _insert_flight(connection: Any, event_id: str, staff_id: Any, body: Dict[str, Any]) -> Dict[str, Any]:
    result = execute(
        connection,
        """
        INSERT INTO staff_flights
            (event_id, staff_id, flight_number, departure_airport, arrival_airport,
             departure_datetime, arrival_datetime, airline, flight_type, notes, created_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
        """,
        (
            event_id,
            staff_id,
            body["flight_number"],
            body.get("departure_airport") or None,
            body.get("arrival_airport") or None,
            body.get("departure_datetime") or None,
            body.get("arrival_datetime") or None,
            body.get("airline") or None,
            body.get("flight_type") or "arrival",
            body.get("notes") or None,
        ),
    )
    return fetch_one(connection, "SELECT * FROM staff_flights WHERE id = %s", (result.lastrowid,)) or {}


# Staff


@router.route("GET", EVENT + r"/staff")
def list_staff(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        staff = fetch_all(connection, "SELECT * FROM event_staff WHERE event_id = %s ORDER BY role, name", (event_id,))
    return json_response(200, {"success": True, "staff": [_staff_payload(row) for row in staff]})


@router.route("POST", EVENT + r"/staff")
def add_staff(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    body = parse_body(event)
    require_fields(body, "name", "email", "role")
    _validate_role(body)
    values = {field: body.get(field) or None for field in STAFF_FIELDS}
    if values["styles"] is not None:
        values["styles"] = json_styles(body["styles"])

    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        columns = ", ".join(STAFF_FIELDS)
        placeholders = ", ".join(["%s"] * len(STAFF_FIELDS))
        result = execute(
            connection,
            f"INSERT INTO event_staff (event_id, {columns}, created_at) VALUES (%s, {placeholders}, NOW())",
            (event_id, *[values[field] for field in STAFF_FIELDS]),
        )
        staff = fetch_one(connection, "SELECT * FROM event_staff WHERE id = %s", (result.lastrowid,))

    logger.info("Added staff member", event_id=event_id, staff_id=result.lastrowid, role=body["role"])
    return json_response(201, {"success": True, "staff": _staff_payload(staff or {})})


def json_styles(styles: Any) -> str:
    """Styles are stored as a JSON array of strings."""
    if isinstance(styles, str):
        styles = [style.strip() for style in styles.split(",") if style.strip()]
    if not isinstance(styles, list):
        raise AppError(ErrorCode.INVALID_INPUT, "styles must be a list")
    return json.dumps(styles)


@router.route("PUT", STAFF)
def update_staff(event: Dict[str, Any], event_id: str, staff_id: str) -> Dict[str, Any]:
    body = parse_body(event)
    _validate_role(body)
    if body.get("styles") is not None:
        body["styles"] = json_styles(body["styles"])

    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        _require_staff(connection, event_id, staff_id)
        clause, values = build_update(STAFF_FIELDS, body)
        if clause:
            execute(connection, f"UPDATE event_staff SET {clause} WHERE id = %s AND event_id = %s", (*values, staff_id, event_id))
        staff = fetch_one(connection, "SELECT * FROM event_staff WHERE id = %s", (staff_id,))

    return json_response(200, {"success": True, "staff": _staff_payload(staff or {})})


@router.route("DELETE", STAFF)
def delete_staff(event: Dict[str, Any], event_id: str, staff_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        execute(connection, "DELETE FROM event_staff WHERE id = %s AND event_id = %s", (staff_id, event_id))

    logger.info("Deleted staff member", event_id=event_id, staff_id=staff_id)
    return json_response(200, {"success": True, "message": "Staff member deleted"})


@router.route("POST", r"/events/staff/image-upload-url")
def create_staff_image_upload_url(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    require_fields(body, "filename")
    key = timestamped_key(f"staff/{cognito_sub}", str(body["filename"]))
    return json_response(200, upload_url_payload(key, body.get("mime_type") or "image/jpeg"))


@router.route("GET", r"/artists/(?P<artist_id>\d+)")
def get_artist(event: Dict[str, Any], artist_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        artist = fetch_one(connection, "SELECT * FROM event_staff WHERE id = %s", (artist_id,))
    if artist is None:
        raise AppError(ErrorCode.NOT_FOUND, "Artist not found")
    return json_response(200, {"success": True, "artist": _staff_payload(artist)})


# Flights


@router.route("GET", STAFF + r"/flights")
def list_staff_flights(event: Dict[str, Any], event_id: str, staff_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        flights = fetch_all(
            connection,
            "SELECT * FROM staff_flights WHERE event_id = %s AND staff_id = %s ORDER BY departure_datetime",
            (event_id, staff_id),
        )
    return json_response(200, {"success": True, "flights": serialize_rows(flights)})


@router.route("POST", STAFF + r"/flights")
def add_staff_flight(event: Dict[str, Any], event_id: str, staff_id: str) -> Dict[str, Any]:
    body = parse_body(event)
    require_fields(body, "flight_number")
    _validate_flight_type(body)

    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        _require_staff(connection, event_id, staff_id)
        flight = _insert_flight(connection, event_id, staff_id, body)

    logger.info("Added staff flight", event_id=event_id, staff_id=staff_id, flight_id=flight.get("id"))
    return json_response(201, {"success": True, "flight": serialize_row(flight)})


@router.route("PUT", STAFF + r"/flights/(?P<flight_id>\d+)")
def update_staff_flight(event: Dict[str, Any], event_id: str, staff_id: str, flight_id: str) -> Dict[str, Any]:
    body = parse_body(event)
    _validate_flight_type(body)

    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        clause, values = build_update(FLIGHT_FIELDS, body)
        if clause:
            execute(
                connection,
                f"UPDATE staff_flights SET {clause} WHERE id = %s AND event_id = %s AND staff_id = %s",
                (*values, flight_id, event_id, staff_id),
            )
        flight = fetch_one(
            connection,
            "SELECT * FROM staff_flights WHERE id = %s AND event_id = %s AND staff_id = %s",
            (flight_id, event_id, staff_id),
        )

    if flight is None:
        raise AppError(ErrorCode.NOT_FOUND, "Flight not found")
    return json_response(200, {"success": True, "flight": serialize_row(flight)})


@router.route("DELETE", STAFF + r"/flights/(?P<flight_id>\d+)")
def delete_staff_flight(event: Dict[str, Any], event_id: str, staff_id: str, flight_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        execute(
            connection,
            "DELETE FROM staff_flights WHERE id = %s AND event_id = %s AND staff_id = %s",
            (flight_id, event_id, staff_id),
        )
    return json_response(200, {"success": True, "message": "Flight deleted"})


@router.route("GET", EVENT + r"/flights")
def list_event_flights(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        flights = fetch_all(
            connection,
            """
            SELECT sf.*, es.name AS staff_name, es.role AS staff_role
            FROM staff_flights sf
            LEFT JOIN event_staff es ON sf.staff_id = es.id
            WHERE sf.event_id = %s
            ORDER BY sf.departure_datetime
            """,
            (event_id,),
        )
    return json_response(200, {"success": True, "flights": serialize_rows(flights)})


@router.route("POST", EVENT + r"/flights")
def add_event_flight(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    body = parse_body(event)
    require_fields(body, "staff_id", "flight_number")
    _validate_flight_type(body)

    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        _require_staff(connection, event_id, body["staff_id"])
        flight = _insert_flight(connection, event_id, body["staff_id"], body)

    return json_response(201, {"success": True, "flight": serialize_row(flight)})


@router.route("DELETE", EVENT + r"/flights/(?P<flight_id>\d+)")
def delete_event_flight(event: Dict[str, Any], event_id: str, flight_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        execute(connection, "DELETE FROM staff_flights WHERE id = %s AND event_id = %s", (flight_id, event_id))
    return json_response(200, {"success": True, "message": "Flight deleted"})


# Accommodations


@router.route("GET", EVENT + r"/accommodations")
def list_accommodations(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        accommodations = fetch_all(
            connection, "SELECT * FROM event_accommodations WHERE event_id = %s ORDER BY name", (event_id,)
        )
        result = []
        for accommodation in accommodations:
            assignments = fetch_all(
                connection,
                """
                SELECT sa.*, es.name AS staff_name, es.role AS staff_role
                FROM staff_accommodations sa
                LEFT JOIN event_staff es ON sa.staff_id = es.id
                WHERE sa.accommodation_id = %s
                """,
                (accommodation["id"],),
            )
            payload = serialize_row(accommodation) or {}
            payload["assignments"] = serialize_rows(assignments)
            result.append(payload)

    return json_response(200, {"success": True, "accommodations": result})


@router.route("POST", EVENT + r"/accommodations")
def add_accommodation(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    body = parse_body(event)
    require_fields(body, "name")

    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        columns = ", ".join(ACCOMMODATION_FIELDS)
        placeholders = ", ".join(["%s"] * len(ACCOMMODATION_FIELDS))
        result = execute(
            connection,
            f"INSERT INTO event_accommodations (event_id, {columns}, created_at) VALUES (%s, {placeholders}, NOW())",
            (event_id, *[body.get(field) or None for field in ACCOMMODATION_FIELDS]),
        )
        accommodation = fetch_one(connection, "SELECT * FROM event_accommodations WHERE id = %s", (result.lastrowid,))

    logger.info("Added accommodation", event_id=event_id, accommodation_id=result.lastrowid)
    return json_response(201, {"success": True, "accommodation": serialize_row(accommodation)})


@router.route("PUT", ACCOMMODATION)
def update_accommodation(event: Dict[str, Any], event_id: str, accommodation_id: str) -> Dict[str, Any]:
    body = parse_body(event)

    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        clause, values = build_update(ACCOMMODATION_FIELDS, body)
        if clause:
            execute(
                connection,
                f"UPDATE event_accommodations SET {clause} WHERE id = %s AND event_id = %s",
                (*values, accommodation_id, event_id),
            )
        accommodation = fetch_one(
            connection,
            "SELECT * FROM event_accommodations WHERE id = %s AND event_id = %s",
            (accommodation_id, event_id),
        )

    if accommodation is None:
        raise AppError(ErrorCode.NOT_FOUND, "Accommodation not found")
    return json_response(200, {"success": True, "accommodation": serialize_row(accommodation)})


@router.route("DELETE", ACCOMMODATION)
def delete_accommodation(event: Dict[str, Any], event_id: str, accommodation_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        _require_accommodation(connection, event_id, accommodation_id)
        execute(connection, "DELETE FROM staff_accommodations WHERE accommodation_id = %s", (accommodation_id,))
        execute(
            connection,
            "DELETE FROM event_accommodations WHERE id = %s AND event_id = %s",
            (accommodation_id, event_id),
        )

    logger.info("Deleted accommodation", event_id=event_id, accommodation_id=accommodation_id)
    return json_response(200, {"success": True, "message": "Accommodation deleted"})


@router.route("POST", ACCOMMODATION + r"/assign")
def assign_accommodation(event: Dict[str, Any], event_id: str, accommodation_id: str) -> Dict[str, Any]:
    body = parse_body(event)
    require_fields(body, "staff_id")
    staff_id = body["staff_id"]

    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        _require_accommodation(connection, event_id, accommodation_id)
        _require_staff(connection, event_id, staff_id)
        existing = fetch_one(
            connection,
            "SELECT id FROM staff_accommodations WHERE accommodation_id = %s AND staff_id = %s",
            (accommodation_id, staff_id),
        )
        if existing:
            raise AppError(ErrorCode.INVALID_INPUT, "Staff already assigned to this accommodation")

        execute(
            connection,
            """
            INSERT INTO staff_accommodations (accommodation_id, staff_id, check_in_date, check_out_date, notes, created_at)
            VALUES (%s, %s, %s, %s, %s, NOW())
            """,
            (
                accommodation_id,
                staff_id,
                body.get("check_in_date") or None,
                body.get("check_out_date") or None,
                body.get("notes") or None,
            ),
        )

    logger.info("Assigned accommodation", accommodation_id=accommodation_id, staff_id=staff_id)
    return json_response(201, {"success": True, "message": "Staff assigned to accommodation"})


@router.route("DELETE", ACCOMMODATION + r"/assign/(?P<staff_id>\d+)")
def unassign_accommodation(event: Dict[str, Any], event_id: str, accommodation_id: str, staff_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        require_event_owner(connection, event_id, get_cognito_sub(event))
        _require_accommodation(connection, event_id, accommodation_id)
        execute(
            connection,
            "DELETE FROM staff_accommodations WHERE accommodation_id = %s AND staff_id = %s",
            (accommodation_id, staff_id),
        )
    return json_response(200, {"success": True, "message": "Staff unassigned from accommodation"})


@router.route("GET", STAFF + r"/accommodations")
def list_staff_accommodations(event: Dict[str, Any], event_id: str, staff_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        accommodations = fetch_all(
            connection,
            """
            SELECT ea.*, sa.check_in_date AS assigned_check_in, sa.check_out_date AS assigned_check_out,
                   sa.notes AS assignment_notes
            FROM event_accommodations ea
            INNER JOIN staff_accommodations sa ON ea.id = sa.accommodation_id
            WHERE ea.event_id = %s AND sa.staff_id = %s
            """,
            (event_id, staff_id),
        )
    return json_response(200, {"success": True, "accommodations": serialize_rows(accommodations)})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for staff, flight and accommodation routes."""
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
