"""
API Gateway proxy helpers.

Request parsing, JSON responses with CORS headers, row serialization and a
small regex router shared by every HTTP handler.
"""

import base64
import binascii
import json
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from .errors import AppError, ErrorCode, handle_error
from .logging import StructuredLogger


CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS, PATCH",
    "Access-Control-Allow-Headers": (
        "Content-Type, Authorization, X-Amz-Date, X-Api-Key, X-Amz-Security-Token, "
        "Accept, Origin, X-Requested-With"
    ),
    "Access-Control-Expose-Headers": "Content-Length, Content-Type",
    "Access-Control-Max-Age": "86400",
}

MONEY_COLUMNS = frozenset(
    {
        "price",
        "discount_value",
        "unit_price",
        "discount_amount",
        "total_amount",
        "ticket_price",
        "cost_per_night",
    }
)
BOOLEAN_COLUMNS = frozenset({"is_active", "validated", "is_public"})
JSON_COLUMNS = frozenset({"styles", "dance_styles"})


def json_response(status_code: int, body: Any) -> Dict[str, Any]:
    """Build an API Gateway proxy response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **CORS_HEADERS},
        "body": json.dumps(body, default=_json_default),
    }


def error_response(error: AppError) -> Dict[str, Any]:
    """Render an AppError as ``{success: false, error, code, ...details}``."""
    body = handle_error(error)
    return json_response(
        error.status_code,
        {
            "success": False,
            "error": body.pop("message"),
            "code": body.pop("errorCode"),
            **body,
        },
    )


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return str(value)


def get_header(event: Dict[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in (event.get("headers") or {}).items():
        if key.lower() == wanted:
            return value
    return None


def normalize_path(event: Dict[str, Any]) -> str:
    """Request path without the ``/Prod`` stage prefix, always starting with ``/``."""
    path = event.get("path") or ""
    if path == "/Prod" or path.startswith("/Prod/"):
        path = path[len("/Prod"):]
    if not path.startswith("/"):
        path = "/" + path
    return path


def raw_body(event: Dict[str, Any]) -> str:
    """Request body as text, decoding base64 when API Gateway encoded it."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded") and body:
        try:
            return base64.b64decode(body).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            raise AppError(ErrorCode.INVALID_INPUT, "Invalid request body encoding")
    return body


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse the JSON request body; an empty body is an empty dict."""
    text = raw_body(event)
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        raise AppError(ErrorCode.INVALID_INPUT, "Invalid JSON in request body")
    if not isinstance(parsed, dict):
        raise AppError(ErrorCode.INVALID_INPUT, "Request body must be a JSON object")
    return parsed


def query_params(event: Dict[str, Any]) -> Dict[str, str]:
    return event.get("queryStringParameters") or {}


def serialize_row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Convert a database row into JSON-friendly values."""
    if row is None:
        return None

    result: Dict[str, Any] = {}
    for key, value in row.items():
        if value is None:
            result[key] = None
        elif key in MONEY_COLUMNS:
            result[key] = float(value)
        elif key in BOOLEAN_COLUMNS:
            result[key] = bool(value)
        elif key in JSON_COLUMNS and isinstance(value, (str, bytes, bytearray)):
            try:
                result[key] = json.loads(value)
            except json.JSONDecodeError:
                result[key] = []
        elif isinstance(value, (datetime, date)):
            result[key] = value.isoformat()
        elif isinstance(value, timedelta):
            # TIME columns come back as timedelta
            total = int(value.total_seconds())
            result[key] = f"{total // 3600:02d}:{total % 3600 // 60:02d}:{total % 60:02d}"
        elif isinstance(value, Decimal):
            result[key] = float(value)
        else:
            result[key] = value
    return result


def serialize_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_row(row) for row in rows]  # type: ignore[misc]


RouteHandler = Callable[..., Dict[str, Any]]


class Router:
    """
    Method + path regex dispatch for API Gateway proxy events.

    Named groups in the pattern are passed to the handler as keyword
    arguments. Handlers receive the raw event as their first argument.

    Example:
        router = Router()

        @router.route("GET", r"/events/(?P<event_id>\\d+)")
        def get_event(event, event_id):
            ...
    """

    def __init__(self) -> None:
        self._routes: List[Tuple[str, Pattern[str], RouteHandler]] = []

    def route(self, method: str, pattern: str) -> Callable[[RouteHandler], RouteHandler]:
        compiled = re.compile(f"^{pattern}$")

        def decorator(func: RouteHandler) -> RouteHandler:
            self._routes.append((method.upper(), compiled, func))
            return func

        return decorator

    def resolve(self, method: str, path: str) -> Optional[Tuple[RouteHandler, Dict[str, str]]]:
        for route_method, pattern, func in self._routes:
            if route_method != method.upper():
                continue
            match = pattern.match(path)
            if match:
                return func, match.groupdict()
        return None

    def dispatch(self, event: Dict[str, Any], logger: StructuredLogger) -> Dict[str, Any]:
        """Route the event and convert errors into JSON responses."""
        method = (event.get("httpMethod") or "").upper()
        if method == "OPTIONS":
            return json_response(200, {"message": "CORS preflight"})

        path = normalize_path(event)
        logger = logger.bind(method=method, path=path)
        resolved = self.resolve(method, path)
        if resolved is None:
            logger.warning("Route not found")
            return json_response(404, {"success": False, "error": "Route not found"})

        func, params = resolved
        try:
            return func(event, **params)
        except AppError as e:
            logger.warning("Request rejected", error_code=e.error_code, error=e.message)
            return error_response(e)
        except Exception as e:
            logger.error("Unhandled error", error=str(e))
            return json_response(500, {"success": False, "error": "Internal server error"})
