"""
Caller identity and authorization helpers.

Implements the owner-based model: an event belongs to the Cognito user that
created it, and only that user may change the event or anything under it.
"""

import base64
import binascii
import json
from typing import Any, Dict, Optional

from .db import fetch_one
from .errors import AppError, ErrorCode
from .http import get_header
from .logging import get_logger

logger = get_logger(__name__)


def get_claims(event: Dict[str, Any]) -> Dict[str, Any]:
    """Authorizer claims from an API Gateway Cognito authorizer, if any."""
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    return authorizer.get("claims") or {}


def decode_bearer_payload(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Decode the payload segment of a ``Bearer`` JWT without verifying it.

    Used on routes open to guests, where API Gateway forwards the token but
    does not run the authorizer. Returns an empty dict for anything malformed.
    """
    header = get_header(event, "Authorization")
    if not header or not header.startswith("Bearer "):
        return {}

    parts = header[len("Bearer "):].split(".")
    if len(parts) != 3:
        return {}

    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Could not decode bearer token payload")
        return {}
    return payload if isinstance(payload, dict) else {}


def get_cognito_sub(event: Dict[str, Any]) -> Optional[str]:
    """Cognito sub of the caller, or None for guests."""
    claims = get_claims(event)
    sub = claims.get("sub") or claims.get("cognito:username")
    if sub:
        return str(sub)

    payload = decode_bearer_payload(event)
    sub = payload.get("sub")
    return str(sub) if sub else None


def get_email(event: Dict[str, Any]) -> Optional[str]:
    """Caller email (lowercased, trimmed) from claims or the bearer token."""
    email = get_claims(event).get("email") or decode_bearer_payload(event).get("email")
    if not email:
        return None
    return str(email).strip().lower()


def is_admin(event: Dict[str, Any]) -> bool:
    """
    Check if the caller is in the ADMIN Cognito group.

    API Gateway passes ``cognito:groups`` as a list or as a comma/space
    separated string depending on the authorizer.
    """
    groups = get_claims(event).get("cognito:groups") or []
    if isinstance(groups, str):
        groups = groups.strip("[]").replace(",", " ").split()
    return "ADMIN" in groups


def require_user(event: Dict[str, Any]) -> str:
    """Return the caller's sub or raise 401."""
    sub = get_cognito_sub(event)
    if not sub:
        raise AppError(ErrorCode.UNAUTHORIZED, "Authentication required")
    return sub


def require_admin(event: Dict[str, Any]) -> str:
    """Return the caller's sub when they are an administrator."""
    sub = require_user(event)
    if not is_admin(event):
        raise AppError(ErrorCode.FORBIDDEN, "Administrator access required")
    return sub


def require_event_owner(connection: Any, event_id: Any, cognito_sub: Optional[str]) -> Dict[str, Any]:
    """
    Ensure the caller owns the event.

    Returns:
        The event row (id and cognito_sub)

    Raises:
        AppError: 401 when anonymous, 404 when the event is missing,
            403 when someone else owns it
    """
    if not cognito_sub:
        raise AppError(ErrorCode.UNAUTHORIZED, "Authentication required")

    event_row = fetch_one(connection, "SELECT id, cognito_sub FROM events WHERE id = %s", (event_id,))
    if event_row is None:
        raise AppError(ErrorCode.NOT_FOUND, "Event not found")

    if event_row.get("cognito_sub") != cognito_sub:
        logger.warning("Event ownership check failed", event_id=event_id, caller=cognito_sub)
        raise AppError(ErrorCode.FORBIDDEN, "No permission")

    return event_row
