"""
Provision a Cognito user and its users row on request.

Invoked directly (not through API Gateway) with ``{"email": ..., "name": ...}``
or the same object as a JSON string, e.g. when an organiser adds a staff
member who has no account yet.

How it works:
1. Look the email up in the user pool
2. If a user exists, nothing is created and its sub is returned
3. Otherwise AdminCreateUser sends the welcome email with a temporary password
4. The users row is upserted with the display name
"""

import json
import logging
from typing import Any, Dict, Optional, Union

import mysql.connector
from botocore.exceptions import ClientError

try:  # pragma: no cover
    from utils.cognito import (
        find_user_by_email,
        generate_temporary_password,
        get_cognito_client,
        get_user_pool_id,
        user_attribute,
    )
    from utils.db import execute, get_connection
    from utils.errors import AppError
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.cognito import (
        find_user_by_email,
        generate_temporary_password,
        get_cognito_client,
        get_user_pool_id,
        user_attribute,
    )
    from ..utils.db import execute, get_connection
    from ..utils.errors import AppError

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _result(created: bool, cognito_sub: Optional[str], error: Optional[str] = None) -> Dict[str, Any]:
    result: Dict[str, Any] = {"created": created, "cognito_sub": cognito_sub}
    if error:
        result["error"] = error
    return result


def _parse_payload(event: Union[Dict[str, Any], str]) -> Optional[Dict[str, Any]]:
    if isinstance(event, str):
        try:
            event = json.loads(event)
        except json.JSONDecodeError:
            return None
    return event if isinstance(event, dict) else None


def _upsert_user_row(cognito_sub: str, name: str) -> None:
    try:
        with get_connection() as connection:
            execute(
                connection,
                "INSERT INTO users (cognito_sub, name, created_at) VALUES (%s, %s, NOW()) "
                "ON DUPLICATE KEY UPDATE name = %s",
                (cognito_sub, name, name),
            )
    except (AppError, mysql.connector.Error) as e:
        # The Cognito user exists either way; the row is recreated on first profile visit
        logger.error(f"Error creating user record in database: {str(e)}")


def lambda_handler(event: Union[Dict[str, Any], str], context: Any) -> Dict[str, Any]:
    """
    Create the user unless one with the email already exists.

    Returns:
        {"created": bool, "cognito_sub": str | None} plus ``error`` on failure
    """
    payload = _parse_payload(event)
    if payload is None:
        logger.error("Invalid payload")
        return _result(False, None, "Invalid payload")

    email = payload.get("email") or ""
    name = payload.get("name") or ""
    if not isinstance(email, str) or not isinstance(name, str):
        logger.error("Email and name must be strings")
        return _result(False, None, "Email and name must be strings")
    email = email.strip().lower()
    name = name.strip()
    if not email or not name:
        logger.error("Email and name are required")
        return _result(False, None, "Email and name are required")

    try:
        pool_id = get_user_pool_id()
        existing = find_user_by_email(email)
        if existing is not None:
            logger.info(f"User already exists: {email}")
            return _result(False, user_attribute(existing, "sub"))

        response = get_cognito_client().admin_create_user(
            UserPoolId=pool_id,
            Username=email,
            UserAttributes=[
                {"Name": "email", "Value": email},
                {"Name": "email_verified", "Value": "true"},
                {"Name": "name", "Value": name},
            ],
            TemporaryPassword=generate_temporary_password(),
            DesiredDeliveryMediums=["EMAIL"],
        )
    except AppError as e:
        logger.error(f"Cannot create user: {e.message}")
        return _result(False, None, e.message)
    except ClientError as e:
        logger.exception(f"Error creating user {email}: {str(e)}")
        return _result(False, None, "Failed to create user")

    cognito_sub = user_attribute(response.get("User") or {}, "sub")
    if not cognito_sub:
        logger.error("Failed to create user - no cognito_sub returned")
        return _result(False, None, "No cognito_sub returned")

    _upsert_user_row(cognito_sub, name)
    logger.info(f"Created user {email} ({cognito_sub})")
    return _result(True, cognito_sub)
