"""
Cognito Post-Confirmation Lambda Trigger

Creates the users row once a sign-up is confirmed, so profile lookups always
find a record for the new account.

Trigger: Post Confirmation
Event: After the user confirms their sign-up code
"""

import logging
from typing import Any, Dict

try:  # pragma: no cover
    from utils.db import execute, get_connection
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.db import execute, get_connection

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

CONFIRM_SIGN_UP = "PostConfirmation_ConfirmSignUp"


def display_name(user_attributes: Dict[str, Any]) -> str:
    """``name`` attribute, else the email local part, else ``User``."""
    name = (user_attributes.get("name") or "").strip()
    if name:
        return name
    email = user_attributes.get("email") or ""
    local_part = email.split("@", 1)[0]
    return local_part or "User"


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Post-Confirmation Lambda Trigger Handler

    Event structure:
    {
        "version": "1",
        "triggerSource": "PostConfirmation_ConfirmSignUp",
        "userPoolId": "eu-west-1_EXAMPLE",
        "userName": "user@example.com",
        "request": {
            "userAttributes": {
                "sub": "a1b2c3d4-...",
                "email": "user@example.com",
                "name": "Ana"
            }
        },
        "response": {}
    }

    Returns:
        event: Must return the event unmodified for Cognito to continue
    """
    if event.get("triggerSource") != CONFIRM_SIGN_UP:
        logger.info(f"Ignoring trigger source: {event.get('triggerSource')}")
        return event

    try:
        user_attributes = event.get("request", {}).get("userAttributes", {})
        cognito_sub = user_attributes.get("sub")
        if not cognito_sub:
            logger.error("Missing sub in user attributes")
            return event

        name = display_name(user_attributes)
        with get_connection() as connection:
            execute(
                connection,
                "INSERT INTO users (cognito_sub, name, created_at) VALUES (%s, %s, NOW()) "
                "ON DUPLICATE KEY UPDATE name = %s",
                (cognito_sub, name, name),
            )
        logger.info(f"User record created for {cognito_sub}")
        return event

    except Exception as e:
        logger.exception(f"Error in post-confirmation trigger: {str(e)}")
        # Still return the event: a database problem must not block sign-up
        return event
