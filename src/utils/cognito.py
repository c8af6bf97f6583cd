"""
Cognito user pool helpers shared by the auth and user provisioning handlers.
"""

import os
import secrets
import string
from typing import TYPE_CHECKING, Any, Dict, Optional

import boto3

if TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_cognito_idp.client import CognitoIdentityProviderClient

from .errors import AppError, ErrorCode

# Module-level Cognito client proxy for testing
cognito_client: "CognitoIdentityProviderClient | None" = None

PASSWORD_SYMBOLS = "!@#$%^&*"
PASSWORD_ALPHABET = string.ascii_letters + string.digits + PASSWORD_SYMBOLS


def get_cognito_client() -> "CognitoIdentityProviderClient":
    global cognito_client
    if cognito_client is not None:
        return cognito_client
    return boto3.client("cognito-idp", region_name=os.getenv("AWS_REGION", "eu-west-1"))


def get_user_pool_id() -> str:
    """
    User pool id from COGNITO_USER_POOL_ID or USER_POOL_ID.

    Raises:
        AppError: If neither is set
    """
    pool_id = os.getenv("COGNITO_USER_POOL_ID") or os.getenv("USER_POOL_ID")
    if not pool_id:
        raise AppError(ErrorCode.CONFIGURATION_ERROR, "Cognito User Pool ID not configured")
    return pool_id


def get_client_id() -> str:
    """
    App client id from COGNITO_CLIENT_ID or USER_POOL_CLIENT_ID.

    Raises:
        AppError: If neither is set
    """
    client_id = os.getenv("COGNITO_CLIENT_ID") or os.getenv("USER_POOL_CLIENT_ID")
    if not client_id:
        raise AppError(ErrorCode.CONFIGURATION_ERROR, "Cognito configuration missing")
    return client_id


def find_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    """First pool user whose email attribute matches, or None."""
    escaped = email.replace('"', '\\"')
    response = get_cognito_client().list_users(
        UserPoolId=get_user_pool_id(),
        Filter=f'email = "{escaped}"',
        Limit=1,
    )
    users = response.get("Users") or []
    return users[0] if users else None


def user_attribute(user: Dict[str, Any], name: str) -> Optional[str]:
    """Read an attribute from a ListUsers/AdminCreateUser user record."""
    for attribute in user.get("Attributes") or user.get("UserAttributes") or []:
        if attribute.get("Name") == name:
            return attribute.get("Value")
    return None


def generate_temporary_password(length: int = 12) -> str:
    """
    Random password satisfying the default pool policy.

    Always contains an uppercase letter, a lowercase letter, a digit and a symbol.
    """
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(PASSWORD_SYMBOLS),
    ]
    rest = [secrets.choice(PASSWORD_ALPHABET) for _ in range(max(0, length - len(required)))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
