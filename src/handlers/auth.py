"""
Lambda handler for Cognito sign-in flows and administrator account tools.

Sign-in goes through the app client with USER_PASSWORD_AUTH; administrator
routes use the pool admin APIs and require the ADMIN group.
"""

from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import ClientError

try:  # pragma: no cover
    from utils.auth import require_admin
    from utils.cognito import (
        find_user_by_email,
        generate_temporary_password,
        get_client_id,
        get_cognito_client,
        get_user_pool_id,
    )
    from utils.db import fetch_all, get_connection
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, json_response, parse_body, serialize_rows
    from utils.logging import get_correlation_id, get_logger
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import require_admin
    from ..utils.cognito import (
        find_user_by_email,
        generate_temporary_password,
        get_client_id,
        get_cognito_client,
        get_user_pool_id,
    )
    from ..utils.db import fetch_all, get_connection
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, json_response, parse_body, serialize_rows
    from ..utils.logging import get_correlation_id, get_logger


LOGIN_ERRORS: Dict[str, Tuple[str, str]] = {
    "NotAuthorizedException": (ErrorCode.UNAUTHORIZED, "Incorrect email or password"),
    "UserNotFoundException": (ErrorCode.UNAUTHORIZED, "User not found"),
    "UserNotConfirmedException": (ErrorCode.FORBIDDEN, "User account is not confirmed"),
    "PasswordResetRequiredException": (ErrorCode.FORBIDDEN, "Password reset required"),
    "TooManyRequestsException": (ErrorCode.RATE_LIMITED, "Too many login attempts"),
}

CONFIRM_FORGOT_ERRORS: Dict[str, Tuple[str, str]] = {
    "CodeMismatchException": (ErrorCode.INVALID_INPUT, "Invalid or expired verification code"),
    "ExpiredCodeException": (ErrorCode.INVALID_INPUT, "Verification code has expired"),
    "InvalidPasswordException": (ErrorCode.INVALID_INPUT, "Password does not meet requirements"),
    "UserNotFoundException": (ErrorCode.NOT_FOUND, "User not found"),
}

ADMIN_TICKET_ORDER_LIMIT = 100

router = Router()
logger = get_logger(__name__)


def _error_name(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _mapped_error(error: ClientError, table: Dict[str, Tuple[str, str]], fallback: Tuple[str, str]) -> AppError:
    name = _error_name(error)
    code, message = table.get(name, fallback)
    return AppError(code, message, {"cognitoError": name} if name else None)


def _body_email(body: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return None


def _tokens(result: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "idToken": result.get("IdToken"),
        "accessToken": result.get("AccessToken"),
        "refreshToken": result.get("RefreshToken"),
        "expiresIn": result.get("ExpiresIn"),
    }


def _username_for(email: str) -> str:
    user = find_user_by_email(email)
    if user is None:
        raise AppError(ErrorCode.NOT_FOUND, "User not found")
    return user.get("Username") or email


@router.route("POST", r"/auth/login")
def login(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Password sign-in.

    A first sign-in with a temporary password returns the
    NEW_PASSWORD_REQUIRED challenge; the client answers it by calling login
    again with ``session`` and ``newPassword``.
    """
    body = parse_body(event)
    email = _body_email(body, "email", "username")
    password = body.get("password")
    if not email or not password:
        raise AppError(ErrorCode.INVALID_INPUT, "Email and password are required")

    client_id = get_client_id()
    cognito = get_cognito_client()

    if body.get("session") and body.get("newPassword"):
        try:
            response = cognito.respond_to_auth_challenge(
                ClientId=client_id,
                ChallengeName="NEW_PASSWORD_REQUIRED",
                Session=body["session"],
                ChallengeResponses={"USERNAME": email, "NEW_PASSWORD": body["newPassword"]},
            )
        except ClientError as e:
            raise AppError(
                ErrorCode.INVALID_INPUT,
                e.response.get("Error", {}).get("Message") or "Failed to set new password",
                {"cognitoError": _error_name(e)},
            )
        if response.get("AuthenticationResult"):
            logger.info("Challenge answered", email=email)
            return json_response(
                200,
                {
                    "success": True,
                    "tokens": _tokens(response["AuthenticationResult"]),
                    "message": "Password changed successfully. Login successful.",
                },
            )

    try:
        response = cognito.initiate_auth(
            AuthFlow="USER_PASSWORD_AUTH",
            ClientId=client_id,
            AuthParameters={"USERNAME": email, "PASSWORD": password},
        )
    except ClientError as e:
        logger.warning("Login failed", email=email, error=_error_name(e))
        raise _mapped_error(e, LOGIN_ERRORS, (ErrorCode.UNAUTHORIZED, "Authentication failed"))

    if response.get("ChallengeName") == "NEW_PASSWORD_REQUIRED":
        return json_response(
            200,
            {
                "success": False,
                "challenge": response["ChallengeName"],
                "session": response.get("Session"),
                "message": "New password required. Please provide a new password.",
                "requiresNewPassword": True,
            },
        )

    if not response.get("AuthenticationResult"):
        raise AppError(ErrorCode.INTERNAL_ERROR, "Authentication failed - no tokens received")

    logger.info("Login succeeded", email=email)
    return json_response(
        200, {"success": True, "tokens": _tokens(response["AuthenticationResult"]), "message": "Login successful"}
    )


@router.route("POST", r"/auth/forgot-password")
def forgot_password(event: Dict[str, Any]) -> Dict[str, Any]:
    body = parse_body(event)
    email = _body_email(body, "email", "username")
    if not email:
        raise AppError(ErrorCode.INVALID_INPUT, "Email is required")

    try:
        get_cognito_client().forgot_password(ClientId=get_client_id(), Username=email)
    except ClientError as e:
        name = _error_name(e)
        if name == "UserNotFoundException":
            # Same answer as success so the endpoint cannot probe for accounts
            return json_response(
                200,
                {
                    "success": True,
                    "message": "If an account exists with this email, a password reset code has been sent.",
                },
            )
        if name == "LimitExceededException":
            raise AppError(ErrorCode.RATE_LIMITED, "Too many requests. Please try again later.")
        logger.error("Forgot password failed", email=email, error=str(e))
        raise AppError(ErrorCode.INTERNAL_ERROR, "Failed to initiate password reset")

    return json_response(200, {"success": True, "message": "Password reset code has been sent to your email."})


@router.route("POST", r"/auth/confirm-forgot-password")
def confirm_forgot_password(event: Dict[str, Any]) -> Dict[str, Any]:
    body = parse_body(event)
    email = _body_email(body, "email", "username")
    code = body.get("code") or body.get("confirmationCode")
    new_password = body.get("newPassword") or body.get("password")
    if not email or not code or not new_password:
        raise AppError(ErrorCode.INVALID_INPUT, "Email, code, and new password are required")

    try:
        get_cognito_client().confirm_forgot_password(
            ClientId=get_client_id(),
            Username=email,
            ConfirmationCode=str(code),
            Password=new_password,
        )
    except ClientError as e:
        raise _mapped_error(e, CONFIRM_FORGOT_ERRORS, (ErrorCode.INVALID_INPUT, "Failed to reset password"))

    return json_response(200, {"success": True, "message": "Password has been reset successfully."})


@router.route("POST", r"/auth/resend-verification-code")
def resend_verification_code(event: Dict[str, Any]) -> Dict[str, Any]:
    """Send a fresh temporary password to a user who never finished sign-up."""
    body = parse_body(event)
    email = _body_email(body, "email")
    if not email:
        raise AppError(ErrorCode.INVALID_INPUT, "Email is required")

    pool_id = get_user_pool_id()
    cognito = get_cognito_client()
    username = _username_for(email)

    try:
        user = cognito.admin_get_user(UserPoolId=pool_id, Username=username)
        if user.get("UserStatus") == "CONFIRMED":
            raise AppError(ErrorCode.INVALID_INPUT, "User is already confirmed")
        cognito.admin_reset_user_password(UserPoolId=pool_id, Username=username)
    except ClientError as e:
        logger.error("Resend verification failed", email=email, error=str(e))
        raise AppError(ErrorCode.INTERNAL_ERROR, "Failed to resend verification code")

    return json_response(200, {"success": True, "message": "A new temporary password has been sent to your email."})


@router.route("POST", r"/admin/reset-password")
def admin_reset_password(event: Dict[str, Any]) -> Dict[str, Any]:
    admin_sub = require_admin(event)
    body = parse_body(event)
    email = _body_email(body, "email")
    if not email:
        raise AppError(ErrorCode.INVALID_INPUT, "Email is required")

    pool_id = get_user_pool_id()
    username = _username_for(email)
    temporary_password = generate_temporary_password()

    try:
        get_cognito_client().admin_set_user_password(
            UserPoolId=pool_id,
            Username=username,
            Password=temporary_password,
            Permanent=False,
        )
    except ClientError as e:
        logger.error("Admin password reset failed", email=email, error=str(e))
        raise AppError(ErrorCode.INTERNAL_ERROR, "Failed to reset password")

    logger.warning("Admin reset user password", admin=admin_sub, email=email)
    return json_response(
        200,
        {
            "success": True,
            "message": "Password has been reset.",
            "temporaryPassword": temporary_password,
            "email": email,
        },
    )


@router.route("POST", r"/admin/mark-email-verified")
def mark_email_verified(event: Dict[str, Any]) -> Dict[str, Any]:
    admin_sub = require_admin(event)
    body = parse_body(event)
    email = _body_email(body, "email")
    if not email:
        raise AppError(ErrorCode.INVALID_INPUT, "Email is required")

    pool_id = get_user_pool_id()
    username = _username_for(email)

    try:
        get_cognito_client().admin_update_user_attributes(
            UserPoolId=pool_id,
            Username=username,
            UserAttributes=[{"Name": "email_verified", "Value": "true"}],
        )
    except ClientError as e:
        logger.error("Mark email verified failed", email=email, error=str(e))
        raise AppError(ErrorCode.INTERNAL_ERROR, "Failed to mark email as verified")

    logger.info("Marked email verified", admin=admin_sub, email=email)
    return json_response(200, {"success": True, "message": f"Email verified successfully for {email}"})


@router.route("GET", r"/admin/ticket-orders")
def list_all_ticket_orders(event: Dict[str, Any]) -> Dict[str, Any]:
    require_admin(event)

    with get_connection() as connection:
        orders = fetch_all(
            connection,
            f"""
            SELECT o.*, e.name AS event_name, t.name AS ticket_name, t.price AS ticket_price
            FROM ticket_orders o
            LEFT JOIN events e ON o.event_id = e.id
            LEFT JOIN tickets t ON o.ticket_id = t.id
            ORDER BY o.created_at DESC
            LIMIT {ADMIN_TICKET_ORDER_LIMIT}
            """,
        )

    return json_response(200, {"success": True, "orders": serialize_rows(orders)})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for /auth and /admin account routes."""
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
