"""Cognito User Pool authentication configuration for the Cachao stack.

This module creates and configures:
- Cognito User Pool with email sign-in
- User Pool Client used by the auth Lambda (USER_PASSWORD_AUTH)
- ADMIN group checked by the administrator routes
- Post-confirmation trigger that creates the users row
"""

from typing import Any

from aws_cdk import CfnOutput, RemovalPolicy
from aws_cdk import aws_cognito as cognito
from aws_cdk import aws_lambda as lambda_
from constructs import Construct

ADMIN_GROUP = "ADMIN"


def _should_skip_lambda_triggers(scope: Construct) -> bool:
    """Check if Lambda triggers should be skipped (import phase)."""
    skip = scope.node.try_get_context("skip_lambda_triggers")
    if skip is None:
        return False
    if isinstance(skip, str):
        return skip.lower() == "true"
    return bool(skip)


def _build_user_pool_triggers(
    scope: Construct,
    post_confirmation_fn: lambda_.IFunction,
) -> cognito.UserPoolTriggers | None:
    """Build user pool triggers unless in import phase."""
    if _should_skip_lambda_triggers(scope):
        print("⚠️  Skipping Lambda triggers (import phase - will be added on subsequent deploy)")
        return None
    return cognito.UserPoolTriggers(post_confirmation=post_confirmation_fn)


def _create_password_policy() -> cognito.PasswordPolicy:
    """Create password policy for user pool."""
    return cognito.PasswordPolicy(
        min_length=8, require_lowercase=True, require_uppercase=True, require_digits=True, require_symbols=True
    )


def create_cognito_auth(
    scope: Construct,
    rn: Any,  # Resource naming function
    post_confirmation_fn: lambda_.IFunction,
) -> dict[str, Any]:
    """Create Cognito User Pool and related authentication resources.

    Args:
        scope: CDK construct scope
        rn: Resource naming function (name -> formatted name)
        post_confirmation_fn: Lambda function for the post-confirmation trigger

    Returns:
        Dictionary containing user_pool, user_pool_client and admin_group
    """
    user_pool = cognito.UserPool(
        scope,
        "UserPool",
        user_pool_name=rn("cachao-users"),
        sign_in_aliases=cognito.SignInAliases(email=True, username=False),
        self_sign_up_enabled=True,
        auto_verify=cognito.AutoVerifiedAttrs(email=True),
        standard_attributes=cognito.StandardAttributes(
            email=cognito.StandardAttribute(required=True, mutable=True),
            fullname=cognito.StandardAttribute(required=False, mutable=True),
        ),
        password_policy=_create_password_policy(),
        account_recovery=cognito.AccountRecovery.EMAIL_ONLY,
        removal_policy=RemovalPolicy.RETAIN,
        lambda_triggers=_build_user_pool_triggers(scope, post_confirmation_fn),
    )

    # Create ADMIN user group
    admin_group = cognito.CfnUserPoolGroup(
        scope,
        "AdminGroup",
        user_pool_id=user_pool.user_pool_id,
        group_name=ADMIN_GROUP,
        description="Administrator users with elevated privileges",
    )

    # The auth Lambda signs users in with InitiateAuth, so the client has no secret
    user_pool_client = user_pool.add_client(
        "AppClient",
        user_pool_client_name="Cachao-Web",
        auth_flows=cognito.AuthFlow(user_srp=True, user_password=True),
        generate_secret=False,
        prevent_user_existence_errors=True,
    )

    CfnOutput(scope, "UserPoolId", value=user_pool.user_pool_id, description="Cognito User Pool ID")
    CfnOutput(
        scope,
        "UserPoolClientId",
        value=user_pool_client.user_pool_client_id,
        description="Cognito User Pool Client ID",
    )

    return {
        "user_pool": user_pool,
        "user_pool_client": user_pool_client,
        "admin_group": admin_group,
    }
