"""
IAM roles and policies for the CDK stack.

Creates:
- Lambda execution role with media bucket and Cognito admin permissions
"""

from typing import Callable

from aws_cdk import Stack
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3
from constructs import Construct

COGNITO_ADMIN_ACTIONS = [
    "cognito-idp:AdminCreateUser",
    "cognito-idp:AdminGetUser",
    "cognito-idp:AdminResetUserPassword",
    "cognito-idp:AdminSetUserPassword",
    "cognito-idp:AdminUpdateUserAttributes",
    "cognito-idp:ListUsers",
]


def create_lambda_execution_role(
    stack: Construct,
    rn: Callable[[str], str],
    media_bucket: s3.IBucket,
) -> iam.Role:
    """Create the Lambda execution role with appropriate permissions.

    The user pool is created after the functions (its trigger is one of
    them), so Cognito admin actions are granted on every pool in the account
    rather than on the pool ARN.

    Args:
        stack: CDK Construct (usually the Stack instance)
        rn: helper function to create resource names
        media_bucket: S3 bucket for uploaded media

    Returns:
        The Lambda execution role
    """
    lambda_execution_role = iam.Role(
        stack,
        "LambdaExecutionRole",
        role_name=rn("cachao-lambda-exec"),
        assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
        managed_policies=[iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWSLambdaBasicExecutionRole")],
    )

    media_bucket.grant_read_write(lambda_execution_role)
    media_bucket.grant_delete(lambda_execution_role)

    lambda_execution_role.add_to_policy(
        iam.PolicyStatement(
            actions=COGNITO_ADMIN_ACTIONS,
            resources=[f"arn:aws:cognito-idp:{Stack.of(stack).region}:{Stack.of(stack).account}:userpool/*"],
        )
    )

    return lambda_execution_role
