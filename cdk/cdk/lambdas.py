"""Lambda function definitions for the Cachao stack.

One function per resource area, all built from the ``src`` directory:
- API handlers (events, tickets, staff, videos, user profile, public users,
  auth, Stripe checkout/webhook, admin video maintenance, thumbnails)
- Stripe EventBridge consumer
- Cognito post-confirmation trigger and the create-user provisioning function
"""

import os
from typing import Any, NamedTuple, Optional

from aws_cdk import Duration
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3 as s3
from constructs import Construct

from .helpers import passthrough_environment


class FunctionSpec(NamedTuple):
    construct_id: str
    name: str
    handler: str
    timeout: int = 30
    memory_size: int = 256


FUNCTION_SPECS: dict[str, FunctionSpec] = {
    "events_fn": FunctionSpec("EventsFn", "cachao-events", "handlers.events.lambda_handler"),
    "tickets_fn": FunctionSpec("TicketsFn", "cachao-tickets", "handlers.tickets.lambda_handler"),
    "staff_fn": FunctionSpec("StaffFn", "cachao-staff", "handlers.staff.lambda_handler"),
    "videos_fn": FunctionSpec("VideosFn", "cachao-videos", "handlers.videos.lambda_handler"),
    "user_profile_fn": FunctionSpec("UserProfileFn", "cachao-user-profile", "handlers.user_profile.lambda_handler"),
    "public_users_fn": FunctionSpec("PublicUsersFn", "cachao-public-users", "handlers.public_users.lambda_handler"),
    "auth_fn": FunctionSpec("AuthFn", "cachao-auth", "handlers.auth.lambda_handler"),
    "stripe_payments_fn": FunctionSpec(
        "StripePaymentsFn", "cachao-stripe-payments", "handlers.stripe_payments.lambda_handler"
    ),
    # EventBridge retries the delivery when this raises
    "stripe_events_fn": FunctionSpec(
        "StripeEventsFn", "cachao-stripe-events", "handlers.stripe_payments.event_bridge_handler"
    ),
    "admin_videos_fn": FunctionSpec("AdminVideosFn", "cachao-admin-videos", "handlers.admin_videos.lambda_handler"),
    "generate_thumbnail_fn": FunctionSpec(
        "GenerateThumbnailFn",
        "cachao-generate-thumbnail",
        "handlers.generate_thumbnail.lambda_handler",
        timeout=180,  # ffmpeg download + frame extraction
        memory_size=1024,
    ),
    "post_confirmation_fn": FunctionSpec(
        "PostConfirmationFn", "cachao-post-confirmation", "handlers.post_confirmation.lambda_handler", timeout=10
    ),
    "create_user_fn": FunctionSpec("CreateUserFn", "cachao-create-user", "handlers.create_user.lambda_handler"),
}


def create_lambda_functions(
    scope: Construct,
    rn: Any,  # Resource naming function
    lambda_execution_role: iam.Role,
    media_bucket: "s3.IBucket",
    ffmpeg_layer_arn: Optional[str] = None,
) -> dict[str, lambda_.Function | lambda_.LayerVersion]:
    """Create all Lambda functions for the stack.

    Args:
        scope: CDK construct scope
        rn: Resource naming function (name -> formatted name)
        lambda_execution_role: IAM role for Lambda execution
        media_bucket: S3 bucket for uploaded media
        ffmpeg_layer_arn: Optional layer providing /opt/bin/ffmpeg for thumbnails

    Returns:
        Dictionary containing all Lambda functions and layer
    """
    # Common Lambda environment variables
    lambda_env = {
        "S3_BUCKET_NAME": media_bucket.bucket_name,
        "LOG_LEVEL": "INFO",
        **passthrough_environment(),
    }

    # Create Lambda Layer for shared dependencies
    lambda_layer_path = os.path.join(os.path.dirname(__file__), "..", "lambda-layer")

    # Check if layer exists, if not create it
    if not os.path.exists(lambda_layer_path):
        os.makedirs(lambda_layer_path, exist_ok=True)

    shared_layer = lambda_.LayerVersion(
        scope,
        "SharedDependenciesLayer",
        layer_version_name=rn("cachao-deps"),
        code=lambda_.Code.from_asset(lambda_layer_path),
        compatible_runtimes=[lambda_.Runtime.PYTHON_3_13],
        description="Shared Python dependencies for Lambda functions",
    )

    # Use only the src directory for Lambda code (not the entire repo)
    lambda_code_path = os.path.join(os.path.dirname(__file__), "..", "..", "src")

    lambda_code = lambda_.Code.from_asset(
        lambda_code_path,
        exclude=[
            "__pycache__",
            "*.pyc",
            ".pytest_cache",
        ],
    )

    result: dict[str, lambda_.Function | lambda_.LayerVersion] = {"shared_layer": shared_layer}
    for key, spec in FUNCTION_SPECS.items():
        layers: list[lambda_.ILayerVersion] = [shared_layer]
        environment = dict(lambda_env)
        if key == "generate_thumbnail_fn" and ffmpeg_layer_arn:
            layers.append(lambda_.LayerVersion.from_layer_version_arn(scope, "FfmpegLayer", ffmpeg_layer_arn))
            environment["FFMPEG_PATH"] = "/opt/bin/ffmpeg"

        result[key] = lambda_.Function(
            scope,
            spec.construct_id,
            function_name=rn(spec.name),
            runtime=lambda_.Runtime.PYTHON_3_13,
            handler=spec.handler,
            code=lambda_code,
            layers=layers,
            timeout=Duration.seconds(spec.timeout),
            memory_size=spec.memory_size,
            role=lambda_execution_role,
            environment=environment,
        )

    return result
