import os

from aws_cdk import CfnOutput, Stack
from constructs import Construct

from .auth import create_cognito_auth
from .helpers import get_region_abbrev, make_resource_namer
from .iam_roles import create_lambda_execution_role
from .lambdas import create_lambda_functions
from .rest_api import create_rest_api
from .s3_buckets import create_media_bucket
from .stripe_events import create_stripe_event_rule


class CdkStack(Stack):
    """
    Cachao - Core Infrastructure Stack

    Creates:
    - S3 media bucket
    - IAM role for Lambda functions
    - One Lambda per resource area
    - Cognito User Pool with post-confirmation trigger
    - REST API with Cognito authorizer
    - EventBridge rule for Stripe payment events (when a partner bus is configured)

    The MariaDB database is managed outside the stack; its connection
    settings are passed to the functions from the deploy environment.
    """

    def __init__(self, scope: Construct, construct_id: str, env_name: str = "dev", **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.env_name = env_name
        self.region_abbrev = get_region_abbrev()

        # Helper for consistent resource naming: {name}-{region}-{env}
        rn = make_resource_namer(self.region_abbrev, env_name)
        self.resource_name = rn

        frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")
        allowed_origins = sorted({frontend_url, "http://localhost:3000"})

        self.media_bucket = create_media_bucket(self, rn, allowed_origins)
        self.lambda_execution_role = create_lambda_execution_role(self, rn, self.media_bucket)

        self.functions = create_lambda_functions(
            self,
            rn,
            self.lambda_execution_role,
            self.media_bucket,
            ffmpeg_layer_arn=self.node.try_get_context("ffmpeg_layer_arn") or os.getenv("FFMPEG_LAYER_ARN"),
        )

        auth = create_cognito_auth(self, rn, self.functions["post_confirmation_fn"])
        self.user_pool = auth["user_pool"]
        self.user_pool_client = auth["user_pool_client"]

        # The trigger itself must not reference the pool (circular dependency)
        for key, fn in self.functions.items():
            if key.endswith("_fn") and key != "post_confirmation_fn":
                fn.add_environment("COGNITO_USER_POOL_ID", self.user_pool.user_pool_id)
                fn.add_environment("COGNITO_CLIENT_ID", self.user_pool_client.user_pool_client_id)

        api = create_rest_api(self, rn, self.functions, self.user_pool, allowed_origins)
        self.api = api["api"]

        stripe_bus = self.node.try_get_context("stripe_event_bus_name") or os.getenv("STRIPE_EVENT_BUS_NAME")
        self.stripe_rule = None
        if stripe_bus:
            self.stripe_rule = create_stripe_event_rule(self, rn, stripe_bus, self.functions["stripe_events_fn"])

        CfnOutput(self, "MediaBucketName", value=self.media_bucket.bucket_name, description="Media bucket")
