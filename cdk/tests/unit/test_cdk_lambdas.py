"""Tests for Lambda functions module."""

import pytest
from aws_cdk import App, Stack, assertions
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3

from cdk.lambdas import FUNCTION_SPECS, create_lambda_functions


@pytest.fixture
def stack():
    """Create a test stack."""
    app = App()
    return Stack(app, "TestStack")


@pytest.fixture
def rn():
    """Create a resource naming function."""
    return lambda name: f"{name}-ew1-test"


@pytest.fixture
def role(stack):
    return iam.Role(stack, "Role", assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"))


@pytest.fixture
def bucket(stack):
    return s3.Bucket(stack, "Media", bucket_name="media-bucket")


class TestCreateLambdaFunctions:
    """Tests for create_lambda_functions function."""

    def test_returns_every_function_and_layer(self, stack, rn, role, bucket):
        """Function returns the shared layer plus one entry per handler."""
        result = create_lambda_functions(stack, rn, role, bucket)

        assert set(result) == {"shared_layer", *FUNCTION_SPECS}

    def test_functions_use_python_3_13(self, stack, rn, role, bucket):
        """Every function runs on Python 3.13."""
        create_lambda_functions(stack, rn, role, bucket)
        template = assertions.Template.from_stack(stack)

        functions = template.find_resources("AWS::Lambda::Function")
        assert len(functions) == len(FUNCTION_SPECS)
        assert {f["Properties"]["Runtime"] for f in functions.values()} == {"python3.13"}

    def test_handlers_and_names(self, stack, rn, role, bucket):
        """Stripe EventBridge consumer points at event_bridge_handler."""
        create_lambda_functions(stack, rn, role, bucket)
        template = assertions.Template.from_stack(stack)

        template.has_resource_properties(
            "AWS::Lambda::Function",
            {
                "FunctionName": "cachao-stripe-events-ew1-test",
                "Handler": "handlers.stripe_payments.event_bridge_handler",
            },
        )
        template.has_resource_properties(
            "AWS::Lambda::Function",
            {"FunctionName": "cachao-events-ew1-test", "Handler": "handlers.events.lambda_handler"},
        )

    def test_environment_includes_bucket_and_deploy_settings(self, stack, rn, role, bucket, monkeypatch):
        """Bucket name and deploy-time settings reach the functions."""
        monkeypatch.setenv("DB_HOST", "db.cachao.internal")
        create_lambda_functions(stack, rn, role, bucket)
        template = assertions.Template.from_stack(stack)

        template.has_resource_properties(
            "AWS::Lambda::Function",
            {
                "Environment": {
                    "Variables": assertions.Match.object_like(
                        {"DB_HOST": "db.cachao.internal", "LOG_LEVEL": "INFO"}
                    )
                }
            },
        )

    def test_thumbnail_function_gets_ffmpeg_layer(self, stack, rn, role, bucket):
        """An ffmpeg layer ARN adds the layer and FFMPEG_PATH to the thumbnail function only."""
        arn = "arn:aws:lambda:eu-west-1:123456789012:layer:ffmpeg:3"
        create_lambda_functions(stack, rn, role, bucket, ffmpeg_layer_arn=arn)
        template = assertions.Template.from_stack(stack)

        template.has_resource_properties(
            "AWS::Lambda::Function",
            {
                "FunctionName": "cachao-generate-thumbnail-ew1-test",
                "Timeout": 180,
                "MemorySize": 1024,
                "Layers": assertions.Match.array_with([arn]),
                "Environment": {"Variables": assertions.Match.object_like({"FFMPEG_PATH": "/opt/bin/ffmpeg"})},
            },
        )
        with_path = [
            f
            for f in template.find_resources("AWS::Lambda::Function").values()
            if "FFMPEG_PATH" in f["Properties"]["Environment"]["Variables"]
        ]
        assert len(with_path) == 1
