"""
Test fixtures for Lambda function tests.

Provides a fake database connection, mocked AWS resources and API Gateway
event builders.
"""

import json
import os
from typing import Any, Callable, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

from src.utils import cognito as cognito_utils
from src.utils import db as db_utils
from src.utils import storage as storage_utils
from tests.unit.fake_db import FakeConnection
from tests.unit.fixtures import BUCKET_NAME, REGION


@pytest.fixture(autouse=True)
def aws_credentials() -> Generator[None, None, None]:
    """Set fake AWS credentials and service configuration for moto."""
    overrides = {
        "AWS_ACCESS_KEY_ID": "testing",
        "AWS_SECRET_ACCESS_KEY": "testing",
        "AWS_SECURITY_TOKEN": "testing",
        "AWS_SESSION_TOKEN": "testing",
        "AWS_DEFAULT_REGION": REGION,
        "AWS_REGION": REGION,
        "S3_BUCKET_NAME": BUCKET_NAME,
        "DB_HOST": "localhost",
        "DB_USER": "test",
        "DB_NAME": "cachao_test",
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test_123",
        "FRONTEND_URL": "https://cachao.test",
    }
    saved = {key: os.environ.get(key) for key in overrides}
    os.environ.update(overrides)
    yield
    for key, value in saved.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def fake_db() -> Generator[FakeConnection, None, None]:
    """Route every get_connection() call to a FakeConnection."""
    connection = FakeConnection()
    db_utils.override_connection(connection)
    yield connection
    db_utils.clear_override()


@pytest.fixture
def s3_bucket() -> Generator[Any, None, None]:
    """Mocked media bucket; storage helpers use a client bound to it."""
    with mock_aws():
        s3 = boto3.client("s3", region_name=REGION)
        s3.create_bucket(Bucket=BUCKET_NAME, CreateBucketConfiguration={"LocationConstraint": REGION})
        storage_utils.s3_client = s3
        yield s3
        storage_utils.s3_client = None


@pytest.fixture
def cognito_pool() -> Generator[Dict[str, Any], None, None]:
    """Mocked user pool with a USER_PASSWORD_AUTH app client."""
    with mock_aws():
        client = boto3.client("cognito-idp", region_name=REGION)
        pool_id = client.create_user_pool(PoolName="cachao-test")["UserPool"]["Id"]
        client_id = client.create_user_pool_client(
            UserPoolId=pool_id,
            ClientName="web",
            ExplicitAuthFlows=["ALLOW_USER_PASSWORD_AUTH", "ALLOW_REFRESH_TOKEN_AUTH"],
        )["UserPoolClient"]["ClientId"]

        os.environ["COGNITO_USER_POOL_ID"] = pool_id
        os.environ["COGNITO_CLIENT_ID"] = client_id
        cognito_utils.cognito_client = client
        yield {"client": client, "pool_id": pool_id, "client_id": client_id}
        cognito_utils.cognito_client = None
        os.environ.pop("COGNITO_USER_POOL_ID", None)
        os.environ.pop("COGNITO_CLIENT_ID", None)


@pytest.fixture
def lambda_context() -> Any:
    """Mock Lambda context"""
    context = MagicMock()
    context.function_name = "test-function"
    context.aws_request_id = "test-request-id"
    return context


@pytest.fixture
def api_event() -> Callable[..., Dict[str, Any]]:
    """Factory for API Gateway proxy events."""

    def _build(
        method: str,
        path: str,
        body: Optional[Any] = None,
        sub: Optional[str] = None,
        email: Optional[str] = None,
        groups: Optional[List[str]] = None,
        headers: Optional[Dict[str, str]] = None,
        query: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        event: Dict[str, Any] = {
            "httpMethod": method,
            "path": path,
            "headers": dict(headers or {}),
            "queryStringParameters": query,
            "requestContext": {"requestId": "req-123"},
            "isBase64Encoded": False,
            "body": body if isinstance(body, str) or body is None else json.dumps(body),
        }
        if sub:
            claims: Dict[str, Any] = {"sub": sub}
            if email:
                claims["email"] = email
            if groups:
                claims["cognito:groups"] = groups
            event["requestContext"]["authorizer"] = {"claims": claims}
        return event

    return _build
