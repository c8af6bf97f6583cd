"""
Tests for the create-user provisioning Lambda
"""

import json
from typing import Any, Dict
from unittest.mock import MagicMock

import mysql.connector
import pytest
from botocore.exceptions import ClientError

from src.handlers.create_user import lambda_handler
from src.utils import cognito as cognito_utils
from src.utils.cognito import user_attribute
from tests.unit.fake_db import FakeConnection


def test_creates_cognito_user_and_row(
    cognito_pool: Dict[str, Any], fake_db: FakeConnection, lambda_context: Any
) -> None:
    result = lambda_handler({"email": " Ana@Example.com", "name": "Ana "}, lambda_context)

    assert result["created"] is True
    user = cognito_pool["client"].admin_get_user(UserPoolId=cognito_pool["pool_id"], Username="ana@example.com")
    attributes = {a["Name"]: a["Value"] for a in user["UserAttributes"]}
    assert attributes["sub"] == result["cognito_sub"]
    assert attributes["name"] == "Ana"
    assert attributes["email_verified"] == "true"
    assert fake_db.statements("INSERT INTO users")[0][1] == (result["cognito_sub"], "Ana", "Ana")


def test_accepts_json_string_payload(
    cognito_pool: Dict[str, Any], fake_db: FakeConnection, lambda_context: Any
) -> None:
    result = lambda_handler(json.dumps({"email": "ana@example.com", "name": "Ana"}), lambda_context)

    assert result["created"] is True


def test_existing_user_not_recreated(
    cognito_pool: Dict[str, Any], fake_db: FakeConnection, lambda_context: Any
) -> None:
    existing = cognito_pool["client"].admin_create_user(
        UserPoolId=cognito_pool["pool_id"],
        Username="ana@example.com",
        UserAttributes=[{"Name": "email", "Value": "ana@example.com"}],
    )["User"]

    result = lambda_handler({"email": "ana@example.com", "name": "Ana"}, lambda_context)

    assert result == {"created": False, "cognito_sub": user_attribute(existing, "sub")}
    assert fake_db.executed == []


@pytest.mark.parametrize("payload", [{"email": "ana@example.com"}, {"name": "Ana"}, {"email": " ", "name": "Ana"}])
def test_email_and_name_required(payload: Dict[str, Any], lambda_context: Any) -> None:
    result = lambda_handler(payload, lambda_context)

    assert result == {"created": False, "cognito_sub": None, "error": "Email and name are required"}


@pytest.mark.parametrize("payload", ["not json", "[1, 2]", "\"ana@example.com\"", ["ana@example.com"], None])
def test_invalid_payload_reported(payload: Any, lambda_context: Any) -> None:
    result = lambda_handler(payload, lambda_context)

    assert result == {"created": False, "cognito_sub": None, "error": "Invalid payload"}


def test_non_string_fields_reported(lambda_context: Any) -> None:
    result = lambda_handler({"email": 42, "name": "Ana"}, lambda_context)

    assert result == {"created": False, "cognito_sub": None, "error": "Email and name must be strings"}


def test_missing_pool_configuration(monkeypatch: Any, lambda_context: Any) -> None:
    monkeypatch.delenv("COGNITO_USER_POOL_ID", raising=False)
    monkeypatch.delenv("USER_POOL_ID", raising=False)

    result = lambda_handler({"email": "ana@example.com", "name": "Ana"}, lambda_context)

    assert result == {"created": False, "cognito_sub": None, "error": "Cognito User Pool ID not configured"}


def test_cognito_failure_reported(monkeypatch: Any, lambda_context: Any) -> None:
    monkeypatch.setenv("COGNITO_USER_POOL_ID", "eu-west-1_test")
    client = MagicMock()
    client.list_users.return_value = {"Users": []}
    client.admin_create_user.side_effect = ClientError(
        {"Error": {"Code": "InvalidParameterException", "Message": "bad"}}, "AdminCreateUser"
    )
    monkeypatch.setattr(cognito_utils, "cognito_client", client)

    result = lambda_handler({"email": "ana@example.com", "name": "Ana"}, lambda_context)

    assert result == {"created": False, "cognito_sub": None, "error": "Failed to create user"}


def test_no_sub_returned(monkeypatch: Any, lambda_context: Any) -> None:
    monkeypatch.setenv("COGNITO_USER_POOL_ID", "eu-west-1_test")
    client = MagicMock()
    client.list_users.return_value = {"Users": []}
    client.admin_create_user.return_value = {"User": {"Attributes": []}}
    monkeypatch.setattr(cognito_utils, "cognito_client", client)

    result = lambda_handler({"email": "ana@example.com", "name": "Ana"}, lambda_context)

    assert result["error"] == "No cognito_sub returned"


def test_database_failure_still_reports_created(
    cognito_pool: Dict[str, Any], fake_db: FakeConnection, lambda_context: Any
) -> None:
    fake_db.on("INSERT INTO users", error=mysql.connector.Error("connection lost"))

    result = lambda_handler({"email": "ana@example.com", "name": "Ana"}, lambda_context)

    assert result["created"] is True
    assert result["cognito_sub"]
