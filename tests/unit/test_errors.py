"""Tests for error handling utilities."""

from src.utils.errors import AppError, ErrorCode, handle_error, status_for


class TestAppError:
    """Tests for AppError class."""

    def test_app_error_with_message(self) -> None:
        """Test creating AppError with message."""
        error = AppError(ErrorCode.NOT_FOUND, "Event not found")

        assert error.error_code == ErrorCode.NOT_FOUND
        assert error.message == "Event not found"
        assert error.details == {}
        assert str(error) == "Event not found"

    def test_app_error_with_details(self) -> None:
        """Test creating AppError with details."""
        details = {"order_id": "42"}
        error = AppError(ErrorCode.NOT_FOUND, "Order not found", details)

        assert error.details == details

    def test_app_error_to_dict(self) -> None:
        """Test converting AppError to dict."""
        error = AppError(ErrorCode.FORBIDDEN, "No permission", {"resource": "event"})

        result = error.to_dict()

        assert result["errorCode"] == ErrorCode.FORBIDDEN
        assert result["message"] == "No permission"
        assert result["resource"] == "event"

    def test_status_code_follows_error_code(self) -> None:
        """Test status_code property maps the error code."""
        assert AppError(ErrorCode.INVALID_INPUT, "bad").status_code == 400
        assert AppError(ErrorCode.PAYMENT_ERROR, "stripe down").status_code == 502


class TestStatusFor:
    """Tests for status_for function."""

    def test_client_errors(self) -> None:
        assert status_for(ErrorCode.UNAUTHORIZED) == 401
        assert status_for(ErrorCode.FORBIDDEN) == 403
        assert status_for(ErrorCode.NOT_FOUND) == 404
        assert status_for(ErrorCode.ALREADY_EXISTS) == 409
        assert status_for(ErrorCode.CONFLICT) == 409
        assert status_for(ErrorCode.RATE_LIMITED) == 429

    def test_server_errors(self) -> None:
        assert status_for(ErrorCode.CONFIGURATION_ERROR) == 500
        assert status_for(ErrorCode.INTERNAL_ERROR) == 500
        assert status_for(ErrorCode.DATABASE_ERROR) == 500

    def test_unknown_code_is_500(self) -> None:
        """Test unknown error codes fall back to 500."""
        assert status_for("SOMETHING_ELSE") == 500


class TestHandleError:
    """Tests for handle_error function."""

    def test_handle_app_error(self) -> None:
        """Test handling AppError returns error dict."""
        error = AppError(ErrorCode.INVALID_INPUT, "Bad request", {"field": "name"})

        result = handle_error(error)

        assert result["errorCode"] == ErrorCode.INVALID_INPUT
        assert result["message"] == "Bad request"
        assert result["field"] == "name"

    def test_handle_generic_exception(self) -> None:
        """Test handling generic exception returns internal error."""
        result = handle_error(ValueError("Unexpected error"))

        assert result["errorCode"] == ErrorCode.INTERNAL_ERROR
        assert "unexpected" in result["message"].lower()
