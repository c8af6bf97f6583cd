"""Tests for validation utilities."""

from typing import Any

import pytest

from src.utils.errors import AppError, ErrorCode
from src.utils.validation import (
    is_iso_date,
    is_valid_nickname,
    normalize_nickname,
    parse_non_negative_amount,
    parse_positive_int,
    require_fields,
    sanitize_filename,
    strip_extension,
    validate_discount_type,
    validate_email,
)


class TestRequireFields:
    """Tests for require_fields function."""

    def test_all_present(self) -> None:
        require_fields({"name": "Gala", "start_date": "2026-01-01"}, "name", "start_date")

    def test_single_missing_field(self) -> None:
        with pytest.raises(AppError) as exc_info:
            require_fields({"name": ""}, "name")

        assert exc_info.value.message == "name is required"
        assert exc_info.value.details == {"missingFields": ["name"]}

    def test_several_missing_fields(self) -> None:
        with pytest.raises(AppError) as exc_info:
            require_fields({}, "name", "price")

        assert exc_info.value.message == "name, price are required"


class TestFilenames:
    """Tests for sanitize_filename and strip_extension."""

    def test_sanitize_filename(self) -> None:
        assert sanitize_filename("my clip (1).mp4") == "my_clip__1_.mp4"
        assert sanitize_filename("fotó.jpg") == "fot_.jpg"

    def test_strip_extension(self) -> None:
        assert strip_extension("clip.final.mp4") == "clip.final"
        assert strip_extension("README") == "README"
        assert strip_extension(".hidden") == ".hidden"


class TestNicknames:
    """Tests for nickname helpers."""

    def test_normalize_nickname(self) -> None:
        assert normalize_nickname("  SalsaQueen ") == "salsaqueen"

    @pytest.mark.parametrize("nickname", ["abc", "dance_2026", "a" * 30])
    def test_valid_nicknames(self, nickname: str) -> None:
        assert is_valid_nickname(nickname)

    @pytest.mark.parametrize("nickname", ["ab", "a" * 31, "has space", "dash-name", ""])
    def test_invalid_nicknames(self, nickname: str) -> None:
        assert not is_valid_nickname(nickname)


class TestNumbers:
    """Tests for parse_positive_int and parse_non_negative_amount."""

    def test_parse_positive_int(self) -> None:
        assert parse_positive_int("3", "quantity") == 3
        assert parse_positive_int(2.0, "quantity") == 2

    @pytest.mark.parametrize("value", [0, -1, "abc", None, True, 1.5])
    def test_parse_positive_int_rejects(self, value: Any) -> None:
        with pytest.raises(AppError) as exc_info:
            parse_positive_int(value, "quantity")

        assert exc_info.value.error_code == ErrorCode.INVALID_INPUT
        assert "quantity" in exc_info.value.message

    def test_parse_non_negative_amount(self) -> None:
        assert parse_non_negative_amount("12.5", "price") == 12.5
        assert parse_non_negative_amount(0, "price") == 0

    @pytest.mark.parametrize("value", [-0.01, "free", None, False])
    def test_parse_non_negative_amount_rejects(self, value: Any) -> None:
        with pytest.raises(AppError):
            parse_non_negative_amount(value, "price")


class TestDiscountType:
    """Tests for validate_discount_type function."""

    def test_known_types(self) -> None:
        assert validate_discount_type("percentage") == "percentage"
        assert validate_discount_type("fixed") == "fixed"

    def test_unknown_type(self) -> None:
        with pytest.raises(AppError) as exc_info:
            validate_discount_type("bogo")

        assert exc_info.value.details == {"discount_type": "bogo"}


class TestDatesAndEmails:
    """Tests for is_iso_date and validate_email."""

    def test_is_iso_date(self) -> None:
        assert is_iso_date("2026-02-28")
        assert not is_iso_date("2026-02-30")
        assert not is_iso_date("28/02/2026")
        assert not is_iso_date(None)

    def test_validate_email_normalizes(self) -> None:
        assert validate_email("  Buyer@Example.COM ") == "buyer@example.com"

    @pytest.mark.parametrize("email", [None, "", "no-at-sign", "a@b", 42])
    def test_validate_email_rejects(self, email: Any) -> None:
        with pytest.raises(AppError) as exc_info:
            validate_email(email)

        assert exc_info.value.error_code == ErrorCode.INVALID_INPUT
