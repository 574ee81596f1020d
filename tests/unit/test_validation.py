"""Unit tests for per-field validation."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from row_object.core.fields import (
    Field,
    boolean,
    datetime_field,
    decimal,
    foreign_key,
    integer,
    json_field,
    many_to_many,
    text,
)
from row_object.core.validation import validate_value, validate_values


class TestValidateValue:
    async def test_required(self) -> None:
        for missing in (None, ""):
            error = await validate_value("sku", text(required=True), missing, "Product")
            assert error is not None
            assert error.code == "VALIDATION_REQUIRED_FIELD"

    async def test_optional_missing_is_fine(self) -> None:
        assert await validate_value("note", text(), None, "Order") is None

    @pytest.mark.parametrize(
        ("fld", "value"),
        [
            (text(), 5),
            (integer(), "5"),
            (integer(), True),
            (decimal(), "1.5"),
            (boolean(), 1),
            (datetime_field(), "not a date"),
            (foreign_key("Category"), 7),
        ],
    )
    async def test_type_mismatch(self, fld: Field, value: Any) -> None:
        error = await validate_value("f", fld, value, "Thing")
        assert error is not None
        assert error.code == "VALIDATION_INVALID_VALUE"

    @pytest.mark.parametrize(
        ("fld", "value"),
        [
            (decimal(), 3),
            (datetime_field(), datetime(2024, 1, 1)),
            (datetime_field(), "2024-01-01T10:00:00Z"),
            (json_field(), {"any": ["thing"]}),
            (boolean(), False),
        ],
    )
    async def test_accepted_values(self, fld: Field, value: Any) -> None:
        assert await validate_value("f", fld, value, "Thing") is None

    async def test_range(self) -> None:
        error = await validate_value("price", decimal(min=0, max=10), 11, "Product")
        assert error is not None
        assert error.code == "VALIDATION_RANGE_ERROR"
        assert error.details["max"] == 10
        assert await validate_value("price", decimal(min=0), 0, "Product") is None

    async def test_length_and_pattern(self) -> None:
        assert await validate_value("code", text(min_length=3), "ab", "T") is not None
        assert await validate_value("code", text(max_length=3), "abcd", "T") is not None
        assert await validate_value("code", text(pattern=r"^[A-Z]+$"), "abc", "T") is not None
        assert await validate_value("code", text(pattern=r"^[A-Z]+$"), "ABC", "T") is None

    async def test_custom_validator_message(self) -> None:
        fld = text(validate=lambda v: v.startswith("SKU-"), message="SKU must start with SKU-")
        error = await validate_value("sku", fld, "A-1", "Product")
        assert error is not None
        assert error.code == "VALIDATION_CUSTOM"
        assert error.message == "SKU must start with SKU-"
        assert await validate_value("sku", fld, "SKU-1", "Product") is None

    async def test_async_custom_validator(self) -> None:
        async def is_even(value: int) -> bool:
            return value % 2 == 0

        fld = integer(validate=is_even)
        assert await validate_value("qty", fld, 2, "Order") is None
        error = await validate_value("qty", fld, 3, "Order")
        assert error is not None
        assert "qty" in error.message


class TestValidateValues:
    async def test_reports_every_field(self) -> None:
        fields = {
            "sku": text(required=True),
            "price": decimal(min=0),
            "stock": integer(),
            "tags": many_to_many("Tag"),
        }
        report = await validate_values(
            {"sku": None, "price": -1, "stock": "many"}, fields, "Product"
        )
        assert report.fields == ["sku", "price", "stock"]

    async def test_clean_values(self) -> None:
        report = await validate_values({"sku": "A-1"}, {"sku": text(required=True)}, "Product")
        assert not report.has_errors()
