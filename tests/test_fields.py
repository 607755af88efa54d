"""Tests for field validators, serializers and the field registry."""

import threading
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from simplelicense.fields import (
    FieldRegistry,
    ValidationResult,
    as_number,
    coerce_number,
    datetime_from_number,
    parse_datetime,
    serialize_expiry_utc,
    validate_customer_name,
    validate_expiry_utc,
    validate_license_id,
    validate_max_users,
    validate_signature,
)


class TestValidationResult:
    """ValidationResult helpers."""

    def test_success(self):
        r = ValidationResult.success(5)
        assert r.ok and r.value == 5 and r.error is None
        assert bool(r) is True

    def test_fail(self):
        r = ValidationResult.fail("bad")
        assert not r.ok and r.value is None and r.error == "bad"
        assert bool(r) is False


class TestNumbers:
    def test_bool_is_not_a_number(self):
        assert as_number(True) is None
        assert coerce_number(False) is None

    def test_coerce_numeric_text(self):
        assert coerce_number(" 42 ") == 42
        assert coerce_number("1.5") == Decimal("1.5")
        assert coerce_number("abc") is None
        assert coerce_number("NaN") is None
        assert coerce_number("") is None


class TestLicenseIdValidator:
    """LicenseId must be a non-blank string."""

    def test_trims(self):
        assert validate_license_id("  ABC-1 ").value == "ABC-1"

    @pytest.mark.parametrize("value", [None, "", "   ", 12])
    def test_rejects(self, value):
        assert not validate_license_id(value).ok


class TestExpiryValidator:
    """ExpiryUtc accepts several representations and normalizes to aware UTC."""

    def test_aware_datetime_converted_to_utc(self):
        tz = timezone(timedelta(hours=2))
        r = validate_expiry_utc(datetime(2027, 1, 1, 2, 0, tzinfo=tz))
        assert r.value == datetime(2027, 1, 1, tzinfo=timezone.utc)
        assert r.value.tzinfo == timezone.utc

    def test_naive_datetime_taken_as_utc(self):
        r = validate_expiry_utc(datetime(2027, 1, 1))
        assert r.value == datetime(2027, 1, 1, tzinfo=timezone.utc)

    def test_date(self):
        assert validate_expiry_utc(date(2030, 5, 6)).value == datetime(2030, 5, 6, tzinfo=timezone.utc)

    def test_iso_string(self):
        r = validate_expiry_utc("2027-01-01T00:00:00Z")
        assert r.value == datetime(2027, 1, 1, tzinfo=timezone.utc)

    def test_slash_date_string(self):
        assert validate_expiry_utc("12/31/2026").value == datetime(2026, 12, 31, tzinfo=timezone.utc)

    def test_year_number(self):
        assert validate_expiry_utc(2030).value == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_unix_seconds(self):
        assert validate_expiry_utc(1700000000).value == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_unix_milliseconds(self):
        ms = 1700000000 * 1000 + 10 ** 12
        r = validate_expiry_utc(ms)
        assert r.ok
        assert r.value == datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=ms)

    @pytest.mark.parametrize("value", [None, "not a date", True, [2030], float("nan"), 10 ** 20])
    def test_rejects(self, value):
        assert not validate_expiry_utc(value).ok

    def test_error_messages(self):
        assert validate_expiry_utc(None).error == "ExpiryUtc is required and cannot be null"
        assert "could not be parsed" in validate_expiry_utc("nope").error


class TestSignatureValidator:
    def test_null_allowed(self):
        r = validate_signature(None)
        assert r.ok and r.value is None

    def test_string_kept_verbatim(self):
        assert validate_signature("abc=").value == "abc="

    @pytest.mark.parametrize("value", ["", "  ", 5])
    def test_rejects(self, value):
        assert not validate_signature(value).ok


class TestMaxUsersValidator:
    @pytest.mark.parametrize("value,expected", [(5, 5), ("7", 7), (3.0, 3), (None, None), (0, 0)])
    def test_accepts(self, value, expected):
        r = validate_max_users(value)
        assert r.ok and r.value == expected

    @pytest.mark.parametrize("value", [-1, 2.5, "many", True, float("nan")])
    def test_rejects(self, value):
        assert not validate_max_users(value).ok


class TestCustomerNameValidator:
    def test_optional(self):
        assert validate_customer_name(None).ok

    def test_trims_and_rejects_blank(self):
        assert validate_customer_name(" Acme ").value == "Acme"
        assert not validate_customer_name(" ").ok


class TestExpirySerializer:
    def test_datetime(self):
        assert serialize_expiry_utc(datetime(2027, 1, 1, tzinfo=timezone.utc)) == "2027-01-01T00:00:00Z"

    def test_string_normalized(self):
        assert serialize_expiry_utc("2027-01-01T02:00:00+02:00") == "2027-01-01T00:00:00Z"

    def test_unparseable_string_passthrough(self):
        assert serialize_expiry_utc("someday") == "someday"

    def test_none(self):
        assert serialize_expiry_utc(None) is None


class TestDateParsing:
    def test_numeric_string(self):
        assert parse_datetime("2031") == datetime(2031, 1, 1, tzinfo=timezone.utc)

    def test_blank(self):
        assert parse_datetime("  ") is None

    def test_out_of_range_number(self):
        assert datetime_from_number(10 ** 18) is None

    def test_non_integral_small_number_is_seconds(self):
        assert datetime_from_number(1.5) == datetime(1970, 1, 1, 0, 0, 1, 500000, tzinfo=timezone.utc)


class TestFieldRegistry:
    """Explicit, isolated registries."""

    def test_defaults_present(self, registry):
        names = {n.casefold() for n in registry.validator_names()}
        assert {"licenseid", "expiryutc", "signature", "maxusers", "customername"} <= names
        assert registry.get_serializer("expiryutc") is serialize_expiry_utc

    def test_lookup_is_case_insensitive(self, registry):
        assert registry.get_validator("LICENSEID") is validate_license_id

    def test_registration_overwrites(self, registry):
        def always_fail(value):
            return ValidationResult.fail("no")

        registry.register_validator("maxusers", always_fail)
        assert registry.get_validator("MaxUsers") is always_fail

    def test_unregister(self, registry):
        assert registry.unregister_validator("CustomerName") is True
        assert registry.get_validator("CustomerName") is None
        assert registry.unregister_validator("CustomerName") is False

    def test_registries_are_isolated(self):
        a = FieldRegistry.with_defaults()
        b = FieldRegistry.with_defaults()
        a.unregister_validator("MaxUsers")
        assert b.get_validator("MaxUsers") is validate_max_users

    def test_copy_is_independent(self, registry):
        clone = registry.copy()
        clone.unregister_serializer("ExpiryUtc")
        assert registry.get_serializer("ExpiryUtc") is not None

    def test_rejects_blank_name_and_none(self, registry):
        with pytest.raises(ValueError):
            registry.register_validator("  ", validate_signature)
        with pytest.raises(TypeError):
            registry.register_validator("X", None)

    def test_concurrent_registration(self, registry):
        """Registrations from many threads all land."""
        count = 20
        barrier = threading.Barrier(count)
        errors = []

        def register(idx):
            barrier.wait()
            try:
                for j in range(25):
                    name = f"Field{idx}_{j}"
                    registry.register_validator(name, lambda value, _n=name: ValidationResult.success(_n))
                    registry.register_serializer(name, lambda value, _n=name: _n)
                    registry.get_validator("LicenseId")
            except Exception as exc:  # collected for the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=register, args=(i,)) for i in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        validators = {n.casefold() for n in registry.validator_names()}
        serializers = {n.casefold() for n in registry.serializer_names()}
        for idx in range(count):
            for j in range(25):
                name = f"Field{idx}_{j}"
                assert name.casefold() in validators
                assert name.casefold() in serializers
                assert registry.get_validator(name)(None).value == name
                assert registry.get_serializer(name.upper())(None) == name
        assert registry.get_validator("LicenseId") is validate_license_id
