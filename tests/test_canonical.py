"""Tests for canonical license bytes."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from simplelicense.canonical import INT64_MAX, canonical_json, encode, exclusion_set, format_number
from simplelicense.core import CanonicalizationError
from simplelicense.document import LicenseDocument


def _doc(**fields):
    doc = LicenseDocument()
    doc.set_fields(fields)
    return doc


class TestEncode:
    """Shape of the canonical bytes."""

    def test_sorted_compact_without_signature(self):
        doc = _doc(LicenseId="ABC-123", MaxUsers=50, ExpiryUtc="2027-01-01T00:00:00Z", Signature="c2ln")
        assert encode(doc) == b'{"ExpiryUtc":"2027-01-01T00:00:00Z","LicenseId":"ABC-123","MaxUsers":50}'

    def test_insertion_order_irrelevant(self):
        a = _doc(LicenseId="A", ExpiryUtc=2030, B=1, A=2)
        b = _doc(A=2, B=1, ExpiryUtc=2030, LicenseId="A")
        assert encode(a) == encode(b)

    def test_pure(self):
        doc = _doc(LicenseId="A", ExpiryUtc=2030, Signature="c2ln")
        before = doc.fields()
        encode(doc, ["LicenseId"])
        assert doc.fields() == before

    def test_deterministic(self):
        doc = _doc(LicenseId="A", ExpiryUtc=2030, Nested={"z": [1, {"b": 2, "a": 1}], "a": None})
        assert encode(doc) == encode(doc)
        assert b'"Nested":{"a":null,"z":[1,{"a":1,"b":2}]}' in encode(doc)

    def test_exclusions_case_insensitive_and_recursive(self):
        doc = _doc(LicenseId="A", ExpiryUtc=2030, Info={"signature": "x", "Keep": 1, "secret": 2})
        out = encode(doc, ["SECRET"])
        assert out == b'{"ExpiryUtc":"2030-01-01T00:00:00Z","Info":{"Keep":1},"LicenseId":"A"}'

    def test_utf8_output(self):
        doc = _doc(LicenseId="Ä", ExpiryUtc=2030)
        assert '"LicenseId":"Ä"'.encode("utf-8") in encode(doc)

    def test_control_characters_escaped(self):
        assert canonical_json({"a": "x\ny"}) == '{"a":"x\\ny"}'

    def test_plain_mapping(self):
        assert encode({"b": True, "a": False, "Signature": "s"}) == b'{"a":false,"b":true}'

    def test_non_object_root_rejected(self):
        with pytest.raises(CanonicalizationError):
            encode([1, 2])

    def test_unsupported_value_rejected(self):
        with pytest.raises(CanonicalizationError):
            encode({"a": object()})

    def test_non_string_key_rejected(self):
        with pytest.raises(CanonicalizationError):
            encode({"a": {1: "x"}})

    def test_datetime_value(self):
        assert canonical_json({"t": datetime(2027, 1, 1, tzinfo=timezone.utc)}) == '{"t":"2027-01-01T00:00:00Z"}'

    def test_none_document(self):
        with pytest.raises(TypeError):
            encode(None)


class TestNumbers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, "0"),
            (-7, "-7"),
            (5.0, "5"),
            (Decimal("5.000"), "5"),
            (0.5, "0.5"),
            (Decimal("1.10"), "1.1"),
            (Decimal("-0.000001"), "-0.000001"),
            (INT64_MAX, str(INT64_MAX)),
            (10 ** 30, "1e+30"),
            (10 ** 20, "100000000000000000000"),
            (-(10 ** 30) - 7, "-1.000000000000000000000000000007e+30"),
            (Decimal("0.12345678901234567890123"), "0.12345678901234567890123"),
            (Decimal("1234567890.123456789012345678901234"), "1234567890.123456789012345678901234"),
            (Decimal("1E-40"), "1e-40"),
            (Decimal("-0.00"), "0"),
            (1e300, "1e+300"),
        ],
    )
    def test_format(self, value, expected):
        assert format_number(value) == expected

    @pytest.mark.parametrize(
        "values",
        [
            [5, 5.0, Decimal("5"), Decimal("5.000"), Decimal("0.5E+1")],
            [10 ** 30, 1e30, Decimal("1E+30"), Decimal("1000000000000000000000000000000")],
            [2 ** 63, Decimal(2 ** 63), Decimal("9.223372036854775808E+18")],
            [0.1, Decimal("0.1"), Decimal("0.10000")],
            [-1e-40, Decimal("-1E-40"), Decimal("-0.0001E-36")],
        ],
    )
    def test_same_value_same_bytes(self, values):
        encoded = {encode({"n": v}) for v in values}
        assert len(encoded) == 1

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), Decimal("NaN")])
    def test_non_finite_rejected(self, value):
        with pytest.raises(CanonicalizationError):
            format_number(value)

    def test_bool_is_not_number(self):
        with pytest.raises(CanonicalizationError):
            format_number(True)

    def test_nan_in_document(self):
        with pytest.raises(CanonicalizationError):
            encode({"x": float("nan")})


class TestExclusionSet:
    def test_always_contains_signature(self):
        assert exclusion_set() == frozenset({"signature"})

    def test_normalizes(self):
        assert exclusion_set(["  Foo ", "", None, "BAR"]) == frozenset({"signature", "foo", "bar"})

    def test_single_string(self):
        assert exclusion_set("Notes") == frozenset({"signature", "notes"})
