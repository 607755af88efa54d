"""Field-level validators and serializers for license documents.

Validation is two-tiered:

1. Field level (this module): is *this value* acceptable for *this field*?
   Validators may normalize (trim strings, coerce numeric text, parse dates
   into aware UTC datetimes) and are applied every time a field is set.
2. Schema level (:mod:`simplelicense.schema`): does a whole document carry the
   fields a schema requires, with the declared types?

Validators and serializers live in a :class:`FieldRegistry`. A registry is an
explicit object handed to each :class:`~simplelicense.document.LicenseDocument`;
tests and callers can build isolated registries with
:meth:`FieldRegistry.with_defaults`. Lookups are case-insensitive and
registration overwrites any existing entry of the same name.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from simplelicense.core import (
    EXPIRY_FIELD,
    LICENSE_ID_FIELD,
    SIGNATURE_FIELD,
    format_utc,
    parse_iso8601,
    to_utc,
)

# The closed set of values a document field may hold.
FieldValue = Union[
    None, str, bool, int, float, Decimal, datetime, date, List[Any], Dict[str, Any]
]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a field validation.

    ``value`` is the normalized value to store when ``ok`` is true.
    """

    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> "ValidationResult":
        return cls(True, value, None)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(False, None, error)

    def __bool__(self) -> bool:
        return self.ok


FieldValidator = Callable[[Any], ValidationResult]
FieldSerializer = Callable[[Any], Any]


def describe_type(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def as_number(value: Any) -> Optional[Union[int, float, Decimal]]:
    """Return ``value`` as a number, or None when it is not numeric.

    Booleans are not numbers here even though ``bool`` subclasses ``int``.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return value
    return None


def is_integral(num: Union[int, float, Decimal]) -> bool:
    try:
        return num == int(num)
    except (ValueError, OverflowError):
        return False


def coerce_number(value: Any) -> Optional[Union[int, float, Decimal]]:
    """Like :func:`as_number` but also accepts numeric-looking strings."""
    n = as_number(value)
    if n is not None or not isinstance(value, str):
        return n
    s = value.strip()
    if not s:
        return None
    if re.fullmatch(r"[+-]?\d+", s):
        return int(s)
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    if not d.is_finite():
        return None
    return d


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class FieldRegistry:
    """Name-keyed validators and serializers.

    Writes are serialized by a lock and publish a fresh dict, so readers always
    see a consistent snapshot without locking.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._validators: Dict[str, Tuple[str, FieldValidator]] = {}
        self._serializers: Dict[str, Tuple[str, FieldSerializer]] = {}

    @classmethod
    def with_defaults(cls) -> "FieldRegistry":
        """Build a registry seeded with the default validators and serializers."""
        reg = cls()
        for name, fn in _DEFAULT_VALIDATORS.items():
            reg.register_validator(name, fn)
        for name, fn in _DEFAULT_SERIALIZERS.items():
            reg.register_serializer(name, fn)
        return reg

    @staticmethod
    def _key(name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("field name must be a non-empty string")
        return name.casefold()

    def register_validator(self, name: str, validator: FieldValidator) -> None:
        if validator is None:
            raise TypeError("validator must not be None")
        key = self._key(name)
        with self._lock:
            table = dict(self._validators)
            table[key] = (name, validator)
            self._validators = table

    def register_serializer(self, name: str, serializer: FieldSerializer) -> None:
        if serializer is None:
            raise TypeError("serializer must not be None")
        key = self._key(name)
        with self._lock:
            table = dict(self._serializers)
            table[key] = (name, serializer)
            self._serializers = table

    def unregister_validator(self, name: str) -> bool:
        key = self._key(name)
        with self._lock:
            if key not in self._validators:
                return False
            table = dict(self._validators)
            del table[key]
            self._validators = table
            return True

    def unregister_serializer(self, name: str) -> bool:
        key = self._key(name)
        with self._lock:
            if key not in self._serializers:
                return False
            table = dict(self._serializers)
            del table[key]
            self._serializers = table
            return True

    def get_validator(self, name: str) -> Optional[FieldValidator]:
        entry = self._validators.get(name.casefold())
        return entry[1] if entry else None

    def get_serializer(self, name: str) -> Optional[FieldSerializer]:
        entry = self._serializers.get(name.casefold())
        return entry[1] if entry else None

    def validator_names(self) -> List[str]:
        return [name for name, _ in self._validators.values()]

    def serializer_names(self) -> List[str]:
        return [name for name, _ in self._serializers.values()]

    def copy(self) -> "FieldRegistry":
        other = FieldRegistry()
        other._validators = dict(self._validators)
        other._serializers = dict(self._serializers)
        return other


# ---------------------------------------------------------------------------
# Default validators
# ---------------------------------------------------------------------------

_DEFAULT_VALIDATORS: Dict[str, FieldValidator] = {}
_DEFAULT_SERIALIZERS: Dict[str, FieldSerializer] = {}


def field_validator(field_name: str) -> Callable[[FieldValidator], FieldValidator]:
    """Mark a function as a default validator for ``field_name``."""

    def deco(fn: FieldValidator) -> FieldValidator:
        _DEFAULT_VALIDATORS[field_name] = fn
        return fn

    return deco


def field_serializer(field_name: str) -> Callable[[FieldSerializer], FieldSerializer]:
    """Mark a function as a default serializer for ``field_name``."""

    def deco(fn: FieldSerializer) -> FieldSerializer:
        _DEFAULT_SERIALIZERS[field_name] = fn
        return fn

    return deco


def _non_blank_string(label: str, value: Any, *, required: bool) -> ValidationResult:
    if value is None:
        if required:
            return ValidationResult.fail(f"{label} is required and cannot be null")
        return ValidationResult.success(None)
    if isinstance(value, str):
        if not value.strip():
            return ValidationResult.fail(f"{label} cannot be empty or whitespace")
        return ValidationResult.success(value.strip())
    return ValidationResult.fail(f"{label} must be a string, but was {describe_type(value)}")


@field_validator(LICENSE_ID_FIELD)
def validate_license_id(value: Any) -> ValidationResult:
    """LicenseId: a non-empty string, trimmed."""
    return _non_blank_string("LicenseId", value, required=True)


@field_validator(EXPIRY_FIELD)
def validate_expiry_utc(value: Any) -> ValidationResult:
    """ExpiryUtc: normalizes datetimes, dates, numbers and strings to aware UTC."""
    if value is None:
        return ValidationResult.fail("ExpiryUtc is required and cannot be null")

    if isinstance(value, datetime):
        return ValidationResult.success(to_utc(value))

    if isinstance(value, date):
        return ValidationResult.success(datetime(value.year, value.month, value.day, tzinfo=timezone.utc))

    numeric = as_number(value)
    if numeric is not None:
        dt = datetime_from_number(numeric)
        if dt is None:
            return ValidationResult.fail(
                f"Numeric value {numeric} could not be interpreted as a valid date/time"
            )
        return ValidationResult.success(dt)

    if isinstance(value, str):
        dt = parse_datetime(value)
        if dt is None:
            return ValidationResult.fail(f"String value '{value}' could not be parsed as a valid date/time")
        return ValidationResult.success(dt)

    return ValidationResult.fail(f"ExpiryUtc must be a date/time value, but was {describe_type(value)}")


@field_validator(SIGNATURE_FIELD)
def validate_signature(value: Any) -> ValidationResult:
    """Signature: None for unsigned licenses, otherwise a non-empty string."""
    if value is None:
        return ValidationResult.success(None)
    if isinstance(value, str):
        if not value.strip():
            return ValidationResult.fail("Signature cannot be empty or whitespace if provided")
        return ValidationResult.success(value)
    return ValidationResult.fail(f"Signature must be a string or null, but was {describe_type(value)}")


@field_validator("MaxUsers")
def validate_max_users(value: Any) -> ValidationResult:
    """MaxUsers: optional non-negative integer; numeric text is accepted."""
    if value is None:
        return ValidationResult.success(None)
    num = coerce_number(value)
    if num is None:
        return ValidationResult.fail(f"MaxUsers must be a number, but was {describe_type(value)}")
    if num < 0:
        return ValidationResult.fail("MaxUsers must be non-negative")
    if not is_integral(num):
        return ValidationResult.fail("MaxUsers must be an integer")
    return ValidationResult.success(int(num))


@field_validator("CustomerName")
def validate_customer_name(value: Any) -> ValidationResult:
    return _non_blank_string("CustomerName", value, required=False)


@field_serializer(EXPIRY_FIELD)
def serialize_expiry_utc(value: Any) -> Any:
    """Render ExpiryUtc as an ISO-8601 UTC string."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        if not isinstance(value, datetime):
            value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        return format_utc(value)
    if isinstance(value, str):
        parsed = parse_iso8601(value)
        return format_utc(parsed) if parsed is not None else value
    return value


# ---------------------------------------------------------------------------
# Date/time parsing
# ---------------------------------------------------------------------------

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Unix seconds representable as 0001-01-01 .. 9999-12-31T23:59:59
_MIN_UNIX_SECONDS = -62135596800
_MAX_UNIX_SECONDS = 253402300799

_LOCAL_DATETIME_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
)
_LOCAL_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%m-%d-%Y",
)


def datetime_from_number(numeric: Union[int, float, Decimal]) -> Optional[datetime]:
    """Interpret a number as a year, Unix seconds or Unix milliseconds."""
    if isinstance(numeric, float) and (numeric != numeric or numeric in (float("inf"), float("-inf"))):
        return None
    if isinstance(numeric, Decimal) and not numeric.is_finite():
        return None
    if 1 <= numeric <= 9999 and numeric == int(numeric):
        return datetime(int(numeric), 1, 1, tzinfo=timezone.utc)
    if _MIN_UNIX_SECONDS <= numeric <= _MAX_UNIX_SECONDS:
        return _EPOCH + timedelta(seconds=float(numeric))
    if _MIN_UNIX_SECONDS * 1000 <= numeric <= _MAX_UNIX_SECONDS * 1000:
        return _EPOCH + timedelta(milliseconds=float(numeric))
    return None


def parse_datetime(text: str) -> Optional[datetime]:
    """Parse a date/time string using several common layouts.

    Returns an aware UTC datetime, or None. Values without an offset are taken
    to be UTC.
    """
    if not isinstance(text, str) or not text.strip():
        return None
    s = text.strip()

    iso = parse_iso8601(s)
    if iso is not None:
        return to_utc(iso)

    for fmt in _LOCAL_DATETIME_FORMATS + _LOCAL_DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    if re.fullmatch(r"[+-]?\d+", s):
        return datetime_from_number(int(s))
    return None
