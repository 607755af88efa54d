"""Canonical bytes for license documents.

Canonical bytes are the exact payload that gets signed and verified:

- a compact JSON object with no insignificant whitespace
- object keys sorted by code point at every nesting level
- the ``Signature`` field and any excluded names removed at every level
  (names compare case-insensitively)
- arrays keep their order
- numbers by value, not by Python type: integers within the signed 64-bit
  range as integers, everything else as exact decimal digits (plain notation,
  or exponent notation for very large or very small magnitudes)
- UTF-8 output, non-ASCII characters kept as-is

Encoding never mutates its input. Values outside the closed set of field
types raise :class:`~simplelicense.core.CanonicalizationError`.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional

from simplelicense.core import SIGNATURE_FIELD, CanonicalizationError, format_utc

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

# Adjusted exponents outside this window use exponent notation.
_DECIMAL_EXP_LIMIT = 28


def exclusion_set(excluded_field_names: Optional[Iterable[str]] = None) -> FrozenSet[str]:
    """Casefolded exclusion names, always including the signature field."""
    names = {SIGNATURE_FIELD.casefold()}
    if excluded_field_names is not None:
        if isinstance(excluded_field_names, str):
            excluded_field_names = [excluded_field_names]
        for name in excluded_field_names:
            if isinstance(name, str) and name.strip():
                names.add(name.strip().casefold())
    return frozenset(names)


def encode(document: Any, excluded_field_names: Optional[Iterable[str]] = None) -> bytes:
    """Return the canonical bytes of a document or a plain mapping.

    ``document`` may be anything with a ``to_wire_dict()`` method (a
    :class:`~simplelicense.document.LicenseDocument`) or a mapping.
    """
    if document is None:
        raise TypeError("document must not be None")
    to_wire = getattr(document, "to_wire_dict", None)
    try:
        root = to_wire() if callable(to_wire) else document
    except (TypeError, ValueError) as exc:
        raise CanonicalizationError(f"could not serialize document fields: {exc}") from exc
    if not isinstance(root, Mapping):
        raise CanonicalizationError(f"canonical root must be an object, got {type(root).__name__}")

    out: List[str] = []
    _write(root, exclusion_set(excluded_field_names), out)
    text = "".join(out)
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise CanonicalizationError(f"text is not encodable as UTF-8: {exc}") from exc


def canonical_json(value: Any, excluded_field_names: Optional[Iterable[str]] = None) -> str:
    """Canonical text for an arbitrary value (no signature exclusion at non-object roots)."""
    out: List[str] = []
    _write(value, exclusion_set(excluded_field_names), out)
    return "".join(out)


def format_number(value: Any) -> str:
    """Canonical text of a number.

    Integral values inside the signed 64-bit range print as integers. Every
    other value, whatever its Python type, prints as its exact decimal digits
    with trailing zeros dropped: plain notation while the decimal exponent
    stays within +/-28, exponent notation (``1e+30``) beyond that. Floats are
    taken at their shortest repr.
    """
    if isinstance(value, bool):
        raise CanonicalizationError("booleans are not numbers")

    if isinstance(value, int):
        if INT64_MIN <= value <= INT64_MAX:
            return str(value)
        return _decimal_text(Decimal(value))

    if isinstance(value, float):
        if not math.isfinite(value):
            raise CanonicalizationError(f"non-finite number {value!r} cannot be encoded")
        if value.is_integer() and INT64_MIN <= value <= INT64_MAX:
            return str(int(value))
        return _decimal_text(Decimal(repr(value)))

    if isinstance(value, Decimal):
        if not value.is_finite():
            raise CanonicalizationError(f"non-finite number {value} cannot be encoded")
        if value == value.to_integral_value() and INT64_MIN <= value <= INT64_MAX:
            return str(int(value))
        return _decimal_text(value)

    raise CanonicalizationError(f"not a number: {type(value).__name__}")


def _decimal_text(dec: Decimal) -> str:
    # as_tuple() keeps every digit; normalize() would round to the context precision.
    sign, digit_tuple, exponent = dec.as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    if digits == [0]:
        return "0"
    coeff = "".join(str(d) for d in digits)
    prefix = "-" if sign else ""
    adjusted = exponent + len(coeff) - 1
    if abs(adjusted) > _DECIMAL_EXP_LIMIT:
        mantissa = coeff[0] + ("." + coeff[1:] if len(coeff) > 1 else "")
        return f"{prefix}{mantissa}e{adjusted:+d}"
    if exponent >= 0:
        return prefix + coeff + "0" * exponent
    point = len(coeff) + exponent
    if point > 0:
        return f"{prefix}{coeff[:point]}.{coeff[point:]}"
    return f"{prefix}0.{'0' * -point}{coeff}"


def _write(value: Any, excluded: FrozenSet[str], out: List[str]) -> None:
    if value is None:
        out.append("null")
    elif value is True:
        out.append("true")
    elif value is False:
        out.append("false")
    elif isinstance(value, str):
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, (int, float, Decimal)):
        out.append(format_number(value))
    elif isinstance(value, datetime):
        out.append(json.dumps(format_utc(value)))
    elif isinstance(value, date):
        out.append(json.dumps(value.isoformat()))
    elif isinstance(value, Mapping):
        _write_object(value, excluded, out)
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for i, item in enumerate(value):
            if i:
                out.append(",")
            _write(item, excluded, out)
        out.append("]")
    else:
        raise CanonicalizationError(f"unsupported value type: {type(value).__name__}")


def _write_object(obj: Mapping, excluded: FrozenSet[str], out: List[str]) -> None:
    for key in obj:
        if not isinstance(key, str):
            raise CanonicalizationError(f"object keys must be strings, got {type(key).__name__}")
    keys = sorted(k for k in obj if k.casefold() not in excluded)
    out.append("{")
    for i, key in enumerate(keys):
        if i:
            out.append(",")
        out.append(json.dumps(key, ensure_ascii=False))
        out.append(":")
        _write(obj[key], excluded, out)
    out.append("}")
