"""License documents.

A :class:`LicenseDocument` is a case-insensitive mapping of field name to
value. Every write goes through :meth:`LicenseDocument.set_field`, which runs
the registered validator for that field and stores the normalized value. There
is no item assignment.

The wire form is a JSON object with one property per field, names as stored.
Serializers from the document's :class:`~simplelicense.fields.FieldRegistry`
shape each value on the way out (``ExpiryUtc`` always leaves as an ISO-8601 UTC
string). Decimals are written as their exact digits and fractional numbers are
read back as Decimals, so a saved license re-encodes to the bytes it was
signed over.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from simplelicense.canonical import encode
from simplelicense.core import (
    MANDATORY_FIELDS,
    LicenseFormatError,
    LicenseValidationError,
    format_utc,
)
from simplelicense.fields import FieldRegistry, ValidationResult

logger = logging.getLogger(__name__)


def to_wire_value(value: Any) -> Any:
    """Convert an in-memory field value to its JSON-ready wire form."""
    if isinstance(value, datetime):
        return format_utc(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_wire_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire_value(v) for v in value]
    return value


def dumps_wire(value: Any, indent: Optional[int] = 2) -> str:
    """JSON text for a wire value, writing Decimals as their exact digits.

    Layout matches ``json.dumps`` with the same ``indent``; non-ASCII text is
    kept as-is.
    """
    out: List[str] = []
    _dump(value, indent, 0, out)
    return "".join(out)


def _dump(value: Any, indent: Optional[int], level: int, out: List[str]) -> None:
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"non-finite number {value} cannot be written")
        out.append(str(value))
    elif value is None or isinstance(value, (str, bool, int, float)):
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, dict):
        _dump_items(
            "{", "}", [(json.dumps(str(k), ensure_ascii=False) + ": ", v) for k, v in value.items()],
            indent, level, out,
        )
    elif isinstance(value, (list, tuple)):
        _dump_items("[", "]", [("", v) for v in value], indent, level, out)
    else:
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dump_items(
    open_: str,
    close: str,
    items: List[Tuple[str, Any]],
    indent: Optional[int],
    level: int,
    out: List[str],
) -> None:
    if not items:
        out.append(open_ + close)
        return
    if indent is None:
        inner, outer, sep = "", "", ", "
    else:
        inner = "\n" + " " * (indent * (level + 1))
        outer = "\n" + " " * (indent * level)
        sep = ","
    out.append(open_)
    for i, (prefix, item) in enumerate(items):
        if i:
            out.append(sep)
        out.append(inner + prefix)
        _dump(item, indent, level + 1, out)
    out.append(outer + close)


class LicenseDocument:
    """A validated, case-insensitive field mapping representing one license.

    Field names keep the spelling they were first stored with; later writes
    with a different case update the same field.
    """

    def __init__(
        self,
        registry: Optional[FieldRegistry] = None,
        *,
        seed_mandatory: bool = True,
    ) -> None:
        self.registry = registry if registry is not None else FieldRegistry.with_defaults()
        # casefolded name -> (stored name, value)
        self._fields: Dict[str, Tuple[str, Any]] = {}
        if seed_mandatory:
            for name in MANDATORY_FIELDS:
                self._fields[name.casefold()] = (name, None)

    # -- reads -------------------------------------------------------------

    def get(self, name: str, default: Any = None) -> Any:
        entry = self._fields.get(name.casefold())
        return entry[1] if entry is not None else default

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.casefold() in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter([stored for stored, _ in self._fields.values()])

    def __len__(self) -> int:
        return len(self._fields)

    def fields(self) -> Dict[str, Any]:
        """Snapshot of stored names to values, in insertion order."""
        return {stored: value for stored, value in self._fields.values()}

    def field_name(self, name: str) -> Optional[str]:
        """Return the stored spelling of ``name``, or None when absent."""
        entry = self._fields.get(name.casefold())
        return entry[0] if entry is not None else None

    def __repr__(self) -> str:
        return f"LicenseDocument({self.fields()!r})"

    # -- writes ------------------------------------------------------------

    def set_field(self, name: str, value: Any) -> ValidationResult:
        """Validate ``value`` for ``name`` and store it on success.

        Returns the :class:`ValidationResult`; the document is unchanged when
        it is not ok. Fields without a registered validator are stored as-is.
        """
        if not isinstance(name, str) or not name.strip():
            raise TypeError("field name must be a non-empty string")

        validator = self.registry.get_validator(name)
        if validator is None:
            result = ValidationResult.success(value)
        else:
            result = validator(value)
            if not isinstance(result, ValidationResult):
                raise TypeError(f"validator for {name!r} returned {type(result).__name__}")
        if not result.ok:
            return result

        key = name.casefold()
        stored = self._fields[key][0] if key in self._fields else name
        self._fields[key] = (stored, result.value)
        return result

    def set_fields(self, values: Dict[str, Any]) -> None:
        """Set several fields, raising one error listing every failure."""
        errors = []
        for name, value in values.items():
            result = self.set_field(name, value)
            if not result.ok:
                errors.append(f"{name}: {result.error}")
        if errors:
            raise LicenseValidationError(errors)

    def copy(self) -> "LicenseDocument":
        other = LicenseDocument(self.registry, seed_mandatory=False)
        other._fields = dict(self._fields)
        return other

    # -- validation --------------------------------------------------------

    def mandatory_issues(self) -> List[str]:
        """Re-validate the mandatory fields and return every problem found."""
        issues: List[str] = []
        for name in MANDATORY_FIELDS:
            value = self.get(name)
            validator = self.registry.get_validator(name)
            if validator is not None:
                result = validator(value)
                if not result.ok:
                    issues.append(f"Field '{name}' is invalid: {result.error}")
            elif value is None:
                issues.append(f"Mandatory field '{name}' is null")
        return issues

    def ensure_mandatory_present(self) -> None:
        """Make sure the mandatory fields exist and are valid.

        Missing mandatory keys are added with a null value first.
        """
        for name in MANDATORY_FIELDS:
            self._fields.setdefault(name.casefold(), (name, None))
        issues = self.mandatory_issues()
        if issues:
            raise LicenseValidationError(issues)

    # -- wire form ---------------------------------------------------------

    def to_wire_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for stored, value in self._fields.values():
            serializer = self.registry.get_serializer(stored)
            out[stored] = to_wire_value(serializer(value) if serializer else value)
        return out

    def to_wire_json(self, validate: bool = True, *, indent: Optional[int] = 2) -> str:
        if validate:
            self.ensure_mandatory_present()
        return dumps_wire(self.to_wire_dict(), indent)

    @classmethod
    def from_wire_dict(
        cls,
        data: Dict[str, Any],
        registry: Optional[FieldRegistry] = None,
    ) -> "LicenseDocument":
        if not isinstance(data, dict):
            raise LicenseFormatError(f"license root must be a JSON object, got {type(data).__name__}")
        doc = cls(registry)
        errors = []
        for name, value in data.items():
            if not name.strip():
                errors.append("field names cannot be empty")
                continue
            result = doc.set_field(name, value)
            if not result.ok:
                errors.append(f"{name}: {result.error}")
        for name in MANDATORY_FIELDS:
            doc._fields.setdefault(name.casefold(), (name, None))
        if errors:
            logger.debug("wire license rejected with %d issue(s)", len(errors))
            raise LicenseValidationError(errors)
        return doc

    @classmethod
    def from_wire_json(cls, text: str, registry: Optional[FieldRegistry] = None) -> "LicenseDocument":
        """Parse wire JSON into a document.

        Raises LicenseFormatError when the text is not a JSON object and
        LicenseValidationError listing every field that failed validation.
        """
        if text is None:
            raise TypeError("text must not be None")
        try:
            data = json.loads(text, parse_float=Decimal)
        except json.JSONDecodeError as exc:
            raise LicenseFormatError(str(exc)) from exc
        return cls.from_wire_dict(data, registry)

    # -- canonical form ----------------------------------------------------

    def to_canonical_form(self, excluded_fields: Iterable[str] = ()) -> bytes:
        return encode(self, excluded_fields)
