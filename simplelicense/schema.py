"""License schemas: declared fields, types, defaults and processors.

A schema is an optional overlay on top of :class:`LicenseDocument`. It lists
the fields a license of a given kind should carry and is used to:

- seed defaults and run processors at creation time (:mod:`simplelicense.creator`)
- decide which fields are left out of the signature (``signed: false``)
- check a finished document (:class:`LicenseValidator`)

Schema files are JSON or YAML. Their structure is checked against the JSON
Schemas shipped in ``simplelicense/schemas`` before any objects are built.
"""

from __future__ import annotations

import json
import logging
import pathlib
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

import yaml
from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from simplelicense.core import LicenseValidationError, SchemaError, detect_format, load_json, to_utc
from simplelicense.document import LicenseDocument
from simplelicense.fields import as_number, describe_type, is_integral, parse_datetime

logger = logging.getLogger(__name__)

SCHEMAS_DIR = pathlib.Path(__file__).resolve().parent / "schemas"
LICENSE_SCHEMA_ID = "https://schemas.simplelicense.dev/license-schema.schema.json"

ALLOWED_TYPES = (
    "string",
    "int",
    "double",
    "decimal",
    "bool",
    "datetime",
    "list<string>",
    "list<int>",
    "list<double>",
    "list<bool>",
)

# Accepted spellings of descriptor keys, mapped to the canonical camelCase key.
_DESCRIPTOR_KEYS = {
    "name": "name",
    "type": "type",
    "signed": "signed",
    "required": "required",
    "defaultvalue": "defaultValue",
    "default_value": "defaultValue",
    "default": "defaultValue",
    "processor": "processor",
}


# ---------------------------------------------------------------------------
# Structure check
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    resources = []
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = load_json(schema_path)
        resources.append((schema["$id"], Resource.from_contents(schema, default_specification=DRAFT202012)))
    return Registry().with_resources(resources)


@lru_cache(maxsize=1)
def _structure_validator() -> Draft202012Validator:
    registry = _schema_registry()
    schema = registry.contents(LICENSE_SCHEMA_ID)
    return Draft202012Validator(schema, registry=registry)


def structure_errors(data: Any) -> List[str]:
    """JSON Schema errors for a raw (already parsed) schema document."""
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(_structure_validator().iter_errors(data), key=lambda e: e.json_path)
    ]


def _normalize_keys(data: Any) -> Any:
    """Map case variants of top-level and descriptor keys onto their canonical spelling."""
    if not isinstance(data, dict):
        return data
    out: Dict[str, Any] = {}
    for k, v in data.items():
        lk = str(k).lower()
        out[lk if lk in ("name", "fields") else k] = v
    fields_ = out.get("fields")
    if isinstance(fields_, list):
        out["fields"] = [
            {_DESCRIPTOR_KEYS.get(str(k).lower(), k): v for k, v in f.items()} if isinstance(f, dict) else f
            for f in fields_
        ]
    return out


# ---------------------------------------------------------------------------
# Default value conversion
# ---------------------------------------------------------------------------


def _convert_scalar(type_name: str, value: Any) -> Any:
    if value is None:
        raise ValueError("null is not a value")
    if type_name == "string":
        return value if isinstance(value, str) else str(value)
    if type_name == "int":
        if isinstance(value, bool):
            raise ValueError("booleans are not integers")
        if isinstance(value, str):
            return int(value.strip())
        num = as_number(value)
        if num is None or not is_integral(num):
            raise ValueError(f"{value!r} is not an integer")
        return int(num)
    if type_name == "double":
        if isinstance(value, bool):
            raise ValueError("booleans are not numbers")
        return float(value.strip() if isinstance(value, str) else value)
    if type_name == "decimal":
        if isinstance(value, bool):
            raise ValueError("booleans are not numbers")
        try:
            return Decimal(value.strip() if isinstance(value, str) else str(value))
        except InvalidOperation as exc:
            raise ValueError(f"{value!r} is not a decimal") from exc
    if type_name == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValueError(f"{value!r} is not a boolean")
    if type_name == "datetime":
        if isinstance(value, datetime):
            return to_utc(value)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        parsed = parse_datetime(str(value))
        if parsed is None:
            raise ValueError(f"{value!r} is not a date/time")
        return parsed
    raise ValueError(f"unsupported type '{type_name}'")


def _list_elements(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        s = value.strip()
        if s.startswith("[") and s.endswith("]"):
            parsed = json.loads(s)
            if not isinstance(parsed, list):
                raise ValueError("expected a JSON array")
            return parsed
        if "," in s:
            return [part.strip() for part in s.split(",")]
    return [value]


def convert_default(type_name: str, value: Any) -> Any:
    """Convert a schema default to the declared type.

    List types accept a list, JSON array text, comma-separated text, or a
    single scalar. Raises ValueError when the value does not fit.
    """
    t = (type_name or "").strip().lower()
    if t.startswith("list<") and t.endswith(">"):
        inner = t[5:-1].strip()
        return [_convert_scalar(inner, item) for item in _list_elements(value)]
    if isinstance(value, (list, tuple)):
        raise ValueError(f"a list is not a valid '{type_name}'")
    return _convert_scalar(t, value)


# ---------------------------------------------------------------------------
# Schema objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type: str
    signed: bool = True
    required: bool = False
    default: Any = None
    processor: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FieldDescriptor":
        return cls(
            name=d.get("name", ""),
            type=d.get("type", ""),
            signed=bool(d.get("signed", True)),
            required=bool(d.get("required", False)),
            default=d.get("defaultValue"),
            processor=d.get("processor") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "signed": self.signed,
            "required": self.required,
        }
        if self.default is not None:
            out["defaultValue"] = self.default
        if self.processor:
            out["processor"] = self.processor
        return out


@dataclass
class LicenseSchema:
    name: str
    fields: List[FieldDescriptor] = field(default_factory=list)

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        key = name.casefold()
        for f in self.fields:
            if f.name.casefold() == key:
                return f
        return None

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def unsigned_field_names(self) -> List[str]:
        """Names excluded from the signature in addition to ``Signature``."""
        return [f.name for f in self.fields if not f.signed]

    def required_field_names(self) -> List[str]:
        return [f.name for f in self.fields if f.required]

    # -- self-consistency ----------------------------------------------------

    def schema_issues(self) -> List[str]:
        errors: List[str] = []
        if not isinstance(self.name, str) or not self.name.strip():
            errors.append("Schema name must not be empty.")
        if not self.fields:
            errors.append("Schema must define at least one field.")
            return errors

        seen: Dict[str, str] = {}
        dups: List[str] = []
        for f in self.fields:
            key = f.name.casefold()
            if key in seen and seen[key] not in dups:
                dups.append(seen[key])
            seen.setdefault(key, f.name)
        if dups:
            errors.append(f"Field names must be unique (duplicates: {', '.join(dups)}).")

        for f in self.fields:
            if not f.name.strip():
                errors.append("Every field must have a non-empty Name.")
            if not f.type.strip():
                errors.append(f"Field '{f.name}': Type must not be empty.")
                continue
            if f.type.strip().lower() not in ALLOWED_TYPES:
                errors.append(
                    f"Field '{f.name}': Unsupported type '{f.type}'. Allowed types: {', '.join(ALLOWED_TYPES)}"
                )
                continue
            if f.default is not None:
                try:
                    convert_default(f.type, f.default)
                except (ValueError, TypeError, OverflowError) as exc:
                    errors.append(
                        f"Field '{f.name}': Default value '{f.default}' is incompatible with type '{f.type}' ({exc})."
                    )
        return errors

    def validate_itself(self) -> None:
        errors = self.schema_issues()
        if errors:
            raise SchemaError("Schema validation failed:\n - " + "\n - ".join(errors))

    def is_valid(self) -> bool:
        return not self.schema_issues()

    # -- (de)serialization ---------------------------------------------------

    @classmethod
    def from_dict(cls, data: Any) -> "LicenseSchema":
        data = _normalize_keys(data)
        errors = structure_errors(data)
        if errors:
            raise SchemaError("Malformed license schema:\n - " + "\n - ".join(errors))
        return cls(
            name=data["name"],
            fields=[FieldDescriptor.from_dict(f) for f in data["fields"]],
        )

    @classmethod
    def from_json(cls, text: str) -> "LicenseSchema":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"Could not parse license schema JSON: {exc}") from exc
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls, text: str) -> "LicenseSchema":
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SchemaError(f"Could not parse license schema YAML: {exc}") from exc
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: Union[str, pathlib.Path]) -> "LicenseSchema":
        p = pathlib.Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"Schema file not found: {p}")
        text = p.read_text(encoding="utf-8")
        if detect_format(p) == "json":
            return cls.from_json(text)
        return cls.from_yaml(text)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "fields": [f.to_dict() for f in self.fields]}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False, default=str)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    def to_file(self, path: Union[str, pathlib.Path]) -> None:
        p = pathlib.Path(path)
        ext = p.suffix.lower()
        if ext == ".json":
            text = self.to_json()
        elif ext in (".yaml", ".yml"):
            text = self.to_yaml()
        else:
            raise SchemaError(f"Unsupported file extension '{ext}'. Use .json, .yaml, or .yml.")
        p.write_text(text, encoding="utf-8")


# ---------------------------------------------------------------------------
# Document validation against a schema
# ---------------------------------------------------------------------------


class LicenseValidator:
    """Checks a document for required fields and declared types."""

    def __init__(self, schema: LicenseSchema):
        if schema is None:
            raise TypeError("schema must not be None")
        self.schema = schema

    def validate(self, document: LicenseDocument) -> List[str]:
        if document is None:
            raise TypeError("document must not be None")
        errors: List[str] = []
        for fd in self.schema.fields:
            value = document.get(fd.name)
            if value is None:
                if fd.required:
                    errors.append(f"Required field '{fd.name}' is missing or null")
                continue
            err = check_type(fd.name, value, fd.type)
            if err:
                errors.append(err)
        return errors

    def is_valid(self, document: LicenseDocument) -> bool:
        return not self.validate(document)

    def validate_or_raise(self, document: LicenseDocument) -> None:
        errors = self.validate(document)
        if errors:
            raise LicenseValidationError(errors)

    def summary(self) -> str:
        lines = [f"Schema: {self.schema.name}", "Fields:"]
        for f in self.schema.fields:
            required = " (Required)" if f.required else ""
            signed = " [Signed]" if f.signed else ""
            default = f" Default={f.default}" if f.default is not None else ""
            lines.append(f"  - {f.name}: {f.type}{required}{signed}{default}")
        return "\n".join(lines) + "\n"


def check_type(name: str, value: Any, expected: str) -> Optional[str]:
    """Return an error message when ``value`` does not match ``expected``, else None."""
    t = (expected or "").strip().lower()

    if t == "string":
        if not isinstance(value, str):
            return f"Field '{name}' should be string but is {describe_type(value)}"
    elif t in ("int", "integer"):
        num = as_number(value)
        if num is None or not is_integral(num):
            return f"Field '{name}' should be int but is {describe_type(value)}"
    elif t in ("double", "float", "number", "decimal"):
        if as_number(value) is None:
            return f"Field '{name}' should be numeric but is {describe_type(value)}"
    elif t in ("bool", "boolean"):
        if not isinstance(value, bool):
            return f"Field '{name}' should be bool but is {describe_type(value)}"
    elif t in ("datetime", "date"):
        if isinstance(value, str):
            if parse_datetime(value) is None:
                return f"Field '{name}' should be datetime but string value cannot be parsed"
        elif not isinstance(value, (datetime, date)):
            return f"Field '{name}' should be datetime but is {describe_type(value)}"
    elif t.startswith("list<") and t.endswith(">"):
        inner = t[5:-1].strip()
        if isinstance(value, dict):
            # HashFiles output: {path: digest}
            items = list(value.values())
        elif isinstance(value, (list, tuple)):
            items = list(value)
        else:
            return f"Field '{name}' should be a list but is {describe_type(value)}"
        for i, item in enumerate(items):
            if item is None:
                continue
            err = check_type(f"{name}[{i}]", item, inner)
            if err:
                return err
    else:
        logger.debug("field %r has unknown type %r; skipping type validation", name, expected)
    return None
