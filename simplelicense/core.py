"""Core primitives for SimpleLicense.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- YAML/JSON loading with consistent encoding
- UTC timestamp rendering and parsing
- The package exception hierarchy

Design principles:
- Pure functions where possible
- Explicit error handling
- Type annotations throughout
"""

from __future__ import annotations

import hashlib
import json
import pathlib
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional, Union

import yaml

# Mandatory field names. Every finalized license carries all three.
LICENSE_ID_FIELD = "LicenseId"
EXPIRY_FIELD = "ExpiryUtc"
SIGNATURE_FIELD = "Signature"
MANDATORY_FIELDS = (LICENSE_ID_FIELD, EXPIRY_FIELD, SIGNATURE_FIELD)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LicenseError(Exception):
    """Base class for all SimpleLicense errors."""


class LicenseValidationError(LicenseError):
    """One or more field-level problems.

    Always carries the complete list of issues found, never only the first.
    """

    def __init__(self, issues: Optional[Iterable[str]] = None):
        self.issues: List[str] = list(issues or [])
        super().__init__(self._format(self.issues))

    @staticmethod
    def _format(issues: List[str]) -> str:
        lines = ["License validation failed with the following issue(s):"]
        if not issues:
            lines.append(" - (no details provided)")
        lines.extend(f" - {issue}" for issue in issues)
        return "\n".join(lines)


class LicenseFormatError(LicenseError, ValueError):
    """Wire JSON could not be parsed into a license document."""


class CanonicalizationError(LicenseError):
    """The canonical encoder was given something it cannot encode."""


class SignatureFormatError(LicenseError):
    """Signature field is present but is not valid base64."""


class SigningError(LicenseError):
    """Signing failed; the document was left untouched."""


class KeyFormatError(LicenseError, ValueError):
    """PEM key material is malformed, not RSA, or too small."""


class SchemaError(LicenseError):
    """A license schema is malformed or fails its own consistency checks."""


class ProcessorError(LicenseError):
    """A field processor is unknown or failed."""


class ConfigError(LicenseError):
    """A configuration value, file or key is invalid."""


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Union[str, pathlib.Path]) -> str:
    """Compute SHA-256 hash of raw file contents."""
    return sha256_bytes(pathlib.Path(path).read_bytes())


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_yaml(path: Union[str, pathlib.Path]) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: Union[str, pathlib.Path]) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def detect_format(path: Union[str, pathlib.Path]) -> str:
    """Return "json" or "yaml" for a document path.

    Uses the file extension first and falls back to sniffing the content.
    """
    p = pathlib.Path(path)
    ext = p.suffix.lower()
    if ext == ".json":
        return "json"
    if ext in (".yml", ".yaml"):
        return "yaml"
    head = p.read_text(encoding="utf-8").lstrip()
    if head.startswith("{") or head.startswith("["):
        return "json"
    return "yaml"


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def to_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_utc(value: Union[datetime, date]) -> str:
    """Render a datetime as ISO-8601 UTC with a ``Z`` designator.

    Microseconds are kept when present so that an instant survives a round trip.
    Plain dates render as ``YYYY-MM-DD``.
    """
    if isinstance(value, datetime):
        return to_utc(value).isoformat().replace("+00:00", "Z")
    return value.isoformat()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso8601(timestamp: str) -> Optional[datetime]:
    """Parse ISO8601 timestamp string; returns None when unparseable."""
    try:
        s = timestamp.strip().replace("Z", "+00:00").replace("z", "+00:00")
        return datetime.fromisoformat(s)
    except (ValueError, AttributeError):
        return None
