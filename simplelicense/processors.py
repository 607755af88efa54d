"""Field processors.

A processor turns the raw input given for a field into the value stored on the
license, before validation. Schemas name a processor per field
(``processor: HashFiles``). Built-ins:

- ``HashFiles``: list of paths -> ``{path: sha256}``
- ``HashFile``: path -> ``sha256``
- ``PassThrough``
- ``ToUpper`` / ``ToLower``
- ``GenerateGuid``: ignores input, returns a new UUID4 string
- ``CurrentTimestamp``: ignores input, returns the current UTC time

File hashing goes through the canonicalizer registry in the context, so text
files with a registered extension are hashed in canonical form.
"""

from __future__ import annotations

import logging
import os
import pathlib
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from simplelicense.canonicalizers import CanonicalizerRegistry
from simplelicense.core import ProcessorError, now_utc
from simplelicense.hashing import DEFAULT_ENCODING, hash_file

logger = logging.getLogger(__name__)


@dataclass
class ProcessorContext:
    field_name: str = ""
    descriptor: Any = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    working_directory: Optional[Union[str, pathlib.Path]] = None
    canonicalizers: Optional[CanonicalizerRegistry] = None

    def resolve(self, path: Union[str, pathlib.Path]) -> pathlib.Path:
        p = pathlib.Path(path)
        if p.is_absolute():
            return p
        base = pathlib.Path(self.working_directory) if self.working_directory else pathlib.Path(os.getcwd())
        return base / p

    @property
    def encoding(self) -> str:
        return str(self.parameters.get("encoding") or DEFAULT_ENCODING)


FieldProcessor = Callable[[Any, ProcessorContext], Any]


class ProcessorRegistry:
    """Case-insensitive name to processor table."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processors: Dict[str, FieldProcessor] = {}

    @classmethod
    def with_defaults(cls) -> "ProcessorRegistry":
        reg = cls()
        for name, fn in _BUILTINS.items():
            reg.register(name, fn)
        return reg

    def register(self, name: str, processor: FieldProcessor) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValueError("processor name must be a non-empty string")
        if processor is None:
            raise TypeError("processor must not be None")
        with self._lock:
            table = dict(self._processors)
            table[name.strip().casefold()] = processor
            self._processors = table

    def unregister(self, name: str) -> bool:
        key = name.strip().casefold()
        with self._lock:
            if key not in self._processors:
                return False
            table = dict(self._processors)
            del table[key]
            self._processors = table
            return True

    def get(self, name: str) -> Optional[FieldProcessor]:
        return self._processors.get(name.strip().casefold())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().casefold() in self._processors

    def names(self) -> List[str]:
        return sorted(self._processors)

    def apply(self, name: str, value: Any, context: ProcessorContext) -> Any:
        """Run processor ``name``; failures are raised as ProcessorError."""
        processor = self.get(name)
        if processor is None:
            raise ProcessorError(f"Processor '{name}' is not registered (field '{context.field_name}')")
        try:
            return processor(value, context)
        except ProcessorError:
            raise
        except (OSError, ValueError, TypeError) as exc:
            raise ProcessorError(f"Processor '{name}' failed for field '{context.field_name}': {exc}") from exc


# ---------------------------------------------------------------------------
# Built-ins
# ---------------------------------------------------------------------------

_BUILTINS: Dict[str, FieldProcessor] = {}


def processor(name: str) -> Callable[[FieldProcessor], FieldProcessor]:
    def deco(fn: FieldProcessor) -> FieldProcessor:
        _BUILTINS[name] = fn
        return fn

    return deco


def _hash_one(path: Union[str, pathlib.Path], context: ProcessorContext) -> str:
    full = context.resolve(path)
    if not full.is_file():
        raise FileNotFoundError(f"File not found for hashing: {full}")
    canonicalizer = context.canonicalizers.for_path(full) if context.canonicalizers else None
    return hash_file(full, canonicalizer, context.encoding)


@processor("HashFiles")
def hash_files_processor(value: Any, context: ProcessorContext) -> Optional[Dict[str, str]]:
    if value is None:
        return None
    if isinstance(value, (str, pathlib.Path)):
        paths = [value]
    elif isinstance(value, (list, tuple)):
        paths = list(value)
    else:
        raise TypeError(f"HashFiles expects a path or list of paths, got {type(value).__name__}")
    out: Dict[str, str] = {}
    for p in paths:
        out[str(p)] = _hash_one(p, context)
    logger.debug("hashed %d file(s) for %s", len(out), context.field_name)
    return out


@processor("HashFile")
def hash_file_processor(value: Any, context: ProcessorContext) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, (str, pathlib.Path)):
        raise TypeError(f"HashFile expects a path, got {type(value).__name__}")
    return _hash_one(value, context)


@processor("PassThrough")
def pass_through_processor(value: Any, context: ProcessorContext) -> Any:
    return value


@processor("ToUpper")
def to_upper_processor(value: Any, context: ProcessorContext) -> Optional[str]:
    return None if value is None else str(value).upper()


@processor("ToLower")
def to_lower_processor(value: Any, context: ProcessorContext) -> Optional[str]:
    return None if value is None else str(value).lower()


@processor("GenerateGuid")
def generate_guid_processor(value: Any, context: ProcessorContext) -> str:
    return str(uuid.uuid4())


@processor("CurrentTimestamp")
def current_timestamp_processor(value: Any, context: ProcessorContext) -> Any:
    return now_utc()
