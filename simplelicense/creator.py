"""License creation.

Two paths build an unsigned :class:`LicenseDocument`:

- :meth:`LicenseCreator.create_license` is schema driven. Defaults are applied,
  processors run, every value passes through field validation, and the result
  is optionally checked with :class:`~simplelicense.schema.LicenseValidator`.
- :meth:`LicenseCreator.create_document` is the schema-less path. It takes a
  license id, a validity period in months, a few standard fields and a set of
  input files whose hashes go into ``AllowedFileHashes``.

Signing is a separate step (:mod:`simplelicense.signing`).
"""

from __future__ import annotations

import calendar
import logging
import os
import pathlib
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from simplelicense.canonicalizers import CanonicalizerRegistry, FileCanonicalizer
from simplelicense.core import (
    EXPIRY_FIELD,
    LICENSE_ID_FIELD,
    LicenseValidationError,
    now_utc,
)
from simplelicense.document import LicenseDocument
from simplelicense.fields import FieldRegistry
from simplelicense.hashing import DEFAULT_ENCODING, hash_file
from simplelicense.processors import ProcessorContext, ProcessorRegistry
from simplelicense.schema import LicenseSchema, LicenseValidator, convert_default

logger = logging.getLogger(__name__)

ALLOWED_FILE_HASHES_FIELD = "AllowedFileHashes"
LICENSE_INFO_FIELD = "LicenseInfo"
MAX_JUNCTIONS_FIELD = "MaxJunctions"

PathLike = Union[str, pathlib.Path]


# ---------------------------------------------------------------------------
# File sources
# ---------------------------------------------------------------------------


class FolderFileSource:
    """All files under a folder matching a glob pattern."""

    def __init__(self, folder: PathLike, pattern: str = "*", recursive: bool = True):
        if folder is None:
            raise TypeError("folder must not be None")
        self.folder = pathlib.Path(folder)
        if not self.folder.is_dir():
            raise NotADirectoryError(f"The folder '{self.folder}' does not exist.")
        if not pattern or not pattern.strip():
            raise ValueError("Pattern cannot be empty or whitespace.")
        self.pattern = pattern
        self.recursive = recursive

    def enumerate_files(self) -> Iterator[pathlib.Path]:
        matches = self.folder.rglob(self.pattern) if self.recursive else self.folder.glob(self.pattern)
        for p in sorted(matches):
            if p.is_file():
                yield p.resolve()


class ListFileSource:
    """An explicit list of paths."""

    def __init__(self, paths: Optional[Iterable[PathLike]] = None):
        self.paths = list(paths or [])

    def enumerate_files(self) -> Iterator[pathlib.Path]:
        for p in self.paths:
            yield pathlib.Path(p).resolve()


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    total = dt.month - 1 + months
    year, month = dt.year + total // 12, total % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def _lookup(values: Mapping[str, Any], name: str) -> Any:
    if name in values:
        return values[name]
    key = name.casefold()
    for k, v in values.items():
        if k.casefold() == key:
            return v
    return None


# ---------------------------------------------------------------------------
# Creator
# ---------------------------------------------------------------------------


class LicenseCreator:
    def __init__(
        self,
        registry: Optional[FieldRegistry] = None,
        processors: Optional[ProcessorRegistry] = None,
        canonicalizers: Optional[CanonicalizerRegistry] = None,
    ) -> None:
        self.registry = registry if registry is not None else FieldRegistry.with_defaults()
        self.processors = processors if processors is not None else ProcessorRegistry.with_defaults()
        self.canonicalizers = canonicalizers if canonicalizers is not None else CanonicalizerRegistry.with_defaults()

    def create_license(
        self,
        schema: LicenseSchema,
        field_values: Optional[Mapping[str, Any]] = None,
        working_directory: Optional[PathLike] = None,
        processor_parameters: Optional[Dict[str, Any]] = None,
        validate_schema: bool = True,
    ) -> LicenseDocument:
        """Build an unsigned license from a schema and raw field values.

        Raises:
          SchemaError: the schema is not self-consistent.
          ProcessorError: a processor is unknown or failed.
          LicenseValidationError: one or more values were rejected; lists all.
        """
        if schema is None:
            raise TypeError("schema must not be None")
        schema.validate_itself()
        values = dict(field_values or {})
        doc = LicenseDocument(self.registry)
        errors: List[str] = []

        for fd in schema.fields:
            value = _lookup(values, fd.name)
            if value is None and fd.default is not None:
                value = convert_default(fd.type, fd.default)
            if fd.processor:
                ctx = ProcessorContext(
                    field_name=fd.name,
                    descriptor=fd,
                    parameters=dict(processor_parameters or {}),
                    working_directory=working_directory,
                    canonicalizers=self.canonicalizers,
                )
                value = self.processors.apply(fd.processor, value, ctx)
            if value is None:
                continue
            result = doc.set_field(fd.name, value)
            if not result.ok:
                errors.append(f"{fd.name}: {result.error}")

        for name, value in values.items():
            if schema.get_field(name) is not None:
                continue
            logger.debug("field %r is not declared by schema %r", name, schema.name)
            result = doc.set_field(name, value)
            if not result.ok:
                errors.append(f"{name}: {result.error}")

        if errors:
            raise LicenseValidationError(errors)
        if validate_schema:
            LicenseValidator(schema).validate_or_raise(doc)
        logger.info("created license %s from schema %s", doc.get(LICENSE_ID_FIELD), schema.name)
        return doc

    def create_document(
        self,
        license_id: Optional[str] = None,
        valid_months: Optional[int] = None,
        max_junctions: Optional[int] = None,
        license_info: Optional[str] = None,
        custom_fields: Optional[Mapping[str, Any]] = None,
        file_source: Any = None,
        input_files: Optional[Iterable[PathLike]] = None,
        canonicalizer: Optional[FileCanonicalizer] = None,
        encoding: str = DEFAULT_ENCODING,
    ) -> LicenseDocument:
        """Build an unsigned license without a schema.

        Custom fields that fail validation are skipped with a warning. Input
        files that do not exist are skipped; the rest are hashed into
        ``AllowedFileHashes`` in enumeration order.
        """
        doc = LicenseDocument(self.registry)
        doc.set_fields({LICENSE_ID_FIELD: license_id or str(uuid.uuid4())})
        if valid_months is not None:
            doc.set_fields({EXPIRY_FIELD: add_months(now_utc(), int(valid_months))})
        if license_info is not None:
            doc.set_fields({LICENSE_INFO_FIELD: license_info})
        if max_junctions is not None:
            doc.set_fields({MAX_JUNCTIONS_FIELD: max_junctions})

        for name, value in (custom_fields or {}).items():
            result = doc.set_field(name, value)
            if not result.ok:
                logger.warning("custom field %r rejected: %s", name, result.error)

        if file_source is not None:
            files = list(file_source.enumerate_files())
        else:
            files = [pathlib.Path(p) for p in (input_files or [])]

        hashes: List[str] = []
        for path in files:
            if not os.path.isfile(path):
                logger.info("input file could not be found at %s; skipping", path)
                continue
            digest = hash_file(path, canonicalizer, encoding)
            logger.debug("computed hash for %s: %s", path, digest)
            hashes.append(digest)
        if hashes:
            doc.set_field(ALLOWED_FILE_HASHES_FIELD, hashes)
        return doc
