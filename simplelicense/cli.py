#!/usr/bin/env python3
"""
SimpleLicense CLI

Usage:
    simplelicense <command> [options]

Commands:
    generate-keys      Generate an RSA key pair
    calculate-hash     Hash files (canonicalized by extension unless --raw)
    create-license     Build and sign a license from a schema
    validate-schema    Check a license schema
    validate-license   Verify a license signature and, optionally, its schema
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from simplelicense import __version__
from simplelicense.config import LicenseConfig
from simplelicense.core import (
    LicenseError,
    LicenseValidationError,
    detect_format,
    load_json,
    load_yaml,
)
from simplelicense.creator import LicenseCreator
from simplelicense.document import LicenseDocument
from simplelicense.hashing import hash_file
from simplelicense.keys import write_key_files
from simplelicense.schema import LicenseSchema, LicenseValidator
from simplelicense.signing import LicenseSigner, LicenseVerifier

logger = logging.getLogger(__name__)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    if isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def parse_field_value(text: str) -> Any:
    """Interpret a command-line value as int, float, bool or null; otherwise keep the string."""
    stripped = text.strip()
    lowered = stripped.lower()
    if lowered == "null":
        return None
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        return float(stripped)
    except ValueError:
        return text


def parse_assignments(items: Optional[List[str]]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for item in items or []:
        name, sep, raw = item.partition("=")
        if not sep or not name.strip():
            raise CLIError(f"Invalid field assignment (expected NAME=VALUE): {item!r}")
        values[name.strip()] = parse_field_value(raw)
    return values


def _read_text(path: str, what: str) -> str:
    p = pathlib.Path(path)
    if not p.is_file():
        raise CLIError(f"{what} not found: {p}")
    return p.read_text(encoding="utf-8")


class SimpleLicenseCLI:
    """Main CLI application."""

    def __init__(self, config: Optional[LicenseConfig] = None):
        self._config = config
        self.parser = argparse.ArgumentParser(
            prog="simplelicense",
            description="Create, sign and verify license files",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"simplelicense {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument("--config", "-c", help="Path to a YAML config file")
        self.parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
        self.parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-essential output")

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        p = self.subparsers.add_parser("generate-keys", help="Generate an RSA key pair")
        p.add_argument("--keysize", type=int, help="Modulus size in bits (default from config)")
        p.add_argument("--keydir", default=".", help="Output directory")
        p.add_argument("--name", help="Base file name (default key_<bits>bit_<date>)")

        p = self.subparsers.add_parser("calculate-hash", help="Hash files")
        p.add_argument("--input", "-i", nargs="+", required=True, help="Files to hash")
        p.add_argument("--encoding", help="Text encoding (default from config)")
        p.add_argument("--raw", action="store_true", help="Hash raw bytes, no canonicalization")

        p = self.subparsers.add_parser("create-license", help="Create and sign a license")
        p.add_argument("--schema", "-s", required=True, help="License schema (YAML or JSON)")
        p.add_argument("--field", action="append", metavar="NAME=VALUE", help="Field value (repeatable)")
        p.add_argument("--values-file", help="YAML or JSON mapping of field values")
        p.add_argument("--field-values", help="JSON object of field values")
        p.add_argument("--keyfile", "-k", required=True, help="PEM private key")
        p.add_argument("--output", "-o", required=True, help="Where to write the license JSON")
        p.add_argument("--workdir", help="Base directory for relative file paths")
        p.add_argument("--no-validate", action="store_true", help="Skip schema validation of the result")
        p.add_argument("--padding", choices=["pss", "pkcs1"], help="RSA padding (default from config)")

        p = self.subparsers.add_parser("validate-schema", help="Validate a license schema")
        p.add_argument("--schema", "-s", required=True, help="License schema (YAML or JSON)")

        p = self.subparsers.add_parser("validate-license", help="Verify a signed license")
        p.add_argument("--license", "-l", required=True, help="License JSON file")
        p.add_argument("--public-key-file", "-p", required=True, help="PEM public key")
        p.add_argument("--schema", "-s", help="Also validate against this schema")
        p.add_argument("--padding", choices=["pss", "pkcs1"], help="RSA padding (default from config)")

    @property
    def config(self) -> LicenseConfig:
        if self._config is None:
            self._config = LicenseConfig.load()
        return self._config

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            if parsed.config:
                self._config = LicenseConfig.load(parsed.config)
            self._setup_logging(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            if isinstance(result, dict) and result.get("ok") is False:
                return 1
            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (LicenseError, OSError, ValueError) as e:
            logger.debug("command %s failed", parsed.command, exc_info=True)
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _setup_logging(self, parsed: argparse.Namespace) -> None:
        level = "DEBUG" if parsed.verbose else self.config.log_level
        logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        handler_name = "_handle_" + args.command.replace("-", "_")
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command}")

        return handler(args)

    def _unsigned_fields(self, schema: Optional[LicenseSchema]) -> List[str]:
        names = list(self.config.signing.unsigned_fields.get())
        if schema is not None:
            names.extend(schema.unsigned_field_names())
        return names

    # Handlers

    def _handle_generate_keys(self, args: argparse.Namespace) -> Any:
        key_size = args.keysize or self.config.keys.key_size.get()
        min_size = self.config.keys.min_key_size.get()
        if key_size < min_size:
            raise CLIError(f"Key size must be at least {min_size} bits, got {key_size}")
        result = write_key_files(args.keydir, args.name, key_size)
        return {
            "ok": result.success,
            "key_size": key_size,
            "private_key": str(result.private_key_path),
            "public_key": str(result.public_key_path),
        }

    def _handle_calculate_hash(self, args: argparse.Namespace) -> Any:
        encoding = args.encoding or self.config.files.encoding.get()
        registry = None if args.raw else self.config.canonicalizer_registry()
        hashes: Dict[str, str] = {}
        for item in args.input:
            path = pathlib.Path(item)
            if not path.is_file():
                raise CLIError(f"File not found: {path}")
            canonicalizer = registry.for_path(path) if registry is not None else None
            hashes[item] = hash_file(path, canonicalizer, encoding)
        return {"ok": True, "encoding": encoding, "raw": args.raw, "hashes": hashes}

    def _collect_field_values(self, args: argparse.Namespace) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if args.values_file:
            path = pathlib.Path(args.values_file)
            if not path.is_file():
                raise CLIError(f"Values file not found: {path}")
            loaded = load_json(path) if detect_format(path) == "json" else load_yaml(path)
            if not isinstance(loaded, dict):
                raise CLIError(f"Values file must contain a mapping: {path}")
            values.update(loaded)
        if args.field_values:
            try:
                loaded = json.loads(args.field_values)
            except json.JSONDecodeError as exc:
                raise CLIError(f"--field-values is not valid JSON: {exc}") from exc
            if not isinstance(loaded, dict):
                raise CLIError("--field-values must be a JSON object")
            values.update(loaded)
        values.update(parse_assignments(args.field))
        return values

    def _handle_create_license(self, args: argparse.Namespace) -> Any:
        schema = LicenseSchema.from_file(args.schema)
        values = self._collect_field_values(args)
        key_pem = _read_text(args.keyfile, "Private key file")
        encoding = self.config.files.encoding.get()

        creator = LicenseCreator(canonicalizers=self.config.canonicalizer_registry())
        workdir = args.workdir or str(pathlib.Path(args.schema).resolve().parent)
        try:
            document = creator.create_license(
                schema,
                values,
                working_directory=workdir,
                processor_parameters={"encoding": encoding},
                validate_schema=not args.no_validate,
            )
        except LicenseValidationError as exc:
            return {"ok": False, "errors": exc.issues}

        signer = LicenseSigner(
            key_pem,
            args.padding or self.config.padding_scheme,
            self._unsigned_fields(schema),
            min_key_size=self.config.keys.min_key_size.get(),
        )
        signer.sign(document)

        out = pathlib.Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(document.to_wire_json(), encoding="utf-8")
        logger.info("license written to %s", out)
        return {"ok": True, "license_id": document.get("LicenseId"), "output": str(out)}

    def _handle_validate_schema(self, args: argparse.Namespace) -> Any:
        schema = LicenseSchema.from_file(args.schema)
        issues = schema.schema_issues()
        return {
            "ok": not issues,
            "schema": schema.name,
            "fields": len(schema.fields),
            "issues": issues,
        }

    def _handle_validate_license(self, args: argparse.Namespace) -> Any:
        text = _read_text(args.license, "License file")
        key_pem = _read_text(args.public_key_file, "Public key file")
        schema = LicenseSchema.from_file(args.schema) if args.schema else None

        verifier = LicenseVerifier(
            key_pem,
            args.padding or self.config.padding_scheme,
            self._unsigned_fields(schema),
            min_key_size=self.config.keys.min_key_size.get(),
        )
        result = verifier.verify_json(text)
        report: Dict[str, Any] = {"ok": result.valid, "signature_valid": result.valid, "reason": result.reason}

        if schema is not None and result.valid:
            errors = LicenseValidator(schema).validate(LicenseDocument.from_wire_json(text))
            report["schema_errors"] = errors
            report["ok"] = not errors
        return report


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = SimpleLicenseCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
