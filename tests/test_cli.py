"""Tests for the simplelicense command line."""

import hashlib
import json

import pytest

from simplelicense.cli import SimpleLicenseCLI, main, parse_assignments, parse_field_value, CLIError
from simplelicense.config import LicenseConfig

SCHEMA_YAML = """
name: Cli
fields:
  - name: LicenseId
    type: string
    required: true
    processor: GenerateGuid
  - name: ExpiryUtc
    type: datetime
    required: true
    defaultValue: "2031-01-01T00:00:00Z"
  - name: MaxUsers
    type: int
  - name: Files
    type: list<string>
    processor: HashFiles
  - name: Notes
    type: string
    signed: false
"""


@pytest.fixture
def workspace(tmp_path, key_pair, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "schema.yaml").write_text(SCHEMA_YAML, encoding="utf-8")
    (tmp_path / "private.pem").write_text(key_pair[0], encoding="ascii")
    (tmp_path / "public.pem").write_text(key_pair[1], encoding="ascii")
    (tmp_path / "model.txt").write_bytes(b"# header\nk  v\r\n")
    return tmp_path


def _run(capsys, *argv):
    code = SimpleLicenseCLI(LicenseConfig()).run(list(argv))
    out = capsys.readouterr().out
    return code, (json.loads(out) if out.strip() else None)


def _create(capsys, *extra):
    return _run(
        capsys,
        "create-license",
        "--schema", "schema.yaml",
        "--keyfile", "private.pem",
        "--output", "out/license.json",
        *extra,
    )


class TestValueParsing:
    @pytest.mark.parametrize("text,expected", [
        ("5", 5),
        ("-2", -2),
        ("2.5", 2.5),
        ("true", True),
        ("False", False),
        ("null", None),
        ("hello world", "hello world"),
        ("", ""),
    ])
    def test_parse_field_value(self, text, expected):
        assert parse_field_value(text) == expected

    def test_assignments(self):
        assert parse_assignments(["A=1", "B = x=y"]) == {"A": 1, "B": " x=y"}

    def test_bad_assignment(self):
        with pytest.raises(CLIError):
            parse_assignments(["novalue"])


class TestCreateAndValidate:
    """End-to-end create-license / validate-license."""

    def test_round_trip(self, workspace, capsys):
        code, report = _create(capsys, "--field", "MaxUsers=25", "--field", "Files=model.txt")
        assert code == 0, report
        assert report["ok"] is True

        data = json.loads((workspace / "out" / "license.json").read_text(encoding="utf-8"))
        assert data["MaxUsers"] == 25
        assert data["ExpiryUtc"] == "2031-01-01T00:00:00Z"
        assert data["Files"] == {"model.txt": hashlib.sha256(b"k v\n").hexdigest()}
        assert data["Signature"]
        assert report["license_id"] == data["LicenseId"]

        code, report = _run(
            capsys, "validate-license", "--license", "out/license.json",
            "--public-key-file", "public.pem", "--schema", "schema.yaml",
        )
        assert code == 0
        assert report == {"ok": True, "signature_valid": True, "reason": None, "schema_errors": []}

    def test_tampered_license(self, workspace, capsys):
        _create(capsys, "--field", "MaxUsers=25")
        path = workspace / "out" / "license.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        data["MaxUsers"] = 999
        path.write_text(json.dumps(data), encoding="utf-8")
        code, report = _run(
            capsys, "validate-license", "--license", str(path), "--public-key-file", "public.pem",
        )
        assert code == 1
        assert report["reason"] == "Signature verification failed"

    def test_unsigned_field_from_schema(self, workspace, capsys):
        _create(capsys, "--field", "Notes=draft")
        path = workspace / "out" / "license.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        data["Notes"] = "edited"
        path.write_text(json.dumps(data), encoding="utf-8")
        args = ["validate-license", "--license", str(path), "--public-key-file", "public.pem"]
        assert _run(capsys, *args, "--schema", "schema.yaml")[0] == 0
        assert _run(capsys, *args)[0] == 1

    def test_values_sources(self, workspace, capsys):
        (workspace / "values.yaml").write_text("MaxUsers: 3\nNotes: from file\n", encoding="utf-8")
        code, _ = _create(
            capsys,
            "--values-file", "values.yaml",
            "--field-values", '{"MaxUsers": 4}',
            "--field", "Notes=from flag",
        )
        assert code == 0
        data = json.loads((workspace / "out" / "license.json").read_text(encoding="utf-8"))
        assert data["MaxUsers"] == 4
        assert data["Notes"] == "from flag"

    def test_pkcs1_padding(self, workspace, capsys):
        _create(capsys, "--padding", "pkcs1")
        base = ["validate-license", "--license", "out/license.json", "--public-key-file", "public.pem"]
        assert _run(capsys, *base, "--padding", "pkcs1")[0] == 0
        assert _run(capsys, *base)[0] == 1

    def test_high_precision_decimal_default(self, workspace, capsys):
        (workspace / "rate.yaml").write_text(
            SCHEMA_YAML + '  - name: Rate\n    type: decimal\n    defaultValue: "0.12345678901234567890123"\n',
            encoding="utf-8",
        )
        code, report = _run(
            capsys, "create-license", "--schema", "rate.yaml", "--keyfile", "private.pem", "--output", "rate.json",
        )
        assert code == 0, report
        assert "0.12345678901234567890123" in (workspace / "rate.json").read_text(encoding="utf-8")
        code, report = _run(
            capsys, "validate-license", "--license", "rate.json",
            "--public-key-file", "public.pem", "--schema", "rate.yaml",
        )
        assert code == 0
        assert report["signature_valid"] is True

    def test_field_errors_reported(self, workspace, capsys):
        code, report = _create(capsys, "--field", "MaxUsers=-1")
        assert code == 1
        assert report["ok"] is False
        assert report["errors"][0].startswith("MaxUsers:")
        assert not (workspace / "out" / "license.json").exists()

    def test_schema_type_error_and_no_validate(self, workspace, capsys):
        code, report = _create(capsys, "--field", "Notes=5")
        assert code == 1
        assert "Field 'Notes' should be string but is int" in report["errors"]
        code, _ = _create(capsys, "--field", "Notes=5", "--no-validate")
        assert code == 0

    def test_missing_key_file(self, workspace, capsys):
        code = SimpleLicenseCLI(LicenseConfig()).run([
            "create-license", "--schema", "schema.yaml", "--keyfile", "absent.pem", "--output", "x.json",
        ])
        assert code == 1
        assert "Private key file not found" in capsys.readouterr().err

    def test_invalid_license_json(self, workspace, capsys):
        (workspace / "broken.json").write_text("{", encoding="utf-8")
        code, report = _run(capsys, "validate-license", "--license", "broken.json", "--public-key-file", "public.pem")
        assert code == 1
        assert report["reason"].startswith("Invalid JSON:")


class TestOtherCommands:
    def test_validate_schema(self, workspace, capsys):
        code, report = _run(capsys, "validate-schema", "--schema", "schema.yaml")
        assert code == 0
        assert report == {"ok": True, "schema": "Cli", "fields": 5, "issues": []}

    def test_validate_schema_issues(self, workspace, capsys):
        (workspace / "bad.yaml").write_text(
            "name: Bad\nfields:\n  - {name: A, type: int, defaultValue: many}\n", encoding="utf-8"
        )
        code, report = _run(capsys, "validate-schema", "--schema", "bad.yaml")
        assert code == 1
        assert len(report["issues"]) == 1

    def test_malformed_schema(self, workspace, capsys):
        (workspace / "bad.yaml").write_text("name: Bad\nfields:\n  - {name: A}\n", encoding="utf-8")
        code = SimpleLicenseCLI(LicenseConfig()).run(["validate-schema", "--schema", "bad.yaml"])
        assert code == 1
        assert "Malformed license schema" in capsys.readouterr().err

    def test_calculate_hash(self, workspace, capsys):
        code, report = _run(capsys, "calculate-hash", "--input", "model.txt")
        assert code == 0
        assert report["hashes"] == {"model.txt": hashlib.sha256(b"k v\n").hexdigest()}
        _, raw = _run(capsys, "calculate-hash", "--input", "model.txt", "--raw")
        assert raw["hashes"]["model.txt"] == hashlib.sha256(b"# header\nk  v\r\n").hexdigest()

    def test_calculate_hash_missing(self, workspace, capsys):
        assert SimpleLicenseCLI(LicenseConfig()).run(["calculate-hash", "--input", "nope.txt"]) == 1

    def test_generate_keys(self, workspace, capsys):
        code, report = _run(capsys, "generate-keys", "--keydir", "keys", "--name", "acme")
        assert code == 0
        assert report["private_key"].endswith("acme_private.pem")
        assert (workspace / "keys" / "acme_public.pem").is_file()

    def test_generate_keys_too_small(self, workspace, capsys):
        assert SimpleLicenseCLI(LicenseConfig()).run(["generate-keys", "--keysize", "1024"]) == 1

    def test_main_without_command(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_config_file_option(self, workspace, capsys):
        (workspace / "cfg.yaml").write_text("files:\n  canonicalizers:\n    text: [.dat]\n", encoding="utf-8")
        (workspace / "model.dat").write_bytes(b"a  b\n")
        code = main(["--config", "cfg.yaml", "calculate-hash", "--input", "model.dat"])
        out = json.loads(capsys.readouterr().out)
        assert code == 0
        assert out["hashes"]["model.dat"] == hashlib.sha256(b"a b\n").hexdigest()
