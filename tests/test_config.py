"""Tests for configuration loading and overrides."""

import pytest
import yaml

from simplelicense.canonicalizers import InpCanonicalizer
from simplelicense.config import ConfigValue, LicenseConfig
from simplelicense.core import ConfigError, LicenseError
from simplelicense.signing import PaddingScheme


class TestDefaults:
    def test_values(self):
        cfg = LicenseConfig()
        assert cfg.get("signing.padding") == "pss"
        assert cfg.padding_scheme is PaddingScheme.PSS
        assert cfg.get("keys.key_size") == 2048
        assert cfg.get("files.encoding") == "utf-8"
        assert cfg.log_level == "WARNING"
        assert cfg.validate() == []

    def test_canonicalizer_registry(self):
        reg = LicenseConfig().canonicalizer_registry()
        assert reg.extensions() == [".inp", ".txt"]

    def test_to_yaml_round_trip(self):
        data = yaml.safe_load(LicenseConfig().to_yaml())
        assert data["signing"] == {"padding": "pss", "unsigned_fields": []}
        assert data["logging"]["level"] == "warning"


class TestOverrides:
    """Runtime, file and environment sources."""

    def test_set(self):
        cfg = LicenseConfig()
        cfg.set("signing.padding", "pkcs1")
        assert cfg.padding_scheme is PaddingScheme.PKCS1

    def test_set_invalid(self):
        cfg = LicenseConfig()
        with pytest.raises(ConfigError):
            cfg.set("keys.key_size", 1024)
        with pytest.raises(ConfigError):
            cfg.set("signing.padding", "oaep")

    def test_invalid_path(self):
        with pytest.raises(ConfigError, match="Invalid config path"):
            LicenseConfig().get("signing.nope")
        with pytest.raises(ConfigError):
            LicenseConfig().get("signing")

    def test_load_file(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text(
            "signing:\n  padding: pkcs1\n  unsigned_fields: [Notes]\n"
            "files:\n  canonicalizers:\n    inp: [.net]\n",
            encoding="utf-8",
        )
        cfg = LicenseConfig.load(path)
        assert cfg.padding_scheme is PaddingScheme.PKCS1
        assert cfg.get("signing.unsigned_fields") == ["Notes"]
        assert isinstance(cfg.canonicalizer_registry().get(".net"), InpCanonicalizer)

    def test_default_file_in_cwd(self, tmp_path, monkeypatch):
        (tmp_path / "simplelicense.yaml").write_text("logging:\n  level: debug\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        assert LicenseConfig.load().log_level == "DEBUG"

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("signing:\n  colour: blue\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Unknown config key: signing.colour"):
            LicenseConfig.load(path)

    def test_missing_and_malformed_files(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            LicenseConfig.load(tmp_path / "none.yaml")
        bad = tmp_path / "bad.yaml"
        bad.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            LicenseConfig.load(bad)

    def test_environment_wins(self, monkeypatch):
        cfg = LicenseConfig()
        cfg.set("signing.padding", "pss")
        monkeypatch.setenv("SIMPLELICENSE_PADDING", "pkcs1")
        monkeypatch.setenv("SIMPLELICENSE_UNSIGNED_FIELDS", "Notes, Comment")
        monkeypatch.setenv("SIMPLELICENSE_KEY_SIZE", "4096")
        assert cfg.padding_scheme is PaddingScheme.PKCS1
        assert cfg.get("signing.unsigned_fields") == ["Notes", "Comment"]
        assert cfg.get("keys.key_size") == 4096

    def test_bad_environment(self, monkeypatch):
        monkeypatch.setenv("SIMPLELICENSE_KEY_SIZE", "big")
        cfg = LicenseConfig()
        with pytest.raises(ConfigError):
            cfg.get("keys.key_size")
        assert any(e.startswith("keys.key_size") for e in cfg.validate())


class TestConfigValue:
    def test_callbacks_and_reset(self):
        seen = []
        value = ConfigValue(default=1)
        value.on_change(lambda old, new: seen.append((old, new)))
        value.set(5)
        assert value.get() == 5
        value.reset()
        assert value.get() == 1
        assert seen == [(None, 5)]

    def test_config_error_is_a_license_error(self, tmp_path):
        with pytest.raises(LicenseError):
            LicenseConfig.load(tmp_path / "none.yaml")
        assert issubclass(ConfigError, LicenseError)
