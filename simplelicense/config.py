"""
SimpleLicense Configuration

Settings with YAML files, environment variables, validation, and runtime
updates.

Configuration Sources (in order of precedence):
    1. Environment variables (SIMPLELICENSE_*)
    2. Runtime overrides (``set``)
    3. Config file (explicit path, or ./simplelicense.yaml when present)
    4. Default values
"""

from __future__ import annotations

import codecs
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from simplelicense.canonicalizers import CANONICALIZER_TYPES, CanonicalizerRegistry
from simplelicense.core import ConfigError
from simplelicense.signing import PaddingScheme

T = TypeVar("T")

DEFAULT_CONFIG_FILES = (Path("simplelicense.yaml"), Path("simplelicense.yml"))
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _is_padding(value: Any) -> bool:
    try:
        PaddingScheme.parse(value)
    except ValueError:
        return False
    return True


def _is_encoding(value: Any) -> bool:
    try:
        codecs.lookup(str(value))
    except LookupError:
        return False
    return True


def _is_canonicalizer_map(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    for kind, exts in value.items():
        if str(kind).lower() not in CANONICALIZER_TYPES:
            return False
        if not isinstance(exts, (list, tuple)) or not all(isinstance(e, str) and e.strip() for e in exts):
            return False
    return True


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            value = self._coerce(os.environ[self.env_var])
            if self.validator and not self.validator(value):
                raise ConfigError(f"Invalid value in {self.env_var}: {os.environ[self.env_var]!r}")
            return value
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value
        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            elif target_type == list:
                return [v.strip() for v in value.split(",") if v.strip()]  # type: ignore
            elif target_type == dict:
                loaded = yaml.safe_load(value)
                return loaded if isinstance(loaded, dict) else {}  # type: ignore
            else:
                return value  # type: ignore
        except (ValueError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot parse {self.env_var}={value!r}: {exc}") from exc

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class SigningConfig:
    """Signing and verification settings."""
    padding: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="pss",
        env_var="SIMPLELICENSE_PADDING",
        description="Default RSA padding scheme (pss, pkcs1)",
        validator=_is_padding,
    ))
    unsigned_fields: ConfigValue[list] = field(default_factory=lambda: ConfigValue(
        default=[],
        env_var="SIMPLELICENSE_UNSIGNED_FIELDS",
        description="Extra field names left out of the signature",
        validator=lambda x: isinstance(x, list) and all(isinstance(n, str) for n in x),
    ))


@dataclass
class KeysConfig:
    """Key generation settings."""
    min_key_size: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2048,
        env_var="SIMPLELICENSE_MIN_KEY_SIZE",
        description="Minimum RSA modulus size in bits",
        validator=lambda x: isinstance(x, int) and x >= 2048,
    ))
    key_size: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2048,
        env_var="SIMPLELICENSE_KEY_SIZE",
        description="RSA modulus size for generated keys",
        validator=lambda x: isinstance(x, int) and x >= 2048 and x % 256 == 0,
    ))


@dataclass
class FilesConfig:
    """File hashing settings."""
    encoding: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="utf-8",
        env_var="SIMPLELICENSE_ENCODING",
        description="Text encoding used to read and hash files",
        validator=_is_encoding,
    ))
    canonicalizers: ConfigValue[dict] = field(default_factory=lambda: ConfigValue(
        default={"text": [".txt"], "inp": [".inp"]},
        env_var="SIMPLELICENSE_CANONICALIZERS",
        description="Canonicalizer kind -> file extensions",
        validator=_is_canonicalizer_map,
    ))


@dataclass
class LoggingConfig:
    level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="warning",
        env_var="SIMPLELICENSE_LOG_LEVEL",
        description="Log level (debug, info, warning, error, critical)",
        validator=lambda x: str(x).lower() in LOG_LEVELS,
    ))


@dataclass
class LicenseConfig:
    """Root configuration: groups the settings and loads/saves them."""
    signing: SigningConfig = field(default_factory=SigningConfig)
    keys: KeysConfig = field(default_factory=KeysConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "LicenseConfig":
        """Build a config from ``path``, or from ./simplelicense.yaml when it exists."""
        cfg = cls()
        if path is not None:
            cfg.load_file(path)
        else:
            for candidate in DEFAULT_CONFIG_FILES:
                if candidate.is_file():
                    cfg.load_file(candidate)
                    break
        return cfg

    def load_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")
        self.apply_dict(data)

    def apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to(obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                attr = getattr(obj, key, None)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to(attr, value, f"{prefix}{key}.")
                else:
                    raise ConfigError(f"Unknown config key: {prefix}{key}")

        apply_to(self, data, "")

    def _resolve(self, path: str) -> ConfigValue:
        obj: Any = self
        for part in path.split("."):
            obj = getattr(obj, part, None)
            if obj is None:
                raise ConfigError(f"Invalid config path: {path}")
        if not isinstance(obj, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        return obj

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("signing.padding")
        """
        return self._resolve(path).get()

    def set(self, path: str, value: Any) -> None:
        self._resolve(path).set(value)

    def validate(self) -> List[str]:
        """Validate all configuration values; returns a list of errors."""
        errors: List[str] = []

        def walk(obj: Any, path: str) -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                except ConfigError as exc:
                    errors.append(f"{path}: {exc}")
                    return
                if obj.validator and not obj.validator(value):
                    errors.append(f"{path}: validation failed for value {value!r}")
            elif hasattr(obj, "__dataclass_fields__"):
                for name in obj.__dataclass_fields__:
                    walk(getattr(obj, name), f"{path}.{name}" if path else name)

        walk(self, "")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        def extract(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            if hasattr(obj, "__dataclass_fields__"):
                return {k: extract(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract(self)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    # -- typed accessors -----------------------------------------------------

    @property
    def padding_scheme(self) -> PaddingScheme:
        return PaddingScheme.parse(self.signing.padding.get())

    @property
    def log_level(self) -> str:
        return str(self.logging.level.get()).upper()

    def canonicalizer_registry(self) -> CanonicalizerRegistry:
        return CanonicalizerRegistry.from_mapping(self.files.canonicalizers.get())
