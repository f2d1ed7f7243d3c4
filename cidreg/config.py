"""
CID Registry Configuration System

Configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (CIDREG_*)
    2. Runtime overrides
    3. User config file (~/.cidreg/config.yaml)
    4. Project config file (./cidreg.yaml)
    5. Default values

The ``SettingsStore`` at the bottom of this module is the configuration
store the registry engine reads (enabled flag, base price, treasury and
admin addresses, certificate type label). Its mutators are admin-gated.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import os
import pathlib
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml
from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from cidreg.accounts import ZERO_ADDRESS, Account, is_valid_address
from cidreg.errors import Unauthorized

T = TypeVar("T")

SCHEMA_DIR = pathlib.Path(__file__).resolve().parent / "schemas"
CONFIG_SCHEMA_PATH = SCHEMA_DIR / "config.schema.json"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


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
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.strip().lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            try:
                return int(value)  # type: ignore
            except ValueError as e:
                raise ConfigValidationError(f"Expected integer, got {value!r}") from e
        return value  # type: ignore

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        self._callbacks.append(callback)


@dataclass
class RegistrationConfig:
    """Registration parameters."""
    enabled: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="CIDREG_ENABLED",
        description="Accept new registrations and renewals",
    ))
    base_price: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10,
        env_var="CIDREG_BASE_PRICE",
        description="Price at genesis, in the smallest currency unit",
        validator=lambda x: isinstance(x, int) and not isinstance(x, bool) and x > 0,
    ))
    cid_type_label: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="cid",
        env_var="CIDREG_CID_TYPE",
        description="Value of the 'type' key in certificate metadata",
        validator=lambda x: isinstance(x, str) and bool(x.strip()),
    ))


@dataclass
class AccountsConfig:
    """Privileged addresses."""
    admin_address: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=ZERO_ADDRESS,
        env_var="CIDREG_ADMIN_ADDRESS",
        description="Address allowed to change registry settings",
        validator=is_valid_address,
    ))
    treasury_address: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=ZERO_ADDRESS,
        env_var="CIDREG_TREASURY_ADDRESS",
        description="Address receiving registration fees",
        validator=is_valid_address,
    ))


@dataclass
class ObservabilityConfig:
    """Logging configuration."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="CIDREG_LOG_LEVEL",
        description="Log level (debug, info, warning, error, critical)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="CIDREG_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class CidRegistryConfig:
    """Root configuration."""
    registration: RegistrationConfig = field(default_factory=RegistrationConfig)
    accounts: AccountsConfig = field(default_factory=AccountsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False)


@lru_cache(maxsize=1)
def schema_registry() -> Registry:
    """In-memory registry of the packaged schemas keyed by $id, for offline $ref resolution."""
    reg = Registry()
    for path in sorted(SCHEMA_DIR.glob("*.schema.json")):
        contents = json.loads(path.read_text(encoding="utf-8"))
        reg = reg.with_resource(
            contents["$id"], Resource.from_contents(contents, default_specification=DRAFT202012)
        )
    return reg


def schema_validator(path: pathlib.Path) -> Draft202012Validator:
    schema = json.loads(path.read_text(encoding="utf-8"))
    return Draft202012Validator(schema, registry=schema_registry())


@lru_cache(maxsize=1)
def config_file_validator() -> Draft202012Validator:
    return schema_validator(CONFIG_SCHEMA_PATH)


def validate_config_document(data: Any) -> List[str]:
    """Validate a parsed config file; returns error messages (empty if valid)."""
    return [
        f"{error.json_path}: {error.message}"
        for error in config_file_validator().iter_errors(data)
    ]


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Each registry process owns one manager; ``get_config_manager()`` returns
    a lazily-created default for CLI use.
    """

    def __init__(self, config: Optional[CidRegistryConfig] = None):
        self._config = config or CidRegistryConfig()
        self._config_paths: List[pathlib.Path] = []
        self._watchers: List[Callable[[CidRegistryConfig], None]] = []
        self._lock = threading.RLock()

    @property
    def config(self) -> CidRegistryConfig:
        return self._config

    def load_from_file(self, path: Union[str, pathlib.Path]) -> None:
        """Load configuration from a YAML file."""
        path = pathlib.Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is None:
            return
        errors = validate_config_document(data)
        if errors:
            raise ConfigError(f"invalid configuration file: {path}: {errors[0]}")

        with self._lock:
            self._apply_dict(data)
            if path not in self._config_paths:
                self._config_paths.append(path)

    def load_defaults(self) -> List[pathlib.Path]:
        """Load default configuration files that exist; returns the paths loaded."""
        default_paths = [
            pathlib.Path("cidreg.yaml"),
            pathlib.Path("config/cidreg.yaml"),
            pathlib.Path.home() / ".cidreg" / "config.yaml",
        ]

        loaded = []
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to_config(config_obj: Any, values: Dict[str, Any]) -> None:
            for key, value in values.items():
                if hasattr(config_obj, key):
                    attr = getattr(config_obj, key)
                    if isinstance(attr, ConfigValue):
                        attr.set(value)
                    elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                        apply_to_config(attr, value)

        apply_to_config(self._config, data)

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: manager.set("registration.base_price", 25)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        with self._lock:
            attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: manager.get("registration.enabled")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def watch(self, callback: Callable[[CidRegistryConfig], None]) -> None:
        self._watchers.append(callback)

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in list(self._config_paths):
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the process-default configuration manager."""
    global _manager
    if _manager is None:
        _manager = ConfigManager()
    return _manager


# =============================================================================
# CONFIGURATION STORE
# =============================================================================

class SettingsStore:
    """
    Configuration store consumed by the registry engine.

    Reads are live: every call goes back to the ``ConfigManager`` so that
    environment overrides and reloads take effect immediately. Writes are
    restricted to the configured admin address.
    """

    def __init__(self, manager: Optional[ConfigManager] = None):
        self._manager = manager or ConfigManager()

    @property
    def manager(self) -> ConfigManager:
        return self._manager

    def is_enabled(self) -> bool:
        return bool(self._manager.get("registration.enabled"))

    def base_price(self) -> int:
        return int(self._manager.get("registration.base_price"))

    def cid_type_label(self) -> str:
        return str(self._manager.get("registration.cid_type_label"))

    def treasury_address(self) -> str:
        return str(self._manager.get("accounts.treasury_address"))

    def admin_address(self) -> str:
        return str(self._manager.get("accounts.admin_address"))

    def _require_admin(self, caller: Account) -> None:
        if caller.address != self.admin_address():
            raise Unauthorized(f"{caller.address} is not the registry admin")

    def set_enabled(self, caller: Account, enabled: bool) -> None:
        self._require_admin(caller)
        self._manager.set("registration.enabled", bool(enabled))

    def set_base_price(self, caller: Account, price: int) -> None:
        self._require_admin(caller)
        self._manager.set("registration.base_price", price)

    def set_treasury_address(self, caller: Account, address: str) -> None:
        self._require_admin(caller)
        self._manager.set("accounts.treasury_address", address)
