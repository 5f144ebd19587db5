"""
HEIRLOOM Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (HEIRLOOM_*)
    2. Runtime overrides
    3. User config file (~/.heirloom/config.yaml)
    4. Project config file (./heirloom.yaml)
    5. Default values

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

T = TypeVar("T")

logger = logging.getLogger(__name__)


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
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

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
            raise ConfigValidationError(f"Invalid value for config: {value}")

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
            elif target_type == float:
                return float(value)  # type: ignore
        except ValueError as e:
            raise ConfigValidationError(f"Cannot coerce {value!r} to {target_type.__name__}") from e
        return value  # type: ignore

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class RuntimeConfig:
    """Configuration for the execution runtime."""
    genesis_timestamp: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="HEIRLOOM_GENESIS_TIMESTAMP",
        description="Fixed starting block timestamp (0 = follow wall clock)",
        validator=lambda x: x >= 0,
    ))


@dataclass
class TokenConfig:
    """Configuration for the confidential token."""
    name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="Confidential Estate Token",
        env_var="HEIRLOOM_TOKEN_NAME",
        description="Token display name",
        validator=lambda x: 0 < len(x) <= 64,
    ))
    symbol: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="cEST",
        env_var="HEIRLOOM_TOKEN_SYMBOL",
        description="Token symbol",
        validator=lambda x: 0 < len(x) <= 16,
    ))
    decimals: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=6,
        env_var="HEIRLOOM_TOKEN_DECIMALS",
        description="Display decimals for amounts",
        validator=lambda x: 0 <= x <= 18,
    ))


@dataclass
class EstateConfig:
    """Configuration for the estate registry."""
    max_name_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=256,
        env_var="HEIRLOOM_ESTATE_MAX_NAME",
        description="Maximum estate name length",
        validator=lambda x: x > 0,
    ))


@dataclass
class GatewayConfig:
    """Configuration for the user decryption gateway."""
    default_duration_days: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=7,
        env_var="HEIRLOOM_GATEWAY_DURATION_DAYS",
        description="Default validity of a signed decryption request",
        validator=lambda x: x > 0,
    ))
    max_duration_days: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=365,
        env_var="HEIRLOOM_GATEWAY_MAX_DURATION_DAYS",
        description="Maximum validity of a signed decryption request",
        validator=lambda x: x > 0,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="HEIRLOOM_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="HEIRLOOM_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class HeirloomConfig:
    """
    Root configuration for HEIRLOOM.

    Aggregates all component configurations.
    """
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    estate: EstateConfig = field(default_factory=EstateConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=True)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = HeirloomConfig()
        self._config_paths: List[Path] = []
        self._watchers: List[Callable[[HeirloomConfig], None]] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton; the next access starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> HeirloomConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Configuration file must be a mapping: {path}")

        if data:
            self._apply_dict(data)
        if path not in self._config_paths:
            self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        # Later files override earlier ones
        default_paths = [
            Path("heirloom.yaml"),
            Path.home() / ".heirloom" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                try:
                    self.load_from_file(path)
                except ConfigError as e:
                    logger.warning("Ignoring default config %s: %s", path, e)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigError(f"Invalid value for section: {path}")

        apply_to_config(self._config, data, "")

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

        Example: config.set("gateway.max_duration_days", 30)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)
        for watcher in self._watchers:
            watcher(self._config)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("estate.max_name_length")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        if hasattr(obj, "__dataclass_fields__"):
            return {k: getattr(obj, k).get() for k in obj.__dataclass_fields__}
        return obj

    def watch(self, callback: Callable[[HeirloomConfig], None]) -> None:
        """Register a callback for configuration changes."""
        self._watchers.append(callback)

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in self._config_paths:
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
                        errors.append(f"{path}: validation failed for value {value}")
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


def get_config() -> HeirloomConfig:
    """Get the current HEIRLOOM configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
