"""Configuration management for the ONT intent reconciler."""

import json
import yaml
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Dict, List, Any, Optional, Union

from .errors import ConfigurationError
from .logging import LogLevel, LoggingConfig, get_logger
from .registry import (
    CapabilityRegistry, VENDOR_ALIASES, aliases_from_config, default_registry
)


VALID_SECURITY_MODES = ('wpa2', 'wpa2-wpa3', 'wpa3')
VALID_PROTOCOLS = ('TCP', 'UDP', 'BOTH')


@dataclass
class LoggingSettings:
    """Logging section of the configuration file."""
    level: str = "INFO"
    log_file: Optional[str] = None
    structured: bool = True
    console: bool = True
    performance: bool = True

    def __post_init__(self):
        """Validate logging settings after initialization."""
        if self.level.upper() not in LogLevel.__members__:
            raise ValueError(f"Log level must be one of: {list(LogLevel.__members__)}")
        self.level = self.level.upper()

    def to_logging_config(self) -> LoggingConfig:
        return LoggingConfig(
            log_level=LogLevel[self.level],
            log_file=self.log_file,
            enable_console=self.console,
            enable_structured=self.structured,
            enable_performance=self.performance
        )


@dataclass
class ReconciliationDefaults:
    """Defaults applied to intent fields the policy leaves out."""
    wifi_security: str = "wpa2"
    optical_warning: float = -25.0
    optical_critical: float = -28.0
    sip_port: int = 5060
    port_forward_protocol: str = "TCP"

    def __post_init__(self):
        """Validate reconciliation defaults after initialization."""
        if self.wifi_security not in VALID_SECURITY_MODES:
            raise ValueError(f"WiFi security must be one of: {list(VALID_SECURITY_MODES)}")
        if not 1 <= int(self.sip_port) <= 65535:
            raise ValueError("SIP port must be between 1 and 65535")
        if self.port_forward_protocol.upper() not in VALID_PROTOCOLS:
            raise ValueError(f"Port forward protocol must be one of: {list(VALID_PROTOCOLS)}")
        if self.optical_critical > self.optical_warning:
            raise ValueError("Optical critical threshold cannot be above the warning threshold")
        self.port_forward_protocol = self.port_forward_protocol.upper()


@dataclass
class ReconcilerConfig:
    """Main configuration containing all subsystem configurations."""
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    defaults: ReconciliationDefaults = field(default_factory=ReconciliationDefaults)
    vendor_aliases: List[Dict[str, Any]] = field(default_factory=list)
    extra_capabilities: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not isinstance(self.logging, LoggingSettings):
            raise ValueError("Logging settings must be a LoggingSettings instance")
        if not isinstance(self.defaults, ReconciliationDefaults):
            raise ValueError("Defaults must be a ReconciliationDefaults instance")
        if not isinstance(self.vendor_aliases, list):
            raise ValueError("Vendor aliases must be a list")
        if not isinstance(self.extra_capabilities, dict):
            raise ValueError("Extra capabilities must be a dictionary")


def default_alias_config() -> List[Dict[str, Any]]:
    return [{'tag': alias.tag, 'match': list(alias.match)} for alias in VENDOR_ALIASES]


def build_registry(config: Optional[ReconcilerConfig] = None) -> CapabilityRegistry:
    """Build the process-wide registry from built-ins plus configured overrides.

    Raises:
        ConfigurationError: If aliases or extra capabilities are malformed
    """
    registry = default_registry()
    if config is None:
        return registry

    aliases = aliases_from_config(config.vendor_aliases) if config.vendor_aliases else None
    extra = CapabilityRegistry.candidates_from_dict(config.extra_capabilities)
    if aliases is None and not extra:
        return registry
    return registry.extended(extra, aliases)


class ConfigurationManager:
    """Manages loading, saving, and validation of reconciler configurations."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else Path("ont-reconciler.yaml")
        self._config: Optional[ReconcilerConfig] = None
        self.logger = get_logger("config")

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> ReconcilerConfig:
        """Load configuration from file (JSON or YAML).

        Raises:
            ConfigurationError: If the file is missing, unparseable or invalid
        """
        if config_path:
            self.config_path = Path(config_path)

        if not self.config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self.config_path}",
                config_key="config_path",
                actual_value=str(self.config_path)
            )

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                if self.config_path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            self.logger.log_configuration(
                f"Invalid configuration file {self.config_path}", "reconciler",
                success=False, validation_errors=[str(e)]
            )
            raise ConfigurationError(f"Invalid configuration file format: {e}", cause=e)

        self._config = self._dict_to_config(data or {})
        self.logger.log_configuration(f"Loaded configuration from {self.config_path}", "reconciler")
        return self._config

    def save_config(self, config: ReconcilerConfig, config_path: Optional[Union[str, Path]] = None) -> None:
        """Save configuration to file (JSON or YAML)."""
        if config_path:
            self.config_path = Path(config_path)

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self._config_to_dict(config)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            if self.config_path.suffix.lower() in ['.yaml', '.yml']:
                yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
            else:
                json.dump(data, f, indent=2, default=str)

        self._config = config
        self.logger.log_configuration(f"Saved configuration to {self.config_path}", "reconciler")

    def get_config(self) -> Optional[ReconcilerConfig]:
        """Get current loaded configuration."""
        return self._config

    def create_default_config(self) -> ReconcilerConfig:
        """Create a default configuration with the built-in alias table spelled out."""
        return ReconcilerConfig(
            logging=LoggingSettings(),
            defaults=ReconciliationDefaults(),
            vendor_aliases=default_alias_config(),
            extra_capabilities={}
        )

    def validate_config(self, config: ReconcilerConfig) -> List[str]:
        """Validate configuration and return list of validation errors."""
        errors = []

        try:
            LoggingSettings(**asdict(config.logging))
        except (TypeError, ValueError) as e:
            errors.append(f"Logging settings: {e}")

        try:
            ReconciliationDefaults(**asdict(config.defaults))
        except (TypeError, ValueError) as e:
            errors.append(f"Defaults: {e}")

        seen_tags = set()
        for i, alias in enumerate(config.vendor_aliases):
            try:
                parsed = aliases_from_config([alias])[0]
            except ConfigurationError as e:
                errors.append(f"Vendor alias {i}: {e.message}")
                continue
            if parsed.tag in seen_tags:
                errors.append(f"Vendor alias {i}: duplicate tag '{parsed.tag}'")
            seen_tags.add(parsed.tag)

        try:
            CapabilityRegistry.candidates_from_dict(config.extra_capabilities)
        except ConfigurationError as e:
            errors.append(f"Extra capabilities: {e.message}")

        self.logger.log_configuration(
            "Validated configuration", "reconciler",
            success=not errors, validation_errors=errors
        )
        return errors

    def _dict_to_config(self, data: Dict[str, Any]) -> ReconcilerConfig:
        """Convert dictionary to ReconcilerConfig object."""
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping", actual_value=type(data).__name__)

        try:
            return ReconcilerConfig(
                logging=LoggingSettings(**(data.get('logging') or {})),
                defaults=ReconciliationDefaults(**(data.get('defaults') or {})),
                vendor_aliases=data.get('vendor_aliases') or [],
                extra_capabilities=data.get('extra_capabilities') or {}
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}", cause=e)

    def _config_to_dict(self, config: ReconcilerConfig) -> Dict[str, Any]:
        """Convert ReconcilerConfig object to dictionary."""
        return asdict(config)
