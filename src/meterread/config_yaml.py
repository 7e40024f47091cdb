"""YAML configuration management with environment variable support."""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from meterread.models import (
    AppConfig,
    AssemblyConfig,
    ModelConfig,
    OverlayConfig,
    ServerConfig,
)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration error."""

    pass


def _substitute_env_vars(value: str) -> str:
    """Substitute environment variables in a string.

    Supports:
    - ${VAR_NAME} - required variable
    - ${VAR_NAME:-default} - variable with default value
    """
    pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value
        if default is not None:
            return default
        raise ConfigError(f"Environment variable '{var_name}' is not set and no default provided")

    return re.sub(pattern, replacer, value)


def _process_env_vars(data: Any) -> Any:
    """Recursively process environment variables in configuration data."""
    if isinstance(data, str):
        return _substitute_env_vars(data)
    elif isinstance(data, dict):
        return {k: _process_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_process_env_vars(item) for item in data]
    return data


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _as_float(value: Any, name: str, low: float | None = None, high: float | None = None) -> float:
    """Coerce a config value (possibly an env-substituted string) to float."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{name}' must be a number, got {value!r}")
    if (low is not None and number < low) or (high is not None and number > high):
        raise ConfigError(f"'{name}' must be within [{low}, {high}], got {number}")
    return number


def _as_int(value: Any, name: str, low: int | None = None, high: int | None = None) -> int:
    """Coerce a config value to int."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{name}' must be an integer, got {value!r}")
    if (low is not None and number < low) or (high is not None and number > high):
        raise ConfigError(f"'{name}' must be within [{low}, {high}], got {number}")
    return number


def _parse_models(data: dict) -> ModelConfig:
    """Parse model configuration."""
    return ModelConfig(
        classifier_path=str(data.get("classifier_path", "") or ""),
        detector_path=str(data.get("detector_path", "") or ""),
        meter_label=str(data.get("meter_label", "Meter")).strip(),
        confidence_threshold=_as_float(
            data.get("confidence_threshold", 0.2), "models.confidence_threshold", 0.0, 1.0
        ),
        iou_threshold=_as_float(data.get("iou_threshold", 0.5), "models.iou_threshold", 0.0, 1.0),
    )


def _parse_assembly(data: dict) -> AssemblyConfig:
    """Parse reading assembly configuration."""
    return AssemblyConfig(
        row_min_tolerance=_as_float(
            data.get("row_min_tolerance", 12.0), "assembly.row_min_tolerance", 0.0
        ),
        row_tolerance_ratio=_as_float(
            data.get("row_tolerance_ratio", 0.03), "assembly.row_tolerance_ratio", 0.0
        ),
    )


def _parse_overlay(data: dict) -> OverlayConfig:
    """Parse overlay drawing configuration."""
    color = data.get("color", [0, 0, 255])
    if not isinstance(color, list) or len(color) != 3:
        raise ConfigError("'overlay.color' must be a list of 3 BGR values")

    return OverlayConfig(
        color=tuple(_as_int(c, "overlay.color", 0, 255) for c in color),
        thickness=_as_int(data.get("thickness", 2), "overlay.thickness", 1),
        font_scale=_as_float(data.get("font_scale", 0.5), "overlay.font_scale", 0.0),
        label_gap=_as_int(data.get("label_gap", 2), "overlay.label_gap", 0),
        jpeg_quality=_as_int(data.get("jpeg_quality", 85), "overlay.jpeg_quality", 1, 100),
    )


def _parse_server(data: dict) -> ServerConfig:
    """Parse server configuration."""
    return ServerConfig(
        host=str(data.get("host", "0.0.0.0")),
        port=_as_int(data.get("port", 8000), "server.port", 1, 65535),
    )


class YAMLConfig:
    """YAML configuration manager with environment variable support."""

    DEFAULT_CONFIG_DIR = Path.home() / ".config" / "meterread"
    DEFAULT_CONFIG_FILE = "config.yaml"

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional custom config file path
        """
        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = self.DEFAULT_CONFIG_DIR / self.DEFAULT_CONFIG_FILE

        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> AppConfig:
        """Load configuration from YAML file.

        Returns:
            Parsed AppConfig (defaults if the file does not exist)

        Raises:
            ConfigError: If configuration is invalid
        """
        if not self.config_path.exists():
            logger.info(f"No config at {self.config_path}, using defaults")
            self._config = AppConfig()
            return self._config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax: {e}")

        if raw_data is None:
            self._config = AppConfig()
            return self._config
        if not isinstance(raw_data, dict):
            raise ConfigError("Top-level configuration must be a mapping")

        # Process environment variables
        data = _process_env_vars(raw_data)

        self._config = AppConfig(
            models=_parse_models(_section(data, "models")),
            assembly=_parse_assembly(_section(data, "assembly")),
            overlay=_parse_overlay(_section(data, "overlay")),
            server=_parse_server(_section(data, "server")),
        )
        return self._config

    def save(self, config: AppConfig | None = None) -> None:
        """Save configuration to YAML file.

        Args:
            config: Configuration to save (uses current if not provided)
        """
        if config is None:
            config = self._config or AppConfig()

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self._config_to_dict(config)

        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

        self._config = config

    def _config_to_dict(self, config: AppConfig) -> dict:
        """Convert AppConfig to dictionary for YAML serialization."""
        return {
            "models": {
                "classifier_path": config.models.classifier_path,
                "detector_path": config.models.detector_path,
                "meter_label": config.models.meter_label,
                "confidence_threshold": config.models.confidence_threshold,
                "iou_threshold": config.models.iou_threshold,
            },
            "assembly": {
                "row_min_tolerance": config.assembly.row_min_tolerance,
                "row_tolerance_ratio": config.assembly.row_tolerance_ratio,
            },
            "overlay": {
                "color": list(config.overlay.color),
                "thickness": config.overlay.thickness,
                "font_scale": config.overlay.font_scale,
                "label_gap": config.overlay.label_gap,
                "jpeg_quality": config.overlay.jpeg_quality,
            },
            "server": {
                "host": config.server.host,
                "port": config.server.port,
            },
        }

    def reload(self) -> AppConfig:
        """Reload configuration from file.

        Returns:
            Reloaded AppConfig
        """
        self._config = None
        return self.config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return YAMLConfig.DEFAULT_CONFIG_DIR / YAMLConfig.DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from file.

    Args:
        config_path: Optional custom config file path

    Returns:
        Loaded AppConfig
    """
    return YAMLConfig(config_path).load()
