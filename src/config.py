"""Configuration loading and validation module.

This module handles YAML configuration loading and provides a typed
Config dataclass consumed by all other modules. The same Config can be
built from command-line values with build_config().
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


@dataclass
class MonitorConfig:
    """Monitoring behavior configuration."""
    interval_seconds: float
    timeout_seconds: float = 1.0
    duration_seconds: float = 0
    heartbeat_period: int = 10


@dataclass
class TargetConfig:
    """A single monitored target."""
    url: str
    json_filter: Optional[Dict[str, Any]] = None
    expect_json: bool = False


@dataclass
class Config:
    """Root configuration dataclass."""
    monitor: MonitorConfig
    targets: List[TargetConfig] = field(default_factory=list)


def _get_nested(data: dict, path: str, required: bool = True, default: Any = None) -> Any:
    """Get a nested value from a dictionary using dot notation.

    Args:
        data: The dictionary to search
        path: Dot-separated path to the value (e.g., "monitor.interval_seconds")
        required: If True, raises ConfigError when value is missing
        default: Default value if not required and missing

    Returns:
        The value at the path, or default if not required and missing

    Raises:
        ConfigError: If required value is missing
    """
    keys = path.split(".")
    current = data

    for key in keys:
        if not isinstance(current, dict):
            if required:
                raise ConfigError(f"Configuration path '{path}' is not a valid nested structure")
            return default
        if key not in current:
            if required:
                raise ConfigError(f"Missing required configuration field: {path}")
            return default
        current = current[key]

    return current


def _validate_type(value: Any, expected_type: type, field_name: str) -> None:
    """Validate that a value is of the expected type.

    Args:
        value: The value to validate
        expected_type: The expected type
        field_name: Name of the field for error messages

    Raises:
        ConfigError: If value is not of the expected type
    """
    if expected_type is list:
        if not isinstance(value, list):
            raise ConfigError(
                f"Field '{field_name}' must be a list, got {type(value).__name__}"
            )
    elif expected_type is int:
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigError(
                f"Field '{field_name}' must be an integer, got {type(value).__name__}"
            )
    elif expected_type is float:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ConfigError(
                f"Field '{field_name}' must be a number, got {type(value).__name__}"
            )
    elif expected_type is str:
        if not isinstance(value, str):
            raise ConfigError(
                f"Field '{field_name}' must be a string, got {type(value).__name__}"
            )
    else:
        if not isinstance(value, expected_type):
            raise ConfigError(
                f"Field '{field_name}' must be of type {expected_type.__name__}, got {type(value).__name__}"
            )


def _validate_monitor(monitor: MonitorConfig) -> None:
    if monitor.interval_seconds <= 0:
        raise ConfigError("monitor.interval_seconds must be > 0")
    if monitor.timeout_seconds <= 0:
        raise ConfigError("monitor.timeout_seconds must be > 0")
    if monitor.duration_seconds < 0:
        raise ConfigError("monitor.duration_seconds must be >= 0")
    if monitor.heartbeat_period < 0:
        raise ConfigError("monitor.heartbeat_period must be >= 0")


def _validate_targets(targets: List[TargetConfig]) -> None:
    # Deferred imports: both modules define errors derived from ConfigError
    from normalization import validate_filter
    from sampler import validate_target

    seen = set()
    for i, target in enumerate(targets):
        validate_target(target.url)
        validate_filter(target.json_filter)
        if target.url in seen:
            raise ConfigError(f"Duplicate target url in targets[{i}]: {target.url}")
        seen.add(target.url)


def parse_json_filter(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse an inline filter such as ``{datetime: '[-T0-9]+:[0-9]+'}``.

    YAML flow mappings accept JSON as well as unquoted keys.

    Args:
        text: Filter text, or None

    Returns:
        The filter mapping, or None when text is None

    Raises:
        ConfigError: If text is not a mapping
    """
    if text is None:
        return None
    try:
        value = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid json filter {text!r}: {e}")
    if not isinstance(value, dict):
        raise ConfigError(f"Json filter must be a mapping, got {text!r}")
    return value


def load_config(path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Config: Validated configuration object

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid
    """
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a YAML dictionary")

    # Monitor configuration
    monitor_data = _get_nested(data, "monitor")

    interval_seconds = _get_nested(monitor_data, "interval_seconds")
    _validate_type(interval_seconds, float, "monitor.interval_seconds")

    timeout_seconds = _get_nested(monitor_data, "timeout_seconds", required=False, default=1.0)
    _validate_type(timeout_seconds, float, "monitor.timeout_seconds")

    duration_seconds = _get_nested(monitor_data, "duration_seconds", required=False, default=0)
    _validate_type(duration_seconds, float, "monitor.duration_seconds")

    heartbeat_period = _get_nested(monitor_data, "heartbeat_period", required=False, default=10)
    _validate_type(heartbeat_period, int, "monitor.heartbeat_period")

    monitor = MonitorConfig(
        interval_seconds=interval_seconds,
        timeout_seconds=timeout_seconds,
        duration_seconds=duration_seconds,
        heartbeat_period=heartbeat_period,
    )
    _validate_monitor(monitor)

    # Targets configuration
    targets_data = _get_nested(data, "targets")
    _validate_type(targets_data, list, "targets")
    if not targets_data:
        raise ConfigError("targets must name at least one target")

    targets = []
    for i, target_data in enumerate(targets_data):
        _validate_type(target_data, dict, f"targets[{i}]")

        url = _get_nested(target_data, "url")
        _validate_type(url, str, f"targets[{i}].url")

        json_filter = _get_nested(target_data, "json_filter", required=False, default=None)
        if json_filter is not None:
            _validate_type(json_filter, dict, f"targets[{i}].json_filter")

        expect_json = _get_nested(
            target_data, "expect_json", required=False, default=json_filter is not None
        )
        _validate_type(expect_json, bool, f"targets[{i}].expect_json")

        targets.append(
            TargetConfig(url=url, json_filter=json_filter, expect_json=expect_json)
        )

    _validate_targets(targets)

    return Config(monitor=monitor, targets=targets)


def build_config(
    url: str,
    interval_seconds: float = 1.0,
    timeout_seconds: float = 1.0,
    duration_seconds: float = 60,
    heartbeat_period: int = 10,
    json_filter: Optional[Dict[str, Any]] = None,
    expect_json: Optional[bool] = None,
) -> Config:
    """Build and validate a single-target configuration.

    Raises:
        ConfigError: If any value is invalid
    """
    monitor = MonitorConfig(
        interval_seconds=interval_seconds,
        timeout_seconds=timeout_seconds,
        duration_seconds=duration_seconds,
        heartbeat_period=heartbeat_period,
    )
    _validate_monitor(monitor)

    if expect_json is None:
        expect_json = json_filter is not None
    targets = [TargetConfig(url=url, json_filter=json_filter, expect_json=expect_json)]
    _validate_targets(targets)

    return Config(monitor=monitor, targets=targets)
