#!/usr/bin/env python3
"""
Configuration module for the Govee touch panel.

Provides Pydantic models for the application configuration and the YAML
loader that builds them. Any validation failure is turned into a ConfigError
so the application refuses to start polling.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from govee_touch.errors import ConfigError

API_KEY_ENV = "GOVEE_API_KEY"


class ActionType(str, Enum):
    """What a channel does when it is touched."""

    POWER_ON = "power_on"
    POWER_OFF = "power_off"
    BRIGHTNESS_HIGH = "brightness_high"
    BRIGHTNESS_LOW = "brightness_low"
    RANDOM_SCENE = "random_scene"
    COLLECTION = "collection"


class ChannelAction(BaseModel):
    """Action assigned to a single electrode."""

    action: ActionType
    collection: Optional[str] = Field(
        default=None, description="Scene collection rotated by this channel"
    )

    @model_validator(mode="after")
    def _check_collection(self) -> "ChannelAction":
        if self.action is ActionType.COLLECTION and not self.collection:
            raise ValueError("collection action needs a collection name")
        if self.action is not ActionType.COLLECTION and self.collection:
            raise ValueError(f"{self.action.value} does not take a collection")
        return self

    def describe(self) -> str:
        if self.action is ActionType.COLLECTION:
            return f"{self.collection} scenes"
        return self.action.value.replace("_", " ")


class SensorConfig(BaseModel):
    """MPR121 sensor parameters."""

    i2c_address: int = Field(
        default=0x5A, description="I2C address of the MPR121 sensor"
    )
    i2c_bus: int = Field(default=1, description="I2C bus number")
    channels: int = Field(
        default=12, ge=1, le=12, description="Number of electrodes in use"
    )
    touch_threshold: int = Field(
        default=10, ge=0, le=255, description="Touch threshold for all electrodes"
    )
    release_threshold: int = Field(
        default=8, ge=0, le=255, description="Release threshold for all electrodes"
    )


class GoveeConfig(BaseModel):
    """Govee developer API access."""

    api_url: str = Field(
        default="https://openapi.api.govee.com", description="Govee API base URL"
    )
    api_key: Optional[str] = Field(
        default=None, description=f"Govee API key (falls back to ${API_KEY_ENV})"
    )
    device_sku: Optional[str] = Field(default=None, description="Device model, e.g. H6061")
    device_id: Optional[str] = Field(default=None, description="Device MAC-style id")

    def check_complete(self, need_device: bool = True) -> None:
        """Raise ConfigError when credentials needed for a request are missing."""
        missing = []
        if not self.api_key:
            missing.append("api_key")
        if need_device:
            if not self.device_sku:
                missing.append("device_sku")
            if not self.device_id:
                missing.append("device_id")
        if missing:
            raise ConfigError(f"Missing Govee settings: {', '.join(missing)}")


class HourWindow(BaseModel):
    """Half-open window [start_hour, end_hour) during which commands may run."""

    start_hour: int = Field(default=8, ge=0, le=23)
    end_hour: int = Field(default=20, ge=1, le=24)

    @model_validator(mode="after")
    def _check_order(self) -> "HourWindow":
        if self.start_hour >= self.end_hour:
            raise ValueError(
                f"start_hour ({self.start_hour}) must be before end_hour ({self.end_hour})"
            )
        return self


def default_channels() -> Dict[int, ChannelAction]:
    return {
        0: ChannelAction(action=ActionType.POWER_ON),
        2: ChannelAction(action=ActionType.BRIGHTNESS_HIGH),
        3: ChannelAction(action=ActionType.BRIGHTNESS_LOW),
        9: ChannelAction(action=ActionType.POWER_OFF),
    }


class AppConfig(BaseModel):
    """Application configuration parameters using Pydantic for validation."""

    sensor: SensorConfig = Field(default_factory=SensorConfig)
    govee: GoveeConfig = Field(default_factory=GoveeConfig)

    # Timing
    sample_interval_ms: int = Field(
        default=100, gt=0, description="Interval in milliseconds between sensor reads"
    )
    debounce_window_ms: int = Field(
        default=1000, ge=0, description="Minimum spacing between accepted triggers"
    )
    debounce_per_channel: bool = Field(
        default=True,
        description="Debounce each channel separately instead of the whole panel",
    )
    io_timeout_sec: float = Field(
        default=5.0, gt=0, description="Timeout for sensor reads and API calls"
    )
    allowed_hours: HourWindow = Field(default_factory=HourWindow)

    # Scenes and channel mapping
    scenes: Dict[str, int] = Field(
        default_factory=dict, description="Scene name to Govee scene id"
    )
    collections: Dict[str, List[str]] = Field(
        default_factory=dict, description="Named, ordered scene collections"
    )
    channels: Dict[int, ChannelAction] = Field(default_factory=default_channels)

    # Runtime
    dry_run: bool = Field(default=False, description="Log commands instead of sending them")
    web_enabled: bool = Field(default=True, description="Serve the status API")
    host: str = Field(default="127.0.0.1", description="Host interface for the status API")
    port: int = Field(default=8000, description="Port for the status API")

    # Logging Config
    log_level: str = Field(default="info", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Path to log file")

    @field_validator("channels", mode="before")
    @classmethod
    def _expand_shorthand(cls, value: Any) -> Any:
        # "power_on" -> {"action": "power_on"}, {"collection": "NIGHT"} -> collection action
        if not isinstance(value, dict):
            return value
        expanded = {}
        for channel, action in value.items():
            if isinstance(action, str):
                action = {"action": action}
            elif isinstance(action, dict) and "action" not in action and "collection" in action:
                action = {"action": ActionType.COLLECTION.value, **action}
            expanded[channel] = action
        return expanded

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError(f"unknown log level: {value}")
        return value

    @model_validator(mode="after")
    def _check_mapping(self) -> "AppConfig":
        for name, members in self.collections.items():
            if not members:
                raise ValueError(f"scene collection {name!r} is empty")
            unknown = [scene for scene in members if scene not in self.scenes]
            if unknown:
                raise ValueError(
                    f"scene collection {name!r} references unknown scenes: {unknown}"
                )

        for channel, action in self.channels.items():
            if not 0 <= channel < self.sensor.channels:
                raise ValueError(
                    f"channel {channel} outside 0..{self.sensor.channels - 1}"
                )
            if (
                action.action is ActionType.COLLECTION
                and action.collection not in self.collections
            ):
                raise ValueError(
                    f"channel {channel} assigned to unknown collection {action.collection!r}"
                )
            if action.action is ActionType.RANDOM_SCENE and not self.scenes:
                raise ValueError(f"channel {channel} picks a random scene but no scenes are defined")
        return self

    @property
    def sample_interval_sec(self) -> float:
        return self.sample_interval_ms / 1000.0

    @property
    def debounce_window_sec(self) -> float:
        return self.debounce_window_ms / 1000.0


def build_config(
    data: Optional[Dict[str, Any]] = None, overrides: Optional[Dict[str, Any]] = None
) -> AppConfig:
    """Validate a raw configuration mapping into an AppConfig.

    Args:
        data: Parsed configuration (e.g. from YAML)
        overrides: Top-level values that replace entries in ``data``

    Returns:
        AppConfig: Validated configuration

    Raises:
        ConfigError: If the configuration is invalid
    """
    merged: Dict[str, Any] = dict(data or {})
    merged.update(overrides or {})

    govee = dict(merged.get("govee") or {})
    if not govee.get("api_key") and os.environ.get(API_KEY_ENV):
        govee["api_key"] = os.environ[API_KEY_ENV]
    merged["govee"] = govee

    try:
        return AppConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_config(
    path: Optional[Union[str, Path]] = None, overrides: Optional[Dict[str, Any]] = None
) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: YAML file to read, or None to use defaults only
        overrides: Top-level values taking precedence over the file

    Returns:
        AppConfig: Validated configuration

    Raises:
        ConfigError: If the file cannot be read or the configuration is invalid
    """
    data: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed config file {path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        data = loaded or {}

    return build_config(data, overrides)
