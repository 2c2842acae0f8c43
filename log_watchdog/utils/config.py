# log_watchdog/utils/config.py

"""
Configuration management for log-watchdog
"""
import os
import json
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional, Union
from dataclasses import dataclass, field
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from log_watchdog.watchdog.definition import WatchdogDefinition
from log_watchdog.watchdog.dispatcher import CommandSpec
from log_watchdog.watchdog.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
LOG_FORMATS = {"text", "json", "color"}


@dataclass
class RuntimeSettings:
    """Process-wide settings, read once at startup"""
    log_level: str = "INFO"
    log_format: str = "text"
    log_file: Optional[str] = None
    use_polling: bool = False
    poll_interval: float = 1.0
    shutdown_grace: float = 5.0


@dataclass
class Config:
    """Loaded configuration"""
    settings: RuntimeSettings = field(default_factory=RuntimeSettings)
    watchdogs: List[WatchdogDefinition] = field(default_factory=list)
    errors: Dict[str, ConfigError] = field(default_factory=dict)
    source: Optional[Path] = None


class CommandModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    args: List[str] = Field(default_factory=list)


class WatchdogModel(BaseModel):
    """Schema of a single `watchdogs.<name>` block"""
    model_config = ConfigDict(extra="forbid")

    log_file: str
    output_file: str
    regex: str
    commands: Dict[str, Union[List[str], CommandModel]]
    debounce: int = Field(0, ge=0)  # milliseconds
    oneshot: bool = False
    timeout: int = Field(0, ge=0)  # milliseconds, 0 disables
    from_beginning: bool = False

    @field_validator("commands")
    @classmethod
    def _require_commands(cls, value):
        if not value:
            raise ValueError("at least one command is required")
        return value


class SettingsModel(BaseModel):
    """Schema of the optional top-level `settings` block"""
    model_config = ConfigDict(extra="forbid")

    log_level: str = "INFO"
    log_format: str = "text"
    log_file: Optional[str] = None
    use_polling: bool = False
    poll_interval: float = Field(1.0, gt=0)
    shutdown_grace: float = Field(5.0, ge=0)

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"must be one of {sorted(LOG_LEVELS)}")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_FORMATS:
            raise ValueError(f"must be one of {sorted(LOG_FORMATS)}")
        return value


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "value"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path))


def parse_watchdog(name: str, data: Any) -> WatchdogDefinition:
    """
    Validate one watchdog block

    Args:
        name: Watchdog name (the mapping key)
        data: Raw block as loaded from the settings file

    Returns:
        Immutable watchdog definition

    Raises:
        ConfigError: If a field is missing or has the wrong type
    """
    if not isinstance(data, dict):
        raise ConfigError("definition must be a mapping", watchdog=name)

    try:
        model = WatchdogModel.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_describe(e), watchdog=name) from e

    commands = []
    for program, spec in model.commands.items():
        args = spec if isinstance(spec, list) else spec.args
        commands.append(CommandSpec(name=program, args=tuple(args)))

    return WatchdogDefinition(
        name=name,
        log_file=_expand(model.log_file),
        output_file=_expand(model.output_file),
        regex=model.regex,
        commands=tuple(commands),
        debounce=model.debounce / 1000.0,
        oneshot=model.oneshot,
        timeout=model.timeout / 1000.0 if model.timeout else None,
        from_beginning=model.from_beginning,
    )


def parse_config(data: Any, source: Optional[Path] = None) -> Config:
    """
    Build a Config from an already-parsed document

    Invalid watchdog blocks are reported in `Config.errors` and skipped.

    Raises:
        ConfigError: If the document itself is unusable
    """
    if not isinstance(data, dict):
        raise ConfigError("settings document must be a mapping")

    watchdogs = data.get("watchdogs")
    if watchdogs is None:
        raise ConfigError("missing setting key: watchdogs")
    if not isinstance(watchdogs, dict):
        raise ConfigError("'watchdogs' must be a mapping of name to definition")

    try:
        settings_model = SettingsModel.model_validate(data.get("settings") or {})
    except ValidationError as e:
        raise ConfigError(f"settings: {_describe(e)}") from e

    config = Config(
        settings=RuntimeSettings(**settings_model.model_dump()),
        source=source,
    )

    for name, block in watchdogs.items():
        name = str(name)
        try:
            config.watchdogs.append(parse_watchdog(name, block))
        except ConfigError as e:
            logger.debug(f"Skipping invalid watchdog: {e}")
            config.errors[name] = e

    logger.info(
        f"Loaded {len(config.watchdogs)} watchdog(s)"
        + (f", {len(config.errors)} invalid" if config.errors else "")
    )
    return config


def load_config(path: Union[str, Path]) -> Config:
    """
    Load configuration from a YAML or JSON file

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    path = Path(path)
    logger.info(f"Loading configuration from {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            else:  # JSON
                data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot parse {path}: {e}") from e

    return parse_config(data, source=path)
