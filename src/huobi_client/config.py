"""
Configuration for the Huobi client.

Options are immutable and passed explicitly to each client or order book at
construction; there is no process-wide default that can be mutated.
"""
import json
import logging
import logging.handlers
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .auth.signer import ApiCredentials

logger = logging.getLogger(__name__)

ENV_PREFIX = 'HUOBI__'
MBP_LEVELS = (5, 20, 150, 400)


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ClientOptions(BaseModel):
    """REST client options."""
    model_config = ConfigDict(frozen=True)

    base_address: str = "https://api.huobi.pro"
    api_credentials: Optional[ApiCredentials] = None
    request_timeout: float = Field(default=30.0, gt=0)  # seconds
    rate_limit: int = Field(default=10, gt=0)  # requests per second
    max_retries: int = Field(default=0, ge=0)  # connection errors only
    request_body_format: Literal['json', 'form'] = 'json'
    parameter_position: Literal['body', 'uri'] = 'body'


class SocketClientOptions(BaseModel):
    """Push channel options."""
    model_config = ConfigDict(frozen=True)

    base_address: str = "wss://api.huobi.pro/ws"
    request_timeout: float = Field(default=10.0, gt=0)  # seconds
    # When set, order books use the incremental market-by-price channel.
    incremental_levels: Optional[int] = None

    @field_validator('incremental_levels')
    @classmethod
    def _check_levels(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value not in MBP_LEVELS:
            raise ValueError(f"incremental_levels must be one of {MBP_LEVELS}")
        return value


class OrderBookOptions(BaseModel):
    """Order book synchronization options."""
    model_config = ConfigDict(frozen=True)

    merge_step: int = Field(default=0, ge=0, le=5)
    sync_timeout: float = Field(default=10.0, gt=0)  # seconds
    auto_resync: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    file: Optional[str] = None
    max_size_mb: int = 100  # Max log file size in MB
    backup_count: int = 5  # Number of backup logs to keep
    console: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoggingConfig':
        """Create from dictionary."""
        data = dict(data)
        if "level" in data and isinstance(data["level"], str):
            data["level"] = LogLevel[data["level"].upper()]
        for key in ("max_size_mb", "backup_count"):
            if key in data:
                data[key] = int(data[key])
        if "console" in data and isinstance(data["console"], str):
            data["console"] = data["console"].lower() in ("1", "true", "yes")
        return cls(**{k: v for k, v in data.items() if k in cls.__annotations__})


@dataclass(frozen=True)
class Settings:
    """All client settings, as loaded from a file and the environment."""
    client: ClientOptions = field(default_factory=ClientOptions)
    socket: SocketClientOptions = field(default_factory=SocketClientOptions)
    order_book: OrderBookOptions = field(default_factory=OrderBookOptions)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        """Create settings from a dictionary."""
        return cls(
            client=ClientOptions.model_validate(data.get("client", {})),
            socket=SocketClientOptions.model_validate(data.get("socket", {})),
            order_book=OrderBookOptions.model_validate(data.get("order_book", {})),
            logging=LoggingConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, file_path: Union[str, Path]) -> 'Settings':
        """Load settings from a YAML or JSON file (no environment overrides)."""
        return cls.from_dict(_read_file(Path(file_path)))


def _read_file(file_path: Path) -> Dict[str, Any]:
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path, 'r') as f:
        if file_path.suffix.lower() == '.json':
            data = json.load(f)
        elif file_path.suffix.lower() in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported config file format: {file_path.suffix}")

    return data or {}


def _apply_env_overrides(data: Dict[str, Any]) -> None:
    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            parts = key[len(ENV_PREFIX):].lower().split('__')
            current = data
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = value

    api_key = os.environ.get('HUOBI_API_KEY')
    api_secret = os.environ.get('HUOBI_API_SECRET')
    if api_key and api_secret:
        client = data.setdefault('client', {})
        client['api_credentials'] = {'key': api_key, 'secret': api_secret}


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load settings from a file and environment variables.

    A `.env` file in the working directory is loaded first. Environment
    variables named `HUOBI__<SECTION>__<FIELD>` override file values, and
    `HUOBI_API_KEY` / `HUOBI_API_SECRET` set the REST credentials.

    Args:
        config_path: Path to the settings file. If None, looks in default locations.

    Returns:
        Settings: Loaded settings
    """
    load_dotenv()

    default_paths = [
        "config/huobi.yaml",
        "config/huobi.json",
        "huobi.yaml",
        "huobi.json",
    ]

    data: Dict[str, Any] = {}
    if config_path:
        data = _read_file(Path(config_path))
    else:
        for path in default_paths:
            if os.path.exists(path):
                data = _read_file(Path(path))
                break
        else:
            logger.debug("No settings file found, using defaults")

    _apply_env_overrides(data)
    return Settings.from_dict(data)


def configure_logging(config: LoggingConfig, logger_name: str = 'huobi_client') -> logging.Logger:
    """
    Attach handlers to the package logger according to the configuration.

    Existing handlers on the logger are replaced, so calling this twice does
    not duplicate output.
    """
    package_logger = logging.getLogger(logger_name)
    package_logger.setLevel(getattr(logging, config.level.value))
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if config.console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        package_logger.addHandler(console)

    if config.file:
        file_handler = logging.handlers.RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    return package_logger
