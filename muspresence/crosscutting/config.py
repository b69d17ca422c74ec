import os
import json
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, Mapping
from pathlib import Path

from dotenv import dotenv_values


DEFAULT_CONFIG_FILE = 'config.json'
DEFAULT_DISCORD_APP_ID = '1474543583473176846'

UPLOADER_NONE = 'none'
UPLOADER_LITTERBOX = 'litterbox'
UPLOADER_IMGUR = 'imgur'
UPLOADERS = (UPLOADER_NONE, UPLOADER_LITTERBOX, UPLOADER_IMGUR)

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')
LOG_FORMATS = ('text', 'json')

# Environment variable -> dotted settings path
ENV_OVERRIDES = {
    'MUSPRESENCE_BASE_URL': 'base_url',
    'MUSPRESENCE_POLL_INTERVAL_SEC': 'poll_interval_sec',
    'MUSPRESENCE_HTTP_TIMEOUT_SEC': 'http_timeout_sec',
    'MUSPRESENCE_IMAGE_UPLOADER': 'images.uploader',
    'IMGUR_CLIENT_ID': 'images.imgur_client_id',
    'DISCORD_APP_ID': 'discord_app_id',
    'MUSPRESENCE_LOG_LEVEL': 'logging.level',
    'MUSPRESENCE_LOG_FILE': 'logging.file',
    'MUSPRESENCE_LOG_FORMAT': 'logging.format',
}


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass
class ImageSettings:
    uploader: str = UPLOADER_NONE
    imgur_client_id: str = ''


@dataclass
class LoggingSettings:
    level: str = 'INFO'
    file: Optional[str] = None
    format: str = 'text'


@dataclass
class StatusServerSettings:
    enabled: bool = False
    host: str = '127.0.0.1'
    port: int = 8787


@dataclass
class Settings:
    """Process configuration, loaded once at startup and never reloaded."""

    base_url: str = 'http://localhost:3000'
    poll_interval_sec: float = 5
    http_timeout_sec: float = 10
    discord_app_id: str = DEFAULT_DISCORD_APP_ID
    images: ImageSettings = field(default_factory=ImageSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    status_server: StatusServerSettings = field(default_factory=StatusServerSettings)

    def validate(self) -> None:
        """Raise ConfigError when the settings cannot run the service."""
        if not self.base_url:
            raise ConfigError("base_url must not be empty")
        if self.poll_interval_sec <= 0:
            raise ConfigError(f"poll_interval_sec must be positive, got {self.poll_interval_sec}")
        if self.http_timeout_sec <= 0:
            raise ConfigError(f"http_timeout_sec must be positive, got {self.http_timeout_sec}")
        if not self.discord_app_id:
            raise ConfigError("discord_app_id must not be empty")
        if self.images.uploader not in UPLOADERS:
            raise ConfigError(
                f"images.uploader must be one of {', '.join(UPLOADERS)}, got {self.images.uploader!r}"
            )
        if self.images.uploader == UPLOADER_IMGUR and not self.images.imgur_client_id:
            raise ConfigError('images.imgur_client_id is required when images.uploader is "imgur"')
        if self.logging.level.upper() not in LOG_LEVELS:
            raise ConfigError(f"logging.level must be one of {', '.join(LOG_LEVELS)}")
        if self.logging.format not in LOG_FORMATS:
            raise ConfigError(f"logging.format must be one of {', '.join(LOG_FORMATS)}")
        if not 0 < self.status_server.port < 65536:
            raise ConfigError(f"status_server.port out of range: {self.status_server.port}")

    def get_config_summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        summary = asdict(self)
        summary['images']['imgur_client_id'] = bool(self.images.imgur_client_id)
        return summary


def _coerce(section: Any, name: str, value: Any, path: str) -> Any:
    current = getattr(section, name)
    try:
        if isinstance(current, bool):
            if isinstance(value, str):
                return value.strip().lower() in ('1', 'true', 'yes', 'on')
            return bool(value)
        if isinstance(current, (int, float)) and not isinstance(value, bool):
            number = float(value)
            return int(number) if isinstance(current, int) and number.is_integer() else number
        # Only options without a default (logging.file) may be null
        if current is None:
            return None if value is None else str(value)
        if isinstance(current, str) and value is not None:
            return str(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {path}: {value!r}")
    raise ConfigError(f"Invalid value for {path}: {value!r}")


def _apply(target: Any, data: Mapping[str, Any], prefix: str = '') -> None:
    for key, value in data.items():
        path = f"{prefix}{key}"
        if not hasattr(target, key):
            raise ConfigError(f"Unknown configuration option: {path}")
        current = getattr(target, key)
        if hasattr(current, '__dataclass_fields__'):
            if not isinstance(value, Mapping):
                raise ConfigError(f"Configuration option {path} must be an object")
            _apply(current, value, prefix=f"{path}.")
        else:
            setattr(target, key, _coerce(target, key, value, path))


def _set_path(settings: Settings, dotted: str, value: str) -> None:
    *parents, name = dotted.split('.')
    section = settings
    for parent in parents:
        section = getattr(section, parent)
    setattr(section, name, _coerce(section, name, value, dotted))


def load_config_file(path: Path, required: bool = False) -> Dict[str, Any]:
    """Load the JSON config file. A missing file is only an error when required."""
    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return {}

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def load_env_overrides(env_file: Optional[str] = None,
                       environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect recognised overrides from a .env file and the process environment.

    Process environment wins over the .env file.
    """
    values: Dict[str, str] = {}
    if env_file and Path(env_file).exists():
        values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    values.update(os.environ if environ is None else environ)
    return {k: v for k, v in values.items() if k in ENV_OVERRIDES and v != ''}


def load_settings(config_path: Optional[str] = None,
                  env_file: Optional[str] = '.env',
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build validated settings from defaults, the JSON file and environment overrides."""
    env = os.environ if environ is None else environ
    explicit = config_path or env.get('MUSPRESENCE_CONFIG')
    path = Path(explicit or DEFAULT_CONFIG_FILE)

    settings = Settings()
    _apply(settings, load_config_file(path, required=bool(explicit)))

    for key, value in load_env_overrides(env_file, env).items():
        _set_path(settings, ENV_OVERRIDES[key], value)

    settings.logging.level = settings.logging.level.upper()
    settings.validate()
    return settings
