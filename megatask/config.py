"""
Configuration for megatask.

Settings are plain dataclasses with defaults. ``load_settings`` overlays a
YAML file and then environment variables; ``save_settings`` writes the
current values back to YAML.
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .apis.megaverse_api import DEFAULT_BASE_URL
from .core.controllers import RetryConfig
from .core.exceptions import ConfigurationError
from .core.executors import ExecutorConfig
from .core.rate_limiter import RateLimitConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "config.yaml"
ENV_CANDIDATE_ID = "MEGATASK_CANDIDATE_ID"
ENV_API_URL = "MEGATASK_API_URL"


@dataclass
class ApiSettings:
    base_url: str = DEFAULT_BASE_URL
    candidate_id: str = ""
    timeout: float = 30.0
    retry: RetryConfig = field(default_factory=lambda: RetryConfig(
        max_attempts=6, initial_delay=1.0, max_delay=30.0, multiplier=2.0
    ))
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)


@dataclass
class LoggingSettings:
    level: str = "info"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


@dataclass
class ExecutionSettings:
    max_workers: int = 5
    batch_size: int = 5
    timeout: float = 300.0
    show_progress: bool = True

    def executor_config(self) -> ExecutorConfig:
        return ExecutorConfig(max_workers=self.max_workers, show_progress=self.show_progress)


@dataclass
class Settings:
    """Top-level settings."""
    api: ApiSettings = field(default_factory=ApiSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)

    def validate(self, require_candidate: bool = True) -> None:
        if not self.api.base_url:
            raise ConfigurationError("API base URL is required")
        if require_candidate and not self.api.candidate_id:
            raise ConfigurationError(
                f"candidate ID is required - set {ENV_CANDIDATE_ID} "
                "or add it to the config file"
            )
        if self.api.timeout <= 0:
            raise ConfigurationError("API timeout must be positive")
        if self.api.rate_limit.requests_per_second <= 0:
            raise ConfigurationError("rate limit must be positive")
        if self.execution.max_workers < 1:
            raise ConfigurationError("max workers must be positive")
        if self.execution.timeout <= 0:
            raise ConfigurationError("execution timeout must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        data = data or {}
        api = dict(data.get("api") or {})
        try:
            retry = RetryConfig(**(api.pop("retry", None) or {}))
            rate_limit = RateLimitConfig(**(api.pop("rate_limit", None) or {}))
            return cls(
                api=ApiSettings(retry=retry, rate_limit=rate_limit, **api),
                logging=LoggingSettings(**(data.get("logging") or {})),
                execution=ExecutionSettings(**(data.get("execution") or {})),
            )
        except TypeError as exc:
            raise ConfigurationError(f"unable to decode config: {exc}")


def apply_env(settings: Settings, environ: Optional[Dict[str, str]] = None) -> Settings:
    """Override settings from environment variables."""
    environ = os.environ if environ is None else environ
    if environ.get(ENV_CANDIDATE_ID):
        settings.api.candidate_id = environ[ENV_CANDIDATE_ID]
    if environ.get(ENV_API_URL):
        settings.api.base_url = environ[ENV_API_URL]
    return settings


def load_settings(path: Optional[Union[str, Path]] = None,
                  require_candidate: bool = True, must_exist: bool = True) -> Settings:
    """
    Load settings from YAML (if present) and the environment.

    Args:
        path: Config file; defaults to ``config/config.yaml``. A missing
            default file is not an error, a missing explicit file is unless
            ``must_exist`` is False.
        require_candidate: Whether a candidate ID must be configured

    Raises:
        ConfigurationError: unreadable file or invalid values
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"error reading config file {config_path}: {exc}")
        logger.debug("Loaded configuration from %s", config_path)
    elif path and must_exist:
        raise ConfigurationError(f"config file not found: {config_path}")

    settings = apply_env(Settings.from_dict(data))
    settings.validate(require_candidate=require_candidate)
    return settings


def save_settings(settings: Settings, path: Optional[Union[str, Path]] = None) -> Path:
    """Write settings to YAML, creating parent directories as needed."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(settings.to_dict(), f, sort_keys=False)
    logger.info("Configuration saved to %s", config_path)
    return config_path
