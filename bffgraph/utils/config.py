"""
Configuration management for the crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, field


@dataclass
class FetchConfig:
    """Configuration for friend-page fetching."""
    url_template: str = "http://www.friendster.com/friends/{profile_id}/{page}?r={random}"
    user_agent: str = "Googlebot/2.1 (+http://www.googlebot.com/bot.html)"
    request_timeout: float = 60
    max_concurrency: int = 100


@dataclass
class PipelineConfig:
    """Configuration for range leasing and draining."""
    depth: int = 2
    backpressure_ratio: float = 0.9
    poll_interval: float = 5
    lease_retry_delay: float = 10


@dataclass
class RetryConfig:
    """Configuration for failed fetches. None means retry forever."""
    max_attempts: Optional[int] = None


@dataclass
class TrackerConfig:
    """Configuration for the range tracker."""
    base_url: str = "http://friendster-tracker.heroku.com"
    request_timeout: float = 60


@dataclass
class StorageConfig:
    """Configuration for local range files."""
    data_directory: str = "data"


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    fetch: FetchConfig = field(default_factory=FetchConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @property
    def backpressure_threshold(self) -> float:
        """Outstanding request count at which leasing pauses."""
        return self.fetch.max_concurrency * self.pipeline.backpressure_ratio


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = build_config(config_data)
        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ValueError("Configuration not loaded")
        validate_config(self._config)
        logging.info("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


def build_config(config_data: Dict[str, Any]) -> Config:
    """Build a Config from parsed YAML; missing sections keep their defaults."""
    return Config(
        fetch=FetchConfig(**(config_data.get('fetch') or {})),
        pipeline=PipelineConfig(**(config_data.get('pipeline') or {})),
        retry=RetryConfig(**(config_data.get('retry') or {})),
        tracker=TrackerConfig(**(config_data.get('tracker') or {})),
        storage=StorageConfig(**(config_data.get('storage') or {})),
        logging=LoggingConfig(**(config_data.get('logging') or {})),
        monitoring=MonitoringConfig(**(config_data.get('monitoring') or {}))
    )


def validate_config(config: Config):
    """Raise ValueError for out-of-range settings."""
    if config.fetch.max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")

    if config.fetch.request_timeout <= 0:
        raise ValueError("request_timeout must be positive")

    for placeholder in ('{profile_id}', '{page}', '{random}'):
        if placeholder not in config.fetch.url_template:
            raise ValueError(f"url_template must contain {placeholder}")

    if config.pipeline.depth < 1:
        raise ValueError("pipeline depth must be at least 1")

    if not 0 < config.pipeline.backpressure_ratio <= 1:
        raise ValueError("backpressure_ratio must be in (0, 1]")

    if config.pipeline.poll_interval <= 0 or config.pipeline.lease_retry_delay < 0:
        raise ValueError("poll_interval must be positive and lease_retry_delay non-negative")

    if config.retry.max_attempts is not None and config.retry.max_attempts < 1:
        raise ValueError("retry max_attempts must be at least 1 or null")


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
