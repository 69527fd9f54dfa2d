"""Configuration management for Basket Sync."""

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class ApiConfig:
    """Backend API configuration."""

    base_url: str = "http://localhost:3000"
    timeout_seconds: float = 30.0
    access_token: str | None = None
    refresh_token: str | None = None


@dataclass
class DatabaseConfig:
    """Database backend selection."""

    type: str = "remote"


@dataclass
class StorageConfig:
    """Durable local storage configuration."""

    storage_dir: Path
    backend: str = "json"


@dataclass
class QueueConfig:
    """Mutation queue configuration."""

    max_retry_count: int = 3


@dataclass
class AppConfig:
    """Application metadata."""

    version: str = "0.1.0"
    log_level: str = "WARNING"


@dataclass
class Config:
    """Complete application configuration."""

    api: ApiConfig
    database: DatabaseConfig
    storage: StorageConfig
    queue: QueueConfig
    app: AppConfig


class ConfigManager:
    """Manages application configuration from TOML files."""

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional explicit path to config file.
                        If not provided, searches standard locations.
        """
        self.config_path = config_path or self._find_config()
        self._config = self._load_config()

    @property
    def api(self) -> ApiConfig:
        """Get API configuration."""
        return self._config.api

    @property
    def database(self) -> DatabaseConfig:
        """Get database configuration."""
        return self._config.database

    @property
    def storage(self) -> StorageConfig:
        """Get storage configuration."""
        return self._config.storage

    @property
    def queue(self) -> QueueConfig:
        """Get queue configuration."""
        return self._config.queue

    @property
    def app(self) -> AppConfig:
        """Get application configuration."""
        return self._config.app

    def _find_config(self) -> Path:
        """Find config file in standard locations."""
        locations = [
            Path.cwd() / "basket-sync.toml",
            Path.home() / ".config" / "basket-sync" / "config.toml",
        ]

        for loc in locations:
            if loc.exists():
                return loc

        return Path.home() / ".config" / "basket-sync" / "config.toml"

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not self.config_path.exists():
            return self._default_config()

        with open(self.config_path, "rb") as f:
            data = tomllib.load(f)

        api = data.get("api", {})
        storage = data.get("storage", {})
        app = data.get("app", {})

        return Config(
            api=ApiConfig(
                base_url=api.get("base_url", "http://localhost:3000"),
                timeout_seconds=float(api.get("timeout_seconds", 30.0)),
                access_token=api.get("access_token"),
                refresh_token=api.get("refresh_token"),
            ),
            database=DatabaseConfig(
                type=data.get("database", {}).get("type", "remote"),
            ),
            storage=StorageConfig(
                storage_dir=Path(
                    storage.get("storage_dir", "~/.local/share/basket-sync")
                ).expanduser(),
                backend=storage.get("backend", "json"),
            ),
            queue=QueueConfig(
                max_retry_count=data.get("queue", {}).get("max_retry_count", 3),
            ),
            app=AppConfig(
                version=app.get("version", "0.1.0"),
                log_level=data.get("logging", {}).get("level", "WARNING"),
            ),
        )

    def _default_config(self) -> Config:
        """Return default configuration."""
        return Config(
            api=ApiConfig(),
            database=DatabaseConfig(),
            storage=StorageConfig(
                storage_dir=Path.home() / ".local" / "share" / "basket-sync"
            ),
            queue=QueueConfig(),
            app=AppConfig(),
        )

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get config value by dot-notation path.

        Args:
            key_path: Dot-separated path like 'api.base_url'
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value: Any = self._config

        for key in keys:
            if hasattr(value, key):
                value = getattr(value, key)
            elif isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default

        return value if value is not None else default
