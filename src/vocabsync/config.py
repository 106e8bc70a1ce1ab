"""Configuration settings for the sync engine."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
LOG_DIR = os.getenv("LOG_DIR", None)

# Sync settings
MAX_RETRIES = 3  # failed attempts before an operation is abandoned
RETENTION_DAYS = 7  # processed operations are kept this long


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [DATA_DIR]
    if LOG_DIR:
        directories.append(Path(LOG_DIR))

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'vocabsync.db'}")
    echo: bool = _env_flag("DATABASE_ECHO")


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = LOG_DIR
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class ApiSettings:
    """Remote API settings."""
    base_url: str = os.getenv("API_BASE_URL", "http://localhost:3000/api")
    timeout: float = float(os.getenv("API_TIMEOUT", "30.0"))
    max_attempts: int = int(os.getenv("API_MAX_ATTEMPTS", "3"))
    retry_delay: float = float(os.getenv("API_RETRY_DELAY", "1.0"))
    user_id: Optional[str] = os.getenv("API_USER_ID")


@dataclass
class SyncSettings:
    """Offline sync queue settings."""
    max_retries: int = int(os.getenv("SYNC_MAX_RETRIES", str(MAX_RETRIES)))
    retention_days: int = int(os.getenv("SYNC_RETENTION_DAYS", str(RETENTION_DAYS)))
    drain_interval: int = int(os.getenv("SYNC_DRAIN_INTERVAL", "60"))  # seconds
    cleanup_interval: int = int(os.getenv("SYNC_CLEANUP_INTERVAL", "86400"))  # seconds
    online: bool = _env_flag("SYNC_ONLINE", "true")


@dataclass
class SessionSettings:
    """Study session settings."""
    shuffle: bool = _env_flag("SESSION_SHUFFLE", "true")


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = _env_flag("METRICS_ENABLED")
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_api_settings() -> ApiSettings:
    """Get remote API settings."""
    return ApiSettings()


def get_sync_settings() -> SyncSettings:
    """Get sync queue settings."""
    return SyncSettings()


def get_session_settings() -> SessionSettings:
    """Get study session settings."""
    return SessionSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    api: ApiSettings = field(default_factory=get_api_settings)
    sync: SyncSettings = field(default_factory=get_sync_settings)
    session: SessionSettings = field(default_factory=get_session_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if not self.database.url:
            raise ValueError("DATABASE_URL is required")

        if not self.api.base_url:
            raise ValueError("API_BASE_URL is required")

        if self.api.timeout <= 0:
            raise ValueError("API_TIMEOUT must be positive")

        if self.api.max_attempts < 1:
            raise ValueError("API_MAX_ATTEMPTS must be at least 1")

        if self.api.retry_delay < 0:
            raise ValueError("API_RETRY_DELAY cannot be negative")

        if self.sync.max_retries < 1:
            raise ValueError("SYNC_MAX_RETRIES must be at least 1")

        if self.sync.retention_days < 0:
            raise ValueError("SYNC_RETENTION_DAYS cannot be negative")

        if self.sync.drain_interval < 1 or self.sync.cleanup_interval < 1:
            raise ValueError("SYNC_DRAIN_INTERVAL and SYNC_CLEANUP_INTERVAL must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
