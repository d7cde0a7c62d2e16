"""Configuration settings for the sync agent."""
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

# Persisted key names shared with the mobile client
WORDS_KEY = "words"
WORDS_CACHE_TIME_KEY = "words_cache_time"
PREFERENCES_KEY = "settings"
USER_ID_KEY = "user_id"

# Quiz shape
CHOICES_PER_QUESTION = 4
WRONG_CHOICES_PER_QUESTION = CHOICES_PER_QUESTION - 1


@dataclass
class ApiSettings:
    """Remote API settings."""
    base_url: str = os.getenv("API_BASE_URL", "http://localhost:8000/api")
    read_timeout: float = float(os.getenv("API_READ_TIMEOUT", "10"))
    write_timeout: float = float(os.getenv("API_WRITE_TIMEOUT", "15"))
    quiz_result_timeout: float = float(os.getenv("API_QUIZ_RESULT_TIMEOUT", "10"))


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///vocasync.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class CacheSettings:
    """Word catalog cache settings."""
    words_ttl: int = int(os.getenv("WORDS_CACHE_TTL", "3600"))  # seconds


@dataclass
class QuizSettings:
    """Quiz settings."""
    question_count: int = int(os.getenv("QUIZ_QUESTION_COUNT", "5"))
    choices_per_question: int = CHOICES_PER_QUESTION


@dataclass
class SyncSettings:
    """Background synchronization settings."""
    flush_interval: int = int(os.getenv("SYNC_FLUSH_INTERVAL", "300"))  # seconds
    flush_on_start: bool = os.getenv("SYNC_ON_START", "true").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_api_settings() -> ApiSettings:
    """Get API settings."""
    return ApiSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_cache_settings() -> CacheSettings:
    """Get cache settings."""
    return CacheSettings()


def get_quiz_settings() -> QuizSettings:
    """Get quiz settings."""
    return QuizSettings()


def get_sync_settings() -> SyncSettings:
    """Get sync settings."""
    return SyncSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    api: ApiSettings = field(default_factory=get_api_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    cache: CacheSettings = field(default_factory=get_cache_settings)
    quiz: QuizSettings = field(default_factory=get_quiz_settings)
    sync: SyncSettings = field(default_factory=get_sync_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if not self.api.base_url.startswith(("http://", "https://")):
            raise ValueError("API_BASE_URL must be an http(s) URL")

        if min(self.api.read_timeout, self.api.write_timeout, self.api.quiz_result_timeout) <= 0:
            raise ValueError("API timeouts must be positive")

        if self.cache.words_ttl <= 0:
            raise ValueError("WORDS_CACHE_TTL must be positive")

        if self.sync.flush_interval <= 0:
            raise ValueError("SYNC_FLUSH_INTERVAL must be positive")

        if self.quiz.question_count < 1:
            raise ValueError("QUIZ_QUESTION_COUNT must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
