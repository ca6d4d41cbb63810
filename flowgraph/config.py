"""Configuration management for the flowgraph engine."""

import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from enum import Enum


ENV_PREFIX = "FLOWGRAPH_"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="FlowGraph", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Database settings
    database_url: str = Field(
        default="sqlite:///./flowgraph.db",
        description="Database connection URL"
    )
    database_echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(run_tag)s%(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")
    structured_logging: bool = Field(default=False, description="Emit JSON log lines")

    # Execution engine settings
    status_reset_delay: float = Field(
        default=3.0,
        description="Seconds before node statuses return to idle after a run"
    )
    default_node_timeout: Optional[float] = Field(
        default=None,
        description="Per executor call timeout in seconds; None disables it"
    )
    run_history_limit: int = Field(default=10, description="Sealed runs kept in history")

    # Editing session settings
    operations_stack_limit: int = Field(default=50, description="Maximum recorded node operations")
    validation_cache_size: int = Field(default=100, description="Maximum cached validation reports")
    validation_cache_ttl: int = Field(default=600, description="Validation cache TTL in seconds")

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL format."""
        if not v:
            raise ValueError("Database URL cannot be empty")

        supported_schemes = ['sqlite', 'postgresql', 'mysql']
        scheme = v.split('://')[0].split('+')[0].lower()

        if scheme not in supported_schemes:
            raise ValueError(f"Unsupported database scheme: {scheme}. Supported: {supported_schemes}")

        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('run_history_limit', 'operations_stack_limit', 'validation_cache_size', 'validation_cache_ttl')
    @classmethod
    def validate_limits(cls, v):
        if v < 1:
            raise ValueError("Limits must be at least 1")
        return v

    @field_validator('status_reset_delay')
    @classmethod
    def validate_delay(cls, v):
        if v < 0:
            raise ValueError("Status reset delay cannot be negative")
        return v

    @field_validator('default_node_timeout')
    @classmethod
    def validate_node_timeout(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Node timeout must be positive")
        return v

    @property
    def database_type(self) -> DatabaseType:
        """Get the database type from the URL."""
        scheme = self.database_url.split('://')[0].lower()
        if scheme.startswith('sqlite'):
            return DatabaseType.SQLITE
        elif scheme.startswith('postgresql'):
            return DatabaseType.POSTGRESQL
        elif scheme.startswith('mysql'):
            return DatabaseType.MYSQL
        else:
            raise ValueError(f"Unknown database type: {scheme}")

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.database_type == DatabaseType.SQLITE

    def get_database_connect_args(self) -> Dict[str, Any]:
        """Get database connection arguments based on database type."""
        if self.is_sqlite:
            return {"check_same_thread": False}
        return {}

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from ``FLOWGRAPH_*`` environment variables."""
        def get_env(key: str, default=None, type_func=str):
            value = os.getenv(f"{ENV_PREFIX}{key}")
            if value is None or value == "":
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            return type_func(value)

        return cls(
            app_name=get_env("APP_NAME", "FlowGraph"),
            app_version=get_env("APP_VERSION", "1.0.0"),
            debug=get_env("DEBUG", False, bool),
            host=get_env("HOST", "0.0.0.0"),
            port=get_env("PORT", 8000, int),
            database_url=get_env("DATABASE_URL", "sqlite:///./flowgraph.db"),
            database_echo=get_env("DATABASE_ECHO", False, bool),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(run_tag)s%(message)s"),
            log_file=get_env("LOG_FILE", None),
            log_max_size=get_env("LOG_MAX_SIZE", 10485760, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", 5, int),
            structured_logging=get_env("STRUCTURED_LOGGING", False, bool),
            status_reset_delay=get_env("STATUS_RESET_DELAY", 3.0, float),
            default_node_timeout=get_env("DEFAULT_NODE_TIMEOUT", None, float),
            run_history_limit=get_env("RUN_HISTORY_LIMIT", 10, int),
            operations_stack_limit=get_env("OPERATIONS_STACK_LIMIT", 50, int),
            validation_cache_size=get_env("VALIDATION_CACHE_SIZE", 100, int),
            validation_cache_ttl=get_env("VALIDATION_CACHE_TTL", 600, int),
        )


# Global configuration instance
_config: Optional[AppConfig] = None


def _config_from_env() -> AppConfig:
    from .core.exceptions import ConfigurationError

    try:
        return AppConfig.from_env()
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def get_config() -> AppConfig:
    """
    Get the global configuration instance.

    Raises:
        ConfigurationError: If an environment variable holds an invalid value
    """
    global _config
    if _config is None:
        _config = _config_from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file and the environment."""
    global _config

    from dotenv import load_dotenv
    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = _config_from_env()

    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        status_reset_delay=0.0,
    )
