"""
Configuration management module for the Accurate Tax Gateway.
Loads and validates environment variables with type safety using Pydantic.
"""

from decimal import Decimal
from pathlib import Path
from typing import Optional, Dict, Any
from functools import lru_cache

from pydantic import Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv


# Load environment variables from .env file
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


_SETTINGS_CONFIG = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


class AccurateConfig(BaseSettings):
    """Upstream Accurate API configuration"""

    model_config = _SETTINGS_CONFIG

    # Host and session are validated at request time so the service can boot without them
    accurate_host: Optional[str] = Field(default=None)
    accurate_session_id: Optional[str] = Field(default=None)

    accurate_timeout_seconds: float = Field(default=10.0, gt=0)
    accurate_retry_attempts: int = Field(default=3, ge=1)
    accurate_retry_delay_seconds: float = Field(default=0.4, ge=0)

    @field_validator("accurate_host")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Normalize host so paths can be appended directly"""
        if v is None:
            return v
        v = v.strip().rstrip("/")
        return v or None


class BatchConfig(BaseSettings):
    """Detail fan-out and tax resolution configuration"""

    model_config = _SETTINGS_CONFIG

    detail_batch_size: int = Field(default=5, ge=1, le=50)
    detail_batch_pause_seconds: float = Field(default=0.5, ge=0)

    # Simplified flat rate for lodging/food-service taxes, not a statement of tax law
    statutory_tax_rate: Decimal = Field(default=Decimal("0.10"), ge=0, le=1)

    max_page_size: int = Field(default=1000, ge=1)
    default_page_size: int = Field(default=100, ge=1)

    @field_validator("default_page_size")
    @classmethod
    def validate_default_page_size(cls, v, info: ValidationInfo):
        """Default page size may not exceed the cap"""
        cap = info.data.get("max_page_size")
        if cap is not None and v > cap:
            raise ValueError("default_page_size must not exceed max_page_size")
        return v


class ServiceConfig(BaseSettings):
    """Service configuration"""

    model_config = _SETTINGS_CONFIG

    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)


class AppConfig(BaseSettings):
    """Application-wide configuration"""

    model_config = _SETTINGS_CONFIG

    # Environment
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")

    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @field_validator("app_log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("app_env")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment is valid"""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment. Must be one of: {valid_envs}")
        return v.lower()

    @field_validator("app_debug")
    @classmethod
    def validate_debug_mode(cls, v, info: ValidationInfo):
        """Ensure debug is False in production"""
        if info.data.get("app_env") == "production" and v:
            raise ValueError("Debug mode must be disabled in production")
        return v


class Settings:
    """Main settings class that combines all configuration sections"""

    def __init__(self, **kwargs):
        self.accurate = kwargs.get("accurate") or AccurateConfig()
        self.batch = kwargs.get("batch") or BatchConfig()
        self.service = kwargs.get("service") or ServiceConfig()
        self.app = kwargs.get("app") or AppConfig()

    def to_dict(self, include_sensitive: bool = False) -> Dict[str, Any]:
        """Export configuration as dictionary"""
        session_id = self.accurate.accurate_session_id
        config = {
            "app": {
                "environment": self.app.app_env,
                "debug": self.app.app_debug,
                "log_level": self.app.app_log_level,
            },
            "accurate": {
                "host": self.accurate.accurate_host,
                "session_id": session_id[:8] + "..." if session_id else None,
                "timeout_seconds": self.accurate.accurate_timeout_seconds,
                "retry_attempts": self.accurate.accurate_retry_attempts,
                "retry_delay_seconds": self.accurate.accurate_retry_delay_seconds,
            },
            "batch": {
                "size": self.batch.detail_batch_size,
                "pause_seconds": self.batch.detail_batch_pause_seconds,
                "statutory_tax_rate": str(self.batch.statutory_tax_rate),
                "max_page_size": self.batch.max_page_size,
            },
            "service": {
                "host": self.service.api_host,
                "port": self.service.api_port,
            },
        }

        if include_sensitive:
            # Only include sensitive data if explicitly requested
            config["accurate"]["session_id"] = session_id

        return config


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Only one Settings instance is created for the process lifetime.

    Returns:
        Settings: The application settings instance

    Example:
        >>> from backend.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.batch.detail_batch_size)
        5
    """
    return Settings()
