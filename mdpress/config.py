"""
Configuration management using Pydantic settings
"""
from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class AppSettings(BaseSettings):
    """Application configuration"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="mdpress API")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # API settings
    api_prefix: str = Field(default="/api/v1")
    cors_origins: List[str] = Field(default=["*"])

    # Content settings
    default_folder_name: str = Field(default="My Documents")
    default_file_content: str = Field(default="# New Document\n\nStart writing here...")
    words_per_minute: int = Field(default=200)
    excerpt_max_length: int = Field(default=300)

    # Search settings
    search_max_page_size: int = Field(default=50)
    search_suggestion_limit: int = Field(default=10)
    public_list_max_page_size: int = Field(default=100)

    # Publication settings
    publish_max_retries: int = Field(default=5)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator(
        "words_per_minute",
        "excerpt_max_length",
        "search_max_page_size",
        "search_suggestion_limit",
        "public_list_max_page_size",
        "publish_max_retries",
    )
    @classmethod
    def validate_positive(cls, v):
        """Ensure limits are positive"""
        if v <= 0:
            raise ValueError("Value must be positive")
        return v


class DatabaseSettings(BaseSettings):
    """Database configuration"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(default="sqlite+aiosqlite:///./mdpress.db")
    database_echo: bool = Field(default=False)


class SecuritySettings(BaseSettings):
    """Security configuration"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    jwt_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_ttl_minutes: int = Field(default=15)
    refresh_token_ttl_days: int = Field(default=7)

    # Input validation
    max_query_length: int = Field(default=200)
    max_tag_length: int = Field(default=50)
    max_tags_per_post: int = Field(default=20)
    min_password_length: int = Field(default=6)

    @field_validator("access_token_ttl_minutes", "refresh_token_ttl_days")
    @classmethod
    def validate_ttl(cls, v):
        """Ensure token lifetimes are positive"""
        if v <= 0:
            raise ValueError("Token lifetime must be positive")
        return v


@lru_cache()
def get_settings() -> AppSettings:
    """Get cached settings instance"""
    return AppSettings()


@lru_cache()
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings"""
    return DatabaseSettings()


@lru_cache()
def get_security_settings() -> SecuritySettings:
    """Get cached security settings"""
    return SecuritySettings()


# Convenience function to reload settings (useful for testing)
def reload_settings():
    """Clear settings cache to reload from environment"""
    get_settings.cache_clear()
    get_database_settings.cache_clear()
    get_security_settings.cache_clear()
