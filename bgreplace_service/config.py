"""
Configuration loader for the background-replacement service.

Environment variables are centralized here to keep the rest of the code
focused on business logic and to make operational tuning clear.
"""

from functools import lru_cache

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Upstream provider
    gemini_api_key: str = Field(...)
    gemini_model: str = Field("gemini-2.5-flash-image-preview")
    gemini_api_base_url: str = Field("https://generativelanguage.googleapis.com/v1beta")

    # Retry policy
    max_attempts: int = Field(3)
    base_delay_ms: int = Field(5000)
    max_delay_ms: int = Field(30000)
    per_attempt_timeout_ms: int = Field(60000)

    # API
    max_concurrent_requests: int = Field(8)
    log_level: str = Field("INFO")

    @field_validator("gemini_api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("GEMINI_API_KEY must not be empty")
        return v.strip()

    @field_validator("max_attempts", "per_attempt_timeout_ms", "max_concurrent_requests")
    @classmethod
    def validate_positive(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name.upper()} must be >= 1")
        return v

    @field_validator("base_delay_ms")
    @classmethod
    def validate_base_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError("BASE_DELAY_MS must be >= 0")
        return v

    @field_validator("max_delay_ms")
    @classmethod
    def validate_max_delay(cls, v: int, info: ValidationInfo) -> int:
        base = info.data.get("base_delay_ms")
        if base is not None and v < base:
            raise ValueError("MAX_DELAY_MS must be >= BASE_DELAY_MS")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call.

    A missing GEMINI_API_KEY raises here, which fails application startup.
    """
    return Settings()
