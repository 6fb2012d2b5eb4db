"""
Runtime settings.

Read from the environment (and an optional ``.env`` file). Vendor keys set
here are the platform keys used for organization-funded runs.
"""

from functools import lru_cache
from typing import Dict, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from promptgate.config.loader import AiVendor


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: str = Field(
        default="promptgate.db",
        validation_alias=AliasChoices("PROMPTGATE_DB_PATH", "db_path"),
        description="SQLite database holding usage records, quotas, keys and models.",
    )
    models_dir: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("PROMPTGATE_MODELS_DIR", "models_dir"),
        description="Directory of model definition documents (defaults to the bundled set).",
    )

    # Platform keys
    openai_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_KEY", "OPENAI_API_KEY", "openai_key"),
    )
    anthropic_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ANTHROPIC_KEY", "ANTHROPIC_API_KEY", "anthropic_key"),
    )
    gemini_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_KEY", "GEMINI_API_KEY", "gemini_key"),
    )

    # Organization and project that own system prompt runs
    system_org_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("SYSTEM_ORG_ID", "system_org_id"),
    )
    system_project_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("SYSTEM_PROJECT_ID", "system_project_id"),
    )

    provider_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        validation_alias=AliasChoices("PROVIDER_TIMEOUT_SECONDS", "provider_timeout_seconds"),
        description="Transport timeout for vendor calls (seconds).",
    )
    provider_max_retries: int = Field(
        default=5,
        ge=0,
        validation_alias=AliasChoices("PROVIDER_MAX_RETRIES", "provider_max_retries"),
        description="Transport-level retries for vendor calls.",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )

    @property
    def platform_keys(self) -> Dict[str, str]:
        keys = {
            AiVendor.OPENAI.value: self.openai_key,
            AiVendor.ANTHROPIC.value: self.anthropic_key,
            AiVendor.GOOGLE.value: self.gemini_key,
        }
        return {vendor: key for vendor, key in keys.items() if key}

    @property
    def has_system_context(self) -> bool:
        return self.system_org_id is not None and self.system_project_id is not None


@lru_cache
def get_settings() -> Settings:
    return Settings()
