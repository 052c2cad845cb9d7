"""
Finan AI settings

Every tunable value is read from the environment (or a local .env file)
through pydantic-settings. Each external service gets its own section class
with its own env prefix.

DESIGN DECISION: Sections are built lazily by the Settings container, so a
missing Google Sheets credential does not stop a user who runs the json
backend from starting the app.
"""

import warnings
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini model tiers, limits and timeout (GEMINI_*)."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="API key for Google AI Studio"
    )

    # Model tiers used by the different features
    flash_lite_model: str = Field(
        default="gemini-flash-lite-latest",
        description="Model for quick chat answers"
    )
    flash_model: str = Field(
        default="gemini-2.5-flash",
        description="Model for search, actions, extraction and suggestions"
    )
    pro_model: str = Field(
        default="gemini-2.5-pro",
        description="Model for deep analysis and reports"
    )

    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Output token budget for normal requests"
    )
    thinking_max_tokens: int = Field(
        default=8192,
        ge=1024,
        le=65536,
        description="Maximum tokens in response for deep analysis mode"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for every request"
    )
    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for a single Gemini request"
    )


class StorageSettings(BaseSettings):
    """Key-value storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["memory", "json", "google_sheets"] = Field(
        default="json",
        description="Which key-value backend to use"
    )
    json_path: str = Field(
        default="data/finan_ai.json",
        description="Path of the JSON document used by the json backend"
    )
    key_prefix: str = Field(
        default="finan-ai",
        min_length=1,
        description="Prefix for every namespaced storage key"
    )


class GoogleSheetsSettings(BaseSettings):
    """Service account and spreadsheet for the google_sheets backend (GOOGLE_SHEETS_*)."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account key file"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet that holds the key/value sheet"
    )
    kv_sheet_name: str = Field(
        default="KeyValue",
        description="Name of the sheet holding key/value rows"
    )

    @field_validator('credentials_path')
    @classmethod
    def check_credentials_file(cls, value: str) -> str:
        """The key file may be mounted after start-up, so only warn."""
        if not Path(value).exists():
            warnings.warn(f"Service account file {value} does not exist yet.")
        return value


class AppSettings(BaseSettings):
    """Upload limits, presentation and report thresholds (no prefix)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="development, staging or production"
    )
    debug_mode: bool = Field(
        default=False,
        description="Show tracebacks in the UI"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum log level for the structured log"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Largest accepted statement or receipt file"
    )
    supported_import_formats: str = Field(
        default="csv,txt,xlsx",
        description="Comma-separated list of importable statement formats"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported receipt image formats"
    )

    # Presentation
    currency_symbol: str = Field(
        default="₹",
        description="Currency symbol used in messages and prompts"
    )

    # AI report limits
    insights_transaction_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="How many recent transactions are sent for personalized insights"
    )

    # Budget thresholds
    budget_warning_percent: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Spent percentage above which a budget is flagged"
    )

    @property
    def supported_import_formats_list(self) -> list[str]:
        """Lower-cased import extensions."""
        return [fmt.strip().lower() for fmt in self.supported_import_formats.split(",")]

    @property
    def supported_image_formats_list(self) -> list[str]:
        """Lower-cased image extensions."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """Entry point to every settings section."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings; tests call get_settings.cache_clear()."""
    return Settings()


def validate_all_settings() -> dict[str, bool | str]:
    """
    Try to build each section the current backend needs.

    Returns a dict of {setting_name: is_valid} plus an
    "<name>_error" entry for every section that failed.
    """
    results: dict[str, bool | str] = {}
    settings = get_settings()

    sections = ["gemini", "storage", "app"]
    if settings.storage.backend == "google_sheets":
        sections.append("google_sheets")

    for name in sections:
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
