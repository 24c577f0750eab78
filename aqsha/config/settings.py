"""
Configuration Management for Aqsha Tracker

Each external service gets its own pydantic-settings class with an env
prefix; AppSettings holds the knobs of the core itself (storage backend,
context bounds, report defaults).

DESIGN DECISION: Service settings are optional at import time. A missing
GEMINI_API_KEY or GOOGLE_SHEETS_SPREADSHEET_ID only fails when that
service is wired, so the app starts with whatever is configured.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudinarySettings(BaseSettings):
    """Cloudinary configuration for publishing rendered reports."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    folder: str = Field(
        default="aqsha_reports",
        description="Folder that published reports are uploaded into"
    )


class GoogleSheetsSettings(BaseSettings):
    """Spreadsheet used by the google_sheets storage backend."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per entity kind
    users_sheet_name: str = Field(default="Users")
    profiles_sheet_name: str = Field(default="Profiles")
    accounts_sheet_name: str = Field(default="Accounts")
    categories_sheet_name: str = Field(default="Categories")
    transactions_sheet_name: str = Field(default="Transactions")
    goals_sheet_name: str = Field(default="Goals")
    conversations_sheet_name: str = Field(default="Conversations")
    messages_sheet_name: str = Field(default="Messages")
    ai_requests_sheet_name: str = Field(default="AIRequestLog")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing file is only a warning; it may be mounted after startup."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini model used as the AI gateway."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1000,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Model temperature"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Upper bound for a single completion call"
    )


class AppSettings(BaseSettings):
    """Core behaviour. Every field has a working default."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Runtime
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Which storage implementation to wire up"
    )

    # AI context bounds
    context_transaction_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Most recent transactions included in an AI context snapshot"
    )
    context_window_days: int = Field(
        default=30,
        ge=1,
        le=366,
        description="How far back the context snapshot looks for transactions"
    )
    context_max_chars: int = Field(
        default=12000,
        ge=500,
        le=200000,
        description="Upper bound on the serialized context snapshot size"
    )
    conversation_title_length: int = Field(
        default=50,
        ge=10,
        le=200,
    )

    # Reports
    report_default_days: int = Field(
        default=30,
        ge=1,
        le=366,
        description="Report period when no dates are given"
    )
    publish_reports: bool = Field(
        default=False,
        description="Upload CSV/PDF reports to Cloudinary and return a URL"
    )


class Settings(BaseSettings):
    """Entry point to every settings group."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Built on access, so one unconfigured service does not block the rest

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings. get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to load each settings group.

    Returns {group: loaded_ok}, plus {group}_error with the reason for
    each group that failed. Used by the /health endpoint.
    """
    results = {}

    settings = get_settings()

    for name in ("cloudinary", "google_sheets", "gemini", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
