"""
Configuration Management for HSA Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.

Business-rule defaults (validation tolerances, upload limits, digest size)
live in AppSettings. Projection assumptions do NOT: the engine receives an
explicit ProjectionParameters on every call.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudinarySettings(BaseSettings):
    """Cloudinary document storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        env_file=".env",
        env_file_encoding="utf-8",
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
    root_folder: str = Field(
        default="hsa-documents",
        description="Top-level folder all user documents live under"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
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

    # Sheet names within the spreadsheet
    expenses_sheet_name: str = Field(
        default="Expenses",
        description="Name of the sheet for expenses"
    )
    profiles_sheet_name: str = Field(
        default="Profiles",
        description="Name of the sheet for user profiles"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class ResendSettings(BaseSettings):
    """Resend transactional email configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RESEND_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Resend API key"
    )
    from_email: str = Field(
        default="HSA Plus <noreply@hsaplus.app>",
        description="Sender shown on digest emails"
    )


class PlaidSettings(BaseSettings):
    """Plaid bank-linking configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PLAID_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    client_id: str = Field(
        ...,
        description="Plaid client ID"
    )
    secret: str = Field(
        ...,
        description="Plaid secret for the selected environment"
    )
    env: str = Field(
        default="sandbox",
        pattern="^(sandbox|production)$",
        description="Plaid environment"
    )
    client_name: str = Field(
        default="HSA Plus",
        description="Name shown inside the Plaid Link widget"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    app_url: str = Field(
        default="https://hsaplus.app",
        description="Public URL linked from digest emails"
    )

    # Identity is delegated; the UI acts on behalf of this owner
    owner_id: str = Field(
        default="local-user",
        min_length=1,
        description="User id the Streamlit app reads and writes as"
    )
    cron_secret: str = Field(
        default="",
        description="Shared secret required to trigger the digest job"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_document_formats: str = Field(
        default="jpg,jpeg,png,webp,pdf,heic",
        description="Comma-separated list of supported document formats"
    )

    # Validation thresholds
    max_expense_amount: float = Field(
        default=100000.0,
        description="Amount above which an expense is flagged for review"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future a service date can be"
    )
    tax_year_tolerance: int = Field(
        default=1,
        ge=0,
        description="How far an explicit tax year may drift from the service year"
    )

    # Email digest
    digest_top_n: int = Field(
        default=5,
        ge=1,
        le=5,
        description="Recent expenses listed in each digest"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_document_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def resend(self) -> ResendSettings:
        return ResendSettings()

    @property
    def plaid(self) -> PlaidSettings:
        return PlaidSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


SERVICE_SETTINGS = ("cloudinary", "google_sheets", "resend", "plaid", "app")


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    {setting_name}_error entry for each failure.
    Useful for startup checks and the settings page.
    """
    results = {}

    settings = get_settings()

    for name in SERVICE_SETTINGS:
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
