"""
Configuration Management for FinanceFlow

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
External services (Supabase, Gemini) and the thresholds used by
the dashboard and validators are all visible in one place.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """
    Supabase persistence configuration.

    Required tables and columns:

    transactions
        id, amount, type, category, subcategory, date, description,
        receipt_image, is_recurring
        plus, for recurring templates and their occurrences:
        recurrence_frequency (text, null), next_recurring_date (date, null),
        template_id (same type as id, null)
    bills
        id, name, amount, category, due_date, is_paid,
        attachment (text, null)
    settings
        key (text, unique), value (text)
    audit_log
        event_id (uuid), timestamp (timestamptz), event_type, severity,
        entity_type, entity_id, correlation_id (uuid, null),
        description, details (jsonb), error_message, is_user_action (bool)

    The columns marked null are new relative to the first version of
    the app and must be added to existing projects; older rows leave
    them empty.
    """

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Supabase project URL"
    )
    key: str = Field(
        ...,
        description="Supabase anon or service key"
    )

    # Table names
    transactions_table: str = Field(
        default="transactions",
        description="Table holding transactions and recurring templates"
    )
    bills_table: str = Field(
        default="bills",
        description="Table holding bills"
    )
    settings_table: str = Field(
        default="settings",
        description="Key/value table holding app settings such as the PIN"
    )
    audit_table: str = Field(
        default="audit_log",
        description="Append-only audit log table"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Supabase URLs are always https."""
        if not v.startswith("http"):
            raise ValueError(f"Supabase URL must start with http(s): {v}")
        return v.rstrip("/")


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
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
    currency: str = Field(
        default="EUR",
        min_length=3,
        max_length=3,
        description="ISO currency code used for display"
    )

    # Bills
    upcoming_bill_window_days: int = Field(
        default=5,
        ge=0,
        description="Unpaid bills due within this many days count as upcoming"
    )
    urgent_bill_days: int = Field(
        default=3,
        ge=0,
        description="Unpaid bills due within this many days are flagged urgent"
    )

    # AI
    advice_transaction_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="How many recent transactions are sent for advice"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt upload size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported image formats"
    )

    # Validation thresholds
    max_transaction_amount: float = Field(
        default=100000.0,
        description="Amounts above this are flagged for double-checking"
    )
    future_date_tolerance_days: int = Field(
        default=366,
        description="How many days in the future a transaction date can be"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool | str]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    `<name>_error` entry for each service that failed.
    Useful for startup checks.
    """
    results: dict[str, bool | str] = {}
    settings = get_settings()

    for name in ("supabase", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
