"""
Configuration Management for Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the chat assistant and insights."""

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
        description="Model used for chat replies"
    )
    insights_model_name: str = Field(
        default="gemini-2.5-pro",
        description="Model used for spending insights"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per model call before falling back"
    )


class LedgerSettings(BaseSettings):
    """
    Ledger behaviour and dashboard limits.

    The opening balances seed the two default accounts every
    fresh store starts with.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    main_account_opening_balance: Decimal = Field(
        default=Decimal("2450.00"),
        description="Opening balance of the seeded Main Account"
    )
    savings_account_opening_balance: Decimal = Field(
        default=Decimal("8750.00"),
        description="Opening balance of the seeded Savings Account"
    )
    reverse_balance_on_delete: bool = Field(
        default=False,
        description=(
            "Reverse a transaction's balance effect when it is deleted. "
            "Off by default: deleting a transaction leaves the balance as is."
        )
    )
    snooze_days: int = Field(
        default=1,
        ge=1,
        le=30,
        description="How far a snooze pushes a reminder's due date"
    )

    # Summary limits
    upcoming_reminders_limit: int = Field(default=5, ge=1, le=100)
    recent_transactions_limit: int = Field(default=10, ge=1, le=100)
    active_debts_limit: int = Field(default=5, ge=1, le=100)

    # Sanity threshold for boundary validation warnings
    max_amount: Decimal = Field(
        default=Decimal("1000000.00"),
        description="Amounts above this are flagged as suspicious"
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )


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

    # Note: These are loaded lazily so the ledger works without a Gemini key

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

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


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the failures.
    Useful for startup checks.
    """
    results: dict[str, object] = {}

    settings = get_settings()

    for name in ("gemini", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
