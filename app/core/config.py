from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from backend project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    database_ssl: bool = True

    # JWT issued by the identity provider (shared secret)
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Calendar: epoch-millisecond dates and "today" are resolved in this zone
    timezone: str = "UTC"

    # Slot business rules
    slot_duration_minutes: int = 30
    default_slot_price_cents: int = 2500
    currency: str = "usd"
    default_opening_minute: int = 600  # 10:00
    default_closing_minute: int = 1200  # 20:00, exclusive
    template_sync_weeks: int = 4

    # Sweeps
    cleanup_retention_days: int = 14
    reservation_timeout_minutes: int = 30
    reconcile_interval_minutes: int = 10
    reconcile_horizon_days: int = 14
    cleanup_interval_hours: int = 24
    run_sweeps_in_process: bool = True

    # Payments (Stripe Connect)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_connect_country: str = "GB"
    platform_fee_percent: int = 10
    app_url: str = "http://localhost:3000"

    # Env
    env: str = "development"

    # Email (SMTP). Leave smtp_host empty to disable sending.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = "BarberBook"
    site_name: str = "BarberBook"
    contact_email: str = "hello@barberbook.example"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)

    @property
    def stripe_enabled(self) -> bool:
        return bool(self.stripe_secret_key)


settings = Settings()
