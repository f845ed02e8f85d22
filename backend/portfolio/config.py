# backend/portfolio/config.py

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # project root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/portfolio.db"
    redis_url: str = "redis://localhost:6379/0"

    # ===== Payment gateway =====
    payment_key_id: str = ""
    payment_key_secret: str = ""
    payment_api_url: str = "https://api.razorpay.com/v1"
    gateway_timeout: float = 10.0

    # ===== Auth =====
    auth_secret: str = ""
    auth_ttl_seconds: int = 86400

    # ===== Public links =====
    client_url: str = "http://localhost:3000"
    meeting_link_base: str = "https://meet.google.com/new"
    business_timezone: str = "UTC"

    # ===== Email =====
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    email_from: str = "no-reply@localhost"

    # ===== Background loops =====
    notifier_enabled: bool = True
    reaper_enabled: bool = True
    pending_booking_ttl_minutes: int = 30
    reaper_interval_seconds: int = 60

    # ===== Booking / purchase policy =====
    cancellation_window_hours: int = 24
    download_link_ttl_hours: int = 24
    purchase_ttl_days: int = 30
    max_downloads: int = 5

    rate_limit_enabled: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # relative sqlite path -> absolute, anchored at project root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url
