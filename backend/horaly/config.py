# backend/horaly/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repository root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/horaly.db"
    redis_url: str | None = None  # no slot cache / event queue when unset

    # Slots
    slot_step_minutes: int = 30
    max_range_days: int = 62
    cache_ttl_seconds: int = 86400

    # Deposits
    deposit_expiry_minutes: int = 30
    sweep_interval_seconds: int = 60

    # PIX gateway
    gateway_base_url: str = "https://api.mercadopago.com"
    gateway_api_token: str = ""
    gateway_timeout_seconds: float = 10.0
    gateway_max_attempts: int = 3
    gateway_backoff_seconds: float = 0.5
    webhook_secret: str | None = None

    log_level: str = "INFO"
    auto_create_tables: bool = True

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative sqlite paths are anchored at the repository root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
