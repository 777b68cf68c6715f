"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./hedgedesk.db"
    encryption_key: str = ""  # Fernet key; generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 720
    login_max_failures: int = 5
    login_lockout_seconds: int = 900

    # Exchange
    exchange_base_url: str = "https://fapi.asterdex.com"
    exchange_timeout_seconds: float = 10.0
    exchange_recv_window: int = 5000

    # Polling
    account_poll_seconds: int = 300
    price_poll_seconds: int = 5

    # Hedge sizing and reconciliation
    leg_time_window_ms: int = 2000
    margin_safety_factor: float = 0.9
    hedge_split_min: float = 0.30
    hedge_split_max: float = 0.60

    model_config = {"env_prefix": "HD_", "env_file": ".env"}


settings = Settings()
