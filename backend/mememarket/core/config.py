"""
Application configuration using Pydantic Settings.
"""
from functools import lru_cache
from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MEMEMARKET_",
        case_sensitive=False,
    )

    # Application
    app_name: str = "MemeMarket Simulation Engine"
    debug: bool = False
    environment: str = "development"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # Content provider (Reddit public JSON listings)
    reddit_base_url: str = "https://www.reddit.com"
    reddit_user_agent: str = "mememarket/1.0"
    tracked_subreddit: Optional[str] = None
    trending_limit: int = 25

    # Scheduler periods (seconds)
    market_tick_seconds: float = 30.0
    sector_check_seconds: float = 60.0
    content_refresh_seconds: float = 300.0
    alert_sweep_seconds: float = 60.0
    shock_check_seconds: float = 600.0
    shock_probability: float = 0.05

    # Reproducibility (None = non-deterministic)
    random_seed: Optional[int] = None

    # Persistence
    persist_portfolios: bool = True
    data_dir: str = "data"
    portfolio_store_file: str = "portfolios.json"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Feature Flags
    enable_scheduler: bool = True
    enable_websocket: bool = True
    enable_random_shocks: bool = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
