"""Sustaim: Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class SustaimSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "SUSTAIM_",
        "extra": "ignore",
    }

    # ── Storage ────────────────────────────────────────────────
    database_url: str = "sqlite:///sustaim.db"

    # ── Deployment ─────────────────────────────────────────────
    deployer: str = "deployer"
    metadata_uri: str = ""

    # ── HTTP API ───────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = SustaimSettings()
