"""Authority Ledger — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class LedgerSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Authority ──────────────────────────────────────────────
    system_admin_address: str = "0x0000000000000000000000000000000000000001"
    core_address: str = "0x0000000000000000000000000000000000000100"

    # ── Event Ledger ───────────────────────────────────────────
    database_url: str = "sqlite:///authority_ledger.db"
    heartbeat_seconds: int = 60

    # ── HTTP API ───────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = LedgerSettings()
