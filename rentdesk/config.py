"""Rentdesk — Application configuration via environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class RentdeskSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Backend ────────────────────────────────────────────────
    api_base_url: str = "http://localhost:5000/api"
    http_timeout_seconds: float = 30.0

    # ── Client storage ─────────────────────────────────────────
    token_store_path: Path = Path.home() / ".rentdesk" / "tokens.json"

    # ── Break-glass super-admin escape hatch ───────────────────
    # Grants the full capability set to listed operators whose
    # permission derivation comes back empty. Off unless configured.
    break_glass_enabled: bool = False
    break_glass_emails: list[str] = []

    # ── Workflows ──────────────────────────────────────────────
    default_rejection_reason: str = "Not approved by admin"

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = RentdeskSettings()
