"""
Life Admin — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram (bot surface + push transport)
    TELEGRAM_BOT_TOKEN: str

    # LLM: free-text extraction (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str

    # SQLite
    DATABASE_PATH: str = "data/life_admin.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Scheduler
    TIMEZONE: str = "Asia/Jerusalem"
    DEADLINE_SWEEP_HOUR: int = 9
    RENEWAL_SWEEP_HOUR: int = 8
    URGENT_SWEEP_INTERVAL_MINUTES: int = 60

    # Escalation
    PREPARATION_THRESHOLD_DAYS: int = 3
    DUE_SOON_DAYS: int = 7

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("DEADLINE_SWEEP_HOUR", "RENEWAL_SWEEP_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be between 0 and 23, got {hour}")
        return hour

    @field_validator("URGENT_SWEEP_INTERVAL_MINUTES", mode="before")
    @classmethod
    def parse_interval(cls, v: str | int) -> int:
        minutes = int(v)
        if minutes < 1:
            raise ValueError("URGENT_SWEEP_INTERVAL_MINUTES must be positive")
        return minutes


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/life_admin.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Jerusalem"),
        DEADLINE_SWEEP_HOUR=os.getenv("DEADLINE_SWEEP_HOUR", "9"),
        RENEWAL_SWEEP_HOUR=os.getenv("RENEWAL_SWEEP_HOUR", "8"),
        URGENT_SWEEP_INTERVAL_MINUTES=os.getenv("URGENT_SWEEP_INTERVAL_MINUTES", "60"),
        PREPARATION_THRESHOLD_DAYS=int(os.getenv("PREPARATION_THRESHOLD_DAYS", "3")),
        DUE_SOON_DAYS=int(os.getenv("DUE_SOON_DAYS", "7")),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
