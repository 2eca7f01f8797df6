"""
Process configuration read from environment variables.

Values can also be supplied through a .env file in the working directory
(loaded with python-dotenv, never overriding variables already set).

Environment variables
---------------------
TELEGRAM_BOT_TOKEN         Bot API token. When unset no push is attempted.
TELEGRAM_WEBHOOK_SECRET    Checked against X-Telegram-Bot-Api-Secret-Token.
TELEGRAM_API_BASE          Bot API base URL (default: https://api.telegram.org).
TELEGRAM_TIMEOUT_SECONDS   Per-request timeout for Bot API calls (default: 10).
JWT_SECRET                 HS256 secret used to sign mailbox credentials.
DEFAULT_LANG               Process-wide display language (default: "zh").
TG_ALLOW_USER_LANG         Enable per-user /lang overrides (default: false).
PREFIX                     Address prefix shown by /start and used by /new.
DOMAINS                    Mail domains, JSON array or comma-separated list.
INBOUND_WEBHOOK_SECRET     Shared secret for the mail-arrival webhook.
"""

import json
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

_TRUE_VALUES = {"true", "1", "yes", "on"}


def get_bool(value: Optional[str], default: bool = False) -> bool:
    """Interpret an env-style string as a boolean."""
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def parse_domains(value: Optional[str]) -> List[str]:
    """
    Parse the DOMAINS variable.

    Accepts a JSON array (``["a.com", "b.com"]``) or a comma-separated list
    (``a.com,b.com``). Blank entries are dropped.
    """
    if not value or not value.strip():
        return []
    raw = value.strip()
    if raw.startswith("["):
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            items = []
        return [str(d).strip() for d in items if str(d).strip()]
    return [d.strip() for d in raw.split(",") if d.strip()]


class AppConfig(BaseModel):
    """Immutable snapshot of the process configuration."""

    model_config = {"frozen": True}

    telegram_bot_token: Optional[str] = None
    telegram_webhook_secret: Optional[str] = None
    telegram_api_base: str = "https://api.telegram.org"
    telegram_timeout_seconds: float = 10.0
    jwt_secret: str = ""
    default_lang: str = "zh"
    allow_user_lang: bool = False
    prefix: str = ""
    domains: List[str] = []
    inbound_webhook_secret: str = ""


def config_from_env() -> AppConfig:
    """Build an AppConfig from the current environment."""
    return AppConfig(
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
        telegram_webhook_secret=os.getenv("TELEGRAM_WEBHOOK_SECRET") or None,
        telegram_api_base=os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/"),
        telegram_timeout_seconds=float(os.getenv("TELEGRAM_TIMEOUT_SECONDS", "10")),
        jwt_secret=os.getenv("JWT_SECRET", ""),
        default_lang=(os.getenv("DEFAULT_LANG") or "zh").strip().lower(),
        allow_user_lang=get_bool(os.getenv("TG_ALLOW_USER_LANG")),
        prefix=os.getenv("PREFIX", "").strip(),
        domains=parse_domains(os.getenv("DOMAINS")),
        inbound_webhook_secret=os.getenv("INBOUND_WEBHOOK_SECRET", ""),
    )


@lru_cache(maxsize=1)
def load_config() -> AppConfig:
    """Return the cached process configuration."""
    return config_from_env()
