"""
Telegram webhook router.

Environment variables
---------------------
TELEGRAM_WEBHOOK_SECRET   When set, every update must carry it in the
                          X-Telegram-Bot-Api-Secret-Token header (the value
                          registered with setWebhook's secret_token).

Endpoints:
  POST /webhook   — Telegram update (auth: X-Telegram-Bot-Api-Secret-Token)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from tgmail.config import load_config
from tgmail.dependencies import get_bot_client, get_telegram_bot
from tgmail.errors import CollaboratorFailure
from tgmail.models.telegram import Interaction
from tgmail.services.bot import TelegramBot
from tgmail.services.telegram_client import InteractionTransport, TelegramBotClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _verify_telegram_secret(
    x_telegram_bot_api_secret_token: Optional[str] = Header(None),
) -> None:
    """Raises 401 when a webhook secret is configured and the header does not match."""
    expected = load_config().telegram_webhook_secret
    if not expected:
        return
    if x_telegram_bot_api_secret_token != expected:
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.post("/webhook")
async def telegram_webhook(
    update: dict,
    _: None = Depends(_verify_telegram_secret),
    bot: TelegramBot = Depends(get_telegram_bot),
    client: Optional[TelegramBotClient] = Depends(get_bot_client),
) -> dict:
    """
    Handle one Telegram update.

    Always returns 200 once authenticated so Telegram does not redeliver an
    update whose reply failed.
    """
    if client is None:
        raise HTTPException(status_code=503, detail="TELEGRAM_BOT_TOKEN is not configured")

    interaction = Interaction.from_update(update)
    if interaction is None:
        return {"ok": True, "handled": False}

    try:
        await bot.handle(interaction, InteractionTransport(client, interaction))
    except CollaboratorFailure as exc:
        logger.error(f"Failed to answer update {update.get('update_id')}: {exc}")
        return {"ok": True, "handled": False}
    return {"ok": True, "handled": True}
