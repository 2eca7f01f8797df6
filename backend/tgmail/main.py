"""
tgmail Backend API
FastAPI application exposing the Telegram bot webhook and the mail push webhook.
"""

import logging
import os

from fastapi import FastAPI, HTTPException

from tgmail.config import load_config
from tgmail.dependencies import get_bot_client, get_supabase_admin
from tgmail.errors import CollaboratorFailure
from tgmail.routers import mail_push, telegram
from tgmail.services.bot import telegram_commands

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="tgmail API",
    description="Telegram access and push notifications for a disposable mail service",
    version="0.1.0",
)

# Include routers
app.include_router(telegram.router, prefix="/telegram", tags=["telegram"])
app.include_router(mail_push.router, prefix="/api/mail", tags=["mail"])


@app.on_event("startup")
async def register_bot_commands() -> None:
    """
    Push the command menu to Telegram so clients show it.

    Skipped when no bot token is configured. A failure is logged and does
    not prevent startup.
    """
    client = get_bot_client()
    if client is None:
        logger.info("TELEGRAM_BOT_TOKEN not set — Telegram features disabled")
        return
    commands = telegram_commands(load_config().allow_user_lang)
    try:
        await client.set_my_commands(commands)
        logger.info(f"Registered {len(commands)} bot commands")
    except CollaboratorFailure as exc:
        logger.error(f"Failed to register bot commands: {exc}")


@app.on_event("startup")
async def log_startup_urls() -> None:
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info(
        "tgmail API running at:\n"
        "  Local:   http://localhost:%s\n"
        "  Telegram webhook: /telegram/webhook\n"
        "  Mail push webhook: /api/mail/inbound",
        host_port,
    )


@app.get("/")
async def root():
    return {"message": "tgmail API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Executes a lightweight query against the kv_store table. Returns 503 on
    failure.
    """
    try:
        get_supabase_admin().table("kv_store").select("key").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
