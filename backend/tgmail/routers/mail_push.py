"""
Mail-arrival webhook.

Called by the mail receiver after a message has been archived; pushes it to
the address's bound chat/topic and the global push list.

Environment variables
---------------------
INBOUND_WEBHOOK_SECRET    Shared secret checked in X-Webhook-Secret header.

Endpoints:
  POST /inbound   — {address, raw, message_id} (auth: X-Webhook-Secret)
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from tgmail.config import load_config
from tgmail.dependencies import get_delivery_router
from tgmail.models.mail import InboundMailEvent
from tgmail.services.delivery import DeliveryRouter

logger = logging.getLogger(__name__)

router = APIRouter()


def _verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    """
    Raises 401 if the secret is missing, unconfigured, or does not match.
    """
    expected = load_config().inbound_webhook_secret
    if not expected:
        logger.warning(
            "INBOUND_WEBHOOK_SECRET is not configured — all mail push requests will be rejected"
        )
        raise HTTPException(status_code=401, detail="Webhook secret not configured")

    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.post("/inbound")
async def receive_mail(
    event: InboundMailEvent,
    _: None = Depends(_verify_webhook_secret),
    delivery: DeliveryRouter = Depends(get_delivery_router),
) -> dict:
    """
    Push a newly archived mail.

    Per-target failures are reported in the body; the request itself
    succeeds so the receiver does not retry targets that already got it.
    """
    report = await delivery.deliver(event.address, event.raw, event.message_id)
    return {
        "received": True,
        "delivered": report.delivered,
        "failures": [f.model_dump() for f in report.failures],
    }
