"""
Mail models shared by the archive, parser and push webhook.
"""

from typing import Optional
from pydantic import BaseModel


class RawMail(BaseModel):
    """One row from the raw_mails table."""
    model_config = {"from_attributes": True}

    id: int
    raw: str
    created_at: Optional[str] = None


class ParsedMail(BaseModel):
    """Fields extracted from a raw RFC 822 message."""
    sender: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None


class InboundMailEvent(BaseModel):
    """
    Body of the mail-arrival webhook.

    ``message_id`` is the Message-ID header the mail was archived under; it
    is used to look up the archive row for the viewer button.
    """
    model_config = {"extra": "ignore"}

    address: str
    raw: str
    message_id: Optional[str] = None
