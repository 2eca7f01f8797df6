"""
Raw mail parsing.

Extracts sender, subject and a plain-text body from an archived RFC 822
message. text/plain parts are preferred; an HTML-only message is reduced to
text by dropping tags.
"""

import logging
from email import message_from_bytes
from email.header import decode_header
from email.message import Message
from typing import Callable, Optional

from bs4 import BeautifulSoup

from tgmail.models.mail import ParsedMail

logger = logging.getLogger(__name__)

# Raises on unparseable input; callers render the error message.
MailParser = Callable[[str], ParsedMail]


def _decode_header_value(raw: Optional[str]) -> Optional[str]:
    """Decode RFC 2047 encoded-words into a unicode string."""
    if not raw:
        return None
    decoded_parts: list[str] = []
    for data, charset in decode_header(raw):
        if isinstance(data, str):
            data = data.encode("utf-8", errors="surrogateescape")
            charset = None
        try:
            decoded_parts.append(data.decode(charset or "utf-8", errors="replace"))
        except LookupError:
            # e.g. "unknown-8bit" for raw 8-bit headers
            decoded_parts.append(data.decode("utf-8", errors="replace"))
    return "".join(decoded_parts).strip()


def _html_to_text(body: str) -> str:
    soup = BeautifulSoup(body, "lxml")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text("\n", strip=True)


def _decode_part(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if not payload:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def _extract_text(message: Message) -> str:
    parts = list(message.walk()) if message.is_multipart() else [message]

    for part in parts:
        if part.get_content_type() == "text/plain" and not part.get_filename():
            text = _decode_part(part)
            if text.strip():
                return text.strip()

    for part in parts:
        if part.get_content_type() == "text/html" and not part.get_filename():
            text = _html_to_text(_decode_part(part))
            if text:
                return text

    return ""


def parse_raw_mail(raw: str) -> ParsedMail:
    """
    Parse a raw message.

    Raises:
        ValueError: if ``raw`` is empty.
    """
    if not raw or not raw.strip():
        raise ValueError("empty message")

    # Raw mail text may carry undecoded 8-bit bytes; keep them for charset decoding.
    message = message_from_bytes(raw.encode("utf-8", errors="surrogateescape"))
    parsed = ParsedMail(
        sender=_decode_header_value(message.get("From")),
        subject=_decode_header_value(message.get("Subject")),
        text=_extract_text(message),
    )
    logger.debug(
        f"Parsed mail from={parsed.sender!r} subject={parsed.subject!r} "
        f"({len(parsed.text or '')} chars)"
    )
    return parsed
