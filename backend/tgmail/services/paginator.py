"""
Stateless mail browsing.

A page shows the ``offset``-th most recent mail of one address with
prev/next buttons. The cursor lives entirely in the button payload::

    mail_{address}_{offset}

so any click, on any device, is resolved from the payload alone and two
browsing sessions on the same address never interfere.

The mail formatter here is shared with push notifications.
"""

import logging
from typing import Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from tgmail.i18n import MessagePack
from tgmail.models.telegram import Button, RenderedPage, TelegramSettings
from tgmail.services.mail_archive import MailArchive
from tgmail.services.mail_parser import MailParser, parse_raw_mail

logger = logging.getLogger(__name__)

CURSOR_TAG = "mail"
CURSOR_DELIMITER = "_"

# Body text beyond this many characters is cut for display
MAX_TEXT_LENGTH = 1000

VIEWER_PATH = "/telegram_mail"


# ---------------------------------------------------------------------------
# Cursor payloads
# ---------------------------------------------------------------------------

def encode_cursor(address: str, offset: int) -> str:
    return CURSOR_DELIMITER.join([CURSOR_TAG, address, str(offset)])


def decode_cursor(data: Optional[str]) -> Optional[Tuple[str, int]]:
    """
    Parse a callback payload back into (address, offset).

    Returns None for anything that is not exactly three fields with the
    ``mail`` tag and a non-negative integer offset.
    """
    if not data:
        return None
    fields = data.split(CURSOR_DELIMITER)
    if len(fields) != 3 or fields[0] != CURSOR_TAG:
        return None
    address, raw_offset = fields[1], fields[2]
    if not address or not raw_offset.isdigit():
        return None
    return address, int(raw_offset)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def viewer_url(mini_app_url: Optional[str], mail_id) -> Optional[str]:
    """
    Build the mini-app link for one archived mail.

    The configured URL keeps its scheme, host and query; its path becomes
    /telegram_mail and ``mail_id`` is set.
    """
    if not mini_app_url or mail_id is None:
        return None
    parsed = urlparse(mini_app_url)
    if not parsed.scheme or not parsed.netloc:
        logger.warning(f"Ignoring malformed miniAppUrl {mini_app_url!r}")
        return None
    query = [(k, v) for k, v in parse_qsl(parsed.query) if k != "mail_id"]
    query.append(("mail_id", str(mail_id)))
    return urlunparse((parsed.scheme, parsed.netloc, VIEWER_PATH, "", urlencode(query), ""))


def truncate_text(text: str, msgs: MessagePack) -> str:
    if len(text) > MAX_TEXT_LENGTH:
        return text[:MAX_TEXT_LENGTH] + f"\n\n...\n{msgs.msg_too_long}"
    return text


def format_mail(
    msgs: MessagePack,
    raw: str,
    address: str,
    created_at: Optional[str],
    parser: MailParser = parse_raw_mail,
) -> str:
    """Render a raw mail as the text of a chat message."""
    try:
        parsed = parser(raw)
    except Exception as e:
        logger.warning(f"Failed to parse mail for {address}: {e}")
        return f"{msgs.parse_mail_failed} {e}"

    text = truncate_text(parsed.text or "", msgs)
    return (
        f"From: {parsed.sender or msgs.no_sender}\n"
        f"To: {address}\n"
        + (f"Date: {created_at}\n" if created_at else "")
        + f"Subject: {parsed.subject or ''}\n"
        + f"Content:\n{text or msgs.parse_failed_view_in_app}"
    )


# ---------------------------------------------------------------------------
# Paginator
# ---------------------------------------------------------------------------

class MailPaginator:
    def __init__(self, archive: MailArchive, parser: MailParser = parse_raw_mail):
        self._archive = archive
        self._parser = parser

    def render(
        self,
        address: str,
        offset: int,
        msgs: MessagePack,
        settings: TelegramSettings,
        edit_existing: bool = False,
    ) -> RenderedPage:
        """
        Render the page for cursor (address, offset).

        Past the last mail a "no more mails" placeholder is shown and the
        next button is hidden; prev is hidden at offset 0.
        """
        mail = self._archive.fetch_nth_mail(address, offset) if offset >= 0 else None
        if mail is not None:
            text = format_mail(msgs, mail.raw, address, mail.created_at, self._parser)
        else:
            text = msgs.no_more_mails

        buttons = [
            Button(text=msgs.prev_btn, callback_data=encode_cursor(address, offset - 1), hidden=offset <= 0),
        ]
        url = viewer_url(settings.mini_app_url, mail.id if mail is not None else None)
        if url:
            buttons.append(Button(text=msgs.view_mail_btn, web_app_url=url))
        buttons.append(
            Button(text=msgs.next_btn, callback_data=encode_cursor(address, offset + 1), hidden=mail is None)
        )
        return RenderedPage(text=text or msgs.no_mail, buttons=buttons, edit_existing=edit_existing)
