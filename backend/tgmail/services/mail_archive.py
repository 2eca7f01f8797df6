"""
Relational mail archive.

Tables used (owned by the mail receiver, read here)::

    address(id bigint primary key, name text unique, password text, created_at)
    raw_mails(id bigint primary key, address text, message_id text,
              raw text, created_at)
"""

import logging
from typing import Optional, Protocol

from tgmail.errors import CollaboratorFailure
from tgmail.models.mail import RawMail

logger = logging.getLogger(__name__)


class MailArchive(Protocol):
    def fetch_nth_mail(self, address: str, offset: int) -> Optional[RawMail]:
        """Return the ``offset``-th most recent mail for ``address`` (0 = newest)."""
        ...

    def find_mail_id(self, address: str, message_id: Optional[str]) -> Optional[int]:
        """Return the archive row id for a Message-ID, if archived."""
        ...

    def address_exists(self, address_id: int) -> bool: ...

    def delete_address(self, address_id: int, address: str) -> bool:
        """Delete a mailbox and its mails. Returns False if it did not exist."""
        ...


class SupabaseMailArchive:
    """MailArchive backed by the ``address`` and ``raw_mails`` tables."""

    def __init__(self, client):
        self._client = client

    def fetch_nth_mail(self, address: str, offset: int) -> Optional[RawMail]:
        if offset < 0:
            return None
        try:
            result = (
                self._client.table("raw_mails")
                .select("id, raw, created_at")
                .eq("address", address)
                .order("id", desc=True)
                .range(offset, offset)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to fetch mail #{offset} for {address}: {e}")
            raise CollaboratorFailure(f"failed to query mails: {e}") from e
        if not result.data:
            return None
        return RawMail.model_validate(result.data[0])

    def find_mail_id(self, address: str, message_id: Optional[str]) -> Optional[int]:
        if not message_id:
            return None
        try:
            result = (
                self._client.table("raw_mails")
                .select("id")
                .eq("address", address)
                .eq("message_id", message_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to look up mail id for {address} / {message_id}: {e}")
            raise CollaboratorFailure(f"failed to query mail id: {e}") from e
        if not result.data:
            return None
        return result.data[0]["id"]

    def address_exists(self, address_id: int) -> bool:
        try:
            result = (
                self._client.table("address")
                .select("id")
                .eq("id", address_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to look up address id {address_id}: {e}")
            raise CollaboratorFailure(f"failed to query address: {e}") from e
        return bool(result.data)

    def delete_address(self, address_id: int, address: str) -> bool:
        try:
            result = self._client.table("address").delete().eq("id", address_id).execute()
            if not result.data:
                return False
            self._client.table("raw_mails").delete().eq("address", address).execute()
        except Exception as e:
            logger.error(f"Failed to delete mailbox {address} (id={address_id}): {e}")
            raise CollaboratorFailure(f"failed to delete mailbox: {e}") from e
        logger.info(f"Deleted mailbox {address} (id={address_id})")
        return True
