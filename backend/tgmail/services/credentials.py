"""
Mailbox credential registry.

A credential is an HS256 JWT signed with JWT_SECRET carrying the claims
``address`` and ``address_id``. Each chat identity owns an ordered list of
credentials stored as a JSON array in the KV store.

A credential is invalid when it fails to decode or verify, lacks either
claim, or names an address id that no longer exists in the mail archive.
Archive errors are not classified as invalid; they propagate so a database
outage never causes valid credentials to be pruned.
"""

import logging
from typing import List, Optional

from jose import JWTError, jwt

from tgmail.errors import InvalidCredential
from tgmail.models.telegram import AddressRecord, ResolvedAddresses
from tgmail.services.kv_store import KeyValueStore, credentials_key, get_json, put_json
from tgmail.services.mail_archive import MailArchive

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


class CredentialRegistry:
    def __init__(self, store: KeyValueStore, archive: MailArchive, jwt_secret: str):
        self._store = store
        self._archive = archive
        self._jwt_secret = jwt_secret

    # ------------------------------------------------------------------
    # Single credential
    # ------------------------------------------------------------------

    def decode(self, credential: str) -> AddressRecord:
        """
        Verify a credential's signature and claims without touching the archive.

        Raises:
            InvalidCredential: on any decoding, signature or claim failure.
        """
        if not credential or not credential.strip():
            raise InvalidCredential("empty credential")
        try:
            claims = jwt.decode(credential.strip(), self._jwt_secret, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            raise InvalidCredential(f"invalid credential: {e}") from e

        address = claims.get("address")
        address_id = claims.get("address_id")
        if not isinstance(address, str) or not address:
            raise InvalidCredential("credential has no address")
        try:
            address_id = int(address_id)
        except (TypeError, ValueError):
            raise InvalidCredential("credential has no address id")
        return AddressRecord(address=address, address_id=address_id)

    def resolve(self, credential: str) -> AddressRecord:
        """
        Decode a credential and confirm its mailbox still exists.

        Raises:
            InvalidCredential: if the credential is invalid or the mailbox is gone.
        """
        record = self.decode(credential)
        if not self._archive.address_exists(record.address_id):
            raise InvalidCredential(f"address {record.address} no longer exists")
        return record

    # ------------------------------------------------------------------
    # Credential lists
    # ------------------------------------------------------------------

    def load(self, chat_id: str) -> List[str]:
        data = get_json(self._store, credentials_key(chat_id))
        if not isinstance(data, list):
            return []
        return [c for c in data if isinstance(c, str) and c]

    def save(self, chat_id: str, credentials: List[str]) -> None:
        put_json(self._store, credentials_key(chat_id), credentials)

    def resolve_all(self, chat_id: str, credentials: Optional[List[str]] = None) -> ResolvedAddresses:
        """
        Resolve every credential held by ``chat_id``, preserving order.

        The first credential to resolve to an address wins its id.
        """
        if credentials is None:
            credentials = self.load(chat_id)

        result = ResolvedAddresses()
        for credential in credentials:
            try:
                record = self.resolve(credential)
            except InvalidCredential as e:
                logger.debug(f"Invalid credential for chat {chat_id}: {e}")
                result.invalid_credentials.append(credential)
                continue
            if record.address not in result.address_ids:
                result.addresses.append(record.address)
                result.address_ids[record.address] = record.address_id
        return result

    def prune(self, chat_id: str) -> ResolvedAddresses:
        """
        Remove every invalid credential from the caller's list.

        Writes only when something was removed, so pruning a clean list is a
        no-op. Returns the resolution of the cleaned list.
        """
        credentials = self.load(chat_id)
        resolved = self.resolve_all(chat_id, credentials)
        if resolved.invalid_credentials:
            invalid = set(resolved.invalid_credentials)
            kept = [c for c in credentials if c not in invalid]
            self.save(chat_id, kept)
            logger.info(
                f"Pruned {len(credentials) - len(kept)} invalid credential(s) for chat {chat_id}"
            )
        return ResolvedAddresses(
            addresses=resolved.addresses,
            address_ids=resolved.address_ids,
            invalid_credentials=[],
        )

    def append(self, chat_id: str, credential: str) -> List[str]:
        """Append ``credential`` unless it is already held. Returns the new list."""
        credentials = self.load(chat_id)
        if credential not in credentials:
            credentials.append(credential)
            self.save(chat_id, credentials)
        return credentials

    def remove_for_address(self, chat_id: str, address: str) -> int:
        """
        Drop every credential whose claims name ``address``.

        Undecodable credentials are left for prune(). Returns the number removed.
        """
        credentials = self.load(chat_id)
        kept: List[str] = []
        for credential in credentials:
            try:
                claimed = self.decode(credential).address
            except InvalidCredential:
                claimed = None
            if claimed != address:
                kept.append(credential)
        removed = len(credentials) - len(kept)
        if removed:
            self.save(chat_id, kept)
        return removed

    def find_address(self, chat_id: str, address: str) -> Optional[AddressRecord]:
        """Return the caller's valid credential record for ``address``, if any."""
        resolved = self.resolve_all(chat_id)
        if address not in resolved.address_ids:
            return None
        return AddressRecord(address=address, address_id=resolved.address_ids[address])
