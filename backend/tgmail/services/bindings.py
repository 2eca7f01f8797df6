"""
Address → delivery-target bindings.

One binding per address, stored under ``temp-mail-telegram:{address}``.
Older versions stored the owner's chat id as a bare string; current
versions store a JSON object::

    {"userId": "123", "chatId": -100987, "threadId": 7, "bindTime": "..."}

Both forms are decoded here, once, into LegacyBinding / FullBinding.

Ownership of an address can be proven two ways: being the recorded owner
of its binding, or holding a credential that resolves to it. unbind accepts
either for a bound address; delete_address needs the credential because the mailbox id comes
from it.
"""

import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError

from tgmail.errors import CollaboratorFailure, InvalidBinding, InvalidCredential, NotBound, PartialDeletion
from tgmail.models.telegram import BindingRecord, FullBinding, LegacyBinding
from tgmail.services.credentials import CredentialRegistry
from tgmail.services.kv_store import KeyValueStore, binding_key
from tgmail.services.mail_archive import MailArchive

logger = logging.getLogger(__name__)


def decode_binding(raw: Optional[str]) -> Optional[BindingRecord]:
    """Decode a stored binding value; anything that is not a JSON object is a legacy owner id."""
    if raw is None or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, dict):
        return LegacyBinding(owner=raw.strip())

    owner = data.get("userId")
    if owner is None or str(owner) == "":
        # Structured value without an owner; nothing sensible to deliver to.
        logger.warning(f"Binding record without userId ignored: {raw!r}")
        return None
    try:
        return FullBinding(
            owner=str(owner),
            chat_id=data.get("chatId"),
            thread_id=data.get("threadId"),
            bind_time=data.get("bindTime"),
        )
    except ValidationError as e:
        logger.warning(f"Malformed binding record ignored: {raw!r} ({e})")
        return None


def encode_binding(record: FullBinding) -> str:
    data = {"userId": record.owner}
    if record.chat_id is not None:
        data["chatId"] = record.chat_id
    if record.thread_id is not None:
        data["threadId"] = record.thread_id
    if record.bind_time:
        data["bindTime"] = record.bind_time
    return json.dumps(data)


class BindingStore:
    def __init__(self, store: KeyValueStore, registry: CredentialRegistry, archive: MailArchive):
        self._store = store
        self._registry = registry
        self._archive = archive

    def lookup(self, address: str) -> Optional[BindingRecord]:
        return decode_binding(self._store.get(binding_key(address)))

    def bind(
        self,
        address: str,
        owner: str,
        chat_id: Optional[int] = None,
        thread_id: Optional[int] = None,
    ) -> FullBinding:
        """
        Bind ``address`` to ``owner`` (optionally a chat / topic thread).

        Overwrites any previous binding for the address.

        Raises:
            InvalidBinding: if ``thread_id`` is given without ``chat_id``.
        """
        if thread_id is not None and chat_id is None:
            raise InvalidBinding("a topic binding needs a chat id")
        record = FullBinding(
            owner=str(owner),
            chat_id=chat_id,
            thread_id=thread_id,
            bind_time=datetime.now(timezone.utc).isoformat(),
        )
        self._store.put(binding_key(address), encode_binding(record))
        logger.info(
            f"Bound {address} to owner={owner} chat={chat_id} thread={thread_id}"
        )
        return record

    def bind_credential(
        self,
        owner: str,
        credential: str,
        chat_id: Optional[int] = None,
        thread_id: Optional[int] = None,
    ) -> str:
        """
        Validate ``credential``, add it to the owner's list and bind its address.

        Returns the bound address.

        Raises:
            InvalidCredential: if the credential does not resolve.
            InvalidBinding:    if ``thread_id`` is given without ``chat_id``.
        """
        if thread_id is not None and chat_id is None:
            raise InvalidBinding("a topic binding needs a chat id")
        record = self._registry.resolve(credential.strip())
        self._registry.append(owner, credential.strip())
        self.bind(record.address, owner, chat_id=chat_id, thread_id=thread_id)
        return record.address

    def unbind(self, address: str, caller: str) -> None:
        """
        Remove the binding for ``address`` and the caller's credentials for it.

        Raises:
            NotBound: if ``address`` has no binding, or the caller is neither
                      the recorded owner nor holds a credential resolving to it.
        """
        record = self.lookup(address)
        if record is None:
            raise NotBound(address)
        is_owner = record.owner == str(caller)
        if not is_owner and self._registry.find_address(caller, address) is None:
            raise NotBound(address)

        self._store.delete(binding_key(address))
        removed = self._registry.remove_for_address(caller, address)
        logger.info(f"Unbound {address} for chat {caller} (credentials removed={removed})")

    def delete_address(self, address: str, caller: str) -> None:
        """
        Delete the mailbox behind ``address`` and clean up its binding and the
        caller's credentials.

        Raises:
            NotBound:            caller holds no valid credential for ``address``.
            InvalidCredential:   the mailbox disappeared before it could be deleted.
            CollaboratorFailure: the mailbox deletion itself failed.
            PartialDeletion:     the mailbox was deleted but clean-up failed.
        """
        record = self._registry.find_address(caller, address)
        if record is None:
            raise NotBound(address)

        if not self._archive.delete_address(record.address_id, address):
            raise InvalidCredential(f"address {address} no longer exists")

        failed_steps: List[str] = []
        try:
            self._store.delete(binding_key(address))
        except CollaboratorFailure as e:
            logger.error(f"Mailbox {address} deleted but removing its binding failed: {e}")
            failed_steps.append("binding")
        try:
            self._registry.remove_for_address(caller, address)
        except CollaboratorFailure as e:
            logger.error(f"Mailbox {address} deleted but removing credentials failed: {e}")
            failed_steps.append("credentials")

        if failed_steps:
            raise PartialDeletion(address, failed_steps)
        logger.info(f"Deleted address {address} for chat {caller}")
