"""
Key-value store used for credential lists, bindings, saved languages and
the settings record.

The production store is a two-column Supabase table::

    kv_store(key text primary key, value text not null)

Key layout
----------
temp-mail-telegram:{chat_id}        JSON array of credentials
temp-mail-telegram:{address}        binding record (JSON object or bare id)
temp-mail-telegram:lang:{chat_id}   saved language code
temp-mail-telegram-settings         TelegramSettings JSON
"""

import json
import logging
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from tgmail.errors import CollaboratorFailure
from tgmail.models.telegram import TelegramSettings

logger = logging.getLogger(__name__)

KV_PREFIX = "temp-mail-telegram"
SETTINGS_KEY = "temp-mail-telegram-settings"


def credentials_key(chat_id: str) -> str:
    return f"{KV_PREFIX}:{chat_id}"


def binding_key(address: str) -> str:
    return f"{KV_PREFIX}:{address}"


def lang_key(chat_id: str) -> str:
    return f"{KV_PREFIX}:lang:{chat_id}"


class KeyValueStore(Protocol):
    """Minimal get/put/delete store; values are strings."""

    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


def get_json(store: KeyValueStore, key: str) -> Any:
    """
    Read and JSON-decode a value.

    Returns None when the key is absent or the stored value is not valid JSON.
    """
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Ignoring non-JSON value stored under {key!r}")
        return None


def put_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.put(key, json.dumps(value, ensure_ascii=False))


def load_settings(store: KeyValueStore) -> TelegramSettings:
    """
    Load the settings record; a missing or non-JSON record means all features off.

    Raises:
        CollaboratorFailure: if the record does not validate.
    """
    data = get_json(store, SETTINGS_KEY)
    if not isinstance(data, dict):
        return TelegramSettings()
    try:
        return TelegramSettings.model_validate(data)
    except ValidationError as e:
        logger.error(f"Invalid settings record under {SETTINGS_KEY!r}: {e}")
        raise CollaboratorFailure(f"invalid settings record: {e}") from e


class SupabaseKeyValueStore:
    """KeyValueStore backed by the ``kv_store`` table."""

    def __init__(self, client, table: str = "kv_store"):
        self._client = client
        self._table = table

    def get(self, key: str) -> Optional[str]:
        try:
            result = (
                self._client.table(self._table)
                .select("value")
                .eq("key", key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"KV get failed for key {key!r}: {e}")
            raise CollaboratorFailure(f"failed to read {key}: {e}") from e
        if not result.data:
            return None
        return result.data[0].get("value")

    def put(self, key: str, value: str) -> None:
        try:
            self._client.table(self._table).upsert({"key": key, "value": value}).execute()
        except Exception as e:
            logger.error(f"KV put failed for key {key!r}: {e}")
            raise CollaboratorFailure(f"failed to write {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._client.table(self._table).delete().eq("key", key).execute()
        except Exception as e:
            logger.error(f"KV delete failed for key {key!r}: {e}")
            raise CollaboratorFailure(f"failed to delete {key}: {e}") from e
