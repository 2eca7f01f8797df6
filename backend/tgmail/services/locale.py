"""
Per-user display language resolution.

When per-user languages are disabled (TG_ALLOW_USER_LANG unset/false) every
caller gets the DEFAULT_LANG pack and saved overrides are never read.
"""

import logging
from typing import Optional

from tgmail.i18n import SUPPORTED_LANGS, MessagePack, get_messages
from tgmail.services.kv_store import KeyValueStore, lang_key

logger = logging.getLogger(__name__)


class LocaleResolver:
    def __init__(self, store: KeyValueStore, default_lang: str = "zh", allow_user_lang: bool = False):
        self._store = store
        self.default_lang = default_lang
        self.allow_user_lang = allow_user_lang

    def default_pack(self) -> MessagePack:
        return get_messages(self.default_lang)

    def saved_lang(self, chat_id: str) -> Optional[str]:
        return self._store.get(lang_key(chat_id))

    def resolve(self, chat_id: Optional[str] = None) -> MessagePack:
        """Return the pack for ``chat_id`` (saved override, else the default)."""
        if not self.allow_user_lang or not chat_id:
            return self.default_pack()
        saved = self.saved_lang(chat_id)
        if saved:
            return get_messages(saved)
        return self.default_pack()

    def set_lang(self, chat_id: str, requested: str) -> Optional[str]:
        """
        Save ``requested`` as the caller's language.

        Returns the saved code, or None when the feature is disabled or the
        code is not supported (nothing is written in either case).
        """
        code = (requested or "").strip().lower()
        if not self.allow_user_lang or code not in SUPPORTED_LANGS:
            return None
        self._store.put(lang_key(chat_id), code)
        logger.info(f"Saved language {code!r} for chat {chat_id}")
        return code
