"""
Access gate and language resolution tests.
"""

import pytest

from tgmail.errors import AccessDenied, ChannelScopeRejected, MissingIdentity
from tgmail.i18n import EN, ZH, get_messages
from tgmail.models.telegram import Interaction, TelegramSettings
from tgmail.services.access import admit, check_channel_scope, gate
from tgmail.services.kv_store import lang_key
from tgmail.services.locale import LocaleResolver


def _private(text="/start", sender_id=1):
    return Interaction(chat_id=sender_id, chat_type="private", sender_id=sender_id, text=text)


def _group(text, sender_id=1, thread_id=None):
    return Interaction(chat_id=-100, chat_type="supergroup", sender_id=sender_id, text=text, thread_id=thread_id)


class TestChannelScope:
    def test_private_chat_passes(self):
        check_channel_scope(_private("/mails"))

    def test_group_command_is_rejected(self):
        with pytest.raises(ChannelScopeRejected):
            check_channel_scope(_group("/mails"))

    def test_bindtopic_allowed_in_group(self):
        check_channel_scope(_group("/bindtopic abc", thread_id=7))

    def test_bindtopic_with_bot_suffix_allowed(self):
        check_channel_scope(_group("/BindTopic@tempmail_bot abc", thread_id=7))

    def test_group_callback_is_rejected(self):
        click = Interaction(chat_id=-100, chat_type="supergroup", callback_query_id="9", callback_data="mail_a@x.com_1")
        with pytest.raises(ChannelScopeRejected):
            check_channel_scope(click)


class TestAllowList:
    def test_disabled_allow_list_admits_everyone(self):
        assert admit("42", TelegramSettings())

    def test_enabled_allow_list_rejects_unknown(self):
        settings = TelegramSettings(enableAllowList=True, allowList=["1"])
        assert not admit("42", settings)
        assert admit("1", settings)

    def test_gate_denies_for_any_command(self):
        settings = TelegramSettings(enableAllowList=True, allowList=["1"])
        for text in ["/start", "/mails", "/bind junk", "hello", "/nonsense"]:
            with pytest.raises(AccessDenied):
                gate(_private(text, sender_id=42), settings)

    def test_gate_missing_identity(self):
        with pytest.raises(MissingIdentity):
            gate(Interaction(chat_type="private", text="/start"), TelegramSettings())

    def test_callback_identity_falls_back_to_chat(self):
        click = Interaction(chat_id=55, chat_type="private", callback_query_id="9", callback_data="x")
        assert gate(click, TelegramSettings()) == "55"


class TestLocaleResolver:
    def test_disabled_feature_ignores_saved_language(self, store):
        store.put(lang_key("u1"), "en")
        resolver = LocaleResolver(store, default_lang="zh", allow_user_lang=False)
        assert resolver.resolve("u1") is ZH

    def test_enabled_feature_uses_saved_language(self, store):
        store.put(lang_key("u1"), "en")
        resolver = LocaleResolver(store, default_lang="zh", allow_user_lang=True)
        assert resolver.resolve("u1") is EN

    def test_enabled_feature_defaults_without_saved_language(self, store):
        resolver = LocaleResolver(store, default_lang="en", allow_user_lang=True)
        assert resolver.resolve("u1") is EN

    def test_set_lang_disabled_never_writes(self, store):
        resolver = LocaleResolver(store, default_lang="zh", allow_user_lang=False)
        assert resolver.set_lang("U1", "en") is None
        assert lang_key("U1") not in store.data

    def test_set_lang_unsupported_code_is_not_saved(self, store):
        resolver = LocaleResolver(store, allow_user_lang=True)
        assert resolver.set_lang("u1", "fr") is None
        assert store.writes == []

    def test_set_lang_saves_supported_code(self, store):
        resolver = LocaleResolver(store, allow_user_lang=True)
        assert resolver.set_lang("u1", " EN ") == "en"
        assert store.data[lang_key("u1")] == "en"

    def test_unknown_pack_falls_back_to_chinese(self):
        assert get_messages("fr") is ZH
        assert get_messages(None) is ZH
