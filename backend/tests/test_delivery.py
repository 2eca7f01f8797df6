"""
Push delivery tests.

Coverage:
  - global push list + binding, one failing target does not stop the rest
  - topic bindings deliver once, to the bound chat and thread
  - viewer button from the archive row id
  - per-owner language for the binding, default language for global targets
  - no binding and no global push → nothing sent
  - store / archive failures recorded, never raised
"""

import json

import pytest

from conftest import FakeSender, make_raw_mail
from tgmail.errors import CollaboratorFailure
from tgmail.i18n import EN, ZH
from tgmail.services.delivery import DeliveryRouter
from tgmail.services.kv_store import SETTINGS_KEY, binding_key, lang_key
from tgmail.services.locale import LocaleResolver

ADDRESS = "a@x.com"


def _settings(store, **values):
    store.put(SETTINGS_KEY, json.dumps(values))


def _router(store, archive, sender, allow_user_lang=False):
    locales = LocaleResolver(store, default_lang="zh", allow_user_lang=allow_user_lang)
    return DeliveryRouter(store, archive, locales, sender)


class TestDeliveryTargets:
    @pytest.mark.asyncio
    async def test_failing_global_target_does_not_block_others(self, store, archive):
        _settings(store, enableGlobalMailPush=True, globalMailPushList=["100", "200"])
        store.put(binding_key(ADDRESS), "300")
        sender = FakeSender(failing_targets=["200"])

        report = await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail())

        assert [m["chat_id"] for m in sender.sent] == ["100", "300"]
        assert report.delivered == ["100", "300"]
        assert len(report.failures) == 1
        assert report.failures[0].target == "200"
        assert report.partial_failure is True

    @pytest.mark.asyncio
    async def test_topic_binding_delivers_once_with_viewer_button(self, store, archive):
        _settings(store, miniAppUrl="https://mail.example.com")
        store.put(binding_key(ADDRESS), json.dumps({"userId": "42", "chatId": 100, "threadId": 7}))
        archive.add_mail(ADDRESS, 55, make_raw_mail(), message_id="<m1@example.com>")
        sender = FakeSender()

        report = await _router(store, archive, sender).deliver(
            ADDRESS, make_raw_mail(), message_id="<m1@example.com>"
        )

        assert len(sender.sent) == 1
        sent = sender.sent[0]
        assert sent["chat_id"] == 100
        assert sent["thread_id"] == 7
        assert len(sent["buttons"]) == 1
        assert sent["buttons"][0].web_app_url == "https://mail.example.com/telegram_mail?mail_id=55"
        assert report.delivered == ["100#7"]
        assert not report.partial_failure

    @pytest.mark.asyncio
    async def test_binding_without_chat_goes_to_owner(self, store, archive):
        store.put(binding_key(ADDRESS), json.dumps({"userId": "42"}))
        sender = FakeSender()

        await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail())

        assert sender.sent[0]["chat_id"] == "42"
        assert sender.sent[0]["thread_id"] is None

    @pytest.mark.asyncio
    async def test_nothing_sent_without_binding_or_global_push(self, store, archive):
        _settings(store, enableGlobalMailPush=False, globalMailPushList=["100"])
        sender = FakeSender()

        report = await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail())

        assert sender.sent == []
        assert report.delivered == []
        assert report.failures == []

    @pytest.mark.asyncio
    async def test_no_sender_configured(self, store, archive):
        store.put(binding_key(ADDRESS), "300")
        report = await _router(store, archive, None).deliver(ADDRESS, make_raw_mail())
        assert report.delivered == []
        assert report.failures == []


class TestDeliveryRendering:
    @pytest.mark.asyncio
    async def test_owner_language_for_binding_default_for_global(self, store, archive):
        _settings(
            store,
            enableGlobalMailPush=True,
            globalMailPushList=["100"],
            miniAppUrl="https://mail.example.com",
        )
        store.put(binding_key(ADDRESS), "42")
        store.put(lang_key("42"), "en")
        archive.add_mail(ADDRESS, 9, make_raw_mail(), message_id="<m1@example.com>")
        sender = FakeSender()

        await _router(store, archive, sender, allow_user_lang=True).deliver(
            ADDRESS, make_raw_mail(), message_id="<m1@example.com>"
        )

        global_msg, owner_msg = sender.sent
        assert global_msg["buttons"][0].text == ZH.view_mail_btn
        assert owner_msg["buttons"][0].text == EN.view_mail_btn

    @pytest.mark.asyncio
    async def test_message_contains_mail_fields(self, store, archive):
        store.put(binding_key(ADDRESS), "42")
        sender = FakeSender()

        await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail(subject="Invoice", body="Pay me"))

        text = sender.sent[0]["text"]
        assert "From: Alice <alice@example.com>" in text
        assert f"To: {ADDRESS}" in text
        assert "Date: " in text
        assert "Subject: Invoice" in text
        assert text.endswith("Content:\nPay me")

    @pytest.mark.asyncio
    async def test_unknown_message_id_omits_viewer_button(self, store, archive):
        _settings(store, miniAppUrl="https://mail.example.com")
        store.put(binding_key(ADDRESS), "42")
        sender = FakeSender()

        await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail(), message_id="<unknown@x>")

        assert sender.sent[0]["buttons"] == []


class TestDeliveryFailures:
    @pytest.mark.asyncio
    async def test_binding_lookup_failure_still_delivers_globals(self, store, archive):
        _settings(store, enableGlobalMailPush=True, globalMailPushList=["100"])
        store.fail_keys.add(binding_key(ADDRESS))
        sender = FakeSender()

        report = await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail())

        assert report.delivered == ["100"]
        assert report.failures[0].target == f"binding:{ADDRESS}"

    @pytest.mark.asyncio
    async def test_archive_failure_omits_viewer_button(self, store, archive, monkeypatch):
        _settings(store, miniAppUrl="https://mail.example.com")
        store.put(binding_key(ADDRESS), "42")

        def boom(_address, _message_id):
            raise CollaboratorFailure("archive down")

        monkeypatch.setattr(archive, "find_mail_id", boom)
        sender = FakeSender()

        report = await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail(), message_id="<m1@x>")

        assert report.delivered == ["42"]
        assert sender.sent[0]["buttons"] == []


class TestSettingsAndRecordShapes:
    @pytest.mark.asyncio
    async def test_numeric_global_targets(self, store, archive):
        _settings(store, enableGlobalMailPush=True, globalMailPushList=[100, 200])
        sender = FakeSender()

        report = await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail())

        assert [m["chat_id"] for m in sender.sent] == ["100", "200"]
        assert report.failures == []

    @pytest.mark.asyncio
    async def test_malformed_binding_does_not_block_global_targets(self, store, archive):
        _settings(store, enableGlobalMailPush=True, globalMailPushList=["100"])
        store.put(binding_key(ADDRESS), json.dumps({"userId": "1", "chatId": "-100abc", "threadId": 7}))
        sender = FakeSender()

        report = await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail())

        assert [m["chat_id"] for m in sender.sent] == ["100"]
        assert report.delivered == ["100"]

    @pytest.mark.asyncio
    async def test_invalid_settings_record_still_delivers_binding(self, store, archive):
        _settings(store, enableGlobalMailPush="sometimes")
        store.put(binding_key(ADDRESS), "42")
        sender = FakeSender()

        report = await _router(store, archive, sender).deliver(ADDRESS, make_raw_mail())

        assert report.delivered == ["42"]
        assert report.failures[0].target == "settings"
