"""
Shared fakes and fixtures.

The collaborator protocols (KV store, mail archive, bot transport, message
sender) are replaced with in-memory fakes so tests never touch Supabase or
Telegram.
"""

import os
from typing import Dict, List, Optional

import jwt as pyjwt
import pytest

# Ensure env vars are set before importing anything that reads configuration
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")

from tgmail.config import AppConfig
from tgmail.errors import CollaboratorFailure
from tgmail.models.mail import RawMail
from tgmail.services.bindings import BindingStore
from tgmail.services.bot import TelegramBot
from tgmail.services.credentials import CredentialRegistry
from tgmail.services.locale import LocaleResolver
from tgmail.services.paginator import MailPaginator

JWT_SECRET = "test-jwt-secret-0123456789abcdef-0123456789"


def make_credential(address: str, address_id: int, secret: str = JWT_SECRET) -> str:
    """Mint a mailbox credential the way the mail service issues them."""
    return pyjwt.encode({"address": address, "address_id": address_id}, secret, algorithm="HS256")


def make_raw_mail(
    sender: str = "Alice <alice@example.com>",
    to: str = "a@x.com",
    subject: str = "Hello",
    body: str = "Hi there",
) -> str:
    return (
        f"From: {sender}\r\n"
        f"To: {to}\r\n"
        f"Subject: {subject}\r\n"
        "Message-ID: <m1@example.com>\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "\r\n"
        f"{body}\r\n"
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class InMemoryKVStore:
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})
        self.writes: List[str] = []
        self.fail_keys: set = set()

    def _check(self, key: str) -> None:
        if key in self.fail_keys:
            raise CollaboratorFailure(f"store unavailable for {key}")

    def get(self, key: str) -> Optional[str]:
        self._check(key)
        return self.data.get(key)

    def put(self, key: str, value: str) -> None:
        self._check(key)
        self.writes.append(key)
        self.data[key] = value

    def delete(self, key: str) -> None:
        self._check(key)
        self.writes.append(key)
        self.data.pop(key, None)


class FakeMailArchive:
    """Addresses by id; mails per address stored oldest first."""

    def __init__(self):
        self.addresses: Dict[int, str] = {}
        self.mails: Dict[str, List[RawMail]] = {}
        self.message_ids: Dict[tuple, int] = {}
        self.fail_delete = False

    def add_address(self, address_id: int, address: str) -> None:
        self.addresses[address_id] = address

    def add_mail(self, address: str, mail_id: int, raw: str, created_at: str = "2026-10-01 10:00:00",
                 message_id: Optional[str] = None) -> None:
        self.mails.setdefault(address, []).append(RawMail(id=mail_id, raw=raw, created_at=created_at))
        if message_id:
            self.message_ids[(address, message_id)] = mail_id

    def fetch_nth_mail(self, address: str, offset: int) -> Optional[RawMail]:
        newest_first = list(reversed(self.mails.get(address, [])))
        if offset < 0 or offset >= len(newest_first):
            return None
        return newest_first[offset]

    def find_mail_id(self, address: str, message_id: Optional[str]) -> Optional[int]:
        return self.message_ids.get((address, message_id))

    def address_exists(self, address_id: int) -> bool:
        return address_id in self.addresses

    def delete_address(self, address_id: int, address: str) -> bool:
        if self.fail_delete:
            raise CollaboratorFailure("archive unavailable")
        if address_id not in self.addresses:
            return False
        del self.addresses[address_id]
        self.mails.pop(address, None)
        return True


class FakeTransport:
    def __init__(self):
        self.replies: List[dict] = []
        self.edits: List[dict] = []
        self.answers: List[Optional[str]] = []

    async def reply(self, text, buttons=None, parse_mode=None):
        self.replies.append({"text": text, "buttons": buttons or [], "parse_mode": parse_mode})

    async def edit_message(self, text, buttons=None):
        self.edits.append({"text": text, "buttons": buttons or []})

    async def answer_callback(self, text=None):
        self.answers.append(text)

    @property
    def last_text(self) -> str:
        return self.replies[-1]["text"]


class FakeSender:
    def __init__(self, failing_targets=()):
        self.sent: List[dict] = []
        self.failing_targets = {str(t) for t in failing_targets}

    async def send_message(self, chat_id, text, buttons=None, thread_id=None):
        if str(chat_id) in self.failing_targets:
            raise CollaboratorFailure(f"chat {chat_id} blocked the bot")
        self.sent.append({"chat_id": chat_id, "text": text, "buttons": buttons or [], "thread_id": thread_id})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return InMemoryKVStore()


@pytest.fixture
def archive():
    return FakeMailArchive()


@pytest.fixture
def registry(store, archive):
    return CredentialRegistry(store, archive, JWT_SECRET)


@pytest.fixture
def bindings(store, registry, archive):
    return BindingStore(store, registry, archive)


@pytest.fixture
def locales(store):
    return LocaleResolver(store, default_lang="zh", allow_user_lang=False)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_bot(store, archive, registry, bindings):
    """Factory so tests can vary the config (language feature, domains, ...)."""

    def _make(issuer=None, **config_overrides) -> TelegramBot:
        config = AppConfig(jwt_secret=JWT_SECRET, **config_overrides)
        locales = LocaleResolver(store, config.default_lang, config.allow_user_lang)
        return TelegramBot(
            config=config,
            store=store,
            archive=archive,
            registry=registry,
            bindings=bindings,
            paginator=MailPaginator(archive),
            locales=locales,
            issuer=issuer,
        )

    return _make
