"""
Service wiring for the FastAPI routes.

Each getter builds its service once per process. Tests replace them through
``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Optional

from tgmail.config import load_config
from tgmail.services.address_issuer import SupabaseAddressIssuer
from tgmail.services.bindings import BindingStore
from tgmail.services.bot import TelegramBot
from tgmail.services.credentials import CredentialRegistry
from tgmail.services.delivery import DeliveryRouter
from tgmail.services.kv_store import SupabaseKeyValueStore
from tgmail.services.locale import LocaleResolver
from tgmail.services.mail_archive import SupabaseMailArchive
from tgmail.services.paginator import MailPaginator
from tgmail.services.telegram_client import TelegramBotClient


@lru_cache(maxsize=1)
def get_supabase_admin():
    # Imported lazily so the app can start (and /health answer) before
    # Supabase credentials are validated.
    from tgmail.db import supabase_admin
    return supabase_admin


@lru_cache(maxsize=1)
def get_kv_store() -> SupabaseKeyValueStore:
    return SupabaseKeyValueStore(get_supabase_admin())


@lru_cache(maxsize=1)
def get_mail_archive() -> SupabaseMailArchive:
    return SupabaseMailArchive(get_supabase_admin())


@lru_cache(maxsize=1)
def get_locale_resolver() -> LocaleResolver:
    config = load_config()
    return LocaleResolver(get_kv_store(), config.default_lang, config.allow_user_lang)


@lru_cache(maxsize=1)
def get_bot_client() -> Optional[TelegramBotClient]:
    config = load_config()
    if not config.telegram_bot_token:
        return None
    return TelegramBotClient(
        config.telegram_bot_token,
        api_base=config.telegram_api_base,
        timeout=config.telegram_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_telegram_bot() -> TelegramBot:
    config = load_config()
    store = get_kv_store()
    archive = get_mail_archive()
    registry = CredentialRegistry(store, archive, config.jwt_secret)
    return TelegramBot(
        config=config,
        store=store,
        archive=archive,
        registry=registry,
        bindings=BindingStore(store, registry, archive),
        paginator=MailPaginator(archive),
        locales=get_locale_resolver(),
        issuer=SupabaseAddressIssuer(get_supabase_admin(), config.jwt_secret, config.domains, config.prefix),
    )


@lru_cache(maxsize=1)
def get_delivery_router() -> DeliveryRouter:
    return DeliveryRouter(
        get_kv_store(),
        get_mail_archive(),
        get_locale_resolver(),
        get_bot_client(),
    )
