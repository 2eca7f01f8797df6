"""
Telegram command surface.

Every interaction passes through, in order:
  channel-scope filter → caller identity → allow-list → language → handler.

Handlers catch the bot's own errors and reply with a localized failure
prefix; anything unexpected is logged and answered with "Error: <msg>".
"""

import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from tgmail.config import AppConfig
from tgmail.errors import (
    AccessDenied,
    ChannelScopeRejected,
    CollaboratorFailure,
    MailBotError,
    MissingIdentity,
    NotBound,
)
from tgmail.i18n import LANG_DISPLAY_NAMES, MessagePack
from tgmail.models.telegram import Interaction, ResolvedAddresses, TelegramSettings
from tgmail.services.access import check_channel_scope, gate
from tgmail.services.address_issuer import AddressIssuer
from tgmail.services.bindings import BindingStore
from tgmail.services.credentials import CredentialRegistry
from tgmail.services.kv_store import KeyValueStore, load_settings
from tgmail.services.locale import LocaleResolver
from tgmail.services.mail_archive import MailArchive
from tgmail.services.paginator import MailPaginator, decode_cursor
from tgmail.services.telegram_client import BotTransport

logger = logging.getLogger(__name__)

# Bilingual descriptions, also pushed to the Telegram command menu
COMMANDS = [
    {"command": "start", "description": "开始使用 | Get started"},
    {
        "command": "new",
        "description": "新建邮箱, /new <name>@<domain>, name[a-z0-9]有效, 为空随机生成, @domain可选 | "
        "Create address, /new <name>@<domain>, name[a-z0-9] valid, empty=random, @domain optional",
    },
    {"command": "address", "description": "查看邮箱地址列表 | View address list"},
    {"command": "bind", "description": "绑定邮箱, /bind <邮箱地址凭证> | Bind address, /bind <credential>"},
    {"command": "unbind", "description": "解绑邮箱, /unbind <邮箱地址> | Unbind address, /unbind <address>"},
    {"command": "delete", "description": "删除邮箱, /delete <邮箱地址> | Delete address, /delete <address>"},
    {
        "command": "mails",
        "description": "查看邮件, /mails <邮箱地址>, 不输入地址默认第一个 | "
        "View mails, /mails <address>, default first if empty",
    },
    {"command": "cleaninvalidaddress", "description": "清理无效地址 | Clean invalid addresses"},
    {"command": "lang", "description": "设置语言 /lang <zh|en> | Set language /lang <zh|en>"},
    {"command": "bindtopic", "description": "绑定话题, /bindtopic <邮箱地址凭证> | Bind topic, /bindtopic <credential>"},
]


def telegram_commands(allow_user_lang: bool) -> List[dict]:
    """Command menu; /lang is hidden when per-user languages are disabled."""
    if allow_user_lang:
        return list(COMMANDS)
    return [c for c in COMMANDS if c["command"] != "lang"]


def describe_error(error: Exception, msgs: MessagePack) -> str:
    if isinstance(error, NotBound):
        return f"{msgs.not_bound_address} {error.address}"
    return str(error)


def format_address_list(msgs: MessagePack, addresses: List[str]) -> str:
    return "\n".join(f"{msgs.address} {a}" for a in addresses)


@dataclass
class CommandContext:
    interaction: Interaction
    transport: BotTransport
    caller: str
    msgs: MessagePack
    settings: TelegramSettings


Handler = Callable[[CommandContext], Awaitable[None]]


class TelegramBot:
    def __init__(
        self,
        config: AppConfig,
        store: KeyValueStore,
        archive: MailArchive,
        registry: CredentialRegistry,
        bindings: BindingStore,
        paginator: MailPaginator,
        locales: LocaleResolver,
        issuer: Optional[AddressIssuer] = None,
    ):
        self._config = config
        self._store = store
        self._archive = archive
        self._registry = registry
        self._bindings = bindings
        self._paginator = paginator
        self._locales = locales
        self._issuer = issuer
        self._handlers: Dict[str, Handler] = {
            "/start": self._start,
            "/new": self._new,
            "/address": self._address,
            "/bind": self._bind,
            "/unbind": self._unbind,
            "/delete": self._delete,
            "/mails": self._mails,
            "/cleaninvalidaddress": self._clean_invalid_address,
            "/lang": self._lang,
            "/bindtopic": self._bind_topic,
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, interaction: Interaction, transport: BotTransport) -> None:
        try:
            check_channel_scope(interaction)
        except ChannelScopeRejected as e:
            logger.debug(f"Dropped interaction: {e}")
            return

        msgs = self._resolve_messages(interaction.caller_id)
        try:
            settings = load_settings(self._store)
        except CollaboratorFailure as e:
            # Without settings the allow-list cannot be checked; refuse.
            logger.error(f"Could not load settings: {e}")
            await transport.reply(f"Error: {e}")
            return
        try:
            caller = gate(interaction, settings)
        except MissingIdentity:
            await transport.reply(msgs.unable_get_user_info)
            return
        except AccessDenied:
            await transport.reply(msgs.no_permission)
            return

        ctx = CommandContext(
            interaction=interaction,
            transport=transport,
            caller=caller,
            msgs=msgs,
            settings=settings,
        )
        try:
            if interaction.is_callback:
                await self._on_callback(ctx)
                return
            handler = self._handlers.get(interaction.command)
            if handler is None:
                return
            await handler(ctx)
        except Exception as e:
            logger.exception(f"Unhandled error for {interaction.command or 'callback'} from {caller}")
            await transport.reply(f"Error: {e}")

    def _resolve_messages(self, caller_id: Optional[str]) -> MessagePack:
        try:
            return self._locales.resolve(caller_id)
        except CollaboratorFailure as e:
            logger.warning(f"Using default language for {caller_id}: {e}")
            return self._locales.default_pack()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _start(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        commands = telegram_commands(self._locales.allow_user_lang)
        await ctx.transport.reply(
            f"{msgs.welcome}\n\n"
            + (f"{msgs.current_prefix} {self._config.prefix}\n" if self._config.prefix else "")
            + f"{msgs.current_domains} {json.dumps(self._config.domains)}\n"
            + f"{msgs.available_commands}\n"
            + "\n".join(f"/{c['command']}: {c['description']}" for c in commands)
        )

    async def _new(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        try:
            if self._issuer is None:
                raise MailBotError("address creation is not available")
            created = self._issuer.issue(ctx.interaction.argument())
            self._registry.append(ctx.caller, created.credential)
            self._bindings.bind(created.address, ctx.caller)
        except (MailBotError, ValueError) as e:
            await ctx.transport.reply(f"{msgs.create_failed} {describe_error(e, msgs)}")
            return
        await ctx.transport.reply(
            f"{msgs.create_success}\n"
            + f"{msgs.address} {created.address}\n"
            + (f"{msgs.password} `{created.password}`\n" if created.password else "")
            + f"{msgs.credential} `{created.credential}`\n",
            parse_mode="Markdown",
        )

    async def _address(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        try:
            resolved = self._registry.resolve_all(ctx.caller)
        except MailBotError as e:
            await ctx.transport.reply(f"{msgs.get_address_failed} {e}")
            return
        await ctx.transport.reply(f"{msgs.address_list}\n\n" + format_address_list(msgs, resolved.addresses))

    async def _bind(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        credential = ctx.interaction.argument()
        if not credential:
            await ctx.transport.reply(msgs.please_input_credential)
            return
        try:
            address = self._bindings.bind_credential(ctx.caller, credential)
        except MailBotError as e:
            await ctx.transport.reply(f"{msgs.bind_failed} {describe_error(e, msgs)}")
            return
        await ctx.transport.reply(f"{msgs.bind_success}\n{msgs.address} {address}")

    async def _bind_topic(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        interaction = ctx.interaction
        if interaction.thread_id is None:
            await ctx.transport.reply(msgs.use_in_topic)
            return
        credential = interaction.argument()
        if not credential:
            await ctx.transport.reply(f"{msgs.please_input_credential}\n\n{msgs.bind_topic_usage}")
            return
        try:
            address = self._bindings.bind_credential(
                ctx.caller,
                credential,
                chat_id=interaction.chat_id,
                thread_id=interaction.thread_id,
            )
        except MailBotError as e:
            await ctx.transport.reply(f"{msgs.bind_failed} {describe_error(e, msgs)}")
            return
        await ctx.transport.reply(
            f"{msgs.bind_success}\n"
            f"{msgs.address} {address}\n"
            f"{msgs.topic_id} {interaction.thread_id}\n"
            f"{msgs.topic_push_enabled}"
        )

    async def _unbind(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        address = ctx.interaction.argument()
        if not address:
            await ctx.transport.reply(msgs.please_input_address)
            return
        try:
            self._bindings.unbind(address, ctx.caller)
        except MailBotError as e:
            await ctx.transport.reply(f"{msgs.unbind_failed} {describe_error(e, msgs)}")
            return
        await ctx.transport.reply(f"{msgs.unbind_success}\n{msgs.address} {address}")

    async def _delete(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        address = ctx.interaction.argument()
        if not address:
            await ctx.transport.reply(msgs.please_input_address)
            return
        try:
            self._bindings.delete_address(address, ctx.caller)
        except MailBotError as e:
            await ctx.transport.reply(f"{msgs.delete_failed} {describe_error(e, msgs)}")
            return
        await ctx.transport.reply(f"{msgs.delete_success} {address}")

    async def _clean_invalid_address(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        try:
            resolved = self._registry.prune(ctx.caller)
        except MailBotError as e:
            await ctx.transport.reply(f"{msgs.clean_failed} {e}")
            return
        await ctx.transport.reply(
            f"{msgs.clean_success}\n\n"
            f"{msgs.current_address_list}\n\n"
            + format_address_list(msgs, resolved.addresses)
        )

    async def _lang(self, ctx: CommandContext) -> None:
        msgs = ctx.msgs
        if not self._locales.allow_user_lang:
            await ctx.transport.reply(msgs.lang_feature_disabled)
            return

        saved = self._locales.set_lang(ctx.caller, ctx.interaction.argument())
        if saved:
            await ctx.transport.reply(f"{msgs.lang_set_success} {LANG_DISPLAY_NAMES[saved]}")
            return

        current = self._locales.saved_lang(ctx.caller)
        await ctx.transport.reply(
            f"{msgs.current_lang} {current or 'auto'}\n"
            f"{msgs.select_lang}\n"
            "/lang zh - 中文\n"
            "/lang en - English"
        )

    # ------------------------------------------------------------------
    # Mail browsing
    # ------------------------------------------------------------------

    async def _mails(self, ctx: CommandContext) -> None:
        try:
            await self._query_mail(ctx, ctx.interaction.argument(), 0, edit=False)
        except MailBotError as e:
            await ctx.transport.reply(f"{ctx.msgs.get_mail_failed} {describe_error(e, ctx.msgs)}")

    async def _on_callback(self, ctx: CommandContext) -> None:
        # Every click is answered, failed ones included.
        answer = None
        cursor = decode_cursor(ctx.interaction.callback_data)
        if cursor is not None:
            address, offset = cursor
            try:
                await self._query_mail(ctx, address, offset, edit=True)
            except MailBotError as e:
                logger.warning(f"{ctx.msgs.get_mail_failed} {e}")
                answer = f"{ctx.msgs.get_mail_failed} {describe_error(e, ctx.msgs)}"
            except Exception as e:
                logger.exception(f"Unhandled error browsing {address} at offset {offset}")
                answer = f"{ctx.msgs.get_mail_failed} {e}"
        await ctx.transport.answer_callback(answer)

    async def _query_mail(self, ctx: CommandContext, address: str, offset: int, edit: bool) -> None:
        msgs = ctx.msgs
        resolved: ResolvedAddresses = self._registry.resolve_all(ctx.caller)
        if not address and resolved.addresses:
            address = resolved.addresses[0]
        if address not in resolved.address_ids:
            await ctx.transport.reply(f"{msgs.not_bound_address} {address}")
            return
        if not self._archive.address_exists(resolved.address_ids[address]):
            await ctx.transport.reply(msgs.invalid_address)
            return

        page = self._paginator.render(address, offset, msgs, ctx.settings, edit_existing=edit)
        if page.edit_existing:
            await ctx.transport.edit_message(page.text, page.buttons)
        else:
            await ctx.transport.reply(page.text, page.buttons)
