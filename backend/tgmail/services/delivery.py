"""
Push delivery of newly arrived mail.

Targets for one mail:
  1. every chat on the global push list (when enabled), rendered in the
     process default language, in configured order;
  2. the address's binding, rendered in the owner's language and sent to
     the bound chat (or topic thread when the binding carries one).

Every target is attempted independently; a failing target is recorded in
the DeliveryReport and logged, never raised. Mail with neither a binding
nor global push is simply not pushed.
"""

import logging
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel

from tgmail.errors import CollaboratorFailure
from tgmail.i18n import MessagePack
from tgmail.models.telegram import BindingRecord, Button, TelegramSettings
from tgmail.services.bindings import decode_binding
from tgmail.services.kv_store import KeyValueStore, binding_key, load_settings
from tgmail.services.locale import LocaleResolver
from tgmail.services.mail_archive import MailArchive
from tgmail.services.mail_parser import MailParser, parse_raw_mail
from tgmail.services.paginator import format_mail, viewer_url
from tgmail.services.telegram_client import MessageSender

logger = logging.getLogger(__name__)


class DeliveryFailure(BaseModel):
    target: str
    thread_id: Optional[int] = None
    error: str


class DeliveryReport(BaseModel):
    delivered: List[str] = []
    failures: List[DeliveryFailure] = []

    @property
    def partial_failure(self) -> bool:
        return bool(self.failures)


class DeliveryRouter:
    def __init__(
        self,
        store: KeyValueStore,
        archive: MailArchive,
        locales: LocaleResolver,
        sender: Optional[MessageSender],
        parser: MailParser = parse_raw_mail,
    ):
        self._store = store
        self._archive = archive
        self._locales = locales
        self._sender = sender
        self._parser = parser

    async def deliver(
        self,
        address: str,
        raw: str,
        message_id: Optional[str] = None,
        settings: Optional[TelegramSettings] = None,
    ) -> DeliveryReport:
        report = DeliveryReport()
        if self._sender is None:
            logger.debug(f"No bot configured; skipping push for {address}")
            return report

        if settings is None:
            try:
                settings = load_settings(self._store)
            except CollaboratorFailure as e:
                logger.error(f"Could not load settings for push to {address}: {e}")
                report.failures.append(DeliveryFailure(target="settings", error=str(e)))
                settings = TelegramSettings()

        try:
            binding = decode_binding(self._store.get(binding_key(address)))
        except CollaboratorFailure as e:
            logger.error(f"Could not load binding for {address}: {e}")
            report.failures.append(DeliveryFailure(target=f"binding:{address}", error=str(e)))
            binding = None

        global_targets = settings.global_mail_push_list if settings.enable_global_mail_push else []
        if binding is None and not global_targets:
            return report

        buttons = self._viewer_buttons(address, message_id, settings)
        received_at = format_datetime(datetime.now(timezone.utc), usegmt=True)
        rendered: Dict[str, str] = {}

        def render(msgs: MessagePack) -> str:
            if msgs.lang not in rendered:
                rendered[msgs.lang] = format_mail(msgs, raw, address, received_at, self._parser)
            return rendered[msgs.lang]

        if global_targets:
            default_msgs = self._locales.default_pack()
            for target in global_targets:
                await self._dispatch(report, target, render(default_msgs), buttons(default_msgs), None)

        if binding is not None:
            await self._deliver_to_binding(report, binding, render, buttons)

        if report.partial_failure:
            logger.warning(
                f"Partial delivery failure for {address}: "
                f"{len(report.delivered)} delivered, {len(report.failures)} failed"
            )
        else:
            logger.info(f"Delivered mail for {address} to {len(report.delivered)} target(s)")
        return report

    async def _deliver_to_binding(self, report, binding: BindingRecord, render, buttons) -> None:
        try:
            msgs = self._locales.resolve(binding.owner)
        except CollaboratorFailure as e:
            logger.warning(f"Falling back to default language for {binding.owner}: {e}")
            msgs = self._locales.default_pack()
        await self._dispatch(report, binding.target_chat, render(msgs), buttons(msgs), binding.thread_id)

    def _viewer_buttons(self, address: str, message_id: Optional[str], settings: TelegramSettings):
        mail_id = None
        if settings.mini_app_url and message_id:
            try:
                mail_id = self._archive.find_mail_id(address, message_id)
            except CollaboratorFailure as e:
                logger.warning(f"Omitting viewer button for {address}: {e}")
        url = viewer_url(settings.mini_app_url, mail_id)

        def buttons(msgs: MessagePack) -> List[Button]:
            if not url:
                return []
            return [Button(text=msgs.view_mail_btn, web_app_url=url)]

        return buttons

    async def _dispatch(
        self,
        report: DeliveryReport,
        target: Union[int, str],
        text: str,
        buttons: List[Button],
        thread_id: Optional[int],
    ) -> None:
        label = f"{target}#{thread_id}" if thread_id is not None else str(target)
        try:
            await self._sender.send_message(target, text, buttons=buttons, thread_id=thread_id)
        except Exception as e:
            logger.error(f"Push to {label} failed: {e}")
            report.failures.append(DeliveryFailure(target=str(target), thread_id=thread_id, error=str(e)))
            return
        report.delivered.append(label)
