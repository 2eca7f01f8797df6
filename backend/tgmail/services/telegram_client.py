"""
Outgoing Telegram calls.

TelegramBotClient is a thin async client for the handful of Bot API
methods the bot needs (sendMessage, editMessageText, answerCallbackQuery,
setMyCommands). InteractionTransport binds it to one inbound interaction so
handlers can reply / edit / answer without knowing chat or message ids.

Timeouts belong to the client (TELEGRAM_TIMEOUT_SECONDS); there is no retry.
"""

import logging
from typing import List, Optional, Protocol, Union

import httpx

from tgmail.errors import CollaboratorFailure
from tgmail.models.telegram import Button, Interaction

logger = logging.getLogger(__name__)

ChatTarget = Union[int, str]


class MessageSender(Protocol):
    """Sends a new message to an arbitrary chat (used for push delivery)."""

    async def send_message(
        self,
        chat_id: ChatTarget,
        text: str,
        buttons: Optional[List[Button]] = None,
        thread_id: Optional[int] = None,
    ) -> None: ...


class BotTransport(Protocol):
    """Per-interaction transport handed to command handlers."""

    async def reply(self, text: str, buttons: Optional[List[Button]] = None, parse_mode: Optional[str] = None) -> None: ...

    async def edit_message(self, text: str, buttons: Optional[List[Button]] = None) -> None: ...

    async def answer_callback(self, text: Optional[str] = None) -> None: ...


def build_inline_keyboard(buttons: Optional[List[Button]]) -> Optional[dict]:
    """One-row inline keyboard of the visible buttons, or None when there are none."""
    row = []
    for button in buttons or []:
        if button.hidden:
            continue
        if button.web_app_url:
            row.append({"text": button.text, "web_app": {"url": button.web_app_url}})
        elif button.callback_data is not None:
            row.append({"text": button.text, "callback_data": button.callback_data})
    if not row:
        return None
    return {"inline_keyboard": [row]}


class TelegramBotClient:
    def __init__(self, token: str, api_base: str = "https://api.telegram.org", timeout: float = 10.0):
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    async def call(self, method: str, payload: dict) -> dict:
        """
        Invoke one Bot API method.

        Raises:
            CollaboratorFailure: on transport errors or an ``ok: false`` response.
        """
        url = f"{self._api_base}/bot{self._token}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram {method} failed: {e}")
            raise CollaboratorFailure(f"telegram {method} failed: {e}") from e

        if not body.get("ok"):
            description = body.get("description") or f"HTTP {response.status_code}"
            logger.error(f"Telegram {method} rejected: {description}")
            raise CollaboratorFailure(f"telegram {method} rejected: {description}")
        return body.get("result") or {}

    async def send_message(
        self,
        chat_id: ChatTarget,
        text: str,
        buttons: Optional[List[Button]] = None,
        thread_id: Optional[int] = None,
        parse_mode: Optional[str] = None,
    ) -> None:
        payload: dict = {"chat_id": chat_id, "text": text}
        keyboard = build_inline_keyboard(buttons)
        if keyboard:
            payload["reply_markup"] = keyboard
        if thread_id is not None:
            payload["message_thread_id"] = thread_id
        if parse_mode:
            payload["parse_mode"] = parse_mode
        await self.call("sendMessage", payload)

    async def edit_message_text(
        self,
        chat_id: ChatTarget,
        message_id: int,
        text: str,
        buttons: Optional[List[Button]] = None,
    ) -> None:
        payload: dict = {"chat_id": chat_id, "message_id": message_id, "text": text}
        keyboard = build_inline_keyboard(buttons)
        if keyboard:
            payload["reply_markup"] = keyboard
        await self.call("editMessageText", payload)

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        payload: dict = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        await self.call("answerCallbackQuery", payload)

    async def set_my_commands(self, commands: List[dict]) -> None:
        await self.call("setMyCommands", {"commands": commands})


class InteractionTransport:
    """BotTransport for one inbound interaction."""

    def __init__(self, client: TelegramBotClient, interaction: Interaction):
        self._client = client
        self._interaction = interaction

    async def reply(self, text: str, buttons: Optional[List[Button]] = None, parse_mode: Optional[str] = None) -> None:
        await self._client.send_message(
            self._interaction.chat_id,
            text,
            buttons=buttons,
            thread_id=self._interaction.thread_id,
            parse_mode=parse_mode,
        )

    async def edit_message(self, text: str, buttons: Optional[List[Button]] = None) -> None:
        await self._client.edit_message_text(
            self._interaction.chat_id,
            self._interaction.message_id,
            text,
            buttons=buttons,
        )

    async def answer_callback(self, text: Optional[str] = None) -> None:
        if self._interaction.callback_query_id is None:
            return
        await self._client.answer_callback_query(self._interaction.callback_query_id, text)
