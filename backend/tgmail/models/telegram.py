"""
Pydantic models for bot interactions, bindings and settings.

Models:
  TelegramSettings   — singleton settings record stored in the KV store
  AddressRecord      — a resolved mailbox (address + internal id)
  ResolvedAddresses  — result of resolving a credential list
  LegacyBinding      — bare owner-id binding written by older versions
  FullBinding        — structured binding (owner, optional chat/thread)
  Button             — one inline keyboard button
  RenderedPage       — text + buttons ready to hand to the transport
  Interaction        — normalised inbound Telegram update
"""

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class TelegramSettings(BaseModel):
    """
    Process-wide settings record, provisioned by an operator.

    Stored as camelCase JSON; unknown keys are ignored. A missing record is
    equivalent to ``TelegramSettings()`` (every feature off).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enable_allow_list: bool = Field(False, alias="enableAllowList")
    allow_list: List[Union[int, str]] = Field(default_factory=list, alias="allowList")
    enable_global_mail_push: bool = Field(False, alias="enableGlobalMailPush")
    global_mail_push_list: List[Union[int, str]] = Field(default_factory=list, alias="globalMailPushList")
    mini_app_url: Optional[str] = Field(None, alias="miniAppUrl")

    @field_validator("allow_list", "global_mail_push_list")
    @classmethod
    def _ids_as_strings(cls, v: List[Union[int, str]]) -> List[str]:
        # Operators may provision Telegram ids as JSON numbers
        return [str(i).strip() for i in v if str(i).strip()]


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class AddressRecord(BaseModel):
    address: str
    address_id: int


class ResolvedAddresses(BaseModel):
    """
    Outcome of resolving every credential a chat identity holds.

    ``addresses`` is deduplicated by first occurrence; ``invalid_credentials``
    keeps the original order and may contain duplicates.
    """
    addresses: List[str] = []
    address_ids: Dict[str, int] = {}
    invalid_credentials: List[str] = []


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------

class LegacyBinding(BaseModel):
    """Binding stored as a bare owner id string."""
    kind: Literal["legacy"] = "legacy"
    owner: str

    @property
    def chat_id(self) -> Optional[int]:
        return None

    @property
    def thread_id(self) -> Optional[int]:
        return None

    @property
    def target_chat(self) -> Union[int, str]:
        return self.owner


class FullBinding(BaseModel):
    """Structured binding; a topic binding carries both chat_id and thread_id."""
    kind: Literal["full"] = "full"
    owner: str
    chat_id: Optional[int] = None
    thread_id: Optional[int] = None
    bind_time: Optional[str] = None

    @property
    def target_chat(self) -> Union[int, str]:
        return self.chat_id if self.chat_id is not None else self.owner


BindingRecord = Union[LegacyBinding, FullBinding]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

class Button(BaseModel):
    """
    Inline keyboard button.

    Exactly one of ``callback_data`` / ``web_app_url`` is set. Hidden buttons
    are dropped when the keyboard is built.
    """
    text: str
    callback_data: Optional[str] = None
    web_app_url: Optional[str] = None
    hidden: bool = False


class RenderedPage(BaseModel):
    text: str
    buttons: List[Button] = []
    edit_existing: bool = False


# ---------------------------------------------------------------------------
# Inbound updates
# ---------------------------------------------------------------------------

class Interaction(BaseModel):
    """
    One inbound Telegram update reduced to the fields the bot uses.

    For messages ``sender_id`` is ``message.from.id``. For callback clicks
    the message fields describe the message carrying the keyboard, and
    ``sender_id`` is left unset.
    """
    chat_id: Optional[int] = None
    chat_type: Optional[str] = None
    sender_id: Optional[int] = None
    message_id: Optional[int] = None
    thread_id: Optional[int] = None
    text: str = ""
    callback_query_id: Optional[str] = None
    callback_data: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.chat_type == "private"

    @property
    def is_callback(self) -> bool:
        return self.callback_query_id is not None

    @property
    def caller_id(self) -> Optional[str]:
        """Identity of the caller: message sender, else the callback's chat."""
        if self.sender_id is not None:
            return str(self.sender_id)
        if self.is_callback and self.chat_id is not None:
            return str(self.chat_id)
        return None

    @property
    def command(self) -> str:
        """Lower-cased leading command token without any @botname suffix."""
        token = self.text.split(" ")[0].lower() if self.text else ""
        return token.split("@", 1)[0]

    def argument(self) -> str:
        """Everything after the command token, stripped."""
        if not self.text:
            return ""
        parts = self.text.strip().split(maxsplit=1)
        return parts[1].strip() if len(parts) > 1 else ""

    @classmethod
    def from_update(cls, update: dict) -> Optional["Interaction"]:
        """
        Build an Interaction from a raw Bot API update.

        Returns None for update types the bot does not handle.
        """
        message = update.get("message")
        if message:
            chat = message.get("chat") or {}
            sender = message.get("from") or {}
            return cls(
                chat_id=chat.get("id"),
                chat_type=chat.get("type"),
                sender_id=sender.get("id"),
                message_id=message.get("message_id"),
                thread_id=message.get("message_thread_id"),
                text=message.get("text") or "",
            )

        query = update.get("callback_query")
        if query:
            carrier = query.get("message") or {}
            chat = carrier.get("chat") or {}
            return cls(
                chat_id=chat.get("id"),
                chat_type=chat.get("type"),
                message_id=carrier.get("message_id"),
                thread_id=carrier.get("message_thread_id"),
                callback_query_id=str(query.get("id")),
                callback_data=query.get("data"),
            )
        return None
