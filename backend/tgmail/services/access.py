"""
Access checks applied to every interaction before any handler runs.

Order:
  1. Channel scope — outside private chats only TOPIC_ALLOWED_COMMANDS are
     accepted; everything else is dropped without a reply so group chats
     are not flooded with refusals.
  2. Caller identity — must be determinable.
  3. Allow-list — when enabled, the caller must be on it.
"""

import logging

from tgmail.errors import AccessDenied, ChannelScopeRejected, MissingIdentity
from tgmail.models.telegram import Interaction, TelegramSettings

logger = logging.getLogger(__name__)

TOPIC_ALLOWED_COMMANDS = frozenset({"/bindtopic"})


def check_channel_scope(interaction: Interaction) -> None:
    """
    Raises:
        ChannelScopeRejected: for anything outside a private chat except the
                              topic-allowed commands (callback clicks included).
    """
    if interaction.is_private:
        return
    if interaction.is_callback or interaction.command not in TOPIC_ALLOWED_COMMANDS:
        raise ChannelScopeRejected(f"{interaction.command or 'update'} not accepted in {interaction.chat_type}")


def admit(caller_id: str, settings: TelegramSettings) -> bool:
    """Return False when the allow-list is enabled and ``caller_id`` is not on it."""
    if not settings.enable_allow_list:
        return True
    return str(caller_id) in {str(u) for u in settings.allow_list}


def gate(interaction: Interaction, settings: TelegramSettings) -> str:
    """
    Run every access check for ``interaction``.

    Returns the caller id.

    Raises:
        ChannelScopeRejected, MissingIdentity, AccessDenied
    """
    check_channel_scope(interaction)

    caller_id = interaction.caller_id
    if not caller_id:
        raise MissingIdentity("unable to determine the caller")

    if not admit(caller_id, settings):
        logger.info(f"Rejected {interaction.command or 'callback'} from {caller_id}: not on allow-list")
        raise AccessDenied(caller_id)
    return caller_id
