"""
Error taxonomy for the bot core.

Command handlers catch these at the command boundary and reply with a
localized prefix followed by the exception message.
"""

from typing import List


class MailBotError(Exception):
    """Base class for every error raised by the bot core."""


class AccessDenied(MailBotError):
    """Caller is not on the allow-list."""


class ChannelScopeRejected(MailBotError):
    """Command issued in a chat type where it is not accepted."""


class MissingIdentity(MailBotError):
    """The caller of an interaction could not be determined."""


class InvalidCredential(MailBotError):
    """Credential is malformed, badly signed, or refers to a missing address."""


class NotBound(MailBotError):
    """Caller has no binding or credential proving ownership of an address."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"address {address} is not bound")


class InvalidBinding(MailBotError, ValueError):
    """Binding request is structurally invalid (e.g. thread without chat)."""


class CollaboratorFailure(MailBotError):
    """A store, archive, parser or transport call failed."""


class PartialDeletion(MailBotError):
    """
    Mailbox was deleted but cleaning up its binding or credentials failed.

    Attributes:
        address:      the deleted mailbox address
        failed_steps: names of the clean-up steps that raised
    """

    def __init__(self, address: str, failed_steps: List[str]):
        self.address = address
        self.failed_steps = failed_steps
        super().__init__(
            f"mailbox {address} deleted but clean-up failed: {', '.join(failed_steps)}"
        )
