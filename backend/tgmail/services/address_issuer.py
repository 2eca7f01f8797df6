"""
New mailbox issuance for the /new command.

/new <name>@<domain>
  name    [a-z0-9]+, random when empty
  domain  optional, must be one of DOMAINS (random configured domain when empty)

PREFIX is prepended to the name. The issued credential is an HS256 JWT
with the ``address`` and ``address_id`` claims, the same shape the
CredentialRegistry verifies.
"""

import logging
import re
import secrets
import string
from typing import List, Optional, Protocol

from jose import jwt
from pydantic import BaseModel

from tgmail.errors import CollaboratorFailure
from tgmail.services.credentials import JWT_ALGORITHM

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[a-z0-9]+$")
_RANDOM_NAME_LENGTH = 10
_RANDOM_ALPHABET = string.ascii_lowercase + string.digits


class NewAddress(BaseModel):
    address: str
    credential: str
    password: Optional[str] = None


class AddressIssuer(Protocol):
    def issue(self, requested: str) -> NewAddress:
        """
        Create a mailbox for ``requested`` ("", "name", "name@domain" or "@domain").

        Raises:
            ValueError: for an invalid name or unknown domain.
        """
        ...


def split_requested_address(requested: str, domains: List[str], prefix: str = "") -> str:
    """
    Validate a /new argument and return the full address to create.

    Raises:
        ValueError: invalid name, unknown domain, or no domains configured.
    """
    name, _, domain = (requested or "").strip().lower().partition("@")
    name = name.strip()
    domain = domain.strip()

    if name and not _NAME_RE.match(name):
        raise ValueError("name may only contain a-z and 0-9")
    if not name:
        name = "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(_RANDOM_NAME_LENGTH))

    if not domains:
        raise ValueError("no mail domains configured")
    if not domain:
        domain = secrets.choice(domains)
    elif domain not in domains:
        raise ValueError(f"domain {domain} is not available")

    return f"{prefix}{name}@{domain}"


class SupabaseAddressIssuer:
    """Inserts the mailbox into the ``address`` table and signs its credential."""

    def __init__(self, client, jwt_secret: str, domains: List[str], prefix: str = ""):
        self._client = client
        self._jwt_secret = jwt_secret
        self._domains = domains
        self._prefix = prefix

    def issue(self, requested: str) -> NewAddress:
        address = split_requested_address(requested, self._domains, self._prefix)
        try:
            result = self._client.table("address").insert({"name": address}).execute()
        except Exception as e:
            logger.error(f"Failed to create mailbox {address}: {e}")
            raise CollaboratorFailure(f"failed to create {address}: {e}") from e
        if not result.data:
            raise CollaboratorFailure(f"failed to create {address}")

        address_id = result.data[0]["id"]
        credential = jwt.encode(
            {"address": address, "address_id": address_id},
            self._jwt_secret,
            algorithm=JWT_ALGORITHM,
        )
        logger.info(f"Created mailbox {address} (id={address_id})")
        return NewAddress(address=address, credential=credential, password=result.data[0].get("password"))
