"""Anonymous identity tokens and identity resolution.

An anonymous identity is a random id plus an HMAC-SHA256 signature over it,
encoded as ``<id>.<hex signature>`` and kept in a client cookie. A bare id
without a matching signature is never trusted.
"""

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from crossfire.debate_engine.models import anonymous_owner, registered_owner
from crossfire.debate_engine.types import IdentityKind

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

TOKEN_SEPARATOR = "."


@dataclass(frozen=True)
class Identity:
    """Who is making a request."""

    kind: IdentityKind
    id: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.kind is IdentityKind.ANONYMOUS

    @property
    def owner_identity(self) -> Optional[str]:
        """Value stored as a session's owner."""
        if self.kind is IdentityKind.REGISTERED:
            return registered_owner(self.id)
        if self.kind is IdentityKind.ANONYMOUS:
            return anonymous_owner(self.id)
        return None


NO_IDENTITY = Identity(kind=IdentityKind.NONE)


@dataclass(frozen=True)
class MintedIdentity:
    id: str
    token: str


class IdentityResolver:
    """Issues and verifies signed anonymous identity tokens."""

    def __init__(self, secret: str):
        self._key = secret.encode("utf-8")

    def sign(self, identifier: str) -> str:
        return hmac.new(self._key, identifier.encode("utf-8"), hashlib.sha256).hexdigest()

    def mint_anonymous_identity(self) -> MintedIdentity:
        identifier = str(uuid.uuid4())
        security_logger.info(f"Minted anonymous identity {identifier}")
        return MintedIdentity(id=identifier, token=f"{identifier}{TOKEN_SEPARATOR}{self.sign(identifier)}")

    def verify(self, token: Optional[str]) -> Optional[str]:
        """Return the id inside ``token`` if its signature matches, else None."""
        if not token:
            return None

        identifier, separator, signature = token.rpartition(TOKEN_SEPARATOR)
        if not separator or not identifier or not signature:
            return None

        expected = self.sign(identifier)
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            security_logger.warning("Rejected anonymous identity token with invalid signature")
            return None
        return identifier

    def resolve_identity(
        self,
        authenticated_subject: Optional[str] = None,
        cookie_token: Optional[str] = None,
    ) -> Identity:
        """Resolve the caller's identity.

        An authenticated subject always wins. Otherwise a verified cookie token
        yields an anonymous identity; anything else is no identity, and the
        caller mints a fresh one when it needs it.
        """
        if authenticated_subject:
            return Identity(kind=IdentityKind.REGISTERED, id=authenticated_subject)

        anonymous_id = self.verify(cookie_token)
        if anonymous_id:
            return Identity(kind=IdentityKind.ANONYMOUS, id=anonymous_id)

        return NO_IDENTITY
