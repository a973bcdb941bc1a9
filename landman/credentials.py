"""
Credential Resolver.
Looks up a user's stored portal login and decrypts the password for the
in-process caller only. Passwords are Fernet tokens at rest and SecretStr
in memory; neither form is ever logged.
"""

import uuid
from typing import Callable

import structlog
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from landman.errors import CredentialNotFoundError
from landman.models.tables import PortalCredential
from landman.schemas.contracts import PortalCredentials

logger = structlog.get_logger(__name__)


def encrypt_password(fernet: Fernet, password: str) -> str:
    """Encrypt a password for storage. Used by credential management and tests."""
    return fernet.encrypt(password.encode("utf-8")).decode("ascii")


class CredentialResolver:
    """resolve(user_id, portal_id) -> PortalCredentials, or CredentialNotFoundError."""

    def __init__(self, session_factory: Callable[[], AsyncSession], fernet: Fernet):
        self.session_factory = session_factory
        self.fernet = fernet

    @classmethod
    def from_key(cls, session_factory, key: str) -> "CredentialResolver":
        return cls(session_factory, Fernet(key.encode("ascii") if isinstance(key, str) else key))

    async def resolve(self, user_id: uuid.UUID, portal_id: uuid.UUID) -> PortalCredentials:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PortalCredential).where(
                    PortalCredential.user_id == user_id,
                    PortalCredential.portal_id == portal_id,
                    PortalCredential.is_active.is_(True),
                )
            )
            credential = result.scalar_one_or_none()

        if credential is None:
            raise CredentialNotFoundError(
                f"No active credential for portal {portal_id}"
            )

        try:
            password = self.fernet.decrypt(credential.encrypted_password.encode("ascii")).decode("utf-8")
        except (InvalidToken, ValueError):
            logger.warning(
                "credential_decrypt_failed",
                user_id=str(user_id),
                portal_id=str(portal_id),
            )
            raise CredentialNotFoundError(
                f"Stored credential for portal {portal_id} cannot be decrypted"
            )

        return PortalCredentials(username=credential.username, password=password)
