"""Identity verification: session credential -> identity.

The verifier is the only place that turns a bearer token into a user record.
It always consults the durable store, so a ban takes effect on the very next
verification even if the token itself is still valid.
"""
import logging

from app.store.gateway import PersistenceGateway
from app.store.schemas import UserRecord

from .tokens import AuthenticationError, TokenService

logger = logging.getLogger(__name__)


class BannedError(AuthenticationError):
    """The credential is valid but the identity is banned."""

    def __init__(self, user: UserRecord) -> None:
        super().__init__(f"user {user.id} is banned")
        self.user = user


class IdentityVerifier:
    """Validates session tokens against the token service and the store."""

    def __init__(self, tokens: TokenService, gateway: PersistenceGateway) -> None:
        self.tokens = tokens
        self.gateway = gateway

    async def verify(self, token: object) -> UserRecord:
        """Resolve a token to a user that is allowed to connect.

        Raises:
            AuthenticationError: invalid token or unknown user.
            BannedError: the user exists but is banned.
            StoreError: the store could not be reached.
        """
        user_id = self.tokens.decode(token)
        user = await self.gateway.get_user(user_id)
        if user is None:
            raise AuthenticationError(f"user {user_id} not found")
        if user.is_banned:
            logger.info("[Auth] rejected banned user %s", user.id)
            raise BannedError(user)
        return user
