"""Session tokens (JWT, HS256).

A token carries the user id in ``sub`` plus the username for display; the
core always re-reads the user from the store after decoding, so admin/banned
flags are never trusted from the token itself.
"""
import time
from typing import Any, Dict

import jwt

from app.store.schemas import UserRecord


class AuthenticationError(Exception):
    """Credential is missing, malformed, expired, forged, or unknown."""


class TokenService:
    """Issues and validates bearer tokens."""

    def __init__(
        self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire_seconds = expire_minutes * 60

    def issue(self, user: UserRecord) -> str:
        now = int(time.time())
        body: Dict[str, Any] = {
            "sub": str(user.id),
            "username": user.username,
            "iat": now,
            "exp": now + self._expire_seconds,
        }
        return jwt.encode(body, self._secret_key, algorithm=self._algorithm)

    def decode(self, token: object) -> int:
        """Validate a token and return the user id it was issued for.

        Raises:
            AuthenticationError: on any validation failure.
        """
        if not isinstance(token, str) or not token:
            raise AuthenticationError("missing token")
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError(str(exc)) from exc
        try:
            return int(payload["sub"])
        except (TypeError, ValueError) as exc:
            raise AuthenticationError("malformed subject") from exc
