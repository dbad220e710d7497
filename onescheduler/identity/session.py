"""Cookie-based session tokens."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class SessionAuth:
    """Signed session tokens with server-side session data."""

    def __init__(
        self,
        secret_key: str,
        max_age: int = 86400,
        on_expire: Callable[[str, dict[str, Any]], None] | None = None,
    ) -> None:
        self._secret = secret_key.encode()
        self._max_age = max_age
        self._on_expire = on_expire
        self._sessions: dict[str, dict[str, Any]] = {}

    def create_session(self, user_id: str, email: str) -> str:
        """Create a new session and return the signed token."""
        token = secrets.token_urlsafe(32)
        signature = self._sign(token)
        signed_token = f"{token}.{signature}"

        self._sessions[signed_token] = {
            "user_id": user_id,
            "email": email,
            "created_at": time.time(),
        }
        logger.info("session_created", user_id=user_id)
        return signed_token

    def validate_session(self, token: str) -> dict[str, Any] | None:
        """Validate a session token and return its data."""
        if not token or "." not in token:
            return None

        raw_token, signature = token.rsplit(".", 1)
        expected_sig = self._sign(raw_token)

        if not hmac.compare_digest(signature, expected_sig):
            return None

        session = self._sessions.get(token)
        if not session:
            return None

        if time.time() - session["created_at"] > self._max_age:
            self.destroy_session(token)
            logger.info("session_expired", user_id=session["user_id"])
            if self._on_expire is not None:
                self._on_expire(token, session)
            return None

        return session

    def destroy_session(self, token: str) -> dict[str, Any] | None:
        """Remove a session, returning its data if it existed."""
        session = self._sessions.pop(token, None)
        if session is not None:
            logger.info("session_destroyed", user_id=session["user_id"])
        return session

    def _sign(self, data: str) -> str:
        """Create HMAC signature for a token."""
        return hmac.new(self._secret, data.encode(), hashlib.sha256).hexdigest()[:32]
