"""In-process identity provider: credentials, sessions and auth-state events."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import structlog

from onescheduler.exceptions import AuthError
from onescheduler.identity.passwords import (
    DEFAULT_ROUNDS,
    hash_password,
    validate_email,
    validate_new_password,
    verify_password,
)
from onescheduler.identity.session import SessionAuth
from onescheduler.models.domain import User
from onescheduler.types import AuthEvent

logger = structlog.get_logger(__name__)

AuthListener = Callable[[AuthEvent, str, User | None], None]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``on_auth_state_change``; call ``unsubscribe`` to stop."""

    listener: AuthListener
    _owner: IdentityProvider | None = field(default=None, repr=False)

    def unsubscribe(self) -> None:
        if self._owner is not None:
            self._owner._listeners.discard(self)
            self._owner = None


class IdentityProvider:
    """Email/password accounts with signed cookie sessions.

    Listeners registered via ``on_auth_state_change`` receive
    ``(event, session_token, user)`` for every sign-in and sign-out,
    including sign-outs caused by session expiry.
    """

    def __init__(
        self,
        secret_key: str,
        max_age: int = 86400,
        identity_url: str | None = None,
        redirect_url: str | None = None,
        oauth_providers: list[str] | None = None,
        password_rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        self._sessions = SessionAuth(secret_key, max_age=max_age, on_expire=self._session_expired)
        self._identity_url = identity_url
        self._redirect_url = redirect_url
        self._oauth_providers = oauth_providers or ["google"]
        self._password_rounds = password_rounds
        self._users: dict[str, dict[str, Any]] = {}  # email -> {"id", "email", "password_hash"}
        self._listeners: set[Subscription] = set()

    async def sign_up(self, email: str, password: str) -> tuple[User, str]:
        """Create an account and sign it in. Returns (user, session token)."""
        email = validate_email(email)
        validate_new_password(password)
        if email in self._users:
            msg = "User already registered"
            raise AuthError(msg)

        record = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password_hash": await asyncio.to_thread(
                hash_password, password, self._password_rounds
            ),
        }
        self._users[email] = record
        logger.info("user_registered", user_id=record["id"])
        return self._start_session(record)

    async def sign_in(self, email: str, password: str) -> tuple[User, str]:
        """Check credentials. Returns (user, session token)."""
        record = self._users.get(email.strip().lower())
        if not record or not await asyncio.to_thread(
            verify_password, password, record["password_hash"]
        ):
            msg = "Invalid login credentials"
            raise AuthError(msg)
        return self._start_session(record)

    async def sign_out(self, token: str) -> None:
        session = self._sessions.destroy_session(token)
        if session is None:
            return
        self._emit(AuthEvent.SIGNED_OUT, token, self._user_from(session))

    async def get_current_user(self, token: str | None) -> User | None:
        if not token:
            return None
        session = self._sessions.validate_session(token)
        if session is None:
            return None
        return self._user_from(session)

    def oauth_authorize_url(self, provider: str, redirect_to: str | None = None) -> str:
        """Build the authorize URL that starts an OAuth sign-in."""
        if provider not in self._oauth_providers:
            msg = f"Unsupported sign-in provider: {provider}"
            raise AuthError(msg)
        if not self._identity_url:
            msg = "OAuth sign-in is not configured"
            raise AuthError(msg)
        query = urlencode(
            {
                "provider": provider,
                "redirect_to": redirect_to or self._redirect_url or "/auth/callback",
                "access_type": "offline",
                "prompt": "consent",
            }
        )
        return f"{self._identity_url.rstrip('/')}/authorize?{query}"

    async def handle_auth_callback(self, token: str | None) -> User:
        """Confirm that the OAuth round trip produced a session."""
        user = await self.get_current_user(token)
        if user is None:
            msg = "No session found after authentication"
            raise AuthError(msg)
        return user

    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        subscription = Subscription(listener=listener, _owner=self)
        self._listeners.add(subscription)
        return subscription

    def _start_session(self, record: dict[str, Any]) -> tuple[User, str]:
        user = User(id=record["id"], email=record["email"])
        token = self._sessions.create_session(user.id, user.email)
        self._emit(AuthEvent.SIGNED_IN, token, user)
        return user, token

    def _session_expired(self, token: str, session: dict[str, Any]) -> None:
        self._emit(AuthEvent.SIGNED_OUT, token, self._user_from(session))

    def _emit(self, event: AuthEvent, token: str, user: User | None) -> None:
        for subscription in list(self._listeners):
            try:
                subscription.listener(event, token, user)
            except Exception as exc:
                logger.error("auth_listener_failed", auth_event=event.value, error=str(exc))

    @staticmethod
    def _user_from(session: dict[str, Any]) -> User:
        return User(id=session["user_id"], email=session["email"])
