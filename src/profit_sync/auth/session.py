"""Typed authentication event stream consumed by the engines."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user handed over by the authentication layer."""

    uid: str
    email: Optional[str] = None
    email_verified: bool = False


class AuthEventType(str, Enum):
    """Authentication state changes."""

    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class AuthEvent:
    """One authentication state change."""

    type: AuthEventType
    user: Optional[AuthUser] = None


AuthHandler = Callable[[AuthEvent], Awaitable[None]]


class AuthSession:
    """Holds the current user and fans auth events out to subscribers.

    Handlers are awaited one after another in registration order, so a
    subscriber registered first finishes before the next one starts.
    """

    def __init__(self) -> None:
        """Initialize a signed-out session."""
        self._user: Optional[AuthUser] = None
        self._handlers: List[AuthHandler] = []

    @property
    def current_user(self) -> Optional[AuthUser]:
        """The signed-in user, if any."""
        return self._user

    @property
    def current_user_id(self) -> Optional[str]:
        """Uid of the signed-in user, if any."""
        return self._user.uid if self._user else None

    def is_email_verified(self) -> bool:
        """Whether the signed-in user has a verified email address."""
        return bool(self._user and self._user.email_verified)

    def on_auth_state_changed(self, handler: AuthHandler) -> Callable[[], None]:
        """Register a handler.

        Returns:
            Function removing the handler again
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def sign_in(self, user: AuthUser) -> None:
        """Record a sign-in and notify subscribers."""
        self._user = user
        logger.info("User signed in: %s", user.uid)
        await self._dispatch(AuthEvent(AuthEventType.SIGNED_IN, user))

    def restore(self, user: AuthUser) -> None:
        """Adopt a persisted session without notifying subscribers.

        Used by callers that drive the engines themselves, such as the CLI.
        """
        self._user = user
        logger.debug("Restored session for %s", user.uid)

    async def sign_out(self) -> None:
        """Record a sign-out and notify subscribers."""
        previous = self._user
        self._user = None
        logger.info("User signed out")
        await self._dispatch(AuthEvent(AuthEventType.SIGNED_OUT, previous))

    async def _dispatch(self, event: AuthEvent) -> None:
        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception as e:
                logger.exception("Auth handler failed for %s: %s", event.type.value, e)
