"""Authentication session abstraction."""

from .session import AuthEvent, AuthEventType, AuthHandler, AuthSession, AuthUser

__all__ = ["AuthEvent", "AuthEventType", "AuthHandler", "AuthSession", "AuthUser"]
