"""Exceptions raised by the account store."""

from __future__ import annotations

from typing import Optional


class UserStoreError(Exception):
    """Base class for account store failures."""

    def __init__(self, message: str, *, email: Optional[str] = None) -> None:
        super().__init__(message)
        self.email = email


class NotFoundError(UserStoreError, LookupError):
    """Raised when an operation requires a user that does not exist."""

    def __init__(self, email: str) -> None:
        super().__init__(f"User {email!r} not found", email=email)


class AlreadyExistsError(UserStoreError, ValueError):
    """Raised when an operation requires an email that is not yet taken."""

    def __init__(self, email: str) -> None:
        super().__init__(f"A user with email {email!r} already exists", email=email)


class PasswordMismatchError(UserStoreError):
    """Raised when a plaintext password does not match the stored hash."""

    def __init__(self, email: str) -> None:
        super().__init__("Password mismatch", email=email)


class DecodeError(UserStoreError):
    """Raised when a stored record cannot be parsed.

    This signals corruption of the underlying engine contents and is never
    treated as the record being absent.
    """


__all__ = [
    "AlreadyExistsError",
    "DecodeError",
    "NotFoundError",
    "PasswordMismatchError",
    "UserStoreError",
]
