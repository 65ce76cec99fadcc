"""Embedded user-account store backed by a sorted key-value engine."""

from __future__ import annotations

from typing import Any

from .config import StoreConfig, load_config, resolve_config_path, resolve_database_path
from .credentials import PasswordHasher
from .engine import KeyValueEngine, SQLiteEngine
from .errors import AlreadyExistsError, DecodeError, NotFoundError, PasswordMismatchError, UserStoreError
from .models import User
from .serializer import WriteSerializer
from .store import AccountStore, UserStream


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "AccountStore",
    "AlreadyExistsError",
    "DecodeError",
    "KeyValueEngine",
    "NotFoundError",
    "PasswordHasher",
    "PasswordMismatchError",
    "SQLiteEngine",
    "StoreConfig",
    "User",
    "UserStoreError",
    "UserStream",
    "WriteSerializer",
    "create_app",
    "load_config",
    "resolve_config_path",
    "resolve_database_path",
]
