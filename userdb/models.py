"""Domain models for the account store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class User:
    """Represents a user account stored under its email address."""

    email: str
    password_hash: str
    data: Any
    created_date: datetime
    modified_date: datetime


__all__ = ["User"]
