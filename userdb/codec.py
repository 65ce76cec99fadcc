"""Conversion between :class:`User` records and engine values.

Records are stored as UTF-8 JSON objects::

    {"email": "...", "password": "<hash>", "data": <any JSON value>,
     "createdDate": "2026-10-19T08:15:30.123456+00:00",
     "modifiedDate": "2026-10-19T08:15:30.123456+00:00"}

Timestamps are ISO 8601 in UTC with microsecond precision and an explicit
``+00:00`` offset, so raw engine contents stay readable and parse back to
the exact instant that was written.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from .errors import DecodeError
from .models import User

_REQUIRED_FIELDS = ("email", "password", "data", "createdDate", "modifiedDate")


def serialize_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        raise ValueError("Timestamps must be timezone-aware")
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp {value!r} has no UTC offset")
    return parsed.astimezone(timezone.utc)


def encode_user(user: User) -> bytes:
    payload = {
        "email": user.email,
        "password": user.password_hash,
        "data": user.data,
        "createdDate": serialize_timestamp(user.created_date),
        "modifiedDate": serialize_timestamp(user.modified_date),
    }
    try:
        text = json.dumps(payload, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise ValueError("User data must be JSON serialisable") from exc
    # Non-string keys and tuples serialise but come back changed.
    if json.loads(text)["data"] != user.data:
        raise ValueError("User data must survive a JSON round trip unchanged")
    return text.encode("utf-8")


def decode_user(raw: Union[bytes, bytearray, memoryview], key: Optional[str] = None) -> User:
    """Parse a stored value, raising :class:`DecodeError` on any corruption.

    When ``key`` is given, the email inside the record must match it.
    """

    try:
        payload = json.loads(bytes(raw).decode("utf-8"))
    except ValueError as exc:
        raise DecodeError("Stored user record is not valid UTF-8 JSON") from exc

    if not isinstance(payload, dict):
        raise DecodeError("Stored user record is not a JSON object")

    email = payload.get("email")
    missing = [name for name in _REQUIRED_FIELDS if name not in payload]
    if missing:
        raise DecodeError(
            f"Stored user record is missing fields: {', '.join(missing)}",
            email=email if isinstance(email, str) else None,
        )
    if not isinstance(email, str) or not email:
        raise DecodeError("Stored user record has an invalid email", email=key)
    if key is not None and email != key:
        raise DecodeError(f"Stored user record for {key!r} names {email!r}", email=key)
    if not isinstance(payload["password"], str):
        raise DecodeError("Stored user record has an invalid password hash", email=email)

    try:
        created = parse_timestamp(payload["createdDate"])
        modified = parse_timestamp(payload["modifiedDate"])
    except (TypeError, ValueError) as exc:
        raise DecodeError("Stored user record has an unparseable timestamp", email=email) from exc

    return User(
        email=email,
        password_hash=payload["password"],
        data=payload["data"],
        created_date=created,
        modified_date=modified,
    )


__all__ = ["decode_user", "encode_user", "parse_timestamp", "serialize_timestamp"]
