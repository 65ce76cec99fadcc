"""Account lifecycle operations on top of the key-value engine.

Mutations run as units on a :class:`~userdb.serializer.WriteSerializer`
keyed by email, so each read-then-write sequence sees the effect of every
earlier mutation on the same record. Reads go straight to the engine and
observe either the state before or after a concurrent write, never a mix,
because records are always replaced whole.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Optional

import anyio

from .codec import decode_user, encode_user
from .config import DEFAULT_STREAM_PAGE_SIZE, StoreConfig
from .credentials import PasswordHasher
from .engine import KeyValueEngine, SQLiteEngine
from .errors import AlreadyExistsError, DecodeError, NotFoundError, PasswordMismatchError
from .models import User
from .serializer import WriteSerializer

logger = logging.getLogger("userdb.store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _next_modified(previous: datetime) -> datetime:
    now = _utcnow()
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def _require_email(email: str) -> str:
    if not isinstance(email, str) or not email:
        raise ValueError("Email must be a non-empty string")
    return email


class UserStream:
    """Restartable async iterable over every stored user, ordered by email.

    Pages are read independently, so records written while a scan is in
    progress may or may not be seen by it. Each ``async for`` starts a new
    scan from the first key.
    """

    def __init__(self, engine: KeyValueEngine, page_size: int = DEFAULT_STREAM_PAGE_SIZE) -> None:
        if page_size < 1:
            raise ValueError("page_size must be a positive integer")
        self._engine = engine
        self._page_size = page_size

    def __aiter__(self) -> AsyncIterator[User]:
        return self._scan()

    async def _scan(self) -> AsyncIterator[User]:
        start_after: Optional[str] = None
        while True:
            page = await anyio.to_thread.run_sync(self._engine.iterate, start_after, self._page_size)
            for key, raw in page:
                try:
                    user = decode_user(raw, key)
                except DecodeError:
                    logger.error("Stored record for %s could not be decoded", key)
                    raise
                yield user
            if len(page) < self._page_size:
                return
            start_after = page[-1][0]


class AccountStore:
    """Embedded user-account store keyed by email address."""

    def __init__(
        self,
        engine: KeyValueEngine,
        hasher: PasswordHasher,
        *,
        serializer: WriteSerializer | None = None,
        stream_page_size: int = DEFAULT_STREAM_PAGE_SIZE,
    ) -> None:
        self._engine = engine
        self._hasher = hasher
        self._serializer = serializer or WriteSerializer()
        self._stream_page_size = stream_page_size
        self._closed = False

    @classmethod
    def open(cls, config: StoreConfig) -> "AccountStore":
        """Open the SQLite engine described by ``config``."""

        engine = SQLiteEngine(config.database_path)
        hasher = PasswordHasher(config.hash_scheme, rounds=config.hash_rounds)
        logger.info("Opened account store at %s", config.database_path)
        return cls(engine, hasher, stream_page_size=config.stream_page_size)

    @property
    def serializer(self) -> WriteSerializer:
        return self._serializer

    async def __aenter__(self) -> "AccountStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Wait for queued mutations, then close the engine."""

        if self._closed:
            return
        self._closed = True
        await self._serializer.wait_idle()
        await anyio.to_thread.run_sync(self._engine.close)
        logger.info("Closed account store")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def find_user(self, email: str) -> User:
        key = _require_email(email)
        self._ensure_open()
        user = await self._load(key)
        if user is None:
            raise NotFoundError(key)
        return user

    async def check_password(self, email: str, password: str) -> User:
        """Return the full record when ``password`` matches the stored hash."""

        user = await self.find_user(email)
        matches = await anyio.to_thread.run_sync(self._hasher.verify, password, user.password_hash)
        if not matches:
            logger.info("Password mismatch for %s", user.email)
            raise PasswordMismatchError(user.email)
        return user

    def create_user_stream(self, page_size: int | None = None) -> UserStream:
        self._ensure_open()
        return UserStream(self._engine, self._stream_page_size if page_size is None else page_size)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def add_user(self, email: str, password: str, data: Any = None) -> User:
        key = _require_email(email)
        self._ensure_open()

        async def unit() -> User:
            if await self._exists(key):
                raise AlreadyExistsError(key)
            password_hash = await anyio.to_thread.run_sync(self._hasher.hash, password)
            now = _utcnow()
            user = User(
                email=key,
                password_hash=password_hash,
                data=data,
                created_date=now,
                modified_date=now,
            )
            await self._store(key, user)
            logger.info("Created user %s", key)
            return user

        return await self._serializer.run(key, unit)

    async def change_email(self, old_email: str, new_email: str) -> None:
        """Move a record to a new email, atomically for both keys."""

        old_key = _require_email(old_email)
        new_key = _require_email(new_email)
        self._ensure_open()

        async def unit() -> None:
            user = await self._load(old_key)
            if user is None:
                raise NotFoundError(old_key)
            if new_key == old_key or await self._exists(new_key):
                raise AlreadyExistsError(new_key)
            moved = replace(user, email=new_key, modified_date=_next_modified(user.modified_date))
            await anyio.to_thread.run_sync(
                self._engine.batch,
                [("put", new_key, encode_user(moved)), ("del", old_key)],
            )
            logger.info("Changed email of %s to %s", old_key, new_key)

        await self._serializer.run_rename(old_key, new_key, unit)

    async def change_password(self, email: str, password: str) -> None:
        key = _require_email(email)
        self._ensure_open()

        async def unit() -> None:
            user = await self._load(key)
            if user is None:
                raise NotFoundError(key)
            password_hash = await anyio.to_thread.run_sync(self._hasher.hash, password)
            await self._store(
                key,
                replace(user, password_hash=password_hash, modified_date=_next_modified(user.modified_date)),
            )
            logger.info("Changed password for %s", key)

        await self._serializer.run(key, unit)

    async def modify_user(self, email: str, data: Any) -> None:
        """Replace the metadata of an existing user wholesale."""

        key = _require_email(email)
        self._ensure_open()

        async def unit() -> None:
            user = await self._load(key)
            if user is None:
                raise NotFoundError(key)
            await self._store(key, replace(user, data=data, modified_date=_next_modified(user.modified_date)))
            logger.info("Modified data for %s", key)

        await self._serializer.run(key, unit)

    async def delete_user(self, email: str) -> None:
        key = _require_email(email)
        self._ensure_open()

        async def unit() -> None:
            if not await self._exists(key):
                raise NotFoundError(key)
            await anyio.to_thread.run_sync(self._engine.delete, key)
            logger.info("Deleted user %s", key)

        await self._serializer.run(key, unit)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Account store is closed")

    async def _exists(self, key: str) -> bool:
        raw = await anyio.to_thread.run_sync(self._engine.get, key)
        return raw is not None

    async def _load(self, key: str) -> Optional[User]:
        raw = await anyio.to_thread.run_sync(self._engine.get, key)
        if raw is None:
            return None
        try:
            return decode_user(raw, key)
        except DecodeError as exc:
            logger.error("Stored record for %s could not be decoded: %s", key, exc)
            if exc.email is None:
                exc.email = key
            raise

    async def _store(self, key: str, user: User) -> None:
        encoded = encode_user(user)
        await anyio.to_thread.run_sync(self._engine.put, key, encoded)


__all__ = ["AccountStore", "UserStream"]
