"""Password hashing for stored accounts."""

from __future__ import annotations

from passlib.context import CryptContext

DEFAULT_SCHEME = "pbkdf2_sha256"
DEFAULT_ROUNDS = 600_000


class PasswordHasher:
    """Salted one-way password hashing backed by a passlib context.

    The scheme and round count are fixed for the lifetime of the hasher so
    every hash produced by a store shares the same parameters. Hashes from
    other schemes known to passlib are not accepted.
    """

    def __init__(self, scheme: str = DEFAULT_SCHEME, *, rounds: int = DEFAULT_ROUNDS) -> None:
        if rounds < 1:
            raise ValueError("Hash rounds must be a positive integer")
        try:
            self._context = CryptContext(
                schemes=[scheme],
                default=scheme,
                **{f"{scheme}__default_rounds": rounds},
            )
        except KeyError as exc:
            raise ValueError(f"Unknown password hash scheme '{scheme}'") from exc
        self._scheme = scheme
        self._rounds = rounds

    @property
    def scheme(self) -> str:
        return self._scheme

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        """Return ``True`` if ``password`` matches ``hashed``."""

        if not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            return False


__all__ = ["DEFAULT_ROUNDS", "DEFAULT_SCHEME", "PasswordHasher"]
