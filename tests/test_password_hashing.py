"""Tests for the passlib-backed password hasher."""

from __future__ import annotations

import unittest

from userdb.credentials import DEFAULT_SCHEME, PasswordHasher


class PasswordHashingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.hasher = PasswordHasher(rounds=1_000)

    def test_hash_and_verify(self) -> None:
        hashed = self.hasher.hash("supersecurepassword")
        self.assertNotEqual(hashed, "supersecurepassword")
        self.assertTrue(hashed.startswith("$pbkdf2-sha256$1000$"))
        self.assertTrue(self.hasher.verify("supersecurepassword", hashed))
        self.assertFalse(self.hasher.verify("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        self.assertNotEqual(self.hasher.hash("same-password"), self.hasher.hash("same-password"))

    def test_empty_password_is_hashed(self) -> None:
        hashed = self.hasher.hash("")
        self.assertNotEqual(hashed, "")
        self.assertTrue(self.hasher.verify("", hashed))
        self.assertFalse(self.hasher.verify("not-empty", hashed))

    def test_malformed_hash_does_not_verify(self) -> None:
        self.assertFalse(self.hasher.verify("password", "not-a-hash"))
        self.assertFalse(self.hasher.verify("password", ""))

    def test_parameters_are_exposed(self) -> None:
        self.assertEqual(self.hasher.scheme, DEFAULT_SCHEME)
        self.assertEqual(self.hasher.rounds, 1_000)

    def test_invalid_parameters_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            PasswordHasher(rounds=0)
        with self.assertRaises(ValueError):
            PasswordHasher("no_such_scheme")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
