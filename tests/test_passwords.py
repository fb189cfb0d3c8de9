"""
tests/test_passwords.py -- Unit tests for auth/passwords.py.

Covers:
  - hash/verify round trip and mismatch
  - salting (same input, different digests)
  - cost factor taken from BCRYPT_ROUNDS
  - malformed digest counts as a mismatch instead of raising
"""

from __future__ import annotations

from auth.passwords import hash_password, verify_dummy, verify_password


class TestHashPassword:
    def test_round_trip(self) -> None:
        hashed = hash_password("correct horse battery")
        assert verify_password("correct horse battery", hashed) is True

    def test_wrong_password_rejected(self) -> None:
        hashed = hash_password("correct horse battery")
        assert verify_password("Correct horse battery", hashed) is False

    def test_digest_is_salted(self) -> None:
        """Two hashes of the same password differ; both still verify."""
        first = hash_password("same-input")
        second = hash_password("same-input")
        assert first != second
        assert verify_password("same-input", first)
        assert verify_password("same-input", second)

    def test_cost_factor_from_settings(self) -> None:
        """conftest sets BCRYPT_ROUNDS=10; the digest records the cost."""
        assert hash_password("whatever1").startswith("$2b$10$")

    def test_plaintext_not_in_digest(self) -> None:
        assert "hunter22" not in hash_password("hunter22")


class TestVerifyPassword:
    def test_malformed_digest_is_mismatch(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-digest") is False

    def test_verify_dummy_runs_without_error(self) -> None:
        assert verify_dummy("some password") is None
