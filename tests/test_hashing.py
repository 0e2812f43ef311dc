#!/usr/bin/env python3
"""
Unit tests for SHA-256 hashing and the password check.

Tests that compute_hash produces consistent hex digests and that
password_matches is exact, case-sensitive and never matches without a
configured digest.
"""
from lanqueue.hashing import compute_hash, password_digest, password_matches


def test_compute_hash_produces_sha256_hex() -> None:
    """Test compute_hash returns 64-character hex SHA-256 digest."""
    result = compute_hash(b"test content")
    assert len(result) == 64
    assert all(c in "0123456789abcdef" for c in result)


def test_compute_hash_known_value() -> None:
    """Test the digest of an empty input matches the SHA-256 constant."""
    assert compute_hash(b"") == (
        "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    )


def test_compute_hash_different_for_different_input() -> None:
    """Test different inputs produce different hashes."""
    assert compute_hash(b"content A") != compute_hash(b"content B")


def test_password_digest_hashes_utf8() -> None:
    """Test the stored digest is the hash of the UTF-8 password."""
    assert password_digest("pässword") == compute_hash("pässword".encode("utf-8"))


def test_password_matches_exact() -> None:
    """Test the configured password is accepted."""
    assert password_matches("secret", password_digest("secret"))


def test_password_matches_is_case_sensitive() -> None:
    """Test a password differing only in case is rejected."""
    assert not password_matches("Secret", password_digest("secret"))


def test_password_matches_does_not_trim() -> None:
    """Test surrounding whitespace is significant."""
    assert not password_matches("secret ", password_digest("secret"))


def test_password_matches_without_digest() -> None:
    """Test nothing matches when no digest is configured."""
    assert not password_matches("", None)
