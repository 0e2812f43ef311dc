#!/usr/bin/env python3
"""
SHA-256 hashing for the join password check.

The host never keeps the configured password in plaintext. It stores the
SHA-256 digest and compares it against the digest of the password a
joining client offers. Comparing fixed-length digests with
hmac.compare_digest keeps the check constant-time regardless of how long
or how similar the offered password is.

Matching is exact and case-sensitive: no normalization is applied to
either side.
"""
import hashlib
import hmac

__all__ = ["compute_hash", "password_digest", "password_matches"]


def compute_hash(data: bytes) -> str:
    """
    Compute SHA-256 hash of arbitrary bytes.

    Args:
        data: Raw bytes to hash.

    Returns:
        Hexadecimal string representation of the SHA-256 digest.
    """
    return hashlib.sha256(data).hexdigest()


def password_digest(password: str) -> str:
    """Return the stored form of a configured password."""
    return compute_hash(password.encode("utf-8"))


def password_matches(offered: str, expected_digest: str | None) -> bool:
    """
    Check an offered password against the stored digest.

    Args:
        offered: Password sent by the joining client.
        expected_digest: Digest from password_digest(), or None when no
            password is configured (never matches).

    Returns:
        True only if offered hashes to expected_digest.
    """
    if expected_digest is None:
        return False
    return hmac.compare_digest(password_digest(offered), expected_digest)
