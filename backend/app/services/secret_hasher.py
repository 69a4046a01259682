"""
services/secret_hasher.py — One-way hashing for secrets kept at rest.

Used for user passwords and for refresh tokens. The store never holds a usable
bearer token or password in cleartext.

bcrypt only reads the first 72 bytes of its input, and a JWT's first 72 bytes
are its constant header plus the start of the payload. Every input is therefore
reduced to a base64 SHA-256 digest (44 bytes) first, so the whole token takes
part in the comparison.
"""

from __future__ import annotations

import base64
import hashlib

import bcrypt

DEFAULT_ROUNDS = 10


def _prehash(raw: str) -> bytes:
    return base64.b64encode(hashlib.sha256(raw.encode("utf-8")).digest())


def hash_secret(raw: str, rounds: int | None = None) -> str:
    """Salted bcrypt digest of `raw`. `rounds` defaults to DEFAULT_ROUNDS."""
    salt = bcrypt.gensalt(rounds=rounds or DEFAULT_ROUNDS)
    return bcrypt.hashpw(_prehash(raw), salt).decode("utf-8")


def compare_secret(raw: str, digest: str) -> bool:
    """
    True when `raw` hashes to `digest`. bcrypt.checkpw compares in constant time.
    A malformed digest compares False instead of raising.
    """
    try:
        return bcrypt.checkpw(_prehash(raw), digest.encode("utf-8"))
    except ValueError:
        return False
