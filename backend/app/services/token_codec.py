"""
services/token_codec.py — Signing and verification of access and refresh JWTs.

Stateless: every method is a pure function of secret, payload and clock.

Token design:
  - Access token:  HS256, payload {user_id, email}, 15 min TTL (config).
  - Refresh token: HS256, payload {user_id, email, session_id}, 7 day TTL.
    session_id is the primary key of the RefreshSession row, so the store is
    hit with a direct keyed lookup.
  - Both carry iat, exp, a `type` claim and a random jti, so two tokens
    issued for the same user in the same second are still distinct.
  - Access and refresh tokens are signed with different secrets.

Verification failures raise TokenExpired or InvalidTokenSignature. Both derive
from TokenVerificationError; the session lifecycle catches only the base class
so nothing about the failure reaches the client.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import jwt


ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_ACCESS_CLAIMS = ("user_id", "email")
_REFRESH_CLAIMS = ("user_id", "email", "session_id")


class TokenVerificationError(Exception):
    """Base class for every token verification failure."""


class TokenExpired(TokenVerificationError):
    pass


class InvalidTokenSignature(TokenVerificationError):
    """Bad signature, malformed token, wrong token type or missing claims."""


class TokenCodec:

    def __init__(
            self,
            access_secret: str,
            refresh_secret: str,
            access_ttl: timedelta,
            refresh_ttl: timedelta,
            algorithm: str = "HS256",
    ) -> None:
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TokenCodec":
        """Builds a codec from a Flask config mapping."""
        return cls(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
        )

    # ── Issuing ────────────────────────────────────────────────────────────

    def issue_access_token(
            self,
            payload: Mapping[str, Any],
            issued_at: datetime | None = None,
    ) -> str:
        return self._sign(
            payload,
            self.access_secret,
            self.access_ttl,
            ACCESS_TOKEN_TYPE,
            issued_at,
        )

    def issue_refresh_token(
            self,
            payload: Mapping[str, Any],
            issued_at: datetime | None = None,
    ) -> str:
        """
        Signs a refresh token. Callers persisting the session should compute
        expires_at from the same `issued_at` plus `refresh_ttl`, which keeps
        the stored expiry no earlier than the token's exp claim.
        """
        return self._sign(
            payload,
            self.refresh_secret,
            self.refresh_ttl,
            REFRESH_TOKEN_TYPE,
            issued_at,
        )

    def _sign(
            self,
            payload: Mapping[str, Any],
            secret: str,
            ttl: timedelta,
            token_type: str,
            issued_at: datetime | None,
    ) -> str:
        now = issued_at or datetime.now(timezone.utc)
        claims = {
            **payload,
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(claims, secret, algorithm=self.algorithm)

    # ── Verification ───────────────────────────────────────────────────────

    def verify(self, token: str, secret: str) -> dict:
        """
        Verifies signature and expiry of `token` against `secret`.

        Raises:
          TokenExpired          — exp claim is in the past.
          InvalidTokenSignature — anything else (signature, structure, claims).
        """
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired("token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenSignature("token invalid") from exc

    def verify_access_token(self, token: str) -> dict:
        return self._verify_typed(
            token, self.access_secret, ACCESS_TOKEN_TYPE, _ACCESS_CLAIMS,
        )

    def verify_refresh_token(self, token: str) -> dict:
        return self._verify_typed(
            token, self.refresh_secret, REFRESH_TOKEN_TYPE, _REFRESH_CLAIMS,
        )

    def _verify_typed(
            self,
            token: str,
            secret: str,
            token_type: str,
            required: tuple[str, ...],
    ) -> dict:
        payload = self.verify(token, secret)
        if payload.get("type") != token_type:
            raise InvalidTokenSignature("wrong token type")
        for claim in required:
            if not payload.get(claim):
                raise InvalidTokenSignature(f"missing claim {claim!r}")
        return payload
