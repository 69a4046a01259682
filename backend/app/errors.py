"""
errors.py — AppError base class, error code registry, and the typed
authentication errors raised by the session lifecycle.

Every error returned by the API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Callers distinguish auth failures by class (isinstance), never by message.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    BAD_REQUEST                = "BAD_REQUEST"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    NOT_FOUND                  = "NOT_FOUND"

    # ── Method Errors (405) ────────────────────────────────────────────────
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"

    # ── Auth Errors (401) ──────────────────────────────────────────────────
    # Every one of these forces the client back to full re-authentication.
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"
    REFRESH_TOKEN_REUSED       = "REFRESH_TOKEN_REUSED"

    # ── System Errors (5xx) ────────────────────────────────────────────────
    SESSION_STORE_UNAVAILABLE  = "SESSION_STORE_UNAVAILABLE"  # 503, retryable
    INTERNAL_ERROR             = "INTERNAL_ERROR"             # 500


# ── Session lifecycle errors ───────────────────────────────────────────────
#
# One class per failure kind of login / refresh. The four security kinds are
# terminal for the request and never retried automatically. Logout never
# raises any of them.
# ──────────────────────────────────────────────────────────────────────────

class InvalidCredentials(AppError):
    """Unknown email or wrong password. Same error for both."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password provided is incorrect.",
            401,
        )


class TokenMissing(AppError):
    """Refresh was called without a refresh token."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.TOKEN_MISSING,
            "No refresh token was provided. Please log in.",
            401,
        )


class InvalidRefreshToken(AppError):
    """Signature, structure, or expiry failure. Carries no failure detail."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has expired. Please log in.",
            401,
        )


class SecurityTokenReused(AppError):
    """
    A refresh token was presented for a session that is revoked, unknown, or
    does not match the stored hash. Raised only after every live session of
    the user has been revoked.
    """

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.REFRESH_TOKEN_REUSED,
            "Refresh token reuse detected. All sessions have been revoked. Please log in.",
            401,
        )


class SessionPersistError(AppError):
    """The session store could not be read or written. Safe to retry the call."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.SESSION_STORE_UNAVAILABLE,
            "The service is temporarily unavailable. Please try again.",
            503,
        )
