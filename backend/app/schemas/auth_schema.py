"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats.
  - services/auth_service.py: DUPLICATE_EMAIL (needs a DB lookup) and
    credential correctness.

IMPORTANT: All schemas inherit from marshmallow.Schema directly, so they can be
           exercised in unit tests without a Flask app context.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validates, validate


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      name     : 1–100 chars after trimming
      email    : valid email format
      password : min 8 chars, at least one letter and one digit
    """

    name = fields.Str(
        required=True,
        validate=validate.Length(
            min=1,
            max=100,
            error="Name must be between 1 and 100 characters.",
        ),
    )

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    password = fields.Str(required=True, load_only=True)

    @validates("name")
    def validate_name_not_blank(self, value: str, **kwargs) -> None:
        if not value.strip():
            raise ValidationError("Name must not be blank.")

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py
    (INVALID_CREDENTIALS, 401). No password policy here: a wrong password of
    any length gets the same 401.
    """

    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)


class RefreshTokenSchema(Schema):
    """
    Optional JSON body for POST /auth/refresh and logout.

    The refresh token normally arrives in the HttpOnly cookie; the body field
    is a fallback for non-browser clients. Absence is not a schema error —
    refresh reports TOKEN_MISSING, logout succeeds.
    """

    class Meta:
        unknown = EXCLUDE

    refresh_token = fields.Str(
        data_key="refreshToken",
        load_default=None,
        allow_none=True,
    )
