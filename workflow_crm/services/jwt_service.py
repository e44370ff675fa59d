"""
JWT Service: access token generation and verification.

Token issuance (login, refresh, password flows) belongs to the identity
provider in front of this service.  What lives here is the verification
half used by the auth middleware, plus ``generate_access_token`` for
tooling and tests.

Algorithm: HS256

Token payload:
{
    "sub": "<user_id>",
    "role": "salesman",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_MINUTES = 480
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires() -> timedelta:
    return timedelta(minutes=current_app.config.get("JWT_ACCESS_TOKEN_MINUTES", DEFAULT_ACCESS_MINUTES))


def generate_access_token(user_id: int, role: str) -> str:
    """Generate a signed access token for ``user_id``."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + _get_access_expires(),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, ...).
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload
