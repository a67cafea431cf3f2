"""
JWT Service: access token generation and verification.

Access token:  15 minutes (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": <actor_id>,
    "role": "police",
    "name": <display name, optional>,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Operator-console tokens are signed with a separate secret
(OPERATOR_JWT_SECRET).  When configured, it is tried before the main secret.
Tokens minted by an external identity provider may omit ``type``; they are
accepted as long as they do not claim to be a different token type.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_operator_secret():
    return current_app.config.get("OPERATOR_JWT_SECRET")


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(actor_id: str, role: str | None, name: str | None = None,
                          secret: str | None = None) -> str:
    """Generate a short-lived access token for a workflow actor."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(actor_id),
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, secret or _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    operator_secret = _get_operator_secret()
    if operator_secret:
        try:
            payload = jwt.decode(token, operator_secret, algorithms=[ALGORITHM])
            payload["is_operator"] = True
            return _check_type(payload, expected_type)
        except jwt.ExpiredSignatureError:
            raise
        except jwt.InvalidTokenError:
            pass  # not an operator token

    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    return _check_type(payload, expected_type)


def decode_access_token(token: str) -> dict:
    """Decode an access token: convenience wrapper."""
    return decode_token(token, expected_type="access")


def _check_type(payload: dict, expected_type: str) -> dict:
    token_type = payload.get("type")
    if token_type is not None and token_type != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {token_type}")
    return payload
