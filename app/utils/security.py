"""
JWT helpers for the clinic billing API.

Tokens are issued by the clinic's authentication service; this repository
only verifies them (and creates them for tests and local tooling) with
python-jose.  All configuration is sourced from the application settings
singleton so that secrets are never hard-coded in source files.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import get_settings

logger = logging.getLogger(__name__)


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT access token.

    The token payload is a copy of *data* augmented with ``exp`` and ``iat``
    claims.  The ``sub`` claim should be set by the caller.

    Args:
        data: Arbitrary claims to embed in the token payload.

    Returns:
        A compact JWT string signed with the configured algorithm.

    Example::

        token = create_access_token({"sub": "42", "rol": "RECEPCION"})
    """
    settings = get_settings()
    payload = data.copy()
    now = datetime.now(timezone.utc)
    payload["exp"] = now + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    payload["iat"] = now

    return jwt.encode(
        payload,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT access token.

    Args:
        token: A compact JWT string.

    Returns:
        The decoded payload dictionary on success.

    Raises:
        ValueError: If the token is invalid, expired, or cannot be decoded.
                    The message distinguishes expired tokens so the API can
                    tell the client to re-authenticate.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return payload
    except ExpiredSignatureError as exc:
        logger.debug("JWT expired: %s", exc)
        raise ValueError("Token expirado") from exc
    except JWTError as exc:
        logger.debug("JWT verification failed: %s", exc)
        raise ValueError("Token inválido o expirado") from exc
