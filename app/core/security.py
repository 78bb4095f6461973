from __future__ import annotations

import hmac
from typing import Optional

import jwt
from fastapi import HTTPException, status

from app.config import Settings


def _load_api_keys(settings: Settings) -> set[str]:
    keys = set()
    if settings.API_KEYS:
        for value in settings.API_KEYS.split(","):
            value = value.strip()
            if value:
                keys.add(value)
    return keys


def _get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _key_matches(api_key: str, keys: set[str]) -> bool:
    return any(hmac.compare_digest(api_key, key) for key in keys)


def _decode_jwt(settings: Settings, token: str) -> dict:
    if not settings.JWT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="JWT auth is not configured",
        )

    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options=options,
        )
    except jwt.PyJWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid JWT",
        ) from exc


def auth_configured(settings: Settings) -> bool:
    return bool(_load_api_keys(settings) or settings.JWT_SECRET or settings.JWT_REQUIRED)


def authenticate_request(
    settings: Settings,
    api_key: Optional[str],
    authorization: Optional[str],
) -> Optional[dict]:
    """Principal for a mutating request, or None when auth is not configured.

    The principal's ``subject`` (JWT ``sub`` claim) is used as the default
    actor recorded on stock history entries.
    """
    keys = _load_api_keys(settings)

    if api_key and keys and _key_matches(api_key, keys) and not settings.JWT_REQUIRED:
        return {"auth_type": "api_key", "subject": None}

    token = _get_bearer_token(authorization)
    if token and settings.JWT_SECRET:
        payload = _decode_jwt(settings, token)
        return {"auth_type": "jwt", "subject": payload.get("sub"), "payload": payload}

    if auth_configured(settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return None


__all__ = ["auth_configured", "authenticate_request"]
