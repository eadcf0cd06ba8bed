"""JWT issue / verify utilities for identity-provider access tokens"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Any
import jwt

from app.config.settings import settings


def _build_payload(subject: str, expires_minutes: int, claims: Dict[str, Any] | None = None) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    payload = dict(claims or {})
    payload.update({
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    })
    return payload


def create_access_token(subject: str, claims: Dict[str, Any] | None = None, expires_minutes: int | None = None) -> str:
    expires = expires_minutes or settings.security.access_token_expire_minutes
    return jwt.encode(
        _build_payload(subject, expires, claims),
        settings.security.jwt_secret,
        algorithm=settings.security.jwt_algorithm,
    )


def decode_token(token: str) -> Dict[str, Any] | None:
    try:
        return jwt.decode(
            token,
            settings.security.jwt_secret,
            algorithms=[settings.security.jwt_algorithm],
        )
    except jwt.PyJWTError:
        return None
