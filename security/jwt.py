from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from core.config import settings


def create_access_token(sub: str, minutes: int = 60, extra: Dict[str, Any] | None = None) -> str:
    """Mint a token the way the identity provider does (local tooling and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    if settings.AUTH_JWT_AUDIENCE:
        payload["aud"] = settings.AUTH_JWT_AUDIENCE
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALG)


def decode_access(token: str) -> Dict[str, Any]:
    options = {"require": ["sub", "exp"]}
    if settings.AUTH_JWT_AUDIENCE:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALG],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    return jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[settings.AUTH_JWT_ALG],
        options={**options, "verify_aud": False},
    )
