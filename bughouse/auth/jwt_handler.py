from datetime import datetime, timedelta, timezone

import jwt

from bughouse.core import config


def create_access_token(user_id: int, role: str, expires_minutes: int | None = None) -> str:
    """Sign a bearer token for ``user_id``.

    The service itself only verifies tokens. Whatever issues identities for the
    center signs them the same way, and the test suite uses this to act as a user.
    """
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": now + timedelta(minutes=expire_minutes),
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
