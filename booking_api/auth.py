import uuid
from datetime import timedelta
from typing import Optional

from jose import jwt, JWTError

from .config import Settings
from .utils import utcnow

ACCESS = "access"
REFRESH = "refresh"


def _create_token(settings: Settings, user_id, phone_number: str, token_type: str, lifetime: timedelta) -> str:
    now = utcnow()
    to_encode = {
        "sub": str(user_id),
        "phone_number": phone_number,
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(settings: Settings, user_id, phone_number: str) -> str:
    """Short-lived token used on every authenticated request."""
    lifetime = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _create_token(settings, user_id, phone_number, ACCESS, lifetime)


def create_refresh_token(settings: Settings, user_id, phone_number: str) -> str:
    """Long-lived token exchanged for a new pair at /refresh-token."""
    lifetime = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _create_token(settings, user_id, phone_number, REFRESH, lifetime)


def issue_token_pair(settings: Settings, user_id, phone_number: str) -> tuple[str, str]:
    return (
        create_access_token(settings, user_id, phone_number),
        create_refresh_token(settings, user_id, phone_number),
    )


def decode_token(settings: Settings, token: str, expected_type: str = ACCESS) -> Optional[dict]:
    """Verify signature, expiry and token type; returns the claims or None."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != expected_type or not payload.get("sub"):
        return None
    return payload
