from fastapi import Cookie, Depends, Header

from .auth import ACCESS, decode_token
from .config import Settings, get_settings
from .errors import AuthenticationError
from .schemas import CurrentUser


async def get_current_user(
    authorization: str | None = Header(default=None),
    access_token: str | None = Cookie(default=None),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1]
    else:
        token = access_token

    if not token:
        raise AuthenticationError("Authorization token required")

    payload = decode_token(settings, token, ACCESS)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    return CurrentUser(id=int(payload["sub"]), phone_number=payload.get("phone_number"))
