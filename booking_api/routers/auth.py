import logging
from typing import Optional

from fastapi import APIRouter, Body, Cookie, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import REFRESH, decode_token, issue_token_pair
from ..config import Settings, get_settings
from ..database import get_db
from ..deps import get_current_user
from ..errors import AuthenticationError, InternalError, InvalidInputError, NotFoundError
from ..limiter import AUTH_RATE_LIMIT, limiter
from ..models import User
from ..otp_provider import send_otp, verify_otp
from ..schemas import (
    CurrentUser,
    RefreshTokenRequest,
    SendOTPRequest,
    UserOut,
    UserProfile,
    VerifyOTPRequest,
)
from ..utils import normalize_phone, success_response, utcnow
from ..whatsapp import WhatsAppDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


# ---------------------------------------------------------
# COOKIES
# ---------------------------------------------------------
def set_auth_cookies(response, settings: Settings, access_token: str, refresh_token: str) -> None:
    common = {"httponly": True, "secure": settings.is_production, "samesite": "lax", "path": "/"}
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        **common,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        **common,
    )


def clear_auth_cookies(response, settings: Settings) -> None:
    for key in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            key,
            path="/",
            secure=settings.is_production,
            httponly=True,
            samesite="lax",
        )


# ---------------------------------------------------------
# USERS
# ---------------------------------------------------------
def get_or_create_user(db: Session, phone: str) -> User:
    """Refresh login timestamps for a known phone, or create the user."""
    user = db.query(User).filter(User.phone_number == phone).first()
    now = utcnow()

    if user:
        try:
            user.last_login_at = now
            user.is_verified = True
            user.updated_at = now
            db.commit()
            db.refresh(user)
        except SQLAlchemyError as e:
            # login still succeeds with the row as it was
            db.rollback()
            logger.error("Update user error for %s: %s", phone, e)
        return user

    user = User(
        phone_number=phone,
        is_verified=True,
        created_at=now,
        updated_at=now,
        last_login_at=now,
    )
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Create user error for %s: %s", phone, e)
        raise InternalError("Failed to create user") from e
    return user


def _otp_payload(result: dict) -> dict:
    data = {"expires_in": result["expires_in"]}
    for key in ("warning", "message_id", "otp_code"):
        if result.get(key):
            data[key] = result[key]
    return data


# ---------------------------------------------------------
# OTP
# ---------------------------------------------------------
@router.post("/send-otp")
@limiter.limit(AUTH_RATE_LIMIT)
def send_otp_handler(
    request: Request,
    payload: SendOTPRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: WhatsAppDispatcher = Depends(get_dispatcher),
):
    result = send_otp(db, settings, dispatcher, payload.phone_number)
    return success_response(_otp_payload(result), "OTP sent successfully")


@router.post("/resend-otp")
@limiter.limit(AUTH_RATE_LIMIT)
def resend_otp_handler(
    request: Request,
    payload: SendOTPRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: WhatsAppDispatcher = Depends(get_dispatcher),
):
    result = send_otp(db, settings, dispatcher, payload.phone_number)
    return success_response(_otp_payload(result), "OTP resent successfully")


@router.post("/verify-otp")
@limiter.limit(AUTH_RATE_LIMIT)
def verify_otp_handler(
    request: Request,
    payload: VerifyOTPRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    verify_otp(db, settings, payload.phone_number, payload.otp_code)

    phone = normalize_phone(payload.phone_number, settings.DEFAULT_COUNTRY_CODE)
    user = get_or_create_user(db, phone)

    access_token, refresh_token = issue_token_pair(settings, user.id, user.phone_number)

    response = success_response(
        {"user": UserOut.model_validate(user).model_dump()},
        "OTP verified successfully",
    )
    set_auth_cookies(response, settings, access_token, refresh_token)
    return response


# ---------------------------------------------------------
# SESSION
# ---------------------------------------------------------
@router.post("/refresh-token")
@limiter.limit(AUTH_RATE_LIMIT)
def refresh_token_handler(
    request: Request,
    payload: Optional[RefreshTokenRequest] = Body(default=None),
    refresh_token: Optional[str] = Cookie(default=None),
    settings: Settings = Depends(get_settings),
):
    # cookie first, body kept for older clients
    token = refresh_token or (payload.refresh_token if payload else None)
    if not token:
        raise InvalidInputError("Refresh token is required")

    claims = decode_token(settings, token, REFRESH)
    if not claims:
        raise AuthenticationError("Invalid or expired refresh token")

    access_token, new_refresh_token = issue_token_pair(settings, claims["sub"], claims.get("phone_number"))

    response = success_response(
        {"message": "Token refreshed successfully"},
        "Token refreshed successfully",
    )
    set_auth_cookies(response, settings, access_token, new_refresh_token)
    return response


@router.get("/me")
def get_me(
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.id == current.id).first()
    if not user:
        raise NotFoundError("User not found")
    return success_response(UserProfile.model_validate(user).model_dump())


@router.post("/logout")
def logout(
    current: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    response = success_response(None, "Logged out successfully")
    clear_auth_cookies(response, settings)
    logger.info("User %s logged out", current.id)
    return response
