import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings
from .errors import InternalError, InvalidInputError, OTPRateLimitError, UpstreamError
from .models import OTPStatus, OTPVerification
from .utils import (
    generate_otp,
    is_test_phone_number,
    normalize_phone,
    utcnow,
    validate_otp_code,
    validate_phone_number,
)
from .whatsapp import DispatchError, DispatchErrorKind, WhatsAppDispatcher

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = timedelta(hours=1)

# Dispatch failures that still hand the code back outside production.
DEV_FALLBACK_KINDS = {
    DispatchErrorKind.CHANNEL_NOT_CONFIGURED,
    DispatchErrorKind.CUSTOMER_UNAVAILABLE,
}

DEV_FALLBACK_WARNING = "WhatsApp channel issue. OTP returned for testing purposes only."

DISPATCH_ERRORS = {
    DispatchErrorKind.MISSING_CREDENTIALS: ("Messaging provider is not configured.", 500),
    DispatchErrorKind.INVALID_CREDENTIALS: ("Messaging provider rejected our credentials.", 500),
    DispatchErrorKind.RATE_LIMITED: ("Rate limit exceeded. Please retry after some time.", 429),
    DispatchErrorKind.CHANNEL_NOT_CONFIGURED: ("WhatsApp channel is not connected.", 500),
    DispatchErrorKind.CUSTOMER_UNAVAILABLE: (
        "This phone number cannot receive WhatsApp messages yet. Please opt in and try again.",
        400,
    ),
    DispatchErrorKind.VALIDATION: ("Messaging provider rejected the request.", 400),
    DispatchErrorKind.PROVIDER_ERROR: ("Failed to send OTP. Please try again.", 500),
    DispatchErrorKind.TRANSPORT: ("Failed to send OTP. Please try again.", 500),
}


def count_recent_otps(db: Session, phone: str) -> int:
    since = utcnow() - RATE_LIMIT_WINDOW
    return (
        db.query(OTPVerification)
        .filter(
            OTPVerification.phone_number == phone,
            OTPVerification.created_at >= since,
        )
        .count()
    )


def check_rate_limit(db: Session, settings: Settings, phone: str) -> None:
    if not settings.is_production:
        logger.info("Rate limiting disabled in %s mode", settings.APP_ENV)
        return

    used = count_recent_otps(db, phone)
    if used >= settings.OTP_MAX_PER_HOUR:
        raise OTPRateLimitError(
            f"OTP limit exceeded. Please try again after 1 hour. ({used}/{settings.OTP_MAX_PER_HOUR} used)"
        )


def create_otp(db: Session, settings: Settings, phone: str) -> OTPVerification:
    """Persist a new pending code; earlier pending codes stay valid."""
    code = settings.TEST_OTP_CODE if phone == settings.TEST_PHONE_NUMBER else generate_otp()
    now = utcnow()
    record = OTPVerification(
        phone_number=phone,
        otp_code=code,
        status=OTPStatus.PENDING,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
    )
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error storing OTP for %s: %s", phone, e)
        raise InternalError("Failed to send OTP") from e
    return record


def send_otp(db: Session, settings: Settings, dispatcher: WhatsAppDispatcher, raw_phone: str) -> dict:
    """
    Issue a code for the phone number and deliver it over WhatsApp.

    Returns ``expires_in`` and ``message_id``; ``otp_code`` is only included in
    development mode, and ``warning`` when a channel problem was tolerated.
    """
    validate_phone_number(raw_phone)
    phone = normalize_phone(raw_phone, settings.DEFAULT_COUNTRY_CODE)
    is_test = phone == settings.TEST_PHONE_NUMBER

    if not is_test:
        check_rate_limit(db, settings, phone)

    record = create_otp(db, settings, phone)
    result = {
        "expires_in": settings.OTP_EXPIRE_MINUTES * 60,
        "message_id": None,
    }

    if is_test:
        logger.info("Test number %s: fixed OTP stored, WhatsApp delivery skipped", phone)
    else:
        try:
            result["message_id"] = dispatcher.send_otp(phone, record.otp_code)
        except DispatchError as e:
            if not settings.is_production and e.kind in DEV_FALLBACK_KINDS:
                logger.warning(
                    "WhatsApp channel issue (%s), returning OTP %s for %s in %s mode",
                    e.kind.value,
                    record.otp_code,
                    phone,
                    settings.APP_ENV,
                )
                result["otp_code"] = record.otp_code
                result["warning"] = DEV_FALLBACK_WARNING
                return result

            message, status_code = DISPATCH_ERRORS[e.kind]
            logger.warning("OTP %s stored for %s but delivery failed: %s", record.id, phone, e)
            raise UpstreamError(message, status_code, kind=e.kind) from e

    if settings.is_development:
        result["otp_code"] = record.otp_code
    return result


def verify_otp(db: Session, settings: Settings, raw_phone: str, otp_code: str) -> bool:
    validate_otp_code(otp_code)
    validate_phone_number(raw_phone)
    phone = normalize_phone(raw_phone, settings.DEFAULT_COUNTRY_CODE)

    if is_test_phone_number(phone, settings) and otp_code == settings.TEST_OTP_CODE:
        logger.info("Test OTP bypass for %s", phone)
        return True

    now = utcnow()
    try:
        record = (
            db.query(OTPVerification)
            .filter(
                OTPVerification.phone_number == phone,
                OTPVerification.otp_code == otp_code,
                OTPVerification.status == OTPStatus.PENDING,
                OTPVerification.expires_at > now,
            )
            .order_by(OTPVerification.created_at.desc(), OTPVerification.id.desc())
            .first()
        )
        if not record:
            raise InvalidInputError("Invalid or expired OTP")

        record.mark_verified(now)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error verifying OTP for %s: %s", phone, e)
        raise InternalError("Failed to verify OTP") from e

    return True


def cleanup_expired_otps(db: Session) -> int:
    """Delete every OTP record whose expiry has passed."""
    try:
        deleted = (
            db.query(OTPVerification)
            .filter(OTPVerification.expires_at < utcnow())
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Cleanup OTP error: %s", e)
        raise
    return deleted
