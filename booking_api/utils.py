import re
import secrets
from datetime import datetime, timezone

import phonenumbers
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .errors import InvalidInputError

PHONE_PATTERN = re.compile(r"\+?[1-9][0-9]{1,14}")
OTP_PATTERN = re.compile(r"[0-9]{6}")
_SEPARATORS = re.compile(r"[\s-]")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------
# PHONE NUMBERS
# ---------------------------------------------------------
def clean_phone(raw: str) -> str:
    return _SEPARATORS.sub("", raw or "")


def normalize_phone(raw: str, country_code: str = "+91") -> str:
    """
    Canonical international form (+<country><number>).

    Numbers already carrying a "+" are kept, a bare country prefix gets a "+",
    a trunk "0" is swapped for the country code and anything else is assumed
    to be a national number of the default country.
    """
    cleaned = clean_phone(raw)
    bare_code = country_code.lstrip("+")

    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith(bare_code):
        return "+" + cleaned
    if cleaned.startswith("0"):
        return country_code + cleaned[1:]
    return country_code + cleaned


def is_test_phone_number(phone: str, settings) -> bool:
    return normalize_phone(phone, settings.DEFAULT_COUNTRY_CODE) == settings.TEST_PHONE_NUMBER


def split_country_code(phone: str, default_country_code: str = "+91") -> tuple[str, str]:
    """Split a normalized number into ("+91", "9876543210") for the messaging API."""
    normalized = normalize_phone(phone, default_country_code)
    try:
        num = phonenumbers.parse(normalized, None)
        return f"+{num.country_code}", str(num.national_number)
    except phonenumbers.NumberParseException:
        if normalized.startswith(default_country_code):
            return default_country_code, normalized[len(default_country_code):]
        return default_country_code, normalized.lstrip("+")


def validate_phone_number(raw: str | None) -> str:
    if not raw:
        raise InvalidInputError("Phone number is required")
    if not PHONE_PATTERN.fullmatch(clean_phone(raw)):
        raise InvalidInputError("Invalid phone number format")
    return raw


def validate_otp_code(code: str | None) -> str:
    if not code or not OTP_PATTERN.fullmatch(code):
        raise InvalidInputError("OTP must be 6 digits")
    return code


def generate_otp() -> str:
    """6-digit numeric code."""
    return f"{secrets.randbelow(900000) + 100000}"


# ---------------------------------------------------------
# RESPONSE ENVELOPE
# ---------------------------------------------------------
def success_response(data=None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "message": message, "data": jsonable_encoder(data)},
    )


def error_response(error: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error or "An error occurred"},
    )
