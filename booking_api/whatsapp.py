"""
WhatsApp template messaging (Interakt) used to deliver OTP codes.

Provider failures are classified once, here, into a ``DispatchErrorKind``.
Callers branch on the kind; the provider's message text is kept only for logs.
"""
import json
import logging
from enum import Enum
from functools import lru_cache
from typing import Optional

import requests

from .config import Settings, get_settings
from .utils import split_country_code

logger = logging.getLogger(__name__)

MIN_API_KEY_LENGTH = 10

_CUSTOMER_UNAVAILABLE_MARKERS = ("Customer is not available", "not available for the organization")
_CHANNEL_MARKERS = ("Channel not connected", "WhatsApp", "not configured")
_VALIDATION_MARKERS = ("cardMedia", "suggestions", "plainText")


class DispatchErrorKind(str, Enum):
    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    RATE_LIMITED = "RATE_LIMITED"
    CHANNEL_NOT_CONFIGURED = "CHANNEL_NOT_CONFIGURED"
    CUSTOMER_UNAVAILABLE = "CUSTOMER_UNAVAILABLE"
    VALIDATION = "VALIDATION"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    TRANSPORT = "TRANSPORT"


class DispatchError(Exception):
    def __init__(self, kind: DispatchErrorKind, detail: str = "", status_code: Optional[int] = None):
        super().__init__(f"{kind.value}: {detail}")
        self.kind = kind
        self.detail = detail
        self.status_code = status_code


def classify_provider_error(status_code: int, message: str) -> DispatchErrorKind:
    if status_code == 429:
        return DispatchErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return DispatchErrorKind.INVALID_CREDENTIALS
    if 400 <= status_code < 500:
        if any(marker in message for marker in _CUSTOMER_UNAVAILABLE_MARKERS):
            return DispatchErrorKind.CUSTOMER_UNAVAILABLE
        if any(marker in message for marker in _CHANNEL_MARKERS):
            return DispatchErrorKind.CHANNEL_NOT_CONFIGURED
        if any(marker in message for marker in _VALIDATION_MARKERS):
            return DispatchErrorKind.VALIDATION
    return DispatchErrorKind.PROVIDER_ERROR


def mask_api_key(api_key: str) -> str:
    if not api_key:
        return "NOT_SET"
    return f"{api_key[:10]}...{api_key[-5:]}"


def _json_body(response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class WhatsAppDispatcher:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    @property
    def message_url(self) -> str:
        return f"{self.settings.WHATSAPP_BASE_URL.rstrip('/')}/message/"

    def build_payload(self, phone_number: str, otp_code: str) -> dict:
        country_code, number = split_country_code(phone_number, self.settings.DEFAULT_COUNTRY_CODE)
        return {
            "countryCode": country_code,
            "phoneNumber": number,
            "callbackData": f"OTP for {phone_number}",
            "type": "Template",
            "template": {
                "name": self.settings.WHATSAPP_TEMPLATE_NAME,
                "languageCode": self.settings.WHATSAPP_TEMPLATE_LANGUAGE,
                "bodyValues": [otp_code],
                "buttonValues": {"0": [otp_code]},
            },
        }

    def send_otp(self, phone_number: str, otp_code: str) -> Optional[str]:
        """Send the OTP template and return the provider's message id."""
        api_key = self.settings.WHATSAPP_API_KEY
        if not api_key:
            logger.error("WHATSAPP_API_KEY is not set")
            raise DispatchError(DispatchErrorKind.MISSING_CREDENTIALS, "WHATSAPP_API_KEY is not set")
        if len(api_key) < MIN_API_KEY_LENGTH:
            logger.error("WHATSAPP_API_KEY appears to be invalid (too short)")
            raise DispatchError(DispatchErrorKind.INVALID_CREDENTIALS, "WHATSAPP_API_KEY is too short")

        payload = self.build_payload(phone_number, otp_code)
        headers = {
            "Authorization": f"Basic {api_key}",
            "Content-Type": "application/json",
        }

        logger.info("Sending OTP via WhatsApp to %s (url=%s, key=%s)", phone_number, self.message_url, mask_api_key(api_key))

        try:
            response = self.session.post(
                self.message_url,
                json=payload,
                headers=headers,
                timeout=self.settings.WHATSAPP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            logger.error("WhatsApp request failed for %s: %s", phone_number, exc)
            raise DispatchError(DispatchErrorKind.TRANSPORT, str(exc)) from exc

        body = _json_body(response)

        if response.status_code >= 400:
            message = body.get("message") or body.get("error") or response.text or "Unknown error"
            if not isinstance(message, str):
                message = json.dumps(message)
            kind = classify_provider_error(response.status_code, message)
            logger.error(
                "WhatsApp API error: status=%s kind=%s message=%s body=%s",
                response.status_code,
                kind.value,
                message,
                body,
            )
            raise DispatchError(kind, message, response.status_code)

        message_id = body.get("id") or body.get("messageId")
        logger.info("OTP sent via WhatsApp to %s. Message ID: %s", phone_number, message_id)
        return message_id


@lru_cache
def get_dispatcher() -> WhatsAppDispatcher:
    """One dispatcher, and one pooled requests.Session, per process."""
    return WhatsAppDispatcher(get_settings())
