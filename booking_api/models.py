from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Enum as SAEnum,
)

from .database import Base
from .utils import utcnow

# "+" and 15 digits, plus a default country code added to bare numbers
PHONE_NUMBER_LENGTH = 20


# ---------------------------------------
# USERS (identity keyed by phone number)
# ---------------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String(PHONE_NUMBER_LENGTH), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)

    is_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_login_at = Column(DateTime, nullable=True)


# ---------------------------------------
# OTP STATE
# ---------------------------------------
class OTPStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    EXPIRED = "EXPIRED"


# ---------------------------------------
# OTP VERIFICATIONS
# ---------------------------------------
class OTPVerification(Base):
    __tablename__ = "otp_verifications"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String(PHONE_NUMBER_LENGTH), index=True, nullable=False)
    otp_code = Column(String(6), nullable=False)

    status = Column(SAEnum(OTPStatus), default=OTPStatus.PENDING, nullable=False)

    expires_at = Column(DateTime, index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)
    verified_at = Column(DateTime, nullable=True)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def state(self, now: Optional[datetime] = None) -> OTPStatus:
        """Stored status, with pending records past their expiry reported as EXPIRED."""
        if self.status == OTPStatus.PENDING and self.is_expired(now):
            return OTPStatus.EXPIRED
        return self.status

    def mark_verified(self, now: Optional[datetime] = None) -> None:
        self.status = OTPStatus.VERIFIED
        self.verified_at = now or utcnow()
