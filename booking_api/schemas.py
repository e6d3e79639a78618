from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ============================================================
# AUTH / OTP
# ============================================================

class SendOTPRequest(BaseModel):
    phone_number: str


class VerifyOTPRequest(BaseModel):
    phone_number: str
    otp_code: str


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None


class CurrentUser(BaseModel):
    id: int
    phone_number: Optional[str] = None


class UserOut(BaseModel):
    """Public projection of a user row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_number: str
    name: Optional[str] = None
    email: Optional[str] = None
    is_verified: bool


class UserProfile(UserOut):
    created_at: Optional[datetime] = None


# ============================================================
# PRICING
# ============================================================

class PricingItem(BaseModel):
    product_cost: float = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("product_cost", "price", "cost"),
    )
    market_price: Optional[float] = Field(default=None, ge=0)
    quantity: int = Field(default=1, ge=1)


class PricingRequest(BaseModel):
    items: List[PricingItem] = Field(min_length=1)
    discount: float = Field(default=0, ge=0)


class PricingBreakdown(BaseModel):
    subtotal: float
    savings: float
    discount: float
    final_price: float
    tax: float
    grand_total: float
