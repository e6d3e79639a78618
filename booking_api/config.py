from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_JWT_SECRET_LENGTH = 32


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Booking API"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./booking.db"

    # JWT
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 365  # effectively infinite until logout

    # WhatsApp template messaging (Interakt)
    WHATSAPP_BASE_URL: str = "https://api.interakt.ai/v1/public"
    WHATSAPP_API_KEY: str = ""
    WHATSAPP_TEMPLATE_NAME: str = "auth"
    WHATSAPP_TEMPLATE_LANGUAGE: str = "en"
    WHATSAPP_TIMEOUT_SECONDS: float = 10.0

    # OTP
    DEFAULT_COUNTRY_CODE: str = "+91"
    TEST_PHONE_NUMBER: str = "+919999999999"
    TEST_OTP_CODE: str = "123456"
    OTP_EXPIRE_MINUTES: int = 10
    OTP_MAX_PER_HOUR: int = 3
    OTP_CLEANUP_INTERVAL_SECONDS: int = 3600  # 0 disables the sweep

    # Rate limiting (slowapi, production only)
    AUTH_RATE_LIMIT: str = "50/15minutes"

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:5174"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("JWT_SECRET")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) < MIN_JWT_SECRET_LENGTH:
            raise ValueError(
                f"JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters. "
                "Generate a strong secret and add it to your .env file."
            )
        return v

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings()
