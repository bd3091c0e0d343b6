# ==================================================================================
# core/config.py: Application Configuration (Pydantic v2 Settings + .env)
# ==================================================================================
import logging
import sys

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # ------------------------
    # DATABASE CONFIG
    # ------------------------
    DATABASE_URL: str

    # ------------------------
    # SECURITY CONFIG
    # ------------------------
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # ------------------------
    # RAZORPAY / PAYMENT CONFIG
    # ------------------------
    RAZORPAY_KEY_ID: str
    RAZORPAY_KEY_SECRET: str
    RAZORPAY_API_URL: str = "https://api.razorpay.com/v1"
    GATEWAY_TIMEOUT_SECONDS: float = 30.0

    # ------------------------
    # PLAN CONFIG
    # ------------------------
    FREE_PLAN_NOTE_LIMIT: int = 3
    PRO_PLAN_PRICE: int = 999
    PLAN_CURRENCY: str = "INR"
    SUBSCRIPTION_DURATION_DAYS: int = 365
    SUBSCRIPTION_EXPIRY_CHECK_SECONDS: int = 3600  # 0 disables the sweep

    # ------------------------
    # RATE LIMITING (per client IP)
    # ------------------------
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_MAX_REQUESTS: int = 100
    AUTH_RATE_LIMIT_MAX_REQUESTS: int = 10

    # ------------------------
    # FRONTEND CONFIG
    # ------------------------
    FRONTEND_URL: str = "http://localhost:3000"

    # ------------------------
    # ENVIRONMENT SETTINGS
    # ------------------------
    ENVIRONMENT: str = "development"  # 'development' | 'production' | 'test'
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_VERSION: str = "1.0.0"

    @property
    def IS_PRODUCTION(self) -> bool:
        """Convenience helper to check if running in production"""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def allowed_origins(self) -> list[str]:
        origins = [
            self.FRONTEND_URL,
            "http://localhost:3000",
            "http://localhost:3001",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:3001",
        ]
        return list(dict.fromkeys(o for o in origins if o))

    # ------------------------
    # Pydantic v2 Settings
    # ------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# ------------------------
# Settings Loader
# ------------------------
def load_settings() -> Settings:
    """
    Load settings from the environment.
    The process refuses to start when a required secret is missing.
    """
    try:
        settings = Settings()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        logger.critical("Environment configuration error, missing or invalid settings: %s", ", ".join(missing))
        sys.exit(1)

    logger.info("Environment: %s, Debug: %s", settings.ENVIRONMENT, settings.DEBUG)
    return settings
