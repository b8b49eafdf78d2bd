"""
Application configuration.
Values come from environment variables / .env file. External collaborators
(Stripe, SendGrid, Twilio, Google Calendar) are optional: when their
credentials are empty the matching adapter logs a warning and reports a
failed dispatch instead of crashing startup.
"""
import logging
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite+aiosqlite:///./consultdesk.db"

    # Admin routes are guarded by a single shared secret
    ADMIN_SECRET: str = ""

    # Business resolution: header > query/body > this default
    DEFAULT_BUSINESS_ID: str = "default-business"
    BUSINESS_TIMEZONE: str = "Asia/Kolkata"
    REFERENCE_PREFIX: str = "NAB"

    # Slot locking
    SLOT_LOCK_TTL_SECONDS: int = 300
    SLOT_LOCK_SWEEP_SECONDS: int = 60

    # Reference id issuance
    COUNTER_MAX_ATTEMPTS: int = 3

    # Reminder scheduler
    REMINDER_SCHEDULER_ENABLED: bool = True

    # Stripe payments
    STRIPE_API_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    PAYMENT_CURRENCY: str = "inr"

    # SendGrid email
    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = "noreply@consultdesk.app"
    SENDGRID_FROM_NAME: str = "ConsultDesk"
    ADMIN_NOTIFICATION_EMAIL: str = ""

    # Twilio SMS
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    # Google Calendar (Meet links)
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REFRESH_TOKEN: str = ""
    GOOGLE_CALENDAR_ID: str = "primary"


settings = Settings()

if not settings.ADMIN_SECRET:
    logger.warning("ADMIN_SECRET is not set; every admin request will be rejected.")
