'''
Holds all the configurations
'''
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Manages application configuration using environment variables.
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Application Metadata
    APP_NAME: str = "Tutoring Portal Backend"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Balances, lessons and payments API for the tutoring portal."
    TEST_MODE: bool = False

    # Database URL
    DATABASE_URL_PROD: str
    DATABASE_URL_TEST: str
    @property
    def database_url(self) -> str:
        """
        Dynamically returns the correct database URL based on the test_mode flag.
        """
        if self.TEST_MODE:
            return self.DATABASE_URL_TEST
        return self.DATABASE_URL_PROD

    # JWT Settings (tokens are issued by the identity provider)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # Scheduled trigger
    CRON_SECRET: str = ""

    # Lesson rules
    CANCELLATION_GRACE_HOURS: int = 24
    RECURRING_LESSON_COUNT: int = 52
    RECURRING_CADENCE_WEEKS: int = 1
    STRICT_DOUBLE_BOOKING: bool = False

    # Calendar feeds
    CALENDAR_DOMAIN: str = "tutoring-portal"
    CALENDAR_PAST_DAYS: int = 30
    CALENDAR_FUTURE_DAYS: int = 365

    # Other settings
    CURRENCY: str = "GBP"
    BACKEND_CORS_ORIGINS: list[str] = []

# Create a single, importable instance of the settings
settings = Settings()
