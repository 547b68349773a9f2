'''
Holds all the configurations
'''
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """
    Manages application configuration using environment variables.
    """
    # Application Metadata
    APP_NAME: str = "Clinic Booking Backend"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Availability and booking engine for the practice management backend."
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

    # JWT Settings (tokens are issued by the identity service, we only verify them)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    BACKEND_CORS_ORIGINS: list[str] = []

    # Scheduling
    DEFAULT_TIMEZONE: str = "Europe/Vienna"
    SLOT_GRANULARITY_MINUTES: int = 15
    RESERVATION_BUCKET_MINUTES: int = 5
    MAX_SLOTS_PER_REQUEST: int = 500
    MAX_QUERY_SPAN_DAYS: int = 62
    NEXT_SLOT_HORIZON_DAYS: int = 90
    INCLUDE_PENDING_ABSENCES: bool = False
    LOCATION_OPEN_WITHOUT_HOURS: bool = False

    # Booking
    CANCELLATION_WINDOW_HOURS: int = 2
    BOOKING_DEADLINE_SECONDS: float = 10.0
    NOTIFICATION_TIMEOUT_SECONDS: float = 2.0

    class Config:
        env_file = ".env" # automatically loads the .env

# Create a single, importable instance of the settings
settings = Settings()
