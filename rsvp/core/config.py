import os
from dotenv import load_dotenv
from pydantic import BaseModel

# Load variables from .env
load_dotenv()


class Settings(BaseModel):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///./guests.db"

    # Storage backend: "sql" or "memory"
    store_backend: str = "sql"
    guests_csv_path: str = "./names.csv"

    # Session cookie
    # Hex encoded, must decode to exactly 32 bytes
    secret_cookie_key: str = ""
    session_cookie_max_age_days: int = 30

    # Admin API
    api_key: str = ""

    # Event details shown on the pages
    event_name: str = "Our Wedding"
    event_date: str = ""
    event_venue: str = ""

    # Rate limiting settings
    rate_limit_enabled: bool = True
    rate_limit_rsvp: str = "20/minute"

    # Logging settings
    log_format: str = "console"  # Options: "console", "json"
    log_level: str = "INFO"
    log_dir: str = ""  # Empty = stdout only
    log_slow_request_threshold_ms: int = 500

    @property
    def is_prod(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings(
    environment=os.environ.get("ENVIRONMENT", "development"),
    database_url=os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./guests.db"),
    store_backend=os.environ.get("STORE_BACKEND", "sql").lower(),
    guests_csv_path=os.environ.get("GUESTS_CSV_PATH", "./names.csv"),
    secret_cookie_key=os.environ.get("SECRET_COOKIE_KEY", ""),
    session_cookie_max_age_days=int(os.environ.get("SESSION_COOKIE_MAX_AGE_DAYS", "30")),
    api_key=os.environ.get("API_KEY", ""),
    event_name=os.environ.get("EVENT_NAME", "Our Wedding"),
    event_date=os.environ.get("EVENT_DATE", ""),
    event_venue=os.environ.get("EVENT_VENUE", ""),
    rate_limit_enabled=os.environ.get("RATE_LIMIT_ENABLED", "true").lower() == "true",
    rate_limit_rsvp=os.environ.get("RATE_LIMIT_RSVP", "20/minute"),
    log_format=os.environ.get("LOG_FORMAT", "console"),
    log_level=os.environ.get("LOG_LEVEL", "INFO"),
    log_dir=os.environ.get("LOG_DIR", ""),
    log_slow_request_threshold_ms=int(
        os.environ.get("LOG_SLOW_REQUEST_THRESHOLD_MS", "500")
    ),
)
