import os
from decimal import Decimal

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    ENV = os.getenv("ENV", "development")

    # SQLite database file stored next to app.py as consultly.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "consultly.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SEED_ROLES_ON_STARTUP = os.getenv("SEED_ROLES_ON_STARTUP", "true").lower() == "true"

    # 8 hours bearer token lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Server-side price table, never trust a client price
    CONSULTATION_PRICES = {
        "video": Decimal("200"),
        "audio": Decimal("150"),
        "chat": Decimal("100"),
    }
    CONSULTATION_NOTES_MAX_LENGTH = 1000

    # Cancellation policy for confirmed consultations (admins are exempt)
    CONSULTATION_CANCEL_CUTOFF_HOURS = 12

    # Per (user, action) fixed-window ceilings
    RATE_LIMITS = {
        "enrollment_enroll": {"max_requests": 5, "window_seconds": 60},
        "enrollment_activate": {"max_requests": 10, "window_seconds": 60},
        "enrollment_cancel": {"max_requests": 3, "window_seconds": 60},
        "consultation_book": {"max_requests": 5, "window_seconds": 60},
        "consultation_confirm": {"max_requests": 20, "window_seconds": 60},
        "consultation_complete": {"max_requests": 20, "window_seconds": 60},
        "consultation_cancel": {"max_requests": 3, "window_seconds": 60},
    }
    DEFAULT_RATE_LIMIT = {"max_requests": 10, "window_seconds": 60}

    # Closed windows older than this are purged by `flask purge-rate-limits`
    RATE_LIMIT_RETENTION_HOURS = int(os.getenv("RATE_LIMIT_RETENTION_HOURS", "24"))

    # Basic app settings
    DEBUG = False
