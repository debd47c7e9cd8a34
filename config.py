import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as skillswap.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "skillswap.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "skillswap_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Points ledger
    SIGNUP_POINTS = int(os.getenv("SIGNUP_POINTS", "100"))

    # Booking transaction
    BOOKING_MAX_ATTEMPTS = int(os.getenv("BOOKING_MAX_ATTEMPTS", "3"))
    BOOKING_TIMEOUT_SECONDS = float(os.getenv("BOOKING_TIMEOUT_SECONDS", "5"))
    BOOKING_RETRY_BACKOFF_SECONDS = float(os.getenv("BOOKING_RETRY_BACKOFF_SECONDS", "0.05"))

    # Cancelling a booking does not return points unless enabled
    REFUND_ON_CANCEL = os.getenv("REFUND_ON_CANCEL", "false").lower() == "true"

    # A new slot may start at most this far in the past (form submit latency)
    SLOT_PAST_GRACE_SECONDS = 60

    # Watch streams re-read at least this often
    WATCH_POLL_SECONDS = float(os.getenv("WATCH_POLL_SECONDS", "15"))

    # Basic app settings
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///" + os.path.join(BASE_DIR, "skillswap-test.db")

    # keep the suite fast
    BOOKING_RETRY_BACKOFF_SECONDS = 0
    WATCH_POLL_SECONDS = 0.05
    BCRYPT_ROUNDS = 4
