"""
Settings & Feature Flags

Centralized configuration for the judging backend.
All values are loaded from environment variables (.env supported).
"""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class Settings:
    """
    Runtime settings.

    Read once at import time. Tests override attributes directly
    when they need a different value.
    """

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./hackjudge.db")

    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

    # slowapi limit string applied to review submission
    REVIEW_RATE_LIMIT: str = os.getenv("REVIEW_RATE_LIMIT", "10/minute")

    @staticmethod
    def allowed_origins() -> List[str]:
        origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
        extra = os.getenv("ALLOWED_ORIGINS", "").split(",")
        origins.extend(o.strip() for o in extra if o.strip())
        return origins


class FeatureFlags:
    """
    Feature flags for the judging core.

    To add a new feature flag:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """

    # Reject score submissions for rounds that were finalized
    LOCK_FINALIZED_ROUNDS: bool = get_bool_env('LOCK_FINALIZED_ROUNDS', True)

    # Reviews must carry the event's proof-of-attendance code
    REQUIRE_ATTENDANCE_CODE: bool = get_bool_env('REQUIRE_ATTENDANCE_CODE', False)

    # Re-run review flagging after every review create/update
    FLAG_ANALYSIS_ON_REVIEW: bool = get_bool_env('FLAG_ANALYSIS_ON_REVIEW', True)
