"""
Olympia Settings

Environment-driven configuration for the live engine.
Every value can be overridden through the process environment or a .env file.
"""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def get_int_list_env(key: str, default: List[int]) -> List[int]:
    """Get a comma separated list of integers from environment variable."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return list(default)
    return [int(part) for part in raw.split(",") if part.strip()]


class Settings:
    """
    Runtime settings for the Olympia live engine.

    Game constants live here so a tournament can tune timers and awards
    without a code change.
    """

    # Infrastructure
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./olympia.db")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = get_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 240)
    BCRYPT_ROUNDS: int = get_int_env("BCRYPT_ROUNDS", 12)

    # Realtime
    REALTIME_BACKEND: str = os.getenv("REALTIME_BACKEND", "memory").lower()
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Rate limits (slowapi syntax)
    RATE_LIMIT_ENABLED: bool = get_bool_env("RATE_LIMIT_ENABLED", True)
    BUZZ_RATE_LIMIT: str = os.getenv("BUZZ_RATE_LIMIT", "10/second")
    ANSWER_RATE_LIMIT: str = os.getenv("ANSWER_RATE_LIMIT", "5/second")

    # Timers (seconds)
    OPENING_TIMER_SECONDS: int = get_int_env("OPENING_TIMER_SECONDS", 5)
    OBSTACLE_TIMER_SECONDS: int = get_int_env("OBSTACLE_TIMER_SECONDS", 15)
    SPEED_TIMER_SECONDS: List[int] = get_int_list_env("SPEED_TIMER_SECONDS", [10, 20, 30, 40])
    SPEED_DEFAULT_TIMER_SECONDS: int = get_int_env("SPEED_DEFAULT_TIMER_SECONDS", 20)
    FINISH_TIMER_SECONDS_20: int = get_int_env("FINISH_TIMER_SECONDS_20", 15)
    FINISH_TIMER_SECONDS_30: int = get_int_env("FINISH_TIMER_SECONDS_30", 20)
    STEAL_BUZZ_SECONDS: int = get_int_env("STEAL_BUZZ_SECONDS", 5)
    STEAL_ANSWER_SECONDS: int = get_int_env("STEAL_ANSWER_SECONDS", 3)
    TIMER_MIN_SECONDS: int = 1
    TIMER_MAX_SECONDS: int = 120

    # Speed round awards
    SPEED_AWARDS: List[int] = get_int_list_env("SPEED_AWARDS", [40, 30, 20, 10])
    SPEED_TIE_THRESHOLD_MS: int = get_int_env("SPEED_TIE_THRESHOLD_MS", 10)

    # Operator input bounds
    MANUAL_ADJUST_LIMIT: int = 500
    REASON_MIN_LENGTH: int = 3
    BATCH_MAX_ITEMS: int = 10
    ANSWER_MAX_LENGTH: int = 2000

    @classmethod
    def allowed_origins(cls) -> List[str]:
        raw = os.getenv("ALLOWED_ORIGINS", "")
        return [origin.strip() for origin in raw.split(",") if origin.strip()]


settings = Settings()
