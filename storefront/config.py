"""Runtime configuration, read once at start-up from the environment (and `.env`)."""
import os
from typing import NamedTuple

from dotenv import load_dotenv

from .errors import ConfigError


class Settings(NamedTuple):
    database_url: str
    token_secret: str
    password_pepper: str
    hash_rounds: int = 29000
    token_ttl_seconds: int = 60 * 60 * 2  # 2 hours
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _required_env(name: str) -> str:
    value = os.getenv(name, "")
    if not value:
        raise ConfigError(f"{name} must be set")
    return value


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./storefront.db"),
        token_secret=_required_env("TOKEN_SECRET"),
        password_pepper=_required_env("PASSWORD_PEPPER"),
        hash_rounds=_int_env("HASH_ROUNDS", 29000),
        token_ttl_seconds=_int_env("TOKEN_TTL_SECONDS", 60 * 60 * 2),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_int_env("PORT", 8000),
    )
