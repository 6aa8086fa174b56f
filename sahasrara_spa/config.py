import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    Provide the signing secret and initial PIN via environment variables or a .env file.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set SAHASRARA_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: SAHASRARA_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("SAHASRARA_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("SAHASRARA_DB_PATH", "./sahasrara.sqlite")
    )

    # development|production. Production turns on Secure cookies unless overridden.
    APP_ENV: str = os.environ.get("APP_ENV", "development").strip().lower()

    # Timezone the spa operates in. "Today" in reports and dates in CSV exports follow it.
    BUSINESS_TIMEZONE: str = os.environ.get("SAHASRARA_TIMEZONE", "Asia/Jakarta")

    # -----------------
    # Credentials
    # -----------------
    # PIN given to the first ADMIN account when the accounts table is empty.
    DEFAULT_PIN: str = os.environ.get("SAHASRARA_PIN", "1234")
    BOOTSTRAP_ADMIN_NAME: str = os.environ.get("SAHASRARA_ADMIN_NAME", "Admin User")
    BOOTSTRAP_ADMIN_EMAIL: str = os.environ.get("SAHASRARA_ADMIN_EMAIL", "admin@sahasrara.com")

    # Login lockout. A threshold of 0 disables it.
    AUTH_LOCKOUT_THRESHOLD: int = int(os.environ.get("AUTH_LOCKOUT_THRESHOLD", "5"))
    AUTH_LOCKOUT_WINDOW_SECONDS: int = int(os.environ.get("AUTH_LOCKOUT_WINDOW_SECONDS", "900"))
    AUTH_LOCKOUT_DURATION_SECONDS: int = int(os.environ.get("AUTH_LOCKOUT_DURATION_SECONDS", "900"))

    # -----------------
    # Session cookie (signed JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_SESSION_SECRET to a strong random value.
    AUTH_SESSION_SECRET: str = os.environ.get("AUTH_SESSION_SECRET", "dev_change_me")
    AUTH_COOKIE_NAME: str = os.environ.get("AUTH_COOKIE_NAME", "sahasrara_session")
    AUTH_COOKIE_PATH: str = os.environ.get("AUTH_COOKIE_PATH", "/")
    AUTH_COOKIE_SAMESITE: str = os.environ.get("AUTH_COOKIE_SAMESITE", "strict")  # lax|strict|none

    # If AUTH_COOKIE_SECURE is unset, we default to secure cookies when APP_ENV=production.
    AUTH_COOKIE_SECURE: bool = (
        _env_bool("AUTH_COOKIE_SECURE", None)
        if _env_bool("AUTH_COOKIE_SECURE", None) is not None
        else APP_ENV == "production"
    )

    # -----------------
    # CORS (development)
    # -----------------
    # Empty by default: the dashboard is served from the same origin.
    CORS_ALLOW_ORIGINS: str = os.environ.get("CORS_ALLOW_ORIGINS", "")


def load_config() -> Config:
    return Config()
