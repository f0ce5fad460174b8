import os
from dotenv import load_dotenv

load_dotenv()


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


class Settings:
    HOSTCHECK_DB_PATH: str = os.getenv("HOSTCHECK_DB_PATH", "data/hostcheck.sqlite3")
    PLATFORM_DOMAIN: str = (
        os.getenv("HOSTCHECK_PLATFORM_DOMAIN", "heroku.com").strip().strip(".").lower()
    )
    TICK_SECONDS: float = float(os.getenv("HOSTCHECK_TICK_SECONDS", "1.5"))
    STEP_TIMEOUT_SECONDS: float = float(
        os.getenv("HOSTCHECK_STEP_TIMEOUT_SECONDS", "30")
    )
    HTTP_TIMEOUT_SECONDS: float = float(
        os.getenv("HOSTCHECK_HTTP_TIMEOUT_SECONDS", "10")
    )
    HTTP_CONNECT_TIMEOUT_SECONDS: float | None = _optional_float(
        "HOSTCHECK_HTTP_CONNECT_TIMEOUT_SECONDS"
    )
    DNS_TIMEOUT_SECONDS: float = float(os.getenv("HOSTCHECK_DNS_TIMEOUT_SECONDS", "2"))
    DNS_LIFETIME_SECONDS: float = float(
        os.getenv("HOSTCHECK_DNS_LIFETIME_SECONDS", "5")
    )
    LOG_LEVEL: str = os.getenv("HOSTCHECK_LOG_LEVEL", "INFO")


settings = Settings()
