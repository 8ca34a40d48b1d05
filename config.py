import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        log_level: str,
        sql_echo: bool = False,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.log_level = log_level
        self.sql_echo = sql_echo


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "fintrack.db"
    database_url = os.getenv("FINTRACK_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINTRACK_TIMEZONE", "Europe/Berlin")
    session_secret = os.getenv(
        "FINTRACK_SESSION_SECRET",
        "5d0c1f8a4b7e42d2a0f6c3e9b18d7a64c2e5f0b9a3d6e8c1f4b7a0d3e6c9f2b5",
    )
    session_max_age_hours = int(os.getenv("FINTRACK_SESSION_MAX_AGE_HOURS", "24"))
    log_level = os.getenv("FINTRACK_LOG_LEVEL", "INFO").upper()
    sql_echo = os.getenv("FINTRACK_SQL_ECHO", "").lower() in ("1", "true", "yes")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        log_level=log_level,
        sql_echo=sql_echo,
    )
