import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        currency_symbol: str,
        daily_limit_alerts: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.currency_symbol = currency_symbol
        self.daily_limit_alerts = daily_limit_alerts
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGETS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("BUDGETS_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "budgets.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("BUDGETS_TIMEZONE", "Europe/Paris")
    currency_symbol = os.getenv("BUDGETS_CURRENCY_SYMBOL", "€")
    daily_limit_alerts = _env_flag("BUDGETS_DAILY_LIMIT_ALERTS", "true")
    log_level = os.getenv("BUDGETS_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        currency_symbol=currency_symbol,
        daily_limit_alerts=daily_limit_alerts,
        log_level=log_level,
    )
