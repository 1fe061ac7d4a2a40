import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        export_url_prefix: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.export_url_prefix = export_url_prefix
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    export_url_prefix = os.getenv("FINANCE_EXPORT_URL_PREFIX", "/exports").rstrip("/")
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        export_url_prefix=export_url_prefix,
        log_level=log_level,
    )
