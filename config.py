import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        log_level: str,
        default_page_size: int,
        max_page_size: Optional[int],
    ) -> None:
        self.database_url = database_url
        self.log_level = log_level
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("MOVEMENTS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return int(raw)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("MOVEMENTS_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "movements.db"
        database_url = f"sqlite:///{default_db}"
    log_level = os.getenv("MOVEMENTS_LOG_LEVEL", "INFO").upper()
    default_page_size = int(os.getenv("MOVEMENTS_DEFAULT_PAGE_SIZE", "10"))
    # Unset means no upper bound on pageSize.
    max_page_size = _optional_int("MOVEMENTS_MAX_PAGE_SIZE")
    return Settings(
        database_url=database_url,
        log_level=log_level,
        default_page_size=default_page_size,
        max_page_size=max_page_size,
    )
