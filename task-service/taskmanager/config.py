import os
from typing import List, Optional

from pydantic import BaseModel

DEFAULT_ORIGINS = ["http://localhost:5173"]


def _getbool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _getint(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def parse_origins(raw: Optional[str]) -> List[str]:
    if not raw:
        return list(DEFAULT_ORIGINS)
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or list(DEFAULT_ORIGINS)


class Settings(BaseModel):
    database_url: str = "sqlite:///./tasks.db"
    db_pool_size: int = 25
    db_max_overflow: int = 0
    db_pool_recycle: int = 300
    db_pool_timeout: int = 30

    allowed_origins: List[str] = DEFAULT_ORIGINS

    bulk_max_delay_ms: int = 1000
    bulk_stop_on_error: bool = False
    bulk_max_workers: Optional[int] = None
    bulk_preserve_order: bool = False

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./tasks.db"),
            db_pool_size=_getint("DB_POOL_SIZE", 25),
            db_max_overflow=_getint("DB_MAX_OVERFLOW", 0),
            db_pool_recycle=_getint("DB_POOL_RECYCLE", 300),
            db_pool_timeout=_getint("DB_POOL_TIMEOUT", 30),
            allowed_origins=parse_origins(os.getenv("ALLOWED_ORIGINS")),
            bulk_max_delay_ms=_getint("BULK_MAX_DELAY_MS", 1000),
            bulk_stop_on_error=_getbool("BULK_STOP_ON_ERROR"),
            bulk_max_workers=_getint("BULK_MAX_WORKERS", None),
            bulk_preserve_order=_getbool("BULK_PRESERVE_ORDER"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_getint("PORT", 8080),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
