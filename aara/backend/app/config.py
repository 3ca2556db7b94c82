from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

APP_VERSION = "1.0.0"
REPO_ROOT = Path(__file__).resolve().parents[3]
load_dotenv(REPO_ROOT / ".env")


def get_int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def resolve_db_path() -> str:
    db_env = (os.getenv("AARA_DB_PATH") or os.getenv("DB_PATH") or "").strip()
    db_path = Path(db_env) if db_env else (REPO_ROOT / "aara.db")
    if not db_path.is_absolute():
        db_path = REPO_ROOT / db_path
    return str(db_path)


def resolve_store_kind() -> str:
    kind = (os.getenv("AARA_STORE") or "sql").strip().lower()
    return kind if kind in {"sql", "memory"} else "sql"


def resolve_log_level() -> int:
    level_name = (os.getenv("AARA_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    logging.basicConfig(
        level=resolve_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


PRE_THERAPY_MIN_DAYS = get_int_env("PRE_THERAPY_MIN_DAYS", 7)
PRE_THERAPY_MIN_CHECKINS = get_int_env("PRE_THERAPY_MIN_CHECKINS", 3)
REPORT_UNLOCK_ACTIVE_DAYS = get_int_env("REPORT_UNLOCK_ACTIVE_DAYS", 6)
TRIAL_HISTORY_DAYS = get_int_env("TRIAL_HISTORY_DAYS", 3)
CHECKIN_INTERVAL_HOURS = get_int_env("CHECKIN_INTERVAL_HOURS", 24)
MAX_CHECKIN_LEVEL = get_int_env("MAX_CHECKIN_LEVEL", 10)
RECURRENCE_MIN_FREQUENCY = get_int_env("RECURRENCE_MIN_FREQUENCY", 3)
MAX_THEMES = get_int_env("MAX_THEMES", 10)

THERAPY_DEFAULT_DAYS = 30
SELF_INSIGHT_DEFAULT_DAYS = 30
MAINTENANCE_AFTER_DAYS = 90
THERAPIST_VIEWS_FOR_PREPARING = 3
