"""Конфигурация приложения"""

import os

import pytz
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


# База данных
DATABASE_PATH = os.getenv("DATABASE_PATH", "bookings.db")
DB_BUSY_TIMEOUT = _int_env("DB_BUSY_TIMEOUT", 10)  # секунды ожидания блокировки SQLite

# Временная зона салона (одна на весь процесс)
ORG_TZ = os.getenv("ORG_TZ") or os.getenv("SALON_TZ") or "Europe/Berlin"

try:
    TIMEZONE = pytz.timezone(ORG_TZ)
except pytz.exceptions.UnknownTimeZoneError:
    raise ValueError(f"Unknown timezone in ORG_TZ: {ORG_TZ!r}")

# Настройки слотов (в минутах)
SLOT_STEP_MIN = _int_env("SLOT_STEP_MIN", 5)
BREAK_AFTER_MIN = _int_env("BREAK_AFTER_MIN", 0)  # перерыв после каждой записи
MIN_LEAD_MIN = _int_env("MIN_LEAD_MIN", 0)  # минимум минут от "сейчас" до начала
HOLD_TTL_MIN = _int_env("HOLD_TTL_MIN", 5)  # сколько живет удержание слота

if SLOT_STEP_MIN <= 0:
    raise ValueError("SLOT_STEP_MIN must be positive")
if BREAK_AFTER_MIN < 0 or MIN_LEAD_MIN < 0:
    raise ValueError("BREAK_AFTER_MIN and MIN_LEAD_MIN must not be negative")
if HOLD_TTL_MIN <= 0:
    raise ValueError("HOLD_TTL_MIN must be positive")

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

MINUTES_PER_DAY = 24 * 60

# Названия дней недели (0 = воскресенье, как в таблице working_hours)
DAY_NAMES_SHORT = ["Вс", "Пн", "Вт", "Ср", "Чт", "Пт", "Сб"]
