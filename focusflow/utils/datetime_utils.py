from datetime import datetime, date, timedelta
from typing import Optional

import pytz

DATE_FORMAT = "%Y-%m-%d"

def now_local(tz_name: Optional[str] = None) -> datetime:
    """Текущее локальное время (или время в заданной зоне pytz)"""
    if tz_name:
        return datetime.now(pytz.timezone(tz_name))
    return datetime.now()

def local_date_str(dt: datetime) -> str:
    """Календарная дата в виде YYYY-MM-DD с ведущими нулями"""
    return dt.strftime(DATE_FORMAT)

def today_str(now: datetime) -> str:
    return local_date_str(now)

def yesterday_str(now: datetime) -> str:
    return local_date_str(now - timedelta(days=1))

def parse_date(date_str: str) -> date:
    return datetime.strptime(date_str, DATE_FORMAT).date()

def is_valid_date(date_str: str) -> bool:
    if not isinstance(date_str, str) or len(date_str) != 10:
        return False
    try:
        parse_date(date_str)
    except ValueError:
        return False
    return True

def to_millis(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)

def from_millis(ms: int, tz_name: Optional[str] = None) -> datetime:
    if tz_name:
        return datetime.fromtimestamp(ms / 1000, pytz.timezone(tz_name))
    return datetime.fromtimestamp(ms / 1000)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

def month_name(now: datetime) -> str:
    # Не зависит от locale: профили сравниваются по строке месяца
    return MONTH_NAMES[now.month - 1]
