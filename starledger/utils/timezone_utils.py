"""
타임존 유틸리티

스타 일일 리셋/공유 보상 date_key는 고정 기준 타임존(기본 UTC+7) 자정을
기준으로 계산합니다. DB에서 읽은 naive datetime은 UTC로 간주합니다.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from starledger.config import settings


def reset_timezone(offset_hours: Optional[int] = None) -> timezone:
    """일일 리셋 기준 타임존"""
    if offset_hours is None:
        offset_hours = settings.DAILY_RESET_UTC_OFFSET_HOURS
    return timezone(timedelta(hours=offset_hours))


def utc_now() -> datetime:
    """현재 UTC 시간을 반환합니다."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """naive datetime은 UTC로 가정하여 aware UTC datetime으로 변환합니다."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def date_key(dt: Optional[datetime] = None, offset_hours: Optional[int] = None) -> date:
    """기준 타임존의 달력 날짜 (공유 보상/알림 집계 키)"""
    if dt is None:
        dt = utc_now()
    return ensure_utc(dt).astimezone(reset_timezone(offset_hours)).date()


def next_local_midnight(dt: datetime, offset_hours: Optional[int] = None) -> datetime:
    """dt 이후 처음 오는 기준 타임존 자정 (UTC로 반환)"""
    tz = reset_timezone(offset_hours)
    local = ensure_utc(dt).astimezone(tz)
    midnight = datetime.combine(local.date() + timedelta(days=1), datetime.min.time(), tzinfo=tz)
    return midnight.astimezone(timezone.utc)
