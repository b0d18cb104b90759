"""
스타 자동 충전 정책 - 순수 함수

백그라운드 스케줄러 없이, 잔액을 읽거나 쓰는 순간 `now - last_refill_at`만으로
충전량을 계산합니다. DB 접근이 없으므로 리포지토리의 원자적 갱신 안에서 호출됩니다.

- 로그인 계정: interval(기본 2시간)마다 +1, refill_cap까지. last_refill_at은
  소비한 interval 수만큼만 전진하여 남은 부분 진행분을 보존합니다.
- 익명 디바이스: 기준 타임존(UTC+7) 자정이 지나면 하루 한 번 grant(5)로 리셋.
  기본값은 "최소 grant 보장"이며 보너스로 grant를 넘긴 잔액은 유지됩니다.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from starledger.config import Settings, settings as default_settings
from starledger.schemas.identity import IdentityKind
from starledger.utils.timezone_utils import ensure_utc, next_local_midnight


@dataclass(frozen=True)
class RefillResult:
    current_stars: int
    last_refill_at: datetime
    added: int
    reset: bool = False  # 일일 리셋 발생 (잔액이 그대로여도 last_refill_at 갱신)

    @property
    def changed(self) -> bool:
        return self.added != 0 or self.reset


@dataclass(frozen=True)
class RefillPolicy:
    anon_daily_grant: int = 5
    auth_refill_cap: int = 15
    auth_interval: timedelta = timedelta(hours=2)
    reset_offset_hours: int = 7
    preserve_bonus_on_reset: bool = True

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RefillPolicy":
        settings = settings or default_settings
        return cls(
            anon_daily_grant=settings.ANON_DAILY_GRANT,
            auth_refill_cap=settings.AUTH_REFILL_CAP,
            auth_interval=timedelta(minutes=settings.AUTH_REFILL_INTERVAL_MINUTES),
            reset_offset_hours=settings.DAILY_RESET_UTC_OFFSET_HOURS,
            preserve_bonus_on_reset=settings.PRESERVE_BONUS_ON_DAILY_RESET,
        )

    def cap_for(self, kind: IdentityKind) -> int:
        """identity 종류별 자동 충전 상한 (신규 잔액의 시작값이기도 함)"""
        if kind == IdentityKind.AUTHENTICATED:
            return self.auth_refill_cap
        return self.anon_daily_grant

    def apply(
        self,
        kind: IdentityKind,
        current_stars: int,
        last_refill_at: datetime,
        now: datetime,
    ) -> RefillResult:
        """경과 시간에 따른 충전 결과 계산 (변경 없으면 added=0, 입력값 그대로)"""
        now = ensure_utc(now)
        last_refill_at = ensure_utc(last_refill_at)
        unchanged = RefillResult(current_stars, last_refill_at, 0)

        if now <= last_refill_at:
            return unchanged

        if kind == IdentityKind.AUTHENTICATED:
            return self._apply_interval_refill(current_stars, last_refill_at, now)
        return self._apply_daily_reset(current_stars, last_refill_at, now)

    def _apply_interval_refill(
        self, current_stars: int, last_refill_at: datetime, now: datetime
    ) -> RefillResult:
        cap = self.auth_refill_cap
        if current_stars >= cap:
            return RefillResult(current_stars, last_refill_at, 0)

        intervals = (now - last_refill_at) // self.auth_interval
        if intervals <= 0:
            return RefillResult(current_stars, last_refill_at, 0)

        added = min(intervals, cap - current_stars)
        return RefillResult(
            current_stars=current_stars + added,
            last_refill_at=last_refill_at + self.auth_interval * added,
            added=added,
        )

    def _apply_daily_reset(
        self, current_stars: int, last_refill_at: datetime, now: datetime
    ) -> RefillResult:
        boundary = next_local_midnight(last_refill_at, self.reset_offset_hours)
        if now < boundary:
            return RefillResult(current_stars, last_refill_at, 0)

        if self.preserve_bonus_on_reset:
            new_stars = max(current_stars, self.anon_daily_grant)
        else:
            new_stars = self.anon_daily_grant

        return RefillResult(
            current_stars=new_stars,
            last_refill_at=now,
            added=new_stars - current_stars,
            reset=True,
        )

    def next_refill_at(
        self, kind: IdentityKind, current_stars: int, last_refill_at: datetime
    ) -> Optional[datetime]:
        """다음 충전 예정 시각 (상한 이상이면 None)"""
        last_refill_at = ensure_utc(last_refill_at)
        if current_stars >= self.cap_for(kind):
            return None
        if kind == IdentityKind.AUTHENTICATED:
            return last_refill_at + self.auth_interval
        return next_local_midnight(last_refill_at, self.reset_offset_hours)
