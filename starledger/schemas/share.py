from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from enum import Enum


class ShareAwardOutcome(str, Enum):
    """공유 방문 보상 결과 - 모두 정상 응답이며 에러가 아님"""

    OK = "ok"
    SKIPPED = "skipped"  # 본인 방문
    VISITOR_CAPPED = "visitor_capped"  # 방문자 일일 상한
    DUPLICATE = "duplicate"  # 같은 날 같은 공유 재방문
    OWNER_CAPPED = "owner_capped"  # 소유자 일일 상한


class ShareAwardRequest(BaseModel):
    """공유 방문 보상 요청 - owner는 계정 ID 또는 디바이스 ID 중 하나 이상"""

    shared_id: str = Field(..., min_length=1, max_length=255, description="공유된 리딩 ID")
    owner_user_id: Optional[str] = Field(None, max_length=255, description="리딩 소유자 계정 ID")
    owner_did: Optional[str] = Field(None, max_length=255, description="리딩 소유자 디바이스 ID")


class ShareAwardResponse(BaseModel):
    outcome: ShareAwardOutcome
    owner_balance: Optional[int] = Field(None, description="보상 지급 시 소유자 잔액")


class EarnedTodayResponse(BaseModel):
    """소유자가 오늘 공유로 획득한 스타"""

    earned_stars: int
    max_stars: int
    date_key: date


class ShareNotificationEntry(BaseModel):
    id: int
    shared_id: str
    date_key: date
    visits_count: int
    last_visit_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ShareNotificationsResponse(BaseModel):
    notifications: List[ShareNotificationEntry]
    total_count: int
