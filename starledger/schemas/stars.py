from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from starledger.schemas.identity import Identity


class StarBalance(BaseModel):
    """잔액 스냅샷 (리포지토리 → 서비스)"""

    identity: Identity
    current_stars: int = Field(..., ge=0)
    last_refill_at: datetime
    refill_cap: int
    version: int = 0
    merged_into_account_id: Optional[str] = None

    @property
    def is_retired(self) -> bool:
        """계정으로 병합된 디바이스 잔액 여부"""
        return self.merged_into_account_id is not None


class StarBalanceResponse(BaseModel):
    """잔액 조회 응답"""

    current_stars: int = Field(..., description="현재 스타 잔액")
    next_refill_at: Optional[datetime] = Field(None, description="다음 자동 충전 시각 (충전 불필요 시 null)")
    refill_cap: int = Field(..., description="자동 충전 상한")
    version: int = Field(..., description="Set 요청 시 사용할 잔액 버전")

    class Config:
        from_attributes = True


class StarAmountRequest(BaseModel):
    """스타 차감/적립 요청"""

    amount: int = Field(..., gt=0, description="스타 수량 (양의 정수)")


class StarSetRequest(BaseModel):
    """스타 잔액 절대값 설정 요청 (compare-and-swap)"""

    balance: int = Field(..., ge=0, description="설정할 잔액")
    expected_version: int = Field(..., ge=0, description="조회 시점의 잔액 버전")


class StarSpendResponse(BaseModel):
    """스타 차감 결과"""

    ok: bool = Field(..., description="차감 성공 여부")
    current_stars: int = Field(..., description="차감 후(또는 갱신된) 잔액")
    required: Optional[int] = Field(None, description="실패 시 필요한 스타 수")
    shortfall: Optional[int] = Field(None, description="실패 시 부족한 스타 수")


class StarSetResponse(BaseModel):
    ok: bool = Field(..., description="버전 일치로 설정되었는지 여부")
    current_stars: int
    version: int


class ChargeReadingRequest(BaseModel):
    """리딩 과금 요청 (cost 생략 시 기본 리딩 비용)"""

    cost: Optional[int] = Field(None, gt=0, description="과금할 스타 수")


class StarTransactionEntry(BaseModel):
    """거래 로그 항목"""

    id: int
    amount: int
    reason: str
    description: Optional[str] = None
    balance_after: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StarTransactionsResponse(BaseModel):
    """거래 로그 조회 응답"""

    balance: int = Field(..., description="현재 잔액")
    entries: List[StarTransactionEntry] = Field(..., description="거래 내역 (최신순)")
    total_count: int = Field(..., description="전체 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")
