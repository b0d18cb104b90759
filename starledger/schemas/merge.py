from pydantic import BaseModel, Field


class MergeResponse(BaseModel):
    """디바이스 → 계정 병합 결과"""

    ok: bool = True
    merged: bool = Field(..., description="이번 호출에서 실제로 병합되었는지 (재호출 시 False)")
    transferred_stars: int = Field(0, description="계정으로 이전된 스타 수")
    account_stars: int = Field(..., description="병합 후 계정 잔액")
