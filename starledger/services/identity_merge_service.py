"""
Identity Merge - 익명 디바이스 잔액을 로그인 계정으로 이전

디바이스 행은 0으로 만들고 병합 대상 계정을 기록(retire)합니다.
같은 디바이스에 대한 두 번째 호출은 아무것도 하지 않습니다.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from starledger.config import Settings, settings as default_settings
from starledger.core.exceptions import ConflictError
from starledger.models.stars import TransactionReasonEnum
from starledger.schemas.identity import Identity
from starledger.schemas.merge import MergeResponse
from starledger.services.star_service import StarService
from starledger.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)


class IdentityMergeService:
    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
        star_service: Optional[StarService] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.clock = clock
        self.star_service = star_service or StarService(db, self.settings, clock=clock)

    def merge_device_into_account(self, device_id: str, account_id: str) -> MergeResponse:
        """
        디바이스 잔액을 계정으로 병합 (멱등)

        디바이스 retire와 계정 적립은 하나의 트랜잭션으로 커밋됩니다.
        이미 다른 계정으로 병합된 디바이스는 ConflictError.
        """
        device = Identity.device(device_id)
        account = Identity.account(account_id)
        balance_repo = self.star_service.balance_repo
        now = self.clock()

        try:
            # 병합 전 디바이스의 밀린 일일 리셋을 반영 (잔액이 없던 디바이스는 생성하지 않음)
            if balance_repo.find(device):
                balance_repo.refresh(device, now, commit=False)
            transferred = balance_repo.retire_device(device, account_id, now, commit=False)

            if transferred is None:
                current = balance_repo.find(device)
                self.db.rollback()
                if current and current.merged_into_account_id != account_id:
                    raise ConflictError(
                        "Device is already merged into another account",
                        details={"device_id": device_id},
                    )
                account_balance = self.star_service.refresh_balance(account)
                logger.info(f"Device {device_id} already merged into account {account_id}")
                return MergeResponse(
                    merged=False, transferred_stars=0, account_stars=account_balance.current_stars
                )

            if transferred > 0:
                account_balance = self.star_service.add(
                    account,
                    transferred,
                    reason=TransactionReasonEnum.IDENTITY_MERGE,
                    description=f"Merged from device {device_id}",
                    commit=False,
                )
            else:
                account_balance = balance_repo.refresh(account, now, commit=False)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to merge device {device_id} into account {account_id}: {str(e)}")
            raise

        logger.info(
            f"Merged device {device_id} into account {account_id}: {transferred} stars transferred"
        )
        return MergeResponse(
            merged=True,
            transferred_stars=transferred,
            account_stars=account_balance.current_stars,
        )
