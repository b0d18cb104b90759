"""
스타 잔액 리포지토리 - Balance Store

identity별 잔액 행에 대한 모든 변경은 단일 원자적 SQL 문으로 수행됩니다:
1. 차감(spend): `current_stars >= amount` 조건부 UPDATE → 음수 잔액 불가
2. 적립(add): 서버 측 `current_stars + amount` 증가 → 읽고-쓰기 경쟁 없음
3. 충전(refresh)/설정(set)/병합(retire): version 컬럼 compare-and-swap

익명 디바이스와 로그인 계정은 (identity_kind, identity_id) 하나의 키로
같은 코드 경로를 사용합니다.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from starledger.core.exceptions import ConcurrentUpdateError
from starledger.models.stars import (
    StarBalance as StarBalanceModel,
    TransactionReasonEnum,
)
from starledger.repositories.base import BaseRepository
from starledger.repositories.star_transaction_repository import (
    StarTransactionRepository,
)
from starledger.schemas.identity import Identity, IdentityKind
from starledger.schemas.stars import StarBalance
from starledger.services.refill_policy import RefillPolicy
from starledger.utils.timezone_utils import ensure_utc

logger = logging.getLogger(__name__)

# compare-and-swap 재시도 횟수 (동일 identity 동시 요청 경합 시)
MAX_CAS_RETRIES = 5

_RETURNING_COLUMNS = (
    StarBalanceModel.identity_kind,
    StarBalanceModel.identity_id,
    StarBalanceModel.current_stars,
    StarBalanceModel.last_refill_at,
    StarBalanceModel.refill_cap,
    StarBalanceModel.version,
    StarBalanceModel.merged_into_account_id,
)


class StarBalanceRepository(BaseRepository[StarBalanceModel, StarBalance]):
    """identity별 스타 잔액에 대한 원자적 연산"""

    def __init__(
        self,
        db: Session,
        policy: Optional[RefillPolicy] = None,
        transactions: Optional[StarTransactionRepository] = None,
    ):
        super().__init__(StarBalanceModel, StarBalance, db)
        self.policy = policy or RefillPolicy.from_settings()
        self.transactions = transactions or StarTransactionRepository(db)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _to_balance(self, row) -> Optional[StarBalance]:
        """ORM 인스턴스 또는 RETURNING 행을 StarBalance 스키마로 변환"""
        if row is None:
            return None

        return StarBalance(
            identity=Identity(kind=IdentityKind(row.identity_kind.value), id=row.identity_id),
            current_stars=row.current_stars,
            last_refill_at=ensure_utc(row.last_refill_at),
            refill_cap=row.refill_cap,
            version=row.version,
            merged_into_account_id=row.merged_into_account_id,
        )

    def _identity_clause(self, identity: Identity):
        return and_(
            self.model_class.identity_kind == identity.kind.to_model(),
            self.model_class.identity_id == identity.id,
        )

    def _execute_update(self, identity: Identity, *conditions, **values):
        """조건부 UPDATE ... RETURNING. 조건 불일치 시 None"""
        stmt = (
            update(self.model_class)
            .where(self._identity_clause(identity), *conditions)
            .values(version=self.model_class.version + 1, **values)
            .returning(*_RETURNING_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        return self._to_balance(self.db.execute(stmt).first())

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def find(self, identity: Identity, *, for_update: bool = False) -> Optional[StarBalance]:
        """잔액 행 조회 (충전 미적용 원본)"""
        query = (
            self.db.query(self.model_class)
            .filter(self._identity_clause(identity))
            .populate_existing()
        )
        if for_update:
            query = query.with_for_update()
        return self._to_balance(query.first())

    def lock_rows(self, identities: Sequence[Identity], now: datetime) -> List[StarBalance]:
        """
        여러 잔액 행을 (kind, id) 순서로 잠금 (SELECT ... FOR UPDATE)

        없는 행은 먼저 생성해 커밋한 뒤 잠급니다. 잠금은 호출자의 commit/rollback
        시점까지 유지되며, 고정된 순서로 잠가 교착을 피합니다.
        """
        ordered = sorted(set(identities), key=lambda i: (i.kind.value, i.id))
        for identity in ordered:
            self.get_or_create(identity, now, commit=True)
        return [self.find(identity, for_update=True) for identity in ordered]

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def get_or_create(
        self, identity: Identity, now: datetime, *, commit: bool = True
    ) -> StarBalance:
        """
        잔액 조회 또는 생성

        신규 행은 refill_cap만큼의 시작 지급(initial grant)으로 생성됩니다.
        동시 생성 경합 시 유니크 제약 위반은 SAVEPOINT만 롤백하고 기존 행을 반환합니다.
        """
        existing = self.find(identity)
        if existing:
            return existing

        cap = self.policy.cap_for(identity.kind)
        instance = self.model_class(
            identity_kind=identity.kind.to_model(),
            identity_id=identity.id,
            current_stars=cap,
            last_refill_at=now,
            refill_cap=cap,
            version=0,
        )

        try:
            with self.db.begin_nested():
                self.db.add(instance)
        except IntegrityError:
            logger.info(f"Concurrent balance creation for {identity}, using existing row")
            existing = self.find(identity)
            if existing is None:
                raise
            return existing

        self.transactions.record(
            identity,
            amount=cap,
            reason=TransactionReasonEnum.INITIAL_GRANT,
            balance_after=cap,
            description=f"Starting grant - {cap} stars",
        )
        self._finish(commit)
        logger.info(f"Created star balance for {identity} with {cap} stars")
        return self._to_balance(instance)

    def refresh(
        self, identity: Identity, now: datetime, *, commit: bool = True
    ) -> StarBalance:
        """
        경과 시간 기반 자동 충전 적용 후 최신 잔액 반환

        - 변화가 없으면 쓰기 없이 반환 (중복 호출 안전)
        - 병합되어 retire된 디바이스는 더 이상 충전하지 않음
        - version compare-and-swap 실패 시 재조회 후 재시도
        """
        for _ in range(MAX_CAS_RETRIES):
            balance = self.get_or_create(identity, now, commit=False)
            if balance.is_retired:
                self._finish(commit)
                return balance

            result = self.policy.apply(
                identity.kind, balance.current_stars, balance.last_refill_at, now
            )
            if not result.changed:
                self._finish(commit)
                return balance

            updated = self._execute_update(
                identity,
                self.model_class.version == balance.version,
                current_stars=result.current_stars,
                last_refill_at=result.last_refill_at,
                refill_cap=self.policy.cap_for(identity.kind),
            )
            if updated is None:
                logger.info(f"Refill CAS conflict for {identity} (v{balance.version}), retrying")
                continue

            if result.added:
                self.transactions.record(
                    identity,
                    amount=result.added,
                    reason=TransactionReasonEnum.REFILL,
                    balance_after=updated.current_stars,
                    description=f"Auto refill - {result.added} stars",
                )
            self._finish(commit)
            return updated

        raise ConcurrentUpdateError(f"Could not refresh balance for {identity}")

    def spend(
        self,
        identity: Identity,
        amount: int,
        now: datetime,
        reason: TransactionReasonEnum = TransactionReasonEnum.READING_COST,
        description: Optional[str] = None,
        *,
        commit: bool = True,
    ) -> Tuple[bool, StarBalance]:
        """
        충전 적용 후 조건부 차감

        `current_stars >= amount` 조건을 UPDATE의 WHERE에 두어 동시 차감에서도
        음수 잔액이 될 수 없습니다. 상한 이상에서 상한 미만으로 내려가는 순간
        충전 시계를 now로 재시작합니다.

        Returns:
            (ok, balance): 실패 시 갱신만 된(차감 전) 잔액
        """
        balance = self.refresh(identity, now, commit=False)
        if balance.is_retired:
            self._finish(commit)
            return False, balance

        current = self.model_class.current_stars
        cap = self.model_class.refill_cap
        updated = self._execute_update(
            identity,
            current >= amount,
            self.model_class.merged_into_account_id.is_(None),
            current_stars=current - amount,
            last_refill_at=case(
                (and_(current >= cap, current - amount < cap), now),
                else_=self.model_class.last_refill_at,
            ),
        )

        if updated is None:
            self._finish(commit)
            return False, self.find(identity) or balance

        self.transactions.record(
            identity,
            amount=-amount,
            reason=reason,
            balance_after=updated.current_stars,
            description=description or f"Spent {amount} stars",
        )
        self._finish(commit)
        return True, updated

    def add(
        self,
        identity: Identity,
        amount: int,
        now: datetime,
        reason: TransactionReasonEnum = TransactionReasonEnum.MANUAL_ADD,
        description: Optional[str] = None,
        *,
        commit: bool = True,
    ) -> StarBalance:
        """
        서버 측 원자적 증가 - refill_cap과 무관 (보너스는 상한 초과 가능)

        밀린 충전분을 먼저 반영한 뒤 증가시킵니다. 계정으로 병합된 디바이스에 대한
        적립은 병합 대상 계정으로 전달됩니다.
        """
        balance = self.refresh(identity, now, commit=False)
        if balance.is_retired:
            logger.info(f"Redirecting credit for retired {identity} to account {balance.merged_into_account_id}")
            identity = Identity.account(balance.merged_into_account_id)
            self.refresh(identity, now, commit=False)

        updated = self._execute_update(
            identity,
            current_stars=self.model_class.current_stars + amount,
        )
        if updated is None:
            raise ConcurrentUpdateError(f"Balance row for {identity} disappeared during add")

        self.transactions.record(
            identity,
            amount=amount,
            reason=reason,
            balance_after=updated.current_stars,
            description=description or f"Added {amount} stars",
        )
        self._finish(commit)
        return updated

    def set_balance(
        self,
        identity: Identity,
        new_balance: int,
        expected_version: int,
        now: datetime,
        *,
        commit: bool = True,
    ) -> Tuple[bool, StarBalance]:
        """
        잔액 절대값 설정 (compare-and-swap)

        호출자가 조회한 스냅샷의 version과 현재 version이 같을 때만 적용됩니다.
        그 사이 다른 변경(충전 포함)이 있었다면 ok=False와 최신 잔액을 반환합니다.
        """
        snapshot = self.refresh(identity, now, commit=False)
        if snapshot.version != expected_version:
            self._finish(commit)
            return False, snapshot

        updated = self._execute_update(
            identity,
            self.model_class.version == expected_version,
            current_stars=new_balance,
        )
        if updated is None:
            self._finish(commit)
            return False, self.find(identity) or snapshot

        self.transactions.record(
            identity,
            amount=new_balance - snapshot.current_stars,
            reason=TransactionReasonEnum.MANUAL_SET,
            balance_after=updated.current_stars,
            description=f"Balance set to {new_balance}",
        )
        self._finish(commit)
        return True, updated

    def retire_device(
        self, device: Identity, account_id: str, now: datetime, *, commit: bool = True
    ) -> Optional[int]:
        """
        디바이스 잔액을 0으로 만들고 계정 병합 표시

        Returns:
            이전할 스타 수. 이미 병합된 디바이스면 None (멱등)
        """
        for _ in range(MAX_CAS_RETRIES):
            balance = self.find(device, for_update=True)
            if balance is None:
                # 한 번도 잔액을 만들지 않은 디바이스 - 0 스타로 retire 행만 남김
                instance = self.model_class(
                    identity_kind=device.kind.to_model(),
                    identity_id=device.id,
                    current_stars=0,
                    last_refill_at=now,
                    refill_cap=self.policy.cap_for(device.kind),
                    version=1,
                    merged_into_account_id=account_id,
                    merged_at=now,
                )
                try:
                    with self.db.begin_nested():
                        self.db.add(instance)
                except IntegrityError:
                    continue
                self._finish(commit)
                return 0

            if balance.is_retired:
                return None

            updated = self._execute_update(
                device,
                self.model_class.version == balance.version,
                self.model_class.merged_into_account_id.is_(None),
                current_stars=0,
                merged_into_account_id=account_id,
                merged_at=now,
            )
            if updated is None:
                continue

            if balance.current_stars:
                self.transactions.record(
                    device,
                    amount=-balance.current_stars,
                    reason=TransactionReasonEnum.IDENTITY_MERGE,
                    balance_after=0,
                    description=f"Merged into account {account_id}",
                )
            self._finish(commit)
            return balance.current_stars

        raise ConcurrentUpdateError(f"Could not retire device balance {device}")
