# Repository layer - Data access with Pydantic responses

from .base import BaseRepository
from .star_balance_repository import StarBalanceRepository
from .star_transaction_repository import StarTransactionRepository
from .share_award_repository import ShareAwardRepository
from .referral_repository import ReferralRepository

__all__ = [
    "BaseRepository",
    "StarBalanceRepository",
    "StarTransactionRepository",
    "ShareAwardRepository",
    "ReferralRepository",
]
