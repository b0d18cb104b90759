from .identity import Identity, IdentityKind
from .stars import StarBalance, StarBalanceResponse, StarSpendResponse
from .share import ShareAwardOutcome, ShareAwardResponse
from .referral import ReferralOutcome, ReferralRedeemResponse
from .merge import MergeResponse
