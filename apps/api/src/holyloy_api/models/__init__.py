"""SQLAlchemy models package."""

from .customer import (  # noqa: F401
    GLOBAL_NUMBER_COUNTER_ID,
    GLOBAL_NUMBER_THRESHOLD,
    CustomerAccount,
    GlobalNumberAssignment,
    GlobalNumberCounter,
    Referral,
)
from .rewards import (  # noqa: F401
    InfinityRewardCycle,
    RippleRewardRecord,
    ShoppingVoucher,
    StepUpRewardRecord,
)
from .wallet import (  # noqa: F401
    LedgerDirection,
    Wallet,
    WalletLedgerEntry,
    WalletTrack,
    WalletTransfer,
    WalletTransferStatus,
)
