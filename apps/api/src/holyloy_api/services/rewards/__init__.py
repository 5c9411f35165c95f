"""Global Number allocation and the cascading reward engines."""

from .allocator import AssignmentResult, GlobalNumberAllocator
from .bonuses import InfinityRewardHook, ShoppingVoucherHook, register_default_bonus_hooks
from .cascade import RewardCascade, run_cascade
from .errors import (
    ConflictRetryableError,
    DuplicateIgnoredError,
    InsufficientBalanceError,
    InvariantViolationError,
    NotFoundError,
    RewardEngineError,
)
from .events import GlobalNumberIssued, RewardEventBus, RippleCredited, StepUpCredited
from .hooks import ThresholdHookContext, ThresholdHookDispatcher, get_threshold_dispatcher
from .ledger import TrackReconciliation, WalletLedgerService
from .ripple import RippleRewardEngine, ripple_amount_for
from .stepup import StepUpRewardEngine, StepUpTier
from .stores import AccountStore, ReferralStore

__all__ = [
    "AccountStore",
    "AssignmentResult",
    "ConflictRetryableError",
    "DuplicateIgnoredError",
    "GlobalNumberAllocator",
    "GlobalNumberIssued",
    "InfinityRewardHook",
    "InsufficientBalanceError",
    "InvariantViolationError",
    "NotFoundError",
    "ReferralStore",
    "RewardCascade",
    "RewardEngineError",
    "RewardEventBus",
    "RippleCredited",
    "RippleRewardEngine",
    "ShoppingVoucherHook",
    "StepUpCredited",
    "StepUpRewardEngine",
    "StepUpTier",
    "ThresholdHookContext",
    "ThresholdHookDispatcher",
    "TrackReconciliation",
    "WalletLedgerService",
    "get_threshold_dispatcher",
    "register_default_bonus_hooks",
    "ripple_amount_for",
    "run_cascade",
]
