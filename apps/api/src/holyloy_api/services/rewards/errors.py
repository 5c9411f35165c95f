"""Failure taxonomy for the reward cascade."""

from __future__ import annotations


class RewardEngineError(RuntimeError):
    """Base exception for Global Number and reward cascade failures."""


class NotFoundError(RewardEngineError):
    """Unknown or inactive customer, wallet or Global Number. Not retried."""


class ConflictRetryableError(RewardEngineError):
    """A counter increment or ledger write lost a race; retry the whole operation."""


class DuplicateIgnoredError(RewardEngineError):
    """A reward record was rejected by its unique key; treated as success."""

    def __init__(self, kind: str, key: tuple) -> None:
        super().__init__(f"{kind} already recorded for key {key!r}")
        self.kind = kind
        self.key = key


class InvariantViolationError(RewardEngineError):
    """A hard policy invariant was broken. Fatal; never corrected silently."""


class InsufficientBalanceError(RewardEngineError):
    """A debit or transfer exceeds the available track balance."""

    def __init__(self, track: str, requested, available) -> None:
        super().__init__(f"Insufficient {track} balance: requested {requested}, available {available}")
        self.track = track
        self.requested = requested
        self.available = available
