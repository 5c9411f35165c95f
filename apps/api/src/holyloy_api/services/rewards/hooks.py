"""Threshold hooks: external subscribers keyed on exact reward amounts."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Awaitable, Callable, Literal
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from holyloy_api.observability.rewards import get_reward_store


RewardSource = Literal["step_up", "ripple"]


@dataclass(frozen=True, slots=True)
class ThresholdHookContext:
    """Everything a hook needs to react to one reward credit."""

    session: AsyncSession
    customer_id: UUID
    amount: int
    source: RewardSource
    reference_id: UUID | None = None


ThresholdHandler = Callable[[ThresholdHookContext], Awaitable[None]]


class ThresholdHookDispatcher:
    """Registry of handlers fired when a reward credit equals a threshold."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._handlers: dict[int, list[ThresholdHandler]] = defaultdict(list)

    def register(self, threshold: int, handler: ThresholdHandler) -> None:
        if threshold <= 0:
            raise ValueError("Hook thresholds must be positive")
        with self._lock:
            if handler not in self._handlers[threshold]:
                self._handlers[threshold].append(handler)
        logger.debug("Registered threshold hook", threshold=threshold, handler=getattr(handler, "__name__", repr(handler)))

    def unregister(self, threshold: int, handler: ThresholdHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(threshold, [])
            if handler in handlers:
                handlers.remove(handler)

    def thresholds(self) -> list[int]:
        with self._lock:
            return sorted(threshold for threshold, handlers in self._handlers.items() if handlers)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    async def dispatch(
        self,
        session: AsyncSession,
        customer_id: UUID,
        amount: int,
        *,
        source: RewardSource,
        reference_id: UUID | None = None,
    ) -> int:
        """Run every handler registered for ``amount``; returns how many ran."""

        with self._lock:
            handlers = list(self._handlers.get(int(amount), ()))
        if not handlers:
            return 0

        context = ThresholdHookContext(
            session=session,
            customer_id=customer_id,
            amount=int(amount),
            source=source,
            reference_id=reference_id,
        )
        for handler in handlers:
            await handler(context)
            get_reward_store().record_hook_dispatch(int(amount))
        logger.info(
            "Dispatched threshold hooks",
            customer_id=str(customer_id),
            amount=int(amount),
            source=source,
            handlers=len(handlers),
        )
        return len(handlers)


_DISPATCHER = ThresholdHookDispatcher()


def get_threshold_dispatcher() -> ThresholdHookDispatcher:
    return _DISPATCHER


__all__ = [
    "RewardSource",
    "ThresholdHandler",
    "ThresholdHookContext",
    "ThresholdHookDispatcher",
    "get_threshold_dispatcher",
]
