"""Domain events passed between the cascade stages."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from uuid import UUID

from loguru import logger


@dataclass(frozen=True, slots=True)
class GlobalNumberIssued:
    number: int
    customer_id: UUID


@dataclass(frozen=True, slots=True)
class StepUpCredited:
    customer_id: UUID
    amount: int
    record_id: UUID
    recipient_global_number: int
    trigger_global_number: int
    multiplier: int


@dataclass(frozen=True, slots=True)
class RippleCredited:
    referrer_id: UUID
    referred_id: UUID
    amount: int
    record_id: UUID
    step_up_amount: int


EventHandler = Callable[[Any], Awaitable[Any]]


class RewardEventBus:
    """In-process publish/subscribe for cascade events.

    Handlers run sequentially in subscription order inside the caller's
    transaction. A failing handler aborts the publish and the error reaches
    the caller.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def handlers_for(self, event_type: type) -> list[EventHandler]:
        return list(self._handlers.get(event_type, ()))

    async def publish(self, event: Any) -> list[Any]:
        handlers = self.handlers_for(type(event))
        if not handlers:
            logger.debug("No subscribers for reward event", event_type=type(event).__name__)
            return []
        results = []
        for handler in handlers:
            results.append(await handler(event))
        return results


__all__ = [
    "EventHandler",
    "GlobalNumberIssued",
    "RewardEventBus",
    "RippleCredited",
    "StepUpCredited",
]
