#!/usr/bin/env python3
"""Replay StepUp evaluation for a range of issued Global Numbers.

Intended usage: operator catch-up after an outage or a cascade that was
interrupted before its StepUp stage ran. Awards are keyed on storage-level
unique constraints, so re-running the same range never pays twice.

Example:
    python tooling/scripts/replay_step_up_rewards.py --start 1 --end 5000
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay StepUp rewards for issued Global Numbers")
    parser.add_argument("--start", type=int, default=1, help="First Global Number to evaluate.")
    parser.add_argument(
        "--end",
        type=int,
        default=None,
        help="Last Global Number to evaluate (defaults to the last issued number).",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=500,
        help="Numbers evaluated per transaction.",
    )
    return parser.parse_args()


async def _run(
    start: int,
    end: int | None,
    batch_size: int,
    *,
    session_factory=None,
    hooks=None,
) -> tuple[int, int]:
    """Replay ``[start, end]`` in batches; returns (numbers evaluated, records awarded)."""

    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from holyloy_api.core.settings import settings  # type: ignore import-position
    from holyloy_api.db.session import async_session  # type: ignore import-position
    from holyloy_api.services.rewards import (  # type: ignore import-position
        GlobalNumberAllocator,
        RewardCascade,
        ThresholdHookDispatcher,
        register_default_bonus_hooks,
        run_cascade,
    )

    session_factory = session_factory or async_session
    if hooks is None:
        # Outside the API lifespan nothing registers the bonus hooks.
        hooks = ThresholdHookDispatcher()
        if settings.reward_bonus_hooks_enabled:
            register_default_bonus_hooks(hooks)
    logger.info("Replay threshold hooks", thresholds=hooks.thresholds())

    if end is None:
        async with session_factory() as session:
            end = await GlobalNumberAllocator(session).current_number()
    if end < start:
        logger.info("Nothing to replay", start=start, end=end)
        return 0, 0

    evaluated = 0
    awarded = 0
    batch_start = start
    while batch_start <= end:
        batch_end = min(batch_start + batch_size - 1, end)

        async def operation(cascade: RewardCascade, lower: int = batch_start, upper: int = batch_end):
            numbers = await cascade.accounts.list_assigned_numbers(lower, upper)
            return numbers, await cascade.step_up.replay_range(lower, upper)

        numbers, records = await run_cascade(
            session_factory,
            operation,
            operation_name="step_up_replay",
            hooks=hooks,
        )
        evaluated += len(numbers)
        awarded += len(records)
        logger.info(
            "Replayed StepUp batch",
            start=batch_start,
            end=batch_end,
            evaluated=len(numbers),
            awarded=len(records),
        )
        batch_start = batch_end + 1

    return evaluated, awarded


def main() -> int:
    args = parse_args()
    if args.start <= 0 or args.batch_size <= 0:
        logger.error("--start and --batch-size must be positive")
        return 2
    evaluated, awarded = asyncio.run(_run(args.start, args.end, args.batch_size))
    logger.success("StepUp replay completed", evaluated=evaluated, awarded=awarded)
    return 0


if __name__ == "__main__":
    sys.exit(main())
