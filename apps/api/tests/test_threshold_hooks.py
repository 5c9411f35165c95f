from uuid import uuid4

import pytest
from sqlalchemy import select

from holyloy_api.models.customer import GlobalNumberAssignment
from holyloy_api.services.rewards import (
    ReferralStore,
    ThresholdHookDispatcher,
    get_threshold_dispatcher,
    run_cascade,
)


@pytest.mark.asyncio
async def test_dispatch_matches_exact_amount_only() -> None:
    dispatcher = ThresholdHookDispatcher()
    calls = []

    async def on_500(context):
        calls.append((context.amount, context.source))

    dispatcher.register(500, on_500)
    dispatcher.register(500, on_500)

    assert await dispatcher.dispatch(None, uuid4(), 500, source="step_up") == 1
    assert await dispatcher.dispatch(None, uuid4(), 1500, source="step_up") == 0
    assert calls == [(500, "step_up")]

    dispatcher.unregister(500, on_500)
    assert dispatcher.thresholds() == []
    assert await dispatcher.dispatch(None, uuid4(), 500, source="step_up") == 0


def test_register_rejects_non_positive_threshold() -> None:
    dispatcher = ThresholdHookDispatcher()

    async def handler(context):
        return None

    with pytest.raises(ValueError):
        dispatcher.register(0, handler)


@pytest.mark.asyncio
async def test_cascade_runs_ripple_before_step_up_hooks(session_factory, create_customers) -> None:
    referrer, referred, *others = await create_customers(session_factory, 6)
    async with session_factory() as session:
        await ReferralStore(session).create(referrer, referred)
        await session.commit()

    calls = []

    async def record(context):
        calls.append((context.source, context.customer_id, context.amount))

    dispatcher = get_threshold_dispatcher()
    dispatcher.register(500, record)
    dispatcher.register(50, record)

    await run_cascade(session_factory, lambda cascade: cascade.on_points_earned(referred, 1500))
    for customer_id in others:
        await run_cascade(session_factory, lambda cascade, cid=customer_id: cascade.on_points_earned(cid, 1500))

    assert calls == [("ripple", referrer, 50), ("step_up", referred, 500)]


@pytest.mark.asyncio
async def test_failing_hook_rolls_back_the_issuance(session_factory, create_customers) -> None:
    customers = await create_customers(session_factory, 5)

    async def explode(context):
        raise RuntimeError("voucher service down")

    get_threshold_dispatcher().register(500, explode)

    for customer_id in customers[:4]:
        await run_cascade(session_factory, lambda cascade, cid=customer_id: cascade.on_points_earned(cid, 1500))

    with pytest.raises(RuntimeError):
        await run_cascade(session_factory, lambda cascade: cascade.on_points_earned(customers[4], 1500))

    async with session_factory() as session:
        numbers = (await session.execute(select(GlobalNumberAssignment.number))).scalars().all()
        assert sorted(numbers) == [1, 2, 3, 4]
