from decimal import Decimal

import pytest

from holyloy_api.services.rewards import (
    InvariantViolationError,
    NotFoundError,
    ReferralStore,
    RippleRewardEngine,
    WalletLedgerService,
    ripple_amount_for,
    run_cascade,
)


async def _refer(session_factory, referrer_id, referred_id) -> None:
    async with session_factory() as session:
        await ReferralStore(session).create(referrer_id, referred_id)
        await session.commit()


async def _income(session, customer_id) -> Decimal:
    try:
        wallet = await WalletLedgerService(session).get_wallet(customer_id)
    except NotFoundError:
        return Decimal("0")
    return Decimal(str(wallet.income_balance))


@pytest.mark.parametrize(
    ("step_up_amount", "expected"),
    [
        (499, None),
        (500, 50),
        (1499, 50),
        (1500, 100),
        (2999, 100),
        (3000, 150),
        (29999, 150),
        (30000, 700),
        (159999, 700),
        (160000, 1500),
        (1_000_000, 1500),
    ],
)
def test_ripple_bands(step_up_amount, expected) -> None:
    assert ripple_amount_for(step_up_amount) == expected


@pytest.mark.asyncio
async def test_referred_step_up_pays_referrer(session_factory, create_customers) -> None:
    referrer, referred, *others = await create_customers(session_factory, 6)
    await _refer(session_factory, referrer, referred)

    await run_cascade(session_factory, lambda cascade: cascade.on_points_earned(referred, 1500))
    for customer_id in others:
        await run_cascade(session_factory, lambda cascade, cid=customer_id: cascade.on_points_earned(cid, 1500))

    async with session_factory() as session:
        assert await _income(session, referred) == Decimal("500")
        assert await _income(session, referrer) == Decimal("50")

        records = await RippleRewardEngine(session).get_ripple_rewards(referrer)
        assert len(records) == 1
        assert records[0].referred_id == referred
        assert records[0].step_up_reward_amount == 500
        assert records[0].ripple_reward_amount == 50


@pytest.mark.asyncio
async def test_ripple_is_single_hop(session_factory, create_customers) -> None:
    grandparent, parent, child, *others = await create_customers(session_factory, 7)
    await _refer(session_factory, grandparent, parent)
    await _refer(session_factory, parent, child)

    await run_cascade(session_factory, lambda cascade: cascade.on_points_earned(child, 1500))
    for customer_id in others:
        await run_cascade(session_factory, lambda cascade, cid=customer_id: cascade.on_points_earned(cid, 1500))

    async with session_factory() as session:
        assert await _income(session, child) == Decimal("500")
        assert await _income(session, parent) == Decimal("50")
        assert await _income(session, grandparent) == Decimal("0")


@pytest.mark.asyncio
async def test_duplicate_and_small_credits_are_ignored(session_factory, create_customers) -> None:
    referrer, referred, loner = await create_customers(session_factory, 3)
    await _refer(session_factory, referrer, referred)

    async with session_factory() as session:
        engine = RippleRewardEngine(session)
        first = await engine.on_step_up_credited(referred, 500)
        second = await engine.on_step_up_credited(referred, 500)
        below_bands = await engine.on_step_up_credited(referred, 100)
        no_referrer = await engine.on_step_up_credited(loner, 500)
        await session.commit()

        assert first is not None
        assert second is None
        assert below_bands is None
        assert no_referrer is None
        assert await _income(session, referrer) == Decimal("50")

        stats = await engine.ripple_statistics()
        assert stats == {"total_rewards": 1, "total_points": 50, "unique_referrers": 1}


@pytest.mark.asyncio
async def test_referral_rules(session_factory, create_customers) -> None:
    first, second, third = await create_customers(session_factory, 3)

    async with session_factory() as session:
        store = ReferralStore(session)
        with pytest.raises(InvariantViolationError):
            await store.create(first, first)

        referral = await store.create(first, second)
        again = await store.create(first, second)
        assert again.id == referral.id

        with pytest.raises(InvariantViolationError):
            await store.create(third, second)

        assert (await store.find_by_referred(second)).referrer_id == first
        assert await store.find_by_referred(first) is None
        assert [r.referred_id for r in await store.list_by_referrer(first)] == [second]
