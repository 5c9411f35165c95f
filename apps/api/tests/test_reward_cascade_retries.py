import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Update

from holyloy_api.models.customer import GlobalNumberCounter
from holyloy_api.observability.rewards import get_reward_store
from holyloy_api.services.rewards import (
    AccountStore,
    ConflictRetryableError,
    GlobalNumberAllocator,
    run_cascade,
)


def _locked() -> OperationalError:
    return OperationalError("UPDATE global_number_counters", {}, Exception("database is locked"))


def _is_counter_increment(statement) -> bool:
    return isinstance(statement, Update) and statement.table is GlobalNumberCounter.__table__


async def _committed_state(session_factory, customer_id) -> tuple[int, list[int]]:
    async with session_factory() as session:
        accounts = AccountStore(session)
        return await accounts.get_balance(customer_id), await accounts.list_global_numbers(customer_id)


@pytest.mark.asyncio
async def test_run_cascade_retries_conflict_and_commits_second_attempt(session_factory, create_customers) -> None:
    (customer_id,) = await create_customers(session_factory, 1)
    attempts: list[int] = []

    async def earn(cascade):
        attempts.append(len(attempts) + 1)
        result = await cascade.on_points_earned(customer_id, 1600)
        if len(attempts) == 1:
            raise ConflictRetryableError("counter row busy")
        return result

    result = await run_cascade(session_factory, earn, max_attempts=3, backoff_seconds=0, operation_name="earn_points")

    assert attempts == [1, 2]
    assert result.numbers_issued == [1]
    assert result.remaining_balance == 100

    conflicts = get_reward_store().snapshot().conflicts
    assert conflicts["retried"] == 1
    assert conflicts["operation:earn_points"] == 1

    assert await _committed_state(session_factory, customer_id) == (100, [1])


@pytest.mark.asyncio
@pytest.mark.parametrize("error_factory", [lambda: ConflictRetryableError("counter row busy"), _locked])
async def test_run_cascade_gives_up_after_max_attempts(session_factory, create_customers, error_factory) -> None:
    (customer_id,) = await create_customers(session_factory, 1)
    attempts: list[int] = []

    async def earn(cascade):
        attempts.append(len(attempts) + 1)
        await cascade.on_points_earned(customer_id, 3000)
        raise error_factory()

    with pytest.raises(ConflictRetryableError):
        await run_cascade(session_factory, earn, max_attempts=3, backoff_seconds=0, operation_name="earn_points")

    assert attempts == [1, 2, 3]
    assert get_reward_store().snapshot().conflicts["retried"] == 2
    assert await _committed_state(session_factory, customer_id) == (0, [])


@pytest.mark.asyncio
async def test_counter_increment_failure_is_retryable(session_factory, create_customers, monkeypatch) -> None:
    (customer_id,) = await create_customers(session_factory, 1)

    async with session_factory() as session:
        execute = session.execute

        async def locked_execute(statement, *args, **kwargs):
            if _is_counter_increment(statement):
                raise _locked()
            return await execute(statement, *args, **kwargs)

        monkeypatch.setattr(session, "execute", locked_execute)

        with pytest.raises(ConflictRetryableError):
            await GlobalNumberAllocator(session).on_points_earned(customer_id, 1500)
        await session.rollback()

    assert await _committed_state(session_factory, customer_id) == (0, [])


@pytest.mark.asyncio
async def test_locked_counter_is_retried_transparently(session_factory, create_customers, monkeypatch) -> None:
    (customer_id,) = await create_customers(session_factory, 1)
    original_execute = AsyncSession.execute
    remaining_failures = [1]

    async def flaky_execute(self, statement, *args, **kwargs):
        if remaining_failures[0] and _is_counter_increment(statement):
            remaining_failures[0] -= 1
            raise _locked()
        return await original_execute(self, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "execute", flaky_execute)

    result = await run_cascade(
        session_factory,
        lambda cascade: cascade.on_points_earned(customer_id, 1500),
        max_attempts=3,
        backoff_seconds=0,
        operation_name="earn_points",
    )

    assert result.numbers_issued == [1]
    assert get_reward_store().snapshot().conflicts["retried"] == 1
    assert await _committed_state(session_factory, customer_id) == (0, [1])
