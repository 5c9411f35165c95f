from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from holyloy_api.core.settings import settings
from holyloy_api.observability.rewards import get_reward_store


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_points_endpoint_issues_numbers_and_step_up(app_with_db, create_customers) -> None:
    app, session_factory = app_with_db
    customers = await create_customers(session_factory, 5)

    async with _client(app) as client:
        first = await client.post(f"/api/v1/rewards/customers/{customers[0]}/points", json={"points": 1600})
        assert first.status_code == 200
        assert first.json() == {
            "customerId": str(customers[0]),
            "numbersIssued": [1],
            "remainingBalance": 100,
        }

        for customer_id in customers[1:]:
            response = await client.post(f"/api/v1/rewards/customers/{customer_id}/points", json={"points": 1500})
            assert response.status_code == 200

        numbers = await client.get(f"/api/v1/rewards/customers/{customers[4]}/global-numbers")
        assert numbers.json()["globalNumbers"] == [5]

        rewards = await client.get(f"/api/v1/rewards/customers/{customers[0]}/step-up-rewards")
        payload = rewards.json()
        assert payload["totalEarned"] == 500
        assert payload["rewards"][0]["description"] == "StepUp Reward: Global #1 (1x5=5)"

        wallet = await client.get(f"/api/v1/rewards/customers/{customers[0]}/wallet")
        assert wallet.status_code == 200
        assert wallet.json()["tracks"]["income"]["balance"] == 500

        ledger = await client.get(
            f"/api/v1/rewards/customers/{customers[0]}/wallet/ledger",
            params={"track": "income"},
        )
        entries = ledger.json()
        assert len(entries) == 1
        assert entries[0]["direction"] == "credit"
        assert entries[0]["balanceAfter"] == 500
        assert entries[0]["metadata"]["source"] == "step_up"


@pytest.mark.asyncio
async def test_points_endpoint_reports_errors(app_with_db, create_customers) -> None:
    app, session_factory = app_with_db
    (customer_id,) = await create_customers(session_factory, 1)

    async with _client(app) as client:
        missing = await client.post(f"/api/v1/rewards/customers/{uuid4()}/points", json={"points": 10})
        negative = await client.post(f"/api/v1/rewards/customers/{customer_id}/points", json={"points": -1})
        no_wallet = await client.get(f"/api/v1/rewards/customers/{customer_id}/wallet")
        bad_track = await client.get(
            f"/api/v1/rewards/customers/{customer_id}/wallet/ledger",
            params={"track": "crypto"},
        )

    assert missing.status_code == 404
    assert negative.status_code == 422
    assert no_wallet.status_code == 404
    assert bad_track.status_code == 400


@pytest.mark.asyncio
async def test_transfer_endpoint_applies_service_charge(app_with_db, create_customers) -> None:
    app, session_factory = app_with_db
    customers = await create_customers(session_factory, 5)

    async with _client(app) as client:
        for customer_id in customers:
            await client.post(f"/api/v1/rewards/customers/{customer_id}/points", json={"points": 1500})

        transfer = await client.post(
            f"/api/v1/rewards/customers/{customers[0]}/wallet/transfers",
            json={"fromTrack": "income", "toTrack": "commerce", "amount": 400},
        )
        assert transfer.status_code == 201
        body = transfer.json()
        assert body["serviceCharge"] == 50
        assert body["netAmount"] == 350

        overdraw = await client.post(
            f"/api/v1/rewards/customers/{customers[0]}/wallet/transfers",
            json={"fromTrack": "income", "toTrack": "commerce", "amount": 400},
        )
        assert overdraw.status_code == 400

        same_track = await client.post(
            f"/api/v1/rewards/customers/{customers[0]}/wallet/transfers",
            json={"fromTrack": "commerce", "toTrack": "commerce", "amount": 10},
        )
        assert same_track.status_code == 400

        wallet = (await client.get(f"/api/v1/rewards/customers/{customers[0]}/wallet")).json()
        assert wallet["tracks"]["income"]["balance"] == 100
        assert wallet["tracks"]["commerce"]["balance"] == 350


@pytest.mark.asyncio
async def test_ripple_rewards_endpoint(app_with_db, create_customers) -> None:
    from holyloy_api.services.rewards import ReferralStore

    app, session_factory = app_with_db
    referrer, referred, *others = await create_customers(session_factory, 6)
    async with session_factory() as session:
        await ReferralStore(session).create(referrer, referred)
        await session.commit()

    async with _client(app) as client:
        await client.post(f"/api/v1/rewards/customers/{referred}/points", json={"points": 1500})
        for customer_id in others:
            await client.post(f"/api/v1/rewards/customers/{customer_id}/points", json={"points": 1500})

        response = await client.get(f"/api/v1/rewards/customers/{referrer}/ripple-rewards")

    assert response.status_code == 200
    rewards = response.json()["rewards"]
    assert [(r["stepUpRewardAmount"], r["rippleRewardAmount"]) for r in rewards] == [(500, 50)]


@pytest.mark.asyncio
async def test_replay_and_observability_require_key(app_with_db, create_customers) -> None:
    app, session_factory = app_with_db
    customers = await create_customers(session_factory, 5)

    previous_key = settings.rewards_api_key
    settings.rewards_api_key = "rewards-key"
    try:
        async with _client(app) as client:
            for customer_id in customers:
                await client.post(f"/api/v1/rewards/customers/{customer_id}/points", json={"points": 1500})

            unauthorized = await client.post("/api/v1/rewards/global-numbers/5/replay")
            assert unauthorized.status_code == 401

            headers = {"X-API-Key": "rewards-key"}
            replay = await client.post("/api/v1/rewards/global-numbers/5/replay", headers=headers)
            assert replay.status_code == 200
            assert replay.json() == {"globalNumber": 5, "awarded": []}

            unissued = await client.post("/api/v1/rewards/global-numbers/99/replay", headers=headers)
            assert unissued.status_code == 404

            snapshot = await client.get("/api/v1/rewards/observability", headers=headers)
            assert snapshot.status_code == 200
            body = snapshot.json()
            assert body["global_numbers"]["issued"] == 5
            assert body["step_up"]["awarded"] == 1
            assert body["step_up"]["duplicates_ignored"] == 1
    finally:
        settings.rewards_api_key = previous_key
        get_reward_store().reset()
