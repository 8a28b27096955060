"""Tests for the scheduler trigger endpoint."""

import pytest
from httpx import AsyncClient

from threadbot.core.datetime_utils import utc_now
from threadbot.models.recipient import Slot

pytestmark = pytest.mark.asyncio

# Matches TestSettings.cron_secret in conftest
TEST_CRON_SECRET = "test-cron-secret"


async def _due_now(recipient_factory, prompt_factory, gateway_identity: str = "555"):
    """A UTC recipient whose morning slot is right now, with content for today."""
    now = utc_now()
    recipient = await recipient_factory(
        gateway_identity=gateway_identity, morning_time=f"{now.hour:02d}:{now.minute:02d}"
    )
    await prompt_factory(recipient.account_id, now.date(), Slot.MORNING)
    return recipient


class TestCronAuth:
    """Authentication of POST /api/cron/deliver."""

    async def test_rejects_missing_credentials(self, client: AsyncClient):
        response = await client.post("/api/cron/deliver", params={"slot": "morning"})
        assert response.status_code == 401

    async def test_rejects_wrong_secret(self, client: AsyncClient):
        response = await client.post(
            "/api/cron/deliver",
            params={"slot": "morning"},
            headers={"Authorization": "Bearer wrong"},
        )
        assert response.status_code == 401

    async def test_trusted_header_must_be_exactly_one(self, client: AsyncClient):
        response = await client.post(
            "/api/cron/deliver",
            params={"slot": "morning"},
            headers={"x-vercel-cron": "true"},
        )
        assert response.status_code == 401

    async def test_accepts_bearer_secret(self, client: AsyncClient):
        response = await client.post(
            "/api/cron/deliver",
            params={"slot": "morning"},
            headers={"Authorization": f"Bearer {TEST_CRON_SECRET}"},
        )
        assert response.status_code == 200

    async def test_accepts_secret_header_and_get(self, client: AsyncClient):
        response = await client.get(
            "/api/cron/deliver",
            params={"slot": "evening"},
            headers={"X-Cron-Secret": TEST_CRON_SECRET},
        )
        assert response.status_code == 200
        assert response.json()["slot"] == "evening"

    async def test_accepts_trusted_platform_header(self, client: AsyncClient):
        response = await client.post(
            "/api/cron/deliver",
            params={"slot": "morning"},
            headers={"x-vercel-cron": "1"},
        )
        assert response.status_code == 200


class TestCronDeliver:
    """Delivery through the trigger endpoint."""

    async def test_invalid_slot_is_400(self, client: AsyncClient):
        response = await client.post(
            "/api/cron/deliver",
            params={"slot": "noon"},
            headers={"Authorization": f"Bearer {TEST_CRON_SECRET}"},
        )
        assert response.status_code == 400

    async def test_delivers_due_recipient_once(
        self, client: AsyncClient, recipient_factory, prompt_factory, gateway
    ):
        recipient = await _due_now(recipient_factory, prompt_factory)
        headers = {"Authorization": f"Bearer {TEST_CRON_SECRET}"}

        first = await client.post(
            "/api/cron/deliver", params={"slot": "MORNING"}, headers=headers
        )
        second = await client.post(
            "/api/cron/deliver", params={"slot": "morning"}, headers=headers
        )

        assert first.status_code == 200
        data = first.json()
        assert data["sent"] == 1
        assert data["results"][0]["account_id"] == recipient.account_id
        assert second.json()["sent"] == 0
        assert second.json()["results"][0]["skipped_reason"] == "already-sent"
        assert len(gateway.sent) == 1

    async def test_gateway_failure_is_reported_not_raised(
        self, client: AsyncClient, recipient_factory, prompt_factory, gateway
    ):
        await _due_now(recipient_factory, prompt_factory)
        gateway.fail = True

        response = await client.post(
            "/api/cron/deliver",
            params={"slot": "morning"},
            headers={"Authorization": f"Bearer {TEST_CRON_SECRET}"},
        )

        assert response.status_code == 200
        assert response.json()["failed"] == 1
