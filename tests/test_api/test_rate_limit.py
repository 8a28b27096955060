"""Tests for HTTP rate limiting."""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


class TestRateLimiting:
    """Tests for the slowapi limits on issuance and send-now."""

    async def test_link_code_limited_to_five_per_minute(self, client: AsyncClient, auth_headers):
        for i in range(5):
            response = await client.post(
                "/api/link/code", json={"account_id": f"acct-{i}"}, headers=auth_headers
            )
            assert response.status_code == 200

        response = await client.post(
            "/api/link/code", json={"account_id": "acct-6"}, headers=auth_headers
        )

        assert response.status_code == 429
        assert "too many requests" in response.json()["detail"].lower()

    async def test_send_now_limited_per_account(
        self, client: AsyncClient, auth_headers, recipient_factory
    ):
        await recipient_factory(account_id="acct-1", gateway_identity=None)
        await recipient_factory(account_id="acct-2", gateway_identity=None)
        url = "/api/recipients/{}/send-now"

        for _ in range(10):
            response = await client.post(
                url.format("acct-1"), params={"slot": "morning"}, headers=auth_headers
            )
            assert response.status_code == 200

        limited = await client.post(
            url.format("acct-1"), params={"slot": "morning"}, headers=auth_headers
        )
        other = await client.post(
            url.format("acct-2"), params={"slot": "morning"}, headers=auth_headers
        )

        assert limited.status_code == 429
        assert other.status_code == 200
