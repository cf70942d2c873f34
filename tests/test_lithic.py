"""
Tests for the Lithic client.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from solux_api.lithic import (
    LithicAPIError,
    LithicClient,
    LithicConfig,
    build_account_holder_payload,
    provider_message,
)

BASE_URL = "https://sandbox.lithic.test/v1"


def make_client(handler) -> LithicClient:
    return LithicClient(
        LithicConfig(api_key="test-key", base_url=BASE_URL),
        transport=httpx.MockTransport(handler),
    )


class TestPayloads:
    """Tests for request payload helpers."""

    def test_account_holder_payload_is_kyc_exempt(self):
        now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        payload = build_account_holder_payload(
            "Ada",
            "Lovelace",
            "ada@example.com",
            {"address1": "1 Analytical Way", "city": "Boston", "state": "MA", "postal_code": "02110", "country": "USA"},
            now=now,
        )

        assert payload["workflow"] == "KYC_EXEMPT"
        assert payload["kyc_exemption_type"] == "AUTHORIZED_USER"
        assert payload["tos_timestamp"] == "2026-01-02T03:04:05Z"
        assert payload["phone_number"] == "+10000000000"
        assert payload["address"]["city"] == "Boston"

    def test_missing_address_parts_get_placeholders(self):
        payload = build_account_holder_payload("Ada", "Lovelace", "ada@example.com", {"city": "Albany"})

        assert payload["address"] == {
            "address1": "123 Main St",
            "city": "Albany",
            "state": "NY",
            "postal_code": "10001",
            "country": "USA",
        }

    def test_provider_message_variants(self):
        assert provider_message({"message": "Bad address"}, "fallback") == "Bad address"
        assert provider_message({"error": {"message": "Nope"}}, "fallback") == "Nope"
        assert provider_message({"error": "Failed"}, "fallback") == "Failed"
        assert provider_message({"debugging_request_id": "x"}, "fallback") == "fallback"
        assert provider_message(None, "fallback") == "fallback"


class TestClient:
    """Tests for LithicClient requests."""

    @pytest.mark.asyncio
    async def test_create_card_sends_key_and_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"token": "card_1", "last_four": "4242"})

        client = make_client(handler)
        try:
            card = await client.create_card("acct_1", spend_limit=1_000_000, memo="Solux Virtual Card")
        finally:
            await client.close()

        assert card["token"] == "card_1"
        assert seen["path"] == "/v1/cards"
        assert seen["auth"] == "test-key"
        assert seen["body"] == {
            "account_token": "acct_1",
            "type": "VIRTUAL",
            "spend_limit": 1_000_000,
            "spend_limit_duration": "MONTHLY",
            "memo": "Solux Virtual Card",
        }

    @pytest.mark.asyncio
    async def test_simulate_authorization(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/simulate/authorize"
            assert json.loads(request.content) == {"card_token": "card_1", "amount": 1999, "descriptor": "Starbucks"}
            return httpx.Response(200, json={"token": "txn_1"})

        client = make_client(handler)
        try:
            result = await client.simulate_authorization("card_1", 1999, "Starbucks")
        finally:
            await client.close()

        assert result == {"token": "txn_1"}

    @pytest.mark.asyncio
    async def test_error_response_raises_with_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "Invalid address", "debugging_request_id": "req_9"})

        client = make_client(handler)
        try:
            with pytest.raises(LithicAPIError) as exc_info:
                await client.create_account_holder("Ada", "Lovelace", "ada@example.com")
        finally:
            await client.close()

        assert exc_info.value.status_code == 400
        assert exc_info.value.payload["debugging_request_id"] == "req_9"
        assert exc_info.value.message == "Invalid address"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        client = make_client(handler)
        try:
            with pytest.raises(LithicAPIError) as exc_info:
                await client.request("POST", "/cards", {})
        finally:
            await client.close()

        assert exc_info.value.status_code == 502
        assert exc_info.value.payload == {"error": "Bad Gateway"}

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        try:
            with pytest.raises(LithicAPIError) as exc_info:
                await client.request("POST", "/cards", {})
        finally:
            await client.close()

        assert exc_info.value.status_code is None
        assert exc_info.value.payload is None
