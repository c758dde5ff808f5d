"""Tests for the RevenueCat client (httpx.MockTransport, no network)."""

from datetime import datetime, timezone

import httpx
import pytest

from memoir_billing.config import RevenueCatSettings
from memoir_billing.services.billing import (
    BillingAPIError,
    BillingConfigurationError,
    RevenueCatClient,
    parse_timestamp,
)


NOW = datetime(2025, 2, 15, tzinfo=timezone.utc)

SUBSCRIBER = {
    "subscriber": {
        "original_app_user_id": "user-1",
        "entitlements": {
            "image_generation": {
                "expires_date": "2025-03-01T12:00:00Z",
                "product_identifier": "plan.monthly",
                "purchase_date": "2025-02-01T12:00:00Z",
            },
            "legacy": {
                "expires_date": "2024-12-01T00:00:00Z",
                "product_identifier": "plan.yearly",
                "purchase_date": "2023-12-01T00:00:00Z",
            },
            "lifetime": {
                "expires_date": None,
                "product_identifier": "plan.lifetime",
                "purchase_date": "2024-06-01T00:00:00Z",
            },
        },
    }
}


def make_client(handler, api_key="sk_test"):
    settings = RevenueCatSettings(api_key=api_key, base_url="https://rc.test/v1")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RevenueCatClient(settings=settings, http_client=http_client)


class TestParseTimestamp:

    def test_zulu_suffix(self):
        assert parse_timestamp("2025-02-01T12:00:00Z") == datetime(
            2025, 2, 1, 12, 0, tzinfo=timezone.utc
        )

    def test_empty(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None


class TestParseEntitlements:

    def test_active_flags_and_dates(self):
        events = RevenueCatClient.parse_entitlements(SUBSCRIBER["subscriber"], now=NOW)
        by_product = {e.product_id: e for e in events}

        monthly = by_product["plan.monthly"]
        assert monthly.is_active is True
        assert monthly.latest_purchase_date == datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)
        assert monthly.expiration_date == datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

        assert by_product["plan.yearly"].is_active is False
        assert by_product["plan.lifetime"].is_active is True
        assert by_product["plan.lifetime"].expiration_date is None

    def test_entries_without_product_are_skipped(self):
        events = RevenueCatClient.parse_entitlements(
            {"entitlements": {"broken": {"expires_date": None}, "odd": "value"}}, now=NOW
        )
        assert events == []

    def test_no_entitlements(self):
        assert RevenueCatClient.parse_entitlements({}, now=NOW) == []


class TestRevenueCatClient:

    async def test_get_subscriber_sends_auth_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=SUBSCRIBER)

        client = make_client(handler)
        subscriber = await client.get_subscriber("user-1")

        assert seen["url"] == "https://rc.test/v1/subscribers/user-1"
        assert seen["auth"] == "Bearer sk_test"
        assert subscriber["original_app_user_id"] == "user-1"

    async def test_get_entitlement_events(self):
        client = make_client(lambda request: httpx.Response(200, json=SUBSCRIBER))
        events = await client.get_entitlement_events("user-1")
        assert {e.product_id for e in events} == {"plan.monthly", "plan.yearly", "plan.lifetime"}

    async def test_non_200_raises_api_error(self):
        client = make_client(lambda request: httpx.Response(404, text="not found"))
        with pytest.raises(BillingAPIError) as exc_info:
            await client.get_subscriber("user-1")
        assert exc_info.value.status_code == 404

    async def test_malformed_body_raises_api_error(self):
        client = make_client(lambda request: httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(BillingAPIError):
            await client.get_subscriber("user-1")

    async def test_missing_api_key(self):
        client = make_client(lambda request: httpx.Response(200, json=SUBSCRIBER), api_key=None)
        with pytest.raises(BillingConfigurationError):
            await client.get_subscriber("user-1")
