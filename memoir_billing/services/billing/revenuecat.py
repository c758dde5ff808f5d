"""
Billing Platform Client using RevenueCat

DESIGN DECISION: RevenueCat is the system of record for entitlement.
This client only READS subscriber state and converts it into
EntitlementEvent records; it never mutates anything on the platform.

This service handles:
1. Fetching subscriber info over the REST API
2. Retrying transient transport failures
3. Converting the "entitlements" block into EntitlementEvent models

Network calls happen here and nowhere else. The allowance tracker only
ever sees the parsed results.
"""

from datetime import datetime
from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from memoir_billing.config import RevenueCatSettings, get_settings
from memoir_billing.models.subscription import EntitlementEvent, ensure_utc, utcnow


class BillingError(Exception):
    """Base exception for billing platform errors."""
    pass


class BillingConfigurationError(BillingError):
    """The billing client is missing required configuration."""
    pass


class BillingAPIError(BillingError):
    """The billing platform returned an unexpected response."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by RevenueCat ('...Z' suffix allowed)."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


class RevenueCatClient:
    """
    Thin async client for the RevenueCat REST API.

    An httpx.AsyncClient may be injected (tests use a MockTransport);
    otherwise one is created per request.
    """

    def __init__(
        self,
        settings: Optional[RevenueCatSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().revenuecat
        self._http_client = http_client

    def _get_headers(self) -> dict[str, str]:
        if not self._settings.api_key:
            raise BillingConfigurationError("REVENUECAT_API_KEY is not configured")
        return {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
        }

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _get(self, path: str) -> httpx.Response:
        url = f"{self._settings.base_url.rstrip('/')}/{path.lstrip('/')}"
        headers = self._get_headers()
        if self._http_client is not None:
            return await self._http_client.get(
                url, headers=headers, timeout=self._settings.timeout_seconds
            )
        async with httpx.AsyncClient() as client:
            return await client.get(
                url, headers=headers, timeout=self._settings.timeout_seconds
            )

    async def get_subscriber(self, app_user_id: str) -> dict[str, Any]:
        """
        Fetch subscriber information.

        Returns:
            The "subscriber" object from the response

        Raises:
            BillingConfigurationError: If no API key is configured
            BillingAPIError: On a non-200 response or malformed body
            httpx.TransportError: If the network keeps failing after retries
        """
        response = await self._get(f"/subscribers/{app_user_id}")

        if response.status_code != 200:
            raise BillingAPIError(
                response.status_code,
                f"RevenueCat returned {response.status_code}: {response.text[:200]}",
            )

        try:
            subscriber = response.json()["subscriber"]
        except (ValueError, KeyError) as e:
            raise BillingAPIError(response.status_code, f"Malformed subscriber payload: {e}")

        if not isinstance(subscriber, dict):
            raise BillingAPIError(response.status_code, "Malformed subscriber payload")
        return subscriber

    @staticmethod
    def parse_entitlements(
        subscriber: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> list[EntitlementEvent]:
        """
        Convert a subscriber's entitlements block into EntitlementEvents.

        An entitlement is active if it has no expiry (lifetime) or
        expires in the future.
        """
        now = ensure_utc(now) or utcnow()
        events = []

        for name, entitlement in (subscriber.get("entitlements") or {}).items():
            if not isinstance(entitlement, dict):
                continue
            product_id = entitlement.get("product_identifier")
            if not product_id:
                continue

            expires = parse_timestamp(entitlement.get("expires_date"))
            purchased = parse_timestamp(entitlement.get("purchase_date"))
            events.append(
                EntitlementEvent(
                    product_id=product_id,
                    is_active=expires is None or expires > now,
                    expiration_date=expires,
                    latest_purchase_date=purchased,
                )
            )

        return events

    async def get_entitlement_events(self, app_user_id: str) -> list[EntitlementEvent]:
        """Fetch and parse the current entitlements for a subscriber."""
        subscriber = await self.get_subscriber(app_user_id)
        return self.parse_entitlements(subscriber)
