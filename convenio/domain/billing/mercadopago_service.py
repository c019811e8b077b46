"""MercadoPago service - Integration with the MercadoPago Checkout Pro REST API"""

import logging
from typing import Optional

import httpx

from ...config import MP_ACCESS_TOKEN, MP_API_BASE_URL, MP_TIMEOUT_SECONDS
from ...errors import GatewayUnavailable

logger = logging.getLogger(__name__)


class MercadoPagoService:
    """Service for MercadoPago API operations"""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        sandbox: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token or MP_ACCESS_TOKEN
        self.base_url = (base_url or MP_API_BASE_URL).rstrip("/")
        self.timeout = timeout or MP_TIMEOUT_SECONDS
        self.sandbox = sandbox
        self.transport = transport

        if not self.access_token:
            logger.warning("MP_ACCESS_TOKEN not set; payment endpoints will fail until configured")

    def is_available(self) -> bool:
        return bool(self.access_token)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.access_token}"},
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.is_available():
            raise GatewayUnavailable("Payment gateway is not configured")

        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"MercadoPago {method} {path} timed out after {self.timeout}s")
            raise GatewayUnavailable("Payment gateway timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"MercadoPago {method} {path} failed: {e}")
            raise GatewayUnavailable("Payment gateway unreachable") from e

        if response.status_code >= 400:
            logger.error(
                f"MercadoPago {method} {path} returned HTTP {response.status_code}: "
                f"{response.text[:500]}"
            )
            raise GatewayUnavailable(f"Payment gateway error (HTTP {response.status_code})")

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"MercadoPago {method} {path} returned invalid JSON")
            raise GatewayUnavailable("Payment gateway returned an invalid response") from e

    async def create_preference(self, preference: dict) -> dict:
        """
        Create a Checkout Pro preference.

        Returns:
            {"preference_id": ..., "checkout_url": ...}; the sandbox init point is
            used outside production.
        """
        data = await self._request("POST", "/checkout/preferences", json=preference)

        checkout_url = data.get("sandbox_init_point") if self.sandbox else None
        checkout_url = checkout_url or data.get("init_point")
        if not data.get("id") or not checkout_url:
            logger.error(f"MercadoPago preference response missing id or init_point: {data}")
            raise GatewayUnavailable("Payment gateway returned an incomplete preference")

        logger.info(
            f"MercadoPago preference {data['id']} created "
            f"(external_reference={preference.get('external_reference')})"
        )
        return {"preference_id": str(data["id"]), "checkout_url": checkout_url}

    async def get_payment(self, payment_id: str) -> dict:
        """Fetch a payment by id; returns the raw gateway payload"""
        payment = await self._request("GET", f"/v1/payments/{payment_id}")
        logger.info(
            f"MercadoPago payment {payment_id} fetched: status={payment.get('status')}, "
            f"external_reference={payment.get('external_reference')}"
        )
        return payment
