import logging
from decimal import Decimal

import httpx

from core.breaker import CircuitOpenError, gateway_breaker
from core.errors import ConfigError, UpstreamError
from core.settings import settings
from models.utils import major_to_minor, minor_to_major

logger = logging.getLogger(__name__)


class PaystackClient:
    def __init__(self, breaker=gateway_breaker):
        self.base_url = settings.PAYSTACK_BASE_URL.rstrip("/")
        self.secret = settings.PAYSTACK_SECRET_KEY
        self.timeout = settings.GATEWAY_TIMEOUT_SECONDS
        self.breaker = breaker

    @property
    def headers(self):
        if not self.secret:
            raise ConfigError("Payment gateway secret is not configured")
        return {
            "Authorization": f"Bearer {self.secret}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = self.headers

        async def send():
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                res = await client.request(
                    method, f"{self.base_url}{path}", headers=headers, **kwargs
                )
            res.raise_for_status()
            return res.json()

        try:
            return await self.breaker.call(send)
        except CircuitOpenError as e:
            logger.warning(f"Paystack {path} rejected: {e}")
            raise UpstreamError("Payment gateway temporarily unavailable")
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Paystack {path} returned {e.response.status_code}: {e.response.text}"
            )
            raise UpstreamError("Payment gateway returned an error")
        except httpx.HTTPError as e:
            logger.error(f"Paystack {path} unreachable: {e}")
            raise UpstreamError("Payment gateway unreachable")

    async def initialize_payment(
        self,
        *,
        email: str,
        amount: Decimal,
        reference: str,
        callback_url: str | None = None,
        metadata: dict | None = None,
        currency: str | None = None,
    ):
        payload = {
            "email": email,
            "amount": major_to_minor(amount),
            "reference": reference,
            "currency": currency or settings.DEFAULT_CURRENCY,
        }
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata

        data = await self._request("POST", "/transaction/initialize", json=payload)

        if not data.get("status"):
            raise UpstreamError(data.get("message", "Paystack init failed"))

        return data["data"]

    async def verify_payment(self, reference: str):
        payload = await self._request("GET", f"/transaction/verify/{reference}")

        if not payload.get("status"):
            return {"success": False, "reference": reference}

        tx = payload["data"]

        return {
            "success": tx.get("status") == "success",
            "status": tx.get("status"),
            "reference": tx.get("reference", reference),
            "amount": minor_to_major(tx.get("amount", 0)),
            "currency": tx.get("currency"),
            "metadata": tx.get("metadata") or {},
            "paid_at": tx.get("paid_at"),
            "channel": tx.get("channel"),
            "customer": tx.get("customer"),
        }
