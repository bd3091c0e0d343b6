# ================================================================
# services/razorpay_gateway.py: Razorpay Orders / Payments client
# ================================================================
"""Razorpay API client.

Razorpay Reference:
- Orders API: https://razorpay.com/docs/api/orders/
- Payments API: https://razorpay.com/docs/api/payments/
- Signature verification: hex HMAC-SHA256 of "order_id|payment_id"
  keyed by the account key secret.
"""
import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from core.errors import GatewayError

logger = logging.getLogger(__name__)


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    body = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


class PaymentGateway(ABC):
    """Order creation, payment lookup and signature checks against a gateway."""

    key_id: str

    @abstractmethod
    def create_order(self, amount: float, currency: str, receipt: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        ...

    def close(self) -> None:
        pass


class RazorpayGateway(PaymentGateway):
    """Razorpay REST client.

    Uses HTTP Basic Auth with key_id as username and key_secret as password.
    """

    def __init__(self, key_id: str, key_secret: str,
                 base_url: str = "https://api.razorpay.com/v1",
                 timeout: float = 30.0,
                 client: Optional[httpx.Client] = None):
        if not key_id or not key_secret:
            raise ValueError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are required.")

        self.key_id = key_id
        self._key_secret = key_secret
        self._client = client or httpx.Client(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
        )

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Razorpay request failed",
                extra={"path": path, "status": e.response.status_code},
            )
            raise GatewayError() from e
        except httpx.HTTPError as e:
            logger.error("Razorpay request error on %s: %s", path, e)
            raise GatewayError() from e

    def create_order(self, amount: float, currency: str, receipt: str) -> Dict[str, Any]:
        """Create an order; amount is given in major units and sent in the smallest unit (paise)."""
        order = self._request(
            "POST",
            "/orders",
            json={
                "amount": int(round(amount * 100)),
                "currency": currency,
                "receipt": receipt,
                "payment_capture": 1,
            },
        )
        logger.info("Razorpay order created: %s (receipt=%s)", order.get("id"), receipt)
        return order

    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/payments/{payment_id}")

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not (order_id and payment_id and signature):
            return False
        expected = compute_signature(self._key_secret, order_id, payment_id)
        return hmac.compare_digest(expected, signature)

    def close(self) -> None:
        self._client.close()
