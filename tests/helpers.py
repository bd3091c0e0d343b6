"""Shared test helpers: fake gateway and API shortcuts."""

import hmac
from typing import Any, Dict, Optional

from fastapi.testclient import TestClient

from core.errors import GatewayError
from services.razorpay_gateway import PaymentGateway, compute_signature

TEST_KEY_SECRET = "rzp_test_secret"
TEST_PASSWORD = "password123"


class FakeGateway(PaymentGateway):
    """In-process gateway; signatures use the real HMAC scheme."""

    def __init__(self, key_secret: str = TEST_KEY_SECRET):
        self.key_id = "rzp_test_key"
        self.key_secret = key_secret
        self.orders = []
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.unavailable = False
        self.closed = False

    def create_order(self, amount, currency, receipt):
        if self.unavailable:
            raise GatewayError()
        order = {
            "id": f"order_test_{len(self.orders) + 1}",
            "amount": int(round(amount * 100)),
            "currency": currency,
            "receipt": receipt,
            "status": "created",
        }
        self.orders.append(order)
        return order

    def fetch_payment(self, payment_id):
        if self.unavailable:
            raise GatewayError()
        return self.payments.get(payment_id, {"id": payment_id, "method": "card", "status": "captured"})

    def verify_payment_signature(self, order_id, payment_id, signature):
        return hmac.compare_digest(compute_signature(self.key_secret, order_id, payment_id), signature)

    def sign(self, order_id: str, payment_id: str) -> str:
        return compute_signature(self.key_secret, order_id, payment_id)

    def close(self):
        self.closed = True


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, email: str, account_name: str, name: str = "Owner",
             password: str = TEST_PASSWORD) -> Dict[str, Any]:
    response = client.post(
        "/auth/register",
        json={"email": email, "password": password, "name": name, "accountName": account_name},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def invite_and_login(client: TestClient, admin_token: str, email: str,
                     role: str = "member", name: Optional[str] = None) -> str:
    response = client.post(
        "/auth/invite",
        json={"email": email, "name": name or "Member", "role": role},
        headers=auth_headers(admin_token),
    )
    assert response.status_code == 201, response.text
    password = response.json()["data"]["temporaryPassword"]
    login = client.post("/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200, login.text
    return login.json()["data"]["token"]
