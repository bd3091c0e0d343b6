"""Upgrade state machine: pending order -> verified (upgraded) | failed."""

import pytest
from sqlmodel import select

from core.errors import GatewayError, PaymentNotFound, SignatureInvalid
from models.models import (
    Invoice, InvoiceStatus, Payment, PaymentStatus, PlanName, Subscription, SubscriptionStatus, UNLIMITED,
)
from services.payment_service import PaymentService


@pytest.fixture
def account(make_account):
    return make_account("acme")


@pytest.fixture
def service(session, gateway, settings):
    return PaymentService(session, gateway, settings)


def test_initiate_creates_pending_payment(service, session, account, gateway):
    order = service.initiate_upgrade(account)

    assert order["orderId"] == gateway.orders[0]["id"]
    assert order["amount"] == 999
    assert order["razorpayKeyId"] == "rzp_test_key"
    assert order["receipt"].startswith("upgrade_acme_")
    assert gateway.orders[0]["amount"] == 99900

    payment = session.get(Payment, order["paymentId"])
    assert payment.status == PaymentStatus.PENDING.value
    assert payment.gateway_order_id == order["orderId"]


def test_initiate_gateway_failure_persists_nothing(service, session, account, gateway):
    gateway.unavailable = True
    with pytest.raises(GatewayError):
        service.initiate_upgrade(account)
    assert session.exec(select(Payment)).all() == []


def test_forged_signature_fails_payment_and_keeps_plan(service, session, account):
    order = service.initiate_upgrade(account)

    with pytest.raises(SignatureInvalid):
        service.verify_and_upgrade(account, order["orderId"], "pay_1", "forged", order["paymentId"])

    payment = session.get(Payment, order["paymentId"])
    session.refresh(payment)
    session.refresh(account)
    assert payment.status == PaymentStatus.FAILED.value
    assert payment.error_description == "Invalid payment signature"
    assert account.plan == PlanName.FREE.value
    assert session.exec(select(Subscription)).all() == []


def test_verified_payment_upgrades_account(service, session, account, gateway):
    order = service.initiate_upgrade(account)
    gateway.payments["pay_1"] = {"id": "pay_1", "amount": 99900, "method": "upi"}

    result = service.verify_and_upgrade(
        account, order["orderId"], "pay_1", gateway.sign(order["orderId"], "pay_1"), order["paymentId"]
    )

    assert result.account.plan == PlanName.PRO.value
    assert result.account.note_limit == UNLIMITED
    assert result.account.current_subscription_id == result.subscription.id
    assert result.payment.status == PaymentStatus.SUCCESS.value
    assert result.payment.method == "upi"
    assert result.payment.subscription_id == result.subscription.id
    assert result.invoice.status == InvoiceStatus.PAID.value
    assert (result.subscription.end_date - result.subscription.start_date).days == 365


def test_verification_replaces_prior_active_subscription(service, session, account, gateway):
    prior = Subscription.start(account.id, PlanName.PRO.value, 30)
    session.add(prior)
    session.commit()

    order = service.initiate_upgrade(account)
    service.verify_and_upgrade(
        account, order["orderId"], "pay_2", gateway.sign(order["orderId"], "pay_2"), order["paymentId"]
    )

    active = session.exec(
        select(Subscription).where(Subscription.status == SubscriptionStatus.ACTIVE.value)
    ).all()
    session.refresh(prior)
    assert len(active) == 1
    assert active[0].id != prior.id
    assert prior.status == SubscriptionStatus.CANCELLED.value
    assert len(session.exec(select(Invoice)).all()) == 1


def test_verification_requires_matching_pending_payment(service, session, account, gateway, make_account):
    order = service.initiate_upgrade(account)
    signature = gateway.sign(order["orderId"], "pay_3")
    other = make_account("globex")

    with pytest.raises(PaymentNotFound):
        service.verify_and_upgrade(other, order["orderId"], "pay_3", signature, order["paymentId"])
    with pytest.raises(PaymentNotFound):
        service.verify_and_upgrade(account, "order_other", "pay_3", signature, order["paymentId"])

    service.verify_and_upgrade(account, order["orderId"], "pay_3", signature, order["paymentId"])
    # replay of a settled payment
    with pytest.raises(PaymentNotFound):
        service.verify_and_upgrade(account, order["orderId"], "pay_3", signature, order["paymentId"])


def test_gateway_outage_during_verify_leaves_payment_pending(service, session, account, gateway):
    order = service.initiate_upgrade(account)
    gateway.unavailable = True

    with pytest.raises(GatewayError):
        service.verify_and_upgrade(
            account, order["orderId"], "pay_4", gateway.sign(order["orderId"], "pay_4"), order["paymentId"]
        )
    session.rollback()

    payment = session.get(Payment, order["paymentId"])
    assert payment.status == PaymentStatus.PENDING.value
    session.refresh(account)
    assert account.plan == PlanName.FREE.value


def test_payment_history_newest_first(service, session, account):
    first = service.initiate_upgrade(account)
    second = service.initiate_upgrade(account)

    payments, total, pages = service.payment_history(account, page=1, limit=1)
    assert total == 2
    assert pages == 2
    assert [p.id for p in payments] == [second["paymentId"]]

    payments, _, _ = service.payment_history(account, page=2, limit=1)
    assert [p.id for p in payments] == [first["paymentId"]]
