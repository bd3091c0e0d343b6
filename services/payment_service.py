# ================================================================
# services/payment_service.py: Pro upgrade via Razorpay orders
# ================================================================
"""
Payment verification and plan-upgrade state machine.

    pending (order created) ──verify──> success ──> account upgraded
                             └────────> failed   (signature mismatch)

A successful verification cancels any active subscription, opens a new
one-year Pro subscription, issues a paid invoice and upgrades the account.
Those writes are committed together; a gateway failure before the commit
leaves the payment pending so the client can retry.
"""
import logging
import math
import secrets
from dataclasses import dataclass
from typing import List, Tuple

from sqlalchemy.orm import selectinload
from sqlmodel import Session, select, func

from core.config import Settings
from core.errors import PaymentNotFound, SignatureInvalid
from models.models import (
    Account, Invoice, Payment, PaymentStatus, PlanName, Subscription, utcnow,
)
from services.razorpay_gateway import PaymentGateway
from services.subscription_service import get_active_subscription

logger = logging.getLogger(__name__)


@dataclass
class UpgradeResult:
    account: Account
    subscription: Subscription
    payment: Payment
    invoice: Invoice


class PaymentService:
    def __init__(self, session: Session, gateway: PaymentGateway, settings: Settings):
        self.session = session
        self.gateway = gateway
        self.settings = settings

    # ------------------------------------------------------------
    # 1. Initiate
    # ------------------------------------------------------------
    def initiate_upgrade(self, account: Account, payment_method: str = "razorpay") -> dict:
        amount = self.settings.PRO_PLAN_PRICE
        currency = self.settings.PLAN_CURRENCY
        receipt = f"upgrade_{account.slug}_{secrets.token_hex(4)}"

        order = self.gateway.create_order(amount, currency, receipt)

        payment = Payment(
            account_id=account.id,
            gateway_order_id=order["id"],
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            method=payment_method,
        )
        self.session.add(payment)
        self.session.commit()
        self.session.refresh(payment)

        logger.info("Created pending payment %s for account %s (order %s)", payment.id, account.slug, order["id"])

        return {
            "orderId": order["id"],
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "razorpayKeyId": self.gateway.key_id,
            "paymentId": payment.id,
            "order": order,
        }

    # ------------------------------------------------------------
    # 2. Verify
    # ------------------------------------------------------------
    def verify_and_upgrade(
        self,
        account: Account,
        order_id: str,
        gateway_payment_id: str,
        signature: str,
        payment_id: int,
    ) -> UpgradeResult:
        payment = self.session.exec(
            select(Payment).where(
                Payment.id == payment_id,
                Payment.account_id == account.id,
                Payment.gateway_order_id == order_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
        ).first()
        if not payment:
            raise PaymentNotFound()

        if not self.gateway.verify_payment_signature(order_id, gateway_payment_id, signature):
            payment.mark_failed("Invalid payment signature")
            self.session.add(payment)
            self.session.commit()
            logger.warning("Signature mismatch for payment %s (account %s)", payment.id, account.slug)
            raise SignatureInvalid()

        details = self.gateway.fetch_payment(gateway_payment_id)
        paid_amount = details.get("amount")
        if paid_amount is not None and paid_amount != int(round(payment.amount * 100)):
            logger.warning(
                "Gateway amount %s differs from expected %s for payment %s",
                paid_amount, payment.amount, payment.id,
            )

        payment.mark_success(gateway_payment_id, details.get("method"))

        existing = get_active_subscription(self.session, account.id)
        if existing:
            existing.cancel()
            self.session.add(existing)

        subscription = Subscription.start(
            account_id=account.id,
            plan=PlanName.PRO.value,
            duration_days=self.settings.SUBSCRIPTION_DURATION_DAYS,
        )
        self.session.add(subscription)
        self.session.flush()

        invoice = Invoice(
            account_id=account.id,
            subscription_id=subscription.id,
            amount=payment.amount,
            currency=payment.currency,
            due_date=utcnow(),
        )
        invoice.mark_as_paid()
        self.session.add(invoice)
        self.session.flush()

        payment.subscription_id = subscription.id
        payment.invoice_id = invoice.id
        self.session.add(payment)

        account.upgrade_to_pro(subscription.id)
        self.session.add(account)

        self.session.commit()
        for row in (account, subscription, payment, invoice):
            self.session.refresh(row)

        logger.info("Account %s upgraded to pro (subscription %s)", account.slug, subscription.id)
        return UpgradeResult(account=account, subscription=subscription, payment=payment, invoice=invoice)

    # ------------------------------------------------------------
    # History
    # ------------------------------------------------------------
    def payment_history(self, account: Account, page: int, limit: int) -> Tuple[List[Payment], int, int]:
        total = self.session.exec(
            select(func.count()).select_from(Payment).where(Payment.account_id == account.id)
        ).one()
        payments = self.session.exec(
            select(Payment)
            .where(Payment.account_id == account.id)
            .options(selectinload(Payment.subscription))
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        pages = math.ceil(total / limit) if limit else 0
        return list(payments), total, pages
