# ==================================================================
# routes/subscription.py: Plans, Razorpay upgrade, payment history
# ==================================================================
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from core.context import AppContext, get_app_context
from core.permissions import Permission
from core.pipeline import (
    Pipeline,
    RequestContext,
    authenticate,
    check_account_status,
    check_upgrade_eligibility,
    require_admin,
    require_permission,
    tenant_admin,
    tenant_member,
    validate_tenant_slug,
)
from core.responses import send_response
from models.models import Payment, Subscription
from schemas.subscription_schema import UpgradeRequest, VerifyPaymentRequest
from services import subscription_service
from services.note_service import pagination
from services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Subscription"])

upgrade_pipeline = Pipeline(
    authenticate,
    validate_tenant_slug,
    check_account_status,
    require_admin,
    require_permission(Permission.SUBSCRIPTION_UPGRADE),
    check_upgrade_eligibility,
)
billing_admin = tenant_admin.then(require_permission(Permission.SUBSCRIPTION_UPGRADE))


def subscription_payload(subscription: Subscription) -> dict:
    return {
        "id": subscription.id,
        "plan": subscription.plan,
        "status": subscription.status,
        "startDate": subscription.start_date,
        "endDate": subscription.end_date,
        "cancelledAt": subscription.cancelled_at,
        "isActive": subscription.is_current(),
    }


def payment_payload(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "orderId": payment.gateway_order_id,
        "gatewayPaymentId": payment.gateway_payment_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "method": payment.method,
        "errorDescription": payment.error_description,
        "subscription": subscription_payload(payment.subscription) if payment.subscription else None,
        "createdAt": payment.created_at,
    }


# ==================================================================
#  Public plan catalog
# ==================================================================
@router.get("/plans")
def get_plans(app: AppContext = Depends(get_app_context)):
    settings = app.settings
    plans = subscription_service.list_plans(
        settings.FREE_PLAN_NOTE_LIMIT, settings.PRO_PLAN_PRICE, settings.PLAN_CURRENCY
    )
    return send_response(status.HTTP_200_OK, "Plans retrieved successfully", plans)


# ==================================================================
#  Current subscription
# ==================================================================
@router.get("")
def get_subscription(ctx: RequestContext = Depends(tenant_member)):
    info = subscription_service.subscription_info(ctx.account)
    active = subscription_service.get_active_subscription(ctx.session, ctx.account.id)
    info["subscription"] = subscription_payload(active) if active else None
    return send_response(status.HTTP_200_OK, "Subscription retrieved successfully", info)


# ==================================================================
#  Upgrade: create Razorpay order
# ==================================================================
@router.post("/tenants/{slug}/upgrade")
def upgrade(
    slug: str,
    body: Optional[UpgradeRequest] = None,
    ctx: RequestContext = Depends(upgrade_pipeline),
):
    method = body.paymentMethod if body else "razorpay"
    service = PaymentService(ctx.session, ctx.app.gateway, ctx.app.settings)
    order = service.initiate_upgrade(ctx.tenant, payment_method=method)
    return send_response(status.HTTP_200_OK, "Payment order created successfully", order)


# ==================================================================
#  Verify payment and upgrade
# ==================================================================
@router.post("/verify-payment")
def verify_payment(body: VerifyPaymentRequest, ctx: RequestContext = Depends(billing_admin)):
    service = PaymentService(ctx.session, ctx.app.gateway, ctx.app.settings)
    result = service.verify_and_upgrade(
        ctx.account,
        order_id=body.razorpay_order_id,
        gateway_payment_id=body.razorpay_payment_id,
        signature=body.razorpay_signature,
        payment_id=body.paymentId,
    )
    return send_response(
        status.HTTP_200_OK,
        "Payment verified and subscription upgraded successfully",
        {
            "account": {
                "id": result.account.id,
                "slug": result.account.slug,
                "plan": result.account.plan,
                "noteLimit": result.account.note_limit,
            },
            "subscription": subscription_payload(result.subscription),
            "payment": {"id": result.payment.id, "status": result.payment.status, "method": result.payment.method},
            "invoice": {"id": result.invoice.id, "status": result.invoice.status, "amount": result.invoice.amount},
        },
    )


# ==================================================================
#  Payment history
# ==================================================================
@router.get("/payments")
def payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: RequestContext = Depends(tenant_member),
):
    service = PaymentService(ctx.session, ctx.app.gateway, ctx.app.settings)
    payments, total, _ = service.payment_history(ctx.account, page, limit)
    return send_response(
        status.HTTP_200_OK,
        "Payment history retrieved successfully",
        {"payments": [payment_payload(p) for p in payments], "pagination": pagination(page, limit, total)},
    )


# ==================================================================
#  Cancel
# ==================================================================
@router.post("/cancel")
def cancel(ctx: RequestContext = Depends(billing_admin)):
    account, subscription = subscription_service.cancel_subscription(
        ctx.session, ctx.account, ctx.app.settings.FREE_PLAN_NOTE_LIMIT
    )
    return send_response(
        status.HTTP_200_OK,
        "Subscription cancelled successfully",
        {
            "plan": account.plan,
            "noteLimit": account.note_limit,
            "subscription": subscription_payload(subscription),
        },
    )
