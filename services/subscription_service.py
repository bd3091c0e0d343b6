# ================================================================
# services/subscription_service.py: Plan limits & plan transitions
# ================================================================
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case
from sqlmodel import Session, select

from core.errors import AccountInactive, AlreadyPro, NotFound, QuotaExceeded
from models.models import (
    Account, Subscription, SubscriptionStatus, PlanName, UNLIMITED, utcnow,
)

logger = logging.getLogger(__name__)


# -------------------------
# Quota
# -------------------------
def can_create_note(account: Account) -> bool:
    return account.can_create_note


def check_note_limit(account: Account) -> None:
    """Raise QuotaExceeded when a free account has used its note quota."""
    if account.is_pro:
        return
    if account.note_count >= account.note_limit:
        raise QuotaExceeded(
            current_plan=account.plan,
            note_count=account.note_count,
            max_notes=account.note_limit,
        )


def increment_note_count(session: Session, account: Account) -> Account:
    # evaluated by the database at flush time
    account.note_count = Account.note_count + 1
    session.add(account)
    session.commit()
    session.refresh(account)
    return account


def decrement_note_count(session: Session, account: Account) -> Account:
    """Decrement, floor-clamped at zero."""
    account.note_count = case((Account.note_count > 0, Account.note_count - 1), else_=0)
    session.add(account)
    session.commit()
    session.refresh(account)
    return account


def subscription_info(account: Account) -> Dict[str, Any]:
    max_notes = UNLIMITED if account.is_pro else account.note_limit
    return {
        "plan": account.plan,
        "limits": {"maxNotes": max_notes},
        "usage": {"noteCount": account.note_count, "maxNotes": max_notes},
        "canCreateNote": can_create_note(account),
    }


# -------------------------
# Upgrade eligibility
# -------------------------
def check_upgrade_eligibility(account: Account) -> None:
    if account.is_pro:
        raise AlreadyPro()
    if not account.is_active or account.is_deleted:
        raise AccountInactive()


# -------------------------
# Subscriptions
# -------------------------
def get_active_subscription(session: Session, account_id: int) -> Optional[Subscription]:
    return session.exec(
        select(Subscription).where(
            Subscription.account_id == account_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
        )
    ).first()


def cancel_subscription(session: Session, account: Account, free_note_limit: int) -> Tuple[Account, Subscription]:
    """
    Cancel the active subscription and downgrade the account right away.
    No grace period up to the subscription end date.
    """
    subscription = get_active_subscription(session, account.id)
    if not subscription:
        raise NotFound("No active subscription found")

    subscription.cancel()
    account.downgrade_to_free(free_note_limit)
    session.add(subscription)
    session.add(account)
    session.commit()
    session.refresh(subscription)
    session.refresh(account)

    logger.info("Subscription %s cancelled for account %s", subscription.id, account.slug)
    return account, subscription


def expire_subscriptions(session: Session, free_note_limit: int) -> int:
    """
    Mark active subscriptions past their end date as expired and
    downgrade their accounts to the free plan.
    """
    now = utcnow()
    expired = session.exec(
        select(Subscription).where(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.end_date != None,  # noqa: E711
            Subscription.end_date < now,
        )
    ).all()

    for subscription in expired:
        subscription.expire()
        session.add(subscription)

        account = session.get(Account, subscription.account_id)
        if account and account.current_subscription_id == subscription.id:
            account.downgrade_to_free(free_note_limit)
            session.add(account)
        logger.info("Auto-expiring subscription %s for account %s", subscription.id, subscription.account_id)

    if expired:
        session.commit()
    return len(expired)


# -------------------------
# Plan catalog
# -------------------------
def list_plans(free_note_limit: int, pro_price: int, currency: str) -> List[Dict[str, Any]]:
    return [
        {
            "id": PlanName.FREE.value,
            "name": "Free Plan",
            "price": 0,
            "currency": currency,
            "interval": "year",
            "features": [f"Up to {free_note_limit} notes", "Basic note management", "Tag support"],
            "limits": {"maxNotes": free_note_limit},
        },
        {
            "id": PlanName.PRO.value,
            "name": "Pro Plan",
            "price": pro_price,
            "currency": currency,
            "interval": "year",
            "features": [
                "Unlimited notes",
                "Advanced note management",
                "Tag support",
                "Search functionality",
                "Priority support",
            ],
            "limits": {"maxNotes": UNLIMITED},
        },
    ]
