# models/models.py
from typing import Optional, List
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field, Relationship

from core.permissions import UserRole


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes in and out, whatever the backend keeps."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ============================================================
# ENUMS
# ============================================================
class PlanName(str, Enum):
    FREE = "free"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


UNLIMITED = -1


# ============================================================
# LINK MODEL
# ============================================================
class NoteTagLink(SQLModel, table=True):
    __tablename__ = "note_tag_link"
    note_id: int = Field(foreign_key="note.id", primary_key=True)
    tag_id: int = Field(foreign_key="tag.id", primary_key=True)


# ============================================================
# ACCOUNT (tenant)
# ============================================================
class Account(SQLModel, table=True):
    __tablename__ = "account"

    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(max_length=60, unique=True, index=True)
    plan: str = Field(default=PlanName.FREE.value, max_length=20)
    note_limit: int = Field(default=3)
    note_count: int = Field(default=0)

    # plain reference, subscription rows already point back at the account
    current_subscription_id: Optional[int] = Field(default=None, index=True)

    is_active: bool = Field(default=True, index=True)
    is_deleted: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, sa_column_kwargs={"onupdate": utcnow})

    @property
    def is_pro(self) -> bool:
        return self.plan == PlanName.PRO.value

    @property
    def can_create_note(self) -> bool:
        if self.is_pro:
            return True
        return self.note_count < self.note_limit

    def upgrade_to_pro(self, subscription_id: int) -> None:
        self.plan = PlanName.PRO.value
        self.note_limit = UNLIMITED
        self.current_subscription_id = subscription_id

    def downgrade_to_free(self, note_limit: int) -> None:
        self.plan = PlanName.FREE.value
        self.note_limit = note_limit
        self.current_subscription_id = None


# ============================================================
# ROLE
# ============================================================
class Role(SQLModel, table=True):
    __tablename__ = "role"
    __table_args__ = (UniqueConstraint("account_id", "name", name="uq_account_role"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    name: str = Field(max_length=20)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# ============================================================
# USER
# ============================================================
class User(SQLModel, table=True):
    __tablename__ = "user"
    __table_args__ = (UniqueConstraint("account_id", "email", name="uq_account_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    email: str = Field(max_length=255, index=True)
    password_hash: str = Field(nullable=False)
    name: str = Field(max_length=100)
    role_id: int = Field(foreign_key="role.id", index=True)

    is_active: bool = Field(default=True)
    is_deleted: bool = Field(default=False)

    # tokens issued before this instant are rejected
    tokens_invalid_before: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    last_login: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    last_ip: Optional[str] = Field(default=None, max_length=64)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, sa_column_kwargs={"onupdate": utcnow})

    account: Optional[Account] = Relationship()
    role: Optional[Role] = Relationship()

    @property
    def role_name(self) -> UserRole:
        return UserRole(self.role.name)

    def invalidate_tokens(self) -> None:
        self.tokens_invalid_before = utcnow()


# ============================================================
# TAG
# ============================================================
class Tag(SQLModel, table=True):
    __tablename__ = "tag"
    __table_args__ = (UniqueConstraint("account_id", "tag_name", name="uq_account_tag"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    tag_name: str = Field(max_length=50)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# ============================================================
# NOTE
# ============================================================
class Note(SQLModel, table=True):
    __tablename__ = "note"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title: str = Field(max_length=200)
    description: Optional[str] = Field(default="", max_length=10000)
    is_deleted: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, sa_column_kwargs={"onupdate": utcnow})

    user: Optional[User] = Relationship()
    tags: List[Tag] = Relationship(link_model=NoteTagLink)


# ============================================================
# SUBSCRIPTION
# ============================================================
class Subscription(SQLModel, table=True):
    __tablename__ = "subscription"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    plan: str = Field(max_length=20)
    status: str = Field(default=SubscriptionStatus.ACTIVE.value, max_length=20, index=True)
    start_date: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    end_date: Optional[datetime] = Field(default=None, sa_type=UTCDateTime, index=True)
    cancelled_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, sa_column_kwargs={"onupdate": utcnow})

    @classmethod
    def start(cls, account_id: int, plan: str, duration_days: int) -> "Subscription":
        now = utcnow()
        return cls(
            account_id=account_id,
            plan=plan,
            status=SubscriptionStatus.ACTIVE.value,
            start_date=now,
            end_date=now + timedelta(days=duration_days),
        )

    def cancel(self) -> None:
        self.status = SubscriptionStatus.CANCELLED.value
        self.cancelled_at = utcnow()

    def expire(self) -> None:
        self.status = SubscriptionStatus.EXPIRED.value

    def is_current(self, now: Optional[datetime] = None) -> bool:
        if self.status != SubscriptionStatus.ACTIVE.value:
            return False
        if self.end_date and self.end_date < (now or utcnow()):
            return False
        return True


# ============================================================
# INVOICE
# ============================================================
class Invoice(SQLModel, table=True):
    __tablename__ = "invoice"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    subscription_id: Optional[int] = Field(default=None, foreign_key="subscription.id", index=True)
    amount: float = Field(default=0.0)
    currency: str = Field(default="INR", max_length=3)
    status: str = Field(default=InvoiceStatus.PENDING.value, max_length=20, index=True)
    issued_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    due_date: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    paid_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, sa_column_kwargs={"onupdate": utcnow})

    def mark_as_paid(self) -> None:
        self.status = InvoiceStatus.PAID.value
        self.paid_at = utcnow()


# ============================================================
# PAYMENT
# ============================================================
class Payment(SQLModel, table=True):
    __tablename__ = "payment"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    subscription_id: Optional[int] = Field(default=None, foreign_key="subscription.id", index=True)
    invoice_id: Optional[int] = Field(default=None, foreign_key="invoice.id")

    gateway_order_id: Optional[str] = Field(default=None, max_length=255, index=True)
    gateway_payment_id: Optional[str] = Field(default=None, max_length=255, unique=True)

    amount: float
    currency: str = Field(default="INR", max_length=3)
    status: str = Field(default=PaymentStatus.PENDING.value, max_length=20, index=True)
    method: Optional[str] = Field(default=None, max_length=50)  # card, netbanking, wallet, upi ...

    error_code: Optional[str] = Field(default=None, max_length=100)
    error_description: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, sa_column_kwargs={"onupdate": utcnow})

    subscription: Optional[Subscription] = Relationship()

    def mark_success(self, gateway_payment_id: str, method: Optional[str]) -> None:
        self.gateway_payment_id = gateway_payment_id
        self.status = PaymentStatus.SUCCESS.value
        self.method = method

    def mark_failed(self, reason: str, code: Optional[str] = None) -> None:
        self.status = PaymentStatus.FAILED.value
        self.error_code = code
        self.error_description = reason
