# core/pipeline.py
"""
Per-request authorization pipeline.

A route declares an ordered list of stages; each stage reads and extends a
shared ``RequestContext`` and raises an ``AppError`` at the first unmet
condition. Typical compositions::

    notes:    authenticate → ensure_tenant_isolation → check_account_status
              → require_member → require_ownership_or_admin()
    upgrade:  authenticate → validate_tenant_slug → check_account_status
              → require_admin → check_upgrade_eligibility
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, Request
from sqlmodel import Session, select

from core.context import AppContext, get_app_context
from core.database import get_session
from core.errors import (
    CrossTenantAccess,
    AccountDeleted,
    AccountSuspended,
    Forbidden,
    TenantNotFound,
    Unauthenticated,
    ValidationFailed,
)
from core.permissions import Permission, UserRole, has_permission, permissions_for
from core.security import TokenClaims, extract_token, is_token_revoked
from models.models import Account, User
from services import subscription_service


@dataclass
class RequestContext:
    request: Request
    session: Session
    app: AppContext
    claims: Optional[TokenClaims] = None
    user: Optional[User] = None
    account: Optional[Account] = None
    role: Optional[UserRole] = None
    tenant: Optional[Account] = None
    tenant_filter: Dict[str, Any] = field(default_factory=dict)

    @property
    def acting_account(self) -> Optional[Account]:
        return self.account or self.tenant

    def scope(self, model) -> List[Any]:
        """Where-clauses that restrict ``model`` to the tenant filter."""
        return [getattr(model, column) == value for column, value in self.tenant_filter.items()]


Stage = Callable[[RequestContext], RequestContext]


class Pipeline:
    """FastAPI dependency that runs its stages in order."""

    def __init__(self, *stages: Stage):
        self.stages = stages

    def then(self, *stages: Stage) -> "Pipeline":
        return Pipeline(*self.stages, *stages)

    def run(self, ctx: RequestContext) -> RequestContext:
        for stage in self.stages:
            ctx = stage(ctx)
        return ctx

    def __call__(
        self,
        request: Request,
        session: Session = Depends(get_session),
        app: AppContext = Depends(get_app_context),
    ) -> RequestContext:
        return self.run(RequestContext(request=request, session=session, app=app))


# ========================================
# 1. Authenticate
# ========================================
def authenticate(ctx: RequestContext) -> RequestContext:
    token = extract_token(ctx.request)
    if not token:
        raise Unauthenticated("Access token required")

    claims = ctx.app.tokens.verify_token(token)

    user = ctx.session.get(User, claims.user_id)
    if not user or not user.is_active or user.is_deleted or user.role is None:
        raise Unauthenticated("Invalid token - user not found or inactive")

    if is_token_revoked(claims, user.tokens_invalid_before):
        raise Unauthenticated("Token has been invalidated")

    account = user.account
    if not account or not account.is_active or account.is_deleted:
        raise Unauthenticated("Account inactive or not found")

    ctx.claims = claims
    ctx.user = user
    ctx.account = account
    ctx.role = user.role_name
    return ctx


# ========================================
# 2. Tenant scope
# ========================================
def ensure_tenant_isolation(ctx: RequestContext) -> RequestContext:
    if ctx.user is None:
        raise Unauthenticated("Authentication required for tenant isolation")
    ctx.tenant_filter = {"account_id": ctx.user.account_id}
    return ctx


def validate_tenant_slug(ctx: RequestContext) -> RequestContext:
    slug = ctx.request.path_params.get("slug")
    if not slug:
        raise ValidationFailed.for_field("slug", "Tenant slug is required")

    account = ctx.session.exec(
        select(Account).where(
            Account.slug == slug.strip().lower(),
            Account.is_active == True,  # noqa: E712
            Account.is_deleted == False,  # noqa: E712
        )
    ).first()
    if not account:
        raise TenantNotFound()

    if ctx.user is not None and ctx.user.account_id != account.id:
        raise CrossTenantAccess()

    ctx.tenant = account
    return ctx


# ========================================
# 3. Account status
# ========================================
def check_account_status(ctx: RequestContext) -> RequestContext:
    account = ctx.acting_account
    if account is None:
        raise ValidationFailed("Account context required")
    if not account.is_active:
        raise AccountSuspended()
    if account.is_deleted:
        raise AccountDeleted()
    return ctx


# ========================================
# 4. Role / permission
# ========================================
def _require_identity(ctx: RequestContext) -> UserRole:
    if ctx.user is None or ctx.role is None:
        raise Unauthenticated()
    return ctx.role


def require_role(required: UserRole) -> Stage:
    def stage(ctx: RequestContext) -> RequestContext:
        if _require_identity(ctx) is not required:
            raise Forbidden(f"Access denied - {required.value} role required")
        return ctx

    stage.__name__ = f"require_role_{required.value}"
    return stage


require_admin = require_role(UserRole.ADMIN)


def require_member(ctx: RequestContext) -> RequestContext:
    if _require_identity(ctx) not in (UserRole.ADMIN, UserRole.MEMBER):
        raise Forbidden("Access denied - member access required")
    return ctx


def require_permission(permission: Permission) -> Stage:
    def stage(ctx: RequestContext) -> RequestContext:
        if not has_permission(_require_identity(ctx), permission):
            raise Forbidden()
        return ctx

    return stage


def require_any_permission(*permissions: Permission) -> Stage:
    def stage(ctx: RequestContext) -> RequestContext:
        granted = permissions_for(_require_identity(ctx))
        if not any(p in granted for p in permissions):
            raise Forbidden()
        return ctx

    return stage


# ========================================
# 5. Ownership
# ========================================
def require_ownership_or_admin(field_name: str = "user_id") -> Stage:
    """Non-admins only ever see rows they own: the owner joins the tenant filter."""

    def stage(ctx: RequestContext) -> RequestContext:
        if _require_identity(ctx) is UserRole.ADMIN:
            return ctx
        ctx.tenant_filter = {**ctx.tenant_filter, field_name: ctx.user.id}
        return ctx

    return stage


# ========================================
# Plan gates
# ========================================
def check_note_limit(ctx: RequestContext) -> RequestContext:
    if ctx.account is None:
        raise ValidationFailed("Account context required")
    subscription_service.check_note_limit(ctx.account)
    return ctx


def check_upgrade_eligibility(ctx: RequestContext) -> RequestContext:
    account = ctx.acting_account
    if account is None:
        raise ValidationFailed("Account context required")
    subscription_service.check_upgrade_eligibility(account)
    return ctx


# ========================================
# Common compositions
# ========================================
authenticated = Pipeline(authenticate)
tenant_member = Pipeline(authenticate, ensure_tenant_isolation, check_account_status, require_member)
tenant_admin = Pipeline(authenticate, ensure_tenant_isolation, check_account_status, require_admin)
