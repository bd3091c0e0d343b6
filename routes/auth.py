import logging
import re

from fastapi import APIRouter, Depends, Request, status
from sqlmodel import Session, select

from core.config import Settings
from core.context import AppContext, get_app_context
from core.database import get_session
from core.errors import Conflict, Unauthenticated, ValidationFailed
from core.permissions import Permission, UserRole
from core.pipeline import RequestContext, authenticated, require_permission, tenant_admin
from core.responses import send_response
from core.security import generate_temporary_password, hash_password, verify_password
from models.models import Account, Role, User, utcnow
from schemas.auth_schema import ChangePasswordRequest, InviteRequest, LoginRequest, RegisterRequest
from services.subscription_service import subscription_info

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authentication"])


# ==========================================================
# Helpers
# ==========================================================
def generate_slug(name: str) -> str:
    slug = name.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:50]


def unique_slug(session: Session, name: str) -> str:
    """``acme``, then ``acme-1``, ``acme-2`` ... on collision."""
    base = generate_slug(name) or "account"
    candidate, counter = base, 1
    while session.exec(select(Account.id).where(Account.slug == candidate)).first() is not None:
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def get_or_create_role(session: Session, account_id: int, role: UserRole) -> Role:
    existing = session.exec(
        select(Role).where(Role.account_id == account_id, Role.name == role.value)
    ).first()
    if existing:
        return existing
    created = Role(account_id=account_id, name=role.value)
    session.add(created)
    session.flush()
    return created


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role_name.value,
        "accountId": user.account_id,
        "lastLogin": user.last_login,
        "createdAt": user.created_at,
    }


def account_payload(account: Account) -> dict:
    return {
        "id": account.id,
        "slug": account.slug,
        "plan": account.plan,
        "noteLimit": account.note_limit,
        "noteCount": account.note_count,
    }


def issue_token_for(app: AppContext, user: User) -> str:
    return app.tokens.issue_token(user.id, user.account_id, user.role_name.value)


# ==========================================================
# Register: creates account + admin role + admin user
# ==========================================================
@router.post("/register")
def register(
    body: RegisterRequest,
    session: Session = Depends(get_session),
    app: AppContext = Depends(get_app_context),
):
    settings: Settings = app.settings
    email = body.email.lower()

    taken = session.exec(
        select(User.id).where(User.email == email, User.is_deleted == False)  # noqa: E712
    ).first()
    if taken is not None:
        raise Conflict("User with this email already exists")

    account = Account(
        slug=unique_slug(session, body.account_name),
        note_limit=settings.FREE_PLAN_NOTE_LIMIT,
    )
    session.add(account)
    session.flush()

    admin_role = get_or_create_role(session, account.id, UserRole.ADMIN)
    user = User(
        account_id=account.id,
        email=email,
        password_hash=hash_password(body.password),
        name=body.name.strip(),
        role_id=admin_role.id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    session.refresh(account)

    logger.info("Registered account %s with admin user %s", account.slug, user.id)

    return send_response(
        status.HTTP_201_CREATED,
        "Account created successfully",
        {"token": issue_token_for(app, user), "user": user_payload(user), "account": account_payload(account)},
    )


# ==========================================================
# Login
# ==========================================================
@router.post("/login")
def login(
    body: LoginRequest,
    request: Request,
    session: Session = Depends(get_session),
    app: AppContext = Depends(get_app_context),
):
    user = session.exec(
        select(User).where(
            User.email == body.email.lower(),
            User.is_active == True,  # noqa: E712
            User.is_deleted == False,  # noqa: E712
        )
    ).first()

    if not user or not verify_password(body.password, user.password_hash):
        raise Unauthenticated("Invalid email or password")

    account = user.account
    if not account or not account.is_active or account.is_deleted:
        raise Unauthenticated("Account inactive or not found")

    user.last_login = utcnow()
    user.last_ip = request.client.host if request.client else None
    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info("User %s logged in to account %s", user.id, account.slug)

    return send_response(
        status.HTTP_200_OK,
        "Login successful",
        {"token": issue_token_for(app, user), "user": user_payload(user), "account": account_payload(account)},
    )


# ==========================================================
# Profile
# ==========================================================
@router.get("/profile")
def profile(ctx: RequestContext = Depends(authenticated)):
    return send_response(
        status.HTTP_200_OK,
        "Profile retrieved successfully",
        {
            "user": user_payload(ctx.user),
            "account": account_payload(ctx.account),
            "subscription": subscription_info(ctx.account),
        },
    )


# ==========================================================
# Invite: admins add users to their own account
# ==========================================================
invite_pipeline = tenant_admin.then(require_permission(Permission.USERS_INVITE))


@router.post("/invite")
def invite(body: InviteRequest, ctx: RequestContext = Depends(invite_pipeline)):
    session = ctx.session
    account = ctx.account
    email = body.email.lower()

    existing = session.exec(
        select(User.id).where(User.account_id == account.id, User.email == email)
    ).first()
    if existing is not None:
        raise Conflict("User with this email already exists in this account")

    role = get_or_create_role(session, account.id, body.role)
    temporary_password = generate_temporary_password()
    user = User(
        account_id=account.id,
        email=email,
        password_hash=hash_password(temporary_password),
        name=body.name.strip(),
        role_id=role.id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info("User %s invited to account %s as %s", user.id, account.slug, body.role.value)

    return send_response(
        status.HTTP_201_CREATED,
        "User invited successfully",
        {"user": user_payload(user), "temporaryPassword": temporary_password},
    )


# ==========================================================
# Password change & logout: both bump the token watermark
# ==========================================================
@router.post("/change-password")
def change_password(body: ChangePasswordRequest, ctx: RequestContext = Depends(authenticated)):
    user = ctx.user
    if not verify_password(body.current_password, user.password_hash):
        raise ValidationFailed.for_field("currentPassword", "Current password is incorrect")
    if verify_password(body.new_password, user.password_hash):
        raise ValidationFailed.for_field("newPassword", "New password cannot be the same as the old password")

    user.password_hash = hash_password(body.new_password)
    user.invalidate_tokens()
    ctx.session.add(user)
    ctx.session.commit()

    logger.info("Password changed for user %s", user.id)
    return send_response(status.HTTP_200_OK, "Password changed successfully. Please log in again.")


@router.post("/logout")
def logout(ctx: RequestContext = Depends(authenticated)):
    ctx.user.invalidate_tokens()
    ctx.session.add(ctx.user)
    ctx.session.commit()

    response = send_response(status.HTTP_200_OK, "Logged out successfully")
    response.delete_cookie("token")
    return response
