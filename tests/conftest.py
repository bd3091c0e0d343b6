"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from core.config import Settings
from core.context import AppContext
from core.database import create_db_and_tables, create_db_engine
from core.permissions import UserRole
from core.security import TokenService, hash_password
from main import create_app
from models.models import Account, Role, User
from helpers import TEST_KEY_SECRET, TEST_PASSWORD, FakeGateway


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        JWT_SECRET="test-jwt-secret",
        RAZORPAY_KEY_ID="rzp_test_key",
        RAZORPAY_KEY_SECRET=TEST_KEY_SECRET,
        ENVIRONMENT="test",
        SUBSCRIPTION_EXPIRY_CHECK_SECONDS=0,
        LOG_LEVEL="WARNING",
        RATE_LIMIT_MAX_REQUESTS=10_000,
        AUTH_RATE_LIMIT_MAX_REQUESTS=1_000,
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings.DATABASE_URL)
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def tokens(settings) -> TokenService:
    return TokenService(settings.JWT_SECRET, settings.JWT_ALGORITHM, settings.ACCESS_TOKEN_EXPIRE_MINUTES)


@pytest.fixture
def app_context(settings, engine, tokens, gateway) -> AppContext:
    return AppContext(settings=settings, engine=engine, tokens=tokens, gateway=gateway)


@pytest.fixture
def client(settings, engine, gateway):
    app = create_app(settings, engine=engine, gateway=gateway)
    with TestClient(app) as client:
        yield client


# ------------------------------------------------------------
# Data factories
# ------------------------------------------------------------
@pytest.fixture
def make_account(session, settings):
    def factory(slug: str, **fields) -> Account:
        account = Account(slug=slug, note_limit=settings.FREE_PLAN_NOTE_LIMIT, **fields)
        session.add(account)
        session.commit()
        session.refresh(account)
        return account

    return factory


@pytest.fixture
def make_user(session):
    def factory(account: Account, email: str, role: UserRole = UserRole.MEMBER, **fields) -> User:
        role_row = session.exec(
            select(Role).where(Role.account_id == account.id, Role.name == role.value)
        ).first()
        if not role_row:
            role_row = Role(account_id=account.id, name=role.value)
            session.add(role_row)
            session.flush()
        user = User(
            account_id=account.id,
            email=email,
            name=email.split("@")[0].title(),
            password_hash=hash_password(TEST_PASSWORD),
            role_id=role_row.id,
            **fields,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return factory

