# scripts/seed.py

import argparse
import logging
import os
import sys

from dotenv import load_dotenv
from sqlmodel import Session, select

# Ensure root path for relative imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Settings, load_settings
from core.database import create_db_and_tables, create_db_engine
from core.permissions import UserRole
from core.security import hash_password
from models.models import Account, Role, User
from services.note_service import create_note

logger = logging.getLogger("seed")

load_dotenv()

DEMO_NOTES = [
    ("Welcome to your notes", "Notes are private to your account.", ["getting-started"]),
    ("Weekly planning", "Review open items and priorities.", ["work", "planning"]),
]


def _get_or_create_account(session: Session, slug: str, settings: Settings) -> Account:
    account = session.exec(select(Account).where(Account.slug == slug)).first()
    if not account:
        account = Account(slug=slug, note_limit=settings.FREE_PLAN_NOTE_LIMIT)
        session.add(account)
        session.commit()
        session.refresh(account)
        logger.info("Created account %s", slug)
    return account


def _get_or_create_user(session: Session, account: Account, email: str, name: str,
                        password: str, role: UserRole) -> User:
    user = session.exec(
        select(User).where(User.account_id == account.id, User.email == email)
    ).first()
    if user:
        return user

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
        name=name,
        password_hash=hash_password(password),
        role_id=role_row.id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Added %s user %s", role.value, email)
    return user


def seed(settings: Settings, slug: str, with_notes: bool = True) -> None:
    engine = create_db_engine(settings.DATABASE_URL)
    create_db_and_tables(engine)

    with Session(engine) as session:
        account = _get_or_create_account(session, slug, settings)
        admin = _get_or_create_user(session, account, f"admin@{slug}.example.com", "Admin User", "password", UserRole.ADMIN)
        _get_or_create_user(session, account, f"user@{slug}.example.com", "Member User", "password", UserRole.MEMBER)

        if with_notes and account.note_count == 0:
            for title, description, tags in DEMO_NOTES[: settings.FREE_PLAN_NOTE_LIMIT]:
                create_note(session, account, admin, title, description, tags)
            logger.info("Added %s demo notes", min(len(DEMO_NOTES), settings.FREE_PLAN_NOTE_LIMIT))

    engine.dispose()
    logger.info("Seeding complete for account %s", slug)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    parser = argparse.ArgumentParser(description="Seed the notes database with demo accounts.")
    parser.add_argument("--accounts", nargs="+", default=["acme", "globex"], help="Account slugs to seed")
    parser.add_argument("--no-notes", action="store_true", help="Skip demo notes")
    args = parser.parse_args()

    settings = load_settings()
    for slug in args.accounts:
        seed(settings, slug, with_notes=not args.no_notes)
