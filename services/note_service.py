# ================================================================
# services/note_service.py: Tenant-scoped notes & tags
# ================================================================
import logging
import math
import operator
from functools import reduce
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import case, false
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlmodel import Session, col, func, select

from core.errors import NotFound, ValidationFailed
from models.models import Account, Note, NoteTagLink, Tag, User
from services.subscription_service import decrement_note_count, increment_note_count

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 10
DESCRIPTION_WEIGHT = 5


# ------------------------------------------------------------
# Tags
# ------------------------------------------------------------
def normalize_tag_name(name: str) -> str:
    return name.strip().lower()


def find_or_create_tag(session: Session, account_id: int, tag_name: str) -> Tag:
    normalized = normalize_tag_name(tag_name)
    statement = select(Tag).where(Tag.account_id == account_id, Tag.tag_name == normalized)

    tag = session.exec(statement).first()
    if tag:
        return tag

    tag = Tag(account_id=account_id, tag_name=normalized)
    try:
        with session.begin_nested():
            session.add(tag)
    except IntegrityError:
        # created concurrently by another request
        tag = session.exec(statement).one()
    return tag


def resolve_tags(session: Session, account_id: int, names: Optional[Iterable[Any]]) -> List[Tag]:
    """Find-or-create each usable name; a tag is attached at most once."""
    tags: List[Tag] = []
    seen = set()
    for name in names or []:
        if not isinstance(name, str) or not name.strip():
            continue
        tag = find_or_create_tag(session, account_id, name)
        if tag.id in seen:
            continue
        seen.add(tag.id)
        tags.append(tag)
    return tags


def split_tag_param(values: Optional[Sequence[str]]) -> Optional[List[str]]:
    """Accepts ?tags=a,b as well as repeated ?tags=a&tags=b.

    ``None`` means no tag filter. A filter made only of separators such as
    ``?tags=,`` yields an empty list, which matches no note.
    """
    provided = [value for value in values or [] if value]
    if not provided:
        return None
    names: List[str] = []
    for value in provided:
        names.extend(part for part in value.split(",") if part.strip())
    return names


# ------------------------------------------------------------
# Serialization
# ------------------------------------------------------------
def serialize_note(note: Note, include_author: bool = True) -> Dict[str, Any]:
    data = {
        "id": note.id,
        "title": note.title,
        "description": note.description,
        "tags": [tag.tag_name for tag in note.tags],
        "createdAt": note.created_at,
        "updatedAt": note.updated_at,
    }
    if include_author and note.user is not None:
        data["author"] = {"id": note.user.id, "name": note.user.name, "email": note.user.email}
    return data


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if limit else 0}


# ------------------------------------------------------------
# Queries
# ------------------------------------------------------------
def _search_score(search: str):
    parts = []
    for term in search.split():
        parts.append(case((col(Note.title).icontains(term, autoescape=True), TITLE_WEIGHT), else_=0))
        parts.append(
            case((func.coalesce(Note.description, "").icontains(term, autoescape=True), DESCRIPTION_WEIGHT), else_=0)
        )
    return reduce(operator.add, parts) if parts else None


def list_notes(
    session: Session,
    account_id: int,
    scope: List[Any],
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    tag_names: Optional[Sequence[str]] = None,
) -> Tuple[List[Note], int]:
    conditions = [*scope, col(Note.is_deleted) == False]  # noqa: E712
    order_by = [col(Note.created_at).desc(), col(Note.id).desc()]

    if tag_names is not None:
        normalized = list(dict.fromkeys(normalize_tag_name(n) for n in tag_names if n.strip()))
        tag_ids = session.exec(
            select(Tag.id).where(Tag.account_id == account_id, col(Tag.tag_name).in_(normalized))
        ).all() if normalized else []
        if tag_ids:
            conditions.append(
                col(Note.id).in_(select(NoteTagLink.note_id).where(col(NoteTagLink.tag_id).in_(tag_ids)))
            )
        else:
            # unknown tags match nothing
            conditions.append(false())

    score = _search_score(search) if search else None
    if score is not None:
        conditions.append(score > 0)
        order_by.insert(0, score.desc())

    total = session.exec(select(func.count()).select_from(Note).where(*conditions)).one()
    notes = session.exec(
        select(Note)
        .where(*conditions)
        .options(selectinload(Note.tags), selectinload(Note.user))
        .order_by(*order_by)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(notes), total


def get_note(session: Session, scope: List[Any], note_id: int) -> Note:
    """Lookup through the tenant filter; foreign and missing notes look the same."""
    note = session.exec(
        select(Note).where(col(Note.id) == note_id, *scope, col(Note.is_deleted) == False)  # noqa: E712
    ).first()
    if not note:
        raise NotFound("Note not found")
    return note


# ------------------------------------------------------------
# Mutations
# ------------------------------------------------------------
def create_note(
    session: Session,
    account: Account,
    user: User,
    title: str,
    description: Optional[str] = None,
    tags: Optional[Iterable[Any]] = None,
) -> Note:
    title = (title or "").strip()
    if not title:
        raise ValidationFailed.for_field("title", "Title is required")

    note = Note(
        account_id=account.id,
        user_id=user.id,
        title=title,
        description=description.strip() if description else "",
    )
    note.tags = resolve_tags(session, account.id, tags)
    session.add(note)
    session.commit()
    session.refresh(note)

    increment_note_count(session, account)
    logger.info("Note %s created in account %s by user %s", note.id, account.slug, user.id)
    return note


def update_note(session: Session, account_id: int, note: Note, changes: Dict[str, Any]) -> Note:
    """Partial update: only keys present in ``changes`` are applied."""
    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValidationFailed.for_field("title", "Title is required")
        note.title = title

    if "description" in changes:
        description = changes["description"]
        note.description = description.strip() if description else ""

    if "tags" in changes:
        note.tags = resolve_tags(session, account_id, changes["tags"])

    session.add(note)
    session.commit()
    session.refresh(note)
    return note


def delete_note(session: Session, account: Account, note: Note) -> None:
    """Soft delete followed by the clamped quota decrement."""
    note.is_deleted = True
    session.add(note)
    session.commit()
    decrement_note_count(session, account)
    logger.info("Note %s deleted in account %s", note.id, account.slug)
