# routes/notes.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from core.permissions import Permission
from core.pipeline import (
    RequestContext,
    check_note_limit,
    require_ownership_or_admin,
    require_permission,
    tenant_member,
)
from core.responses import send_response
from models.models import Note
from schemas.note_schema import NoteCreate, NoteUpdate
from services import note_service

router = APIRouter(tags=["Notes"])

# ==================================================================
#  Pipelines
# ==================================================================
create_pipeline = tenant_member.then(require_permission(Permission.NOTES_CREATE), check_note_limit)
read_pipeline = tenant_member.then(require_permission(Permission.NOTES_READ), require_ownership_or_admin())
update_pipeline = tenant_member.then(require_permission(Permission.NOTES_UPDATE), require_ownership_or_admin())
delete_pipeline = tenant_member.then(require_permission(Permission.NOTES_DELETE), require_ownership_or_admin())
list_pipeline = tenant_member.then(require_permission(Permission.NOTES_READ))


def _list_response(ctx: RequestContext, scope, page, limit, search, tags, message):
    notes, total = note_service.list_notes(
        ctx.session,
        account_id=ctx.account.id,
        scope=scope,
        page=page,
        limit=limit,
        search=search.strip() if search else None,
        tag_names=note_service.split_tag_param(tags),
    )
    return send_response(
        status.HTTP_200_OK,
        message,
        {
            "notes": [note_service.serialize_note(n) for n in notes],
            "pagination": note_service.pagination(page, limit, total),
        },
    )


# ==================================================================
#  Create
# ==================================================================
@router.post("")
def create_note(body: NoteCreate, ctx: RequestContext = Depends(create_pipeline)):
    note = note_service.create_note(
        ctx.session,
        account=ctx.account,
        user=ctx.user,
        title=body.title,
        description=body.description,
        tags=body.tags,
    )
    return send_response(status.HTTP_201_CREATED, "Note created successfully", note_service.serialize_note(note))


# ==================================================================
#  List (whole tenant)
# ==================================================================
@router.get("")
def list_notes(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=200),
    tags: Optional[List[str]] = Query(None),
    ctx: RequestContext = Depends(list_pipeline),
):
    return _list_response(ctx, ctx.scope(Note), page, limit, search, tags, "Notes retrieved successfully")


# must be registered before /{note_id}
@router.get("/my-notes")
def my_notes(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=200),
    tags: Optional[List[str]] = Query(None),
    ctx: RequestContext = Depends(list_pipeline),
):
    scope = ctx.scope(Note) + [Note.user_id == ctx.user.id]
    return _list_response(ctx, scope, page, limit, search, tags, "Your notes retrieved successfully")


# ==================================================================
#  Single note
# ==================================================================
@router.get("/{note_id}")
def get_note(note_id: int, ctx: RequestContext = Depends(read_pipeline)):
    note = note_service.get_note(ctx.session, ctx.scope(Note), note_id)
    return send_response(status.HTTP_200_OK, "Note retrieved successfully", note_service.serialize_note(note))


@router.put("/{note_id}")
def update_note(note_id: int, body: NoteUpdate, ctx: RequestContext = Depends(update_pipeline)):
    note = note_service.get_note(ctx.session, ctx.scope(Note), note_id)
    note = note_service.update_note(
        ctx.session,
        account_id=ctx.account.id,
        note=note,
        changes=body.model_dump(exclude_unset=True),
    )
    return send_response(status.HTTP_200_OK, "Note updated successfully", note_service.serialize_note(note))


@router.delete("/{note_id}")
def delete_note(note_id: int, ctx: RequestContext = Depends(delete_pipeline)):
    note = note_service.get_note(ctx.session, ctx.scope(Note), note_id)
    note_service.delete_note(ctx.session, ctx.account, note)
    return send_response(status.HTTP_200_OK, "Note deleted successfully")
