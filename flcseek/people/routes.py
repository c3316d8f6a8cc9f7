# flcseek/people/routes.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.orm import Session

from flcseek.attendance import service as attendance
from flcseek.audit import log_audit_event
from flcseek.auth import CurrentUser, is_church_wide, require, scoped_group_id
from flcseek.constants import AuditAction
from flcseek.db import get_db
from flcseek.progress import service as progress
from flcseek.schemas import (
    BulkDeleteInput, PeopleBulkInput, PersonCreate, PersonUpdate, person_out, progress_out,
)
from . import service

router = APIRouter(prefix="/people", tags=["People"])


def _pinned_group(user: CurrentUser, requested: Optional[str]) -> Optional[str]:
    """Leaders always register into their own group."""
    if is_church_wide(user):
        return requested
    return scoped_group_id(user)


@router.get("", response_model=dict)
def api_list_people(
    group_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Search name or phone"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require("people:read")),
    db: Session = Depends(get_db),
):
    gid = scoped_group_id(user, group_id)
    res = service.list_people(db, group_id=gid, search=search, limit=limit, offset=offset)
    return {"total": res["total"], "people": [person_out(p) for p in res["people"]]}


@router.post("", response_model=dict, status_code=201)
def api_register_person(
    body: PersonCreate,
    request: Request,
    user: CurrentUser = Depends(require("people:write")),
    db: Session = Depends(get_db),
):
    data = body.model_dump()
    data["group_id"] = _pinned_group(user, data.get("group_id"))
    person = person_out(service.register_person(db, data, registered_by=user.id))
    log_audit_event(
        db, AuditAction.CREATE_CONVERT, user_id=user.id, entity_type="new_convert",
        entity_id=person["id"], new_values=data, request=request,
    )
    return {"person": person}


@router.post("/bulk", response_model=dict)
def api_bulk_register(
    body: PeopleBulkInput,
    request: Request,
    user: CurrentUser = Depends(require("people:write")),
    db: Session = Depends(get_db),
):
    return _bulk_register(db, user, body.people, body.group_id, request)


@router.post("/import", response_model=dict)
async def api_import_people(
    request: Request,
    file: UploadFile = File(...),
    group_id: Optional[str] = Form(None),
    user: CurrentUser = Depends(require("people:write")),
    db: Session = Depends(get_db),
):
    rows = service.read_upload(file.filename, await file.read())
    return _bulk_register(db, user, rows, group_id, request)


def _bulk_register(db: Session, user: CurrentUser, rows, group_id: Optional[str], request: Request) -> dict:
    if is_church_wide(user):
        res = service.bulk_register(db, rows, user.id, default_group_id=group_id)
    else:
        res = service.bulk_register(db, rows, user.id, force_group_id=scoped_group_id(user))
    created = [person_out(p) for p in res["created"]]
    log_audit_event(
        db, AuditAction.BULK_REGISTER, user_id=user.id, entity_type="new_convert",
        new_values={"created": len(created), "errors": len(res["errors"])}, request=request,
    )
    return {"created": len(created), "failed": len(res["errors"]), "people": created, "errors": res["errors"]}


@router.post("/bulk-delete", response_model=dict)
def api_bulk_delete(
    body: BulkDeleteInput,
    request: Request,
    user: CurrentUser = Depends(require("people:delete")),
    db: Session = Depends(get_db),
):
    deleted = service.bulk_delete(db, body.ids)
    log_audit_event(
        db, AuditAction.DELETE_CONVERT, user_id=user.id, entity_type="new_convert",
        old_values={"ids": body.ids}, new_values={"deleted": deleted}, request=request,
    )
    return {"deleted": deleted}


@router.get("/{person_id}", response_model=dict)
def api_get_person(
    person_id: str,
    user: CurrentUser = Depends(require("people:read")),
    db: Session = Depends(get_db),
):
    person = service.get_person_for(db, user, person_id)
    return {
        "person": person_out(person),
        "progress": [progress_out(p) for p in progress.get_progress(db, person_id)],
        "completion": progress.completion_rate(db, person_id),
        "attendance_count": attendance.count_for_person(db, person_id),
    }


@router.put("/{person_id}", response_model=dict)
def api_update_person(
    person_id: str,
    body: PersonUpdate,
    request: Request,
    user: CurrentUser = Depends(require("people:write")),
    db: Session = Depends(get_db),
):
    service.get_person_for(db, user, person_id)
    changes = body.model_dump(exclude_unset=True)
    if "group_id" in changes and not is_church_wide(user):
        changes["group_id"] = scoped_group_id(user, changes["group_id"])
    person = person_out(service.update_person(db, person_id, changes))
    log_audit_event(
        db, AuditAction.UPDATE_CONVERT, user_id=user.id, entity_type="new_convert",
        entity_id=person_id, new_values=changes, request=request,
    )
    return {"person": person}
