# flcseek/groups/routes.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.orm import Session

from flcseek.attendance import service as attendance
from flcseek.audit import log_audit_event
from flcseek.auth import CurrentUser, ensure_group_access, is_church_wide, require
from flcseek.constants import AuditAction
from flcseek.db import get_db
from flcseek.progress import service as progress
from flcseek.schemas import GroupCreate, GroupUpdate, group_out
from . import service

router = APIRouter(prefix="/groups", tags=["Groups"])


@router.get("", response_model=dict)
def api_list_groups(
    year: Optional[int] = Query(None),
    include_archived: bool = Query(False),
    user: CurrentUser = Depends(require("groups:read")),
    db: Session = Depends(get_db),
):
    if is_church_wide(user):
        rows = service.list_groups(db, year=year, include_archived=include_archived)
    elif user.group_id:
        rows = service.list_groups(db, year=year, include_archived=include_archived, group_id=user.group_id)
    else:
        rows = []
    return {"groups": [group_out(g, n) for g, n in rows]}


@router.post("", response_model=dict, status_code=201)
def api_create_group(
    body: GroupCreate,
    request: Request,
    user: CurrentUser = Depends(require("groups:write")),
    db: Session = Depends(get_db),
):
    g = group_out(service.create_group(db, body.name, body.year, body.leader_id, body.description), 0)
    log_audit_event(
        db, AuditAction.CREATE_GROUP, user_id=user.id, entity_type="group", entity_id=g["id"],
        new_values=body.model_dump(), request=request,
    )
    return {"group": g}


@router.post("/clone-previous-year", response_model=dict)
def api_clone_previous_year(
    request: Request,
    year: Optional[int] = Query(None, description="Target year; defaults to the current year"),
    user: CurrentUser = Depends(require("groups:write")),
    db: Session = Depends(get_db),
):
    res = service.clone_previous_year(db, current_year=year)
    cloned = [group_out(g, 0) for g in res["cloned"]]
    log_audit_event(
        db, AuditAction.CLONE_GROUP, user_id=user.id, entity_type="group",
        new_values={"from": res["previous_year"], "to": res["current_year"], "cloned": len(cloned)},
        request=request,
    )
    return {
        "message": f"Cloned {len(cloned)} group(s) from {res['previous_year']} to {res['current_year']}",
        "cloned_count": len(cloned),
        "groups": cloned,
        "skipped": res["skipped"],
    }


@router.get("/{group_id}", response_model=dict)
def api_get_group(
    group_id: str,
    user: CurrentUser = Depends(require("groups:read")),
    db: Session = Depends(get_db),
):
    g = service.get_group(db, group_id)
    ensure_group_access(user, g.id)
    return {"group": group_out(g, service.member_count(db, group_id))}


@router.get("/{group_id}/stats", response_model=dict)
def api_group_stats(
    group_id: str,
    user: CurrentUser = Depends(require("groups:read")),
    db: Session = Depends(get_db),
):
    service.get_group(db, group_id)
    ensure_group_access(user, group_id)
    return {
        "group_id": group_id,
        "progress": progress.group_stats(db, group_id),
        "attendance": attendance.group_stats(db, group_id),
    }


@router.put("/{group_id}", response_model=dict)
def api_update_group(
    group_id: str,
    body: GroupUpdate,
    request: Request,
    user: CurrentUser = Depends(require("groups:write")),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    g = group_out(service.update_group(db, group_id, changes), service.member_count(db, group_id))
    log_audit_event(
        db, AuditAction.UPDATE_GROUP, user_id=user.id, entity_type="group", entity_id=group_id,
        new_values=changes, request=request,
    )
    return {"group": g}


@router.patch("/{group_id}/archive", response_model=dict)
def api_archive_group(
    group_id: str,
    request: Request,
    archived: bool = Body(True, embed=True),
    user: CurrentUser = Depends(require("groups:write")),
    db: Session = Depends(get_db),
):
    g = group_out(service.set_archived(db, group_id, archived))
    log_audit_event(
        db, AuditAction.ARCHIVE_GROUP, user_id=user.id, entity_type="group", entity_id=group_id,
        new_values={"archived": archived}, request=request,
    )
    return {"group": g}


@router.delete("/{group_id}", response_model=dict)
def api_delete_group(
    group_id: str,
    request: Request,
    user: CurrentUser = Depends(require("groups:write")),
    db: Session = Depends(get_db),
):
    old = service.delete_group(db, group_id)
    log_audit_event(
        db, AuditAction.DELETE_GROUP, user_id=user.id, entity_type="group", entity_id=group_id,
        old_values=old, request=request,
    )
    return {"message": "Group deleted successfully"}
