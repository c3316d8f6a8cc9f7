# flcseek/milestones/routes.py
from __future__ import annotations
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from flcseek.audit import log_audit_event
from flcseek.auth import CurrentUser, require
from flcseek.cache import response_cache
from flcseek.constants import AuditAction
from flcseek.db import get_db
from flcseek.schemas import MilestoneActiveToggle, MilestoneCreate, MilestoneUpdate, milestone_out
from . import service

router = APIRouter(prefix="/milestones", tags=["Milestones"])

CACHE_PREFIX = "/milestones"


def _cache_key(request: Request) -> str:
    return f"{request.url.path}?{request.url.query}"


@router.get("", response_model=dict)
def api_list_milestones(
    request: Request,
    active_only: bool = Query(False),
    user: CurrentUser = Depends(require("milestones:read")),
    db: Session = Depends(get_db),
):
    key = _cache_key(request)
    cached = response_cache.get(key)
    if cached is not None:
        return cached
    payload = {"milestones": [milestone_out(m) for m in service.list_milestones(db, active_only=active_only)]}
    response_cache.set(key, payload)
    return payload


@router.post("", response_model=dict, status_code=201)
def api_create_milestone(
    body: MilestoneCreate,
    request: Request,
    user: CurrentUser = Depends(require("milestones:write")),
    db: Session = Depends(get_db),
):
    m = service.create_milestone(
        db,
        stage_number=body.stage_number,
        stage_name=body.stage_name,
        short_name=body.short_name,
        description=body.description,
        is_active=body.is_active,
    )
    response_cache.invalidate(CACHE_PREFIX)
    out = milestone_out(m)
    log_audit_event(
        db, AuditAction.CREATE_MILESTONE, user_id=user.id, entity_type="milestone",
        entity_id=out["id"], new_values=body.model_dump(), request=request,
    )
    return {"milestone": out}


@router.put("", response_model=dict)
def api_update_milestone(
    body: MilestoneUpdate,
    request: Request,
    user: CurrentUser = Depends(require("milestones:write")),
    db: Session = Depends(get_db),
):
    m = service.update_milestone(
        db, body.id, stage_name=body.stage_name, short_name=body.short_name, description=body.description
    )
    response_cache.invalidate(CACHE_PREFIX)
    out = milestone_out(m)
    log_audit_event(
        db, AuditAction.UPDATE_MILESTONE, user_id=user.id, entity_type="milestone",
        entity_id=body.id, new_values=body.model_dump(), request=request,
    )
    return {"milestone": out}


@router.patch("", response_model=dict)
def api_set_milestone_active(
    body: MilestoneActiveToggle,
    request: Request,
    user: CurrentUser = Depends(require("milestones:write")),
    db: Session = Depends(get_db),
):
    m, backfilled = service.set_active(db, body.id, body.is_active, acting_user_id=user.id)
    response_cache.invalidate(CACHE_PREFIX)
    out = milestone_out(m)
    log_audit_event(
        db, AuditAction.UPDATE_MILESTONE, user_id=user.id, entity_type="milestone", entity_id=body.id,
        new_values={"is_active": body.is_active, "backfilled": backfilled}, request=request,
    )
    resp = {"milestone": out, "backfilled": backfilled}
    if body.is_active:
        resp["message"] = f"Milestone activated and {backfilled} progress record(s) backfilled"
    return resp


@router.delete("", response_model=dict)
def api_delete_milestone(
    request: Request,
    id: str = Query(..., min_length=1),
    user: CurrentUser = Depends(require("milestones:write")),
    db: Session = Depends(get_db),
):
    old = service.delete_milestone(db, id)
    response_cache.invalidate(CACHE_PREFIX)
    log_audit_event(
        db, AuditAction.DELETE_MILESTONE, user_id=user.id, entity_type="milestone", entity_id=id,
        old_values={"stage_number": old["stage_number"], "stage_name": old["stage_name"]}, request=request,
    )
    return {"message": "Milestone deleted successfully"}
