# flcseek/users/routes.py
from __future__ import annotations
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from flcseek.audit import client_ip, list_activity_logs, log_audit_event
from flcseek.auth import CurrentUser, create_token, get_current_user, require
from flcseek.constants import AuditAction, Role
from flcseek.db import get_db
from flcseek.errors import RateLimited, Unauthorized
from flcseek.ratelimit import get_login_limiter
from flcseek.schemas import LoginInput, UserCreate, UserGroupsInput, user_out
from . import service

log = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["Auth"])
router = APIRouter(prefix="/superadmin", tags=["Users"])

LOGIN_ENDPOINT = "/auth/login"


# ─── Auth ─────────────────────────────────────────────────────────────────────
@auth_router.post("/login", response_model=dict)
def api_login(
    body: LoginInput,
    request: Request,
    db: Session = Depends(get_db),
    limiter=Depends(get_login_limiter),
):
    ip = client_ip(request)
    decision = limiter.hit(ip, LOGIN_ENDPOINT)
    if not decision.allowed:
        log.warning("Login rate limit hit for %s (retry in %ss)", ip, decision.retry_after)
        raise RateLimited(
            "Too many login attempts. Please try again later.", retry_after=decision.retry_after
        )

    try:
        user = service.authenticate(db, body.username, body.password)
    except Unauthorized:
        log_audit_event(
            db, AuditAction.LOGIN_FAILED, entity_type="user", new_values={"username": body.username}, request=request
        )
        raise

    token = create_token(user.id, user.username, user.role, user.group_id)
    out = user_out(user)
    log_audit_event(db, AuditAction.LOGIN, user_id=out["id"], entity_type="user", entity_id=out["id"], request=request)
    return {"token": token, "user": out}


@auth_router.get("/me", response_model=dict)
def api_me(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"user": user_out(service.get_user(db, user.id))}


# ─── Users ────────────────────────────────────────────────────────────────────
@router.get("/users", response_model=dict)
def api_list_users(
    role: Optional[Role] = Query(None),
    user: CurrentUser = Depends(require("users:manage")),
    db: Session = Depends(get_db),
):
    return {"users": [user_out(u) for u in service.list_users(db, role=role)]}


@router.post("/users", response_model=dict, status_code=201)
def api_create_user(
    body: UserCreate,
    request: Request,
    user: CurrentUser = Depends(require("users:manage")),
    db: Session = Depends(get_db),
):
    created = user_out(service.create_user(db, body.model_dump()))
    log_audit_event(
        db, AuditAction.CREATE_USER, user_id=user.id, entity_type="user", entity_id=created["id"],
        new_values=body.model_dump(exclude={"password"}), request=request,
    )
    return {"user": created}


@router.get("/users/{user_id}", response_model=dict)
def api_get_user(
    user_id: str,
    user: CurrentUser = Depends(require("users:manage")),
    db: Session = Depends(get_db),
):
    return {"user": user_out(service.get_user(db, user_id))}


@router.delete("/users/{user_id}", response_model=dict)
def api_delete_user(
    user_id: str,
    request: Request,
    user: CurrentUser = Depends(require("users:manage")),
    db: Session = Depends(get_db),
):
    old = service.delete_user(db, user_id)
    log_audit_event(
        db, AuditAction.DELETE_USER, user_id=user.id, entity_type="user", entity_id=user_id,
        old_values=old, request=request,
    )
    return {"message": "User deleted successfully"}


@router.get("/users/{user_id}/groups", response_model=dict)
def api_list_user_groups(
    user_id: str,
    user: CurrentUser = Depends(require("users:manage")),
    db: Session = Depends(get_db),
):
    return {"groups": [_user_group_out(ug) for ug in service.list_user_groups(db, user_id)]}


@router.put("/users/{user_id}/groups", response_model=dict)
def api_set_user_groups(
    user_id: str,
    body: UserGroupsInput,
    request: Request,
    user: CurrentUser = Depends(require("users:manage")),
    db: Session = Depends(get_db),
):
    groups = [_user_group_out(ug) for ug in service.set_user_groups(db, user_id, body.group_ids)]
    log_audit_event(
        db, AuditAction.UPDATE_USER, user_id=user.id, entity_type="user", entity_id=user_id,
        new_values={"group_ids": body.group_ids, "count": len(groups)}, request=request,
    )
    return {"message": "Groups updated successfully", "count": len(groups), "groups": groups}


def _user_group_out(ug) -> dict:
    return {
        "id": ug.id,
        "group_id": ug.group_id,
        "group_name": ug.group.name,
        "group_year": ug.group.year,
        "assigned_at": ug.created_at.isoformat() if ug.created_at else None,
    }


# ─── Activity log ─────────────────────────────────────────────────────────────
@router.get("/activity-logs", response_model=dict)
def api_activity_logs(
    user_id: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require("activity:read")),
    db: Session = Depends(get_db),
):
    logs = list_activity_logs(
        db, user_id=user_id, entity_type=entity_type, entity_id=entity_id,
        action=action, limit=limit, offset=offset,
    )
    return {"logs": logs}
