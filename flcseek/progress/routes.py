# flcseek/progress/routes.py
from __future__ import annotations
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from flcseek.audit import log_audit_event
from flcseek.auth import CurrentUser, require
from flcseek.constants import AuditAction
from flcseek.db import get_db
from flcseek.people.service import get_person_for
from flcseek.schemas import ProgressBulkUpdate, ProgressToggle, ProgressUpdate, progress_out
from . import service

router = APIRouter(prefix="/progress", tags=["Progress"])


@router.get("/{person_id}", response_model=dict)
def api_get_progress(
    person_id: str,
    user: CurrentUser = Depends(require("progress:read")),
    db: Session = Depends(get_db),
):
    get_person_for(db, user, person_id)
    return {
        "progress": [progress_out(p) for p in service.get_progress(db, person_id)],
        "completion": service.completion_rate(db, person_id),
    }


@router.patch("/{person_id}", response_model=dict)
def api_update_progress(
    person_id: str,
    body: ProgressUpdate,
    request: Request,
    user: CurrentUser = Depends(require("progress:write")),
    db: Session = Depends(get_db),
):
    get_person_for(db, user, person_id)
    record = progress_out(service.upsert(db, person_id, body.stage_number, body.is_completed, user.id))
    log_audit_event(
        db, AuditAction.UPDATE_PROGRESS, user_id=user.id, entity_type="progress_record",
        entity_id=record["id"], new_values=body.model_dump(), request=request,
    )
    return {"progress": record}


@router.post("/{person_id}/toggle", response_model=dict)
def api_toggle_progress(
    person_id: str,
    body: ProgressToggle,
    request: Request,
    user: CurrentUser = Depends(require("progress:write")),
    db: Session = Depends(get_db),
):
    get_person_for(db, user, person_id)
    record = progress_out(service.toggle(db, person_id, body.stage_number, user.id))
    log_audit_event(
        db, AuditAction.UPDATE_PROGRESS, user_id=user.id, entity_type="progress_record",
        entity_id=record["id"], new_values={"stage_number": body.stage_number, "is_completed": record["is_completed"]},
        request=request,
    )
    return {"progress": record}


@router.put("/{person_id}", response_model=dict)
def api_bulk_update_progress(
    person_id: str,
    body: ProgressBulkUpdate,
    request: Request,
    user: CurrentUser = Depends(require("progress:write")),
    db: Session = Depends(get_db),
):
    get_person_for(db, user, person_id)
    records = service.bulk_update(
        db, person_id, [(u.stage_number, u.is_completed) for u in body.updates], user.id
    )
    out = [progress_out(r) for r in records]
    log_audit_event(
        db, AuditAction.UPDATE_PROGRESS, user_id=user.id, entity_type="new_convert", entity_id=person_id,
        new_values={"updates": [u.model_dump() for u in body.updates]}, request=request,
    )
    return {"progress": out, "updated": len(out)}
