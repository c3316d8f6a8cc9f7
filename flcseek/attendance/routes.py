# flcseek/attendance/routes.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from flcseek.audit import log_audit_event
from flcseek.auth import CurrentUser, require, scoped_group_id
from flcseek.config import settings
from flcseek.constants import AuditAction, DEFAULT_WEEKLY_STATS_WEEKS
from flcseek.db import get_db
from flcseek.models import AttendanceRecord
from flcseek.people.service import get_person_for
from flcseek.progress import service as progress
from flcseek.schemas import AttendanceBulkInput, AttendanceInput, attendance_out
from . import service

router = APIRouter(prefix="/attendance", tags=["Attendance"])


@router.post("", response_model=dict, status_code=201)
def api_record_attendance(
    body: AttendanceInput,
    request: Request,
    user: CurrentUser = Depends(require("attendance:write")),
    db: Session = Depends(get_db),
):
    get_person_for(db, user, body.person_id)
    record = attendance_out(service.record_attendance(db, body.person_id, body.date_attended, user.id))
    count = service.count_for_person(db, body.person_id)
    stage = progress.find_one(db, body.person_id, settings.ATTENDANCE_STAGE_NUMBER)
    log_audit_event(
        db, AuditAction.MARK_ATTENDANCE, user_id=user.id, entity_type="attendance_record",
        entity_id=record["id"], new_values={"person_id": body.person_id, "date": body.date_attended}, request=request,
    )
    return {
        "attendance": record,
        "attendance_count": count,
        "attendance_goal": settings.ATTENDANCE_GOAL,
        "milestone_completed": bool(stage and stage.is_completed),
    }


@router.post("/bulk", response_model=dict)
def api_bulk_record_attendance(
    body: AttendanceBulkInput,
    request: Request,
    user: CurrentUser = Depends(require("attendance:write")),
    db: Session = Depends(get_db),
):
    scope = scoped_group_id(user)
    result = service.bulk_record(
        db, [(r.get("person_id"), r.get("date_attended")) for r in body.records], user.id, group_scope=scope
    )
    created = [attendance_out(r) for r in result["created"]]
    log_audit_event(
        db, AuditAction.MARK_ATTENDANCE, user_id=user.id, entity_type="attendance_record",
        new_values={"created": len(created), "errors": len(result["errors"])}, request=request,
    )
    return {"created": created, "errors": result["errors"]}


@router.get("/stats/weekly", response_model=dict)
def api_weekly_stats(
    group_id: Optional[str] = Query(None),
    weeks: int = Query(DEFAULT_WEEKLY_STATS_WEEKS, ge=1, le=104),
    user: CurrentUser = Depends(require("attendance:read")),
    db: Session = Depends(get_db),
):
    gid = scoped_group_id(user, group_id)
    return {"group_id": gid, "weeks": weeks, "stats": service.weekly_stats(db, group_id=gid, weeks=weeks)}


@router.post("/sync-milestone", response_model=dict)
def api_sync_attendance_milestone(
    user: CurrentUser = Depends(require("attendance:sync")),
    db: Session = Depends(get_db),
):
    newly = service.sync_attendance_milestones(db, updated_by=user.id)
    return {
        "status": "ok",
        "stage_number": settings.ATTENDANCE_STAGE_NUMBER,
        "attendance_goal": settings.ATTENDANCE_GOAL,
        "newly_completed": newly,
    }


@router.get("/{person_id}", response_model=dict)
def api_person_attendance(
    person_id: str,
    user: CurrentUser = Depends(require("attendance:read")),
    db: Session = Depends(get_db),
):
    get_person_for(db, user, person_id)
    records = service.list_for_person(db, person_id)
    return {
        "attendance": [attendance_out(r) for r in records],
        "count": len(records),
        "attendance_goal": settings.ATTENDANCE_GOAL,
    }


@router.delete("/{record_id}", response_model=dict)
def api_delete_attendance(
    record_id: str,
    request: Request,
    user: CurrentUser = Depends(require("attendance:delete")),
    db: Session = Depends(get_db),
):
    existing = db.get(AttendanceRecord, record_id)
    if existing is not None:
        get_person_for(db, user, existing.person_id)
        old = attendance_out(existing)
    deleted = service.remove(db, record_id)
    if deleted:
        log_audit_event(
            db, AuditAction.DELETE_ATTENDANCE, user_id=user.id, entity_type="attendance_record",
            entity_id=record_id, old_values=old, request=request,
        )
    return {"deleted": deleted}
