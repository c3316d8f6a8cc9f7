# flcseek/exports/service.py
from __future__ import annotations
from typing import Any, Dict, List, Optional
import csv
import io

import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from flcseek.errors import ValidationError
from flcseek.constants import EXPORT_TYPES
from flcseek.models import AttendanceRecord, Group, Milestone, NewConvert, ProgressRecord
from flcseek.schemas import full_name


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _converts_query(db: Session, group_id: Optional[str]):
    q = (
        db.query(NewConvert)
        .outerjoin(Group, Group.id == NewConvert.group_id)
        .options(joinedload(NewConvert.group), joinedload(NewConvert.registered_by_user))
    )
    if group_id:
        q = q.filter(NewConvert.group_id == group_id)
    return q.order_by(Group.name.asc(), NewConvert.first_name.asc(), NewConvert.last_name.asc())


def export_converts(db: Session, group_id: Optional[str] = None) -> List[Dict[str, Any]]:
    rows = []
    for nc in _converts_query(db, group_id):
        rows.append({
            "id": nc.id,
            "first_name": nc.first_name,
            "last_name": nc.last_name,
            "phone_number": nc.phone_number,
            "date_of_birth": nc.date_of_birth,
            "gender": nc.gender,
            "residential_location": nc.residential_location,
            "group_name": nc.group.name if nc.group else None,
            "group_year": nc.group.year if nc.group else None,
            "registered_at": _iso(nc.created_at),
            "registered_by": full_name(nc.registered_by_user.first_name, nc.registered_by_user.last_name)
            if nc.registered_by_user else None,
        })
    return rows


def export_progress(db: Session, group_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """One row per (convert, milestone), including stages with no record yet."""
    milestones = db.query(Milestone).order_by(Milestone.stage_number.asc()).all()
    converts = _converts_query(db, group_id).options(joinedload(NewConvert.progress_records)).all()
    rows = []
    for nc in converts:
        by_stage = {pr.stage_number: pr for pr in nc.progress_records}
        for m in milestones:
            pr = by_stage.get(m.stage_number)
            rows.append({
                "first_name": nc.first_name,
                "last_name": nc.last_name,
                "phone_number": nc.phone_number,
                "group_name": nc.group.name if nc.group else None,
                "group_year": nc.group.year if nc.group else None,
                "stage_number": m.stage_number,
                "stage_name": m.stage_name,
                "is_completed": bool(pr.is_completed) if pr else False,
                "date_completed": _iso(pr.date_completed) if pr else None,
            })
    return rows


def export_attendance(db: Session, group_id: Optional[str] = None) -> List[Dict[str, Any]]:
    q = (
        db.query(AttendanceRecord)
        .join(NewConvert, NewConvert.id == AttendanceRecord.person_id)
        .options(
            joinedload(AttendanceRecord.person).joinedload(NewConvert.group),
            joinedload(AttendanceRecord.marked_by_user),
        )
    )
    if group_id:
        q = q.filter(NewConvert.group_id == group_id)
    q = q.order_by(AttendanceRecord.attendance_date.desc(), NewConvert.first_name.asc())
    rows = []
    for ar in q:
        p = ar.person
        rows.append({
            "first_name": p.first_name,
            "last_name": p.last_name,
            "phone_number": p.phone_number,
            "group_name": p.group.name if p.group else None,
            "group_year": p.group.year if p.group else None,
            "attendance_date": _iso(ar.attendance_date),
            "marked_by": full_name(ar.marked_by_user.first_name, ar.marked_by_user.last_name)
            if ar.marked_by_user else None,
        })
    return rows


def export_summary(db: Session) -> List[Dict[str, Any]]:
    converts = dict(
        db.query(NewConvert.group_id, func.count(NewConvert.id)).group_by(NewConvert.group_id).all()
    )
    completed = dict(
        db.query(NewConvert.group_id, func.count(ProgressRecord.id))
        .join(ProgressRecord, ProgressRecord.person_id == NewConvert.id)
        .filter(ProgressRecord.is_completed.is_(True))
        .group_by(NewConvert.group_id)
        .all()
    )
    attendance = dict(
        db.query(NewConvert.group_id, func.count(AttendanceRecord.id))
        .join(AttendanceRecord, AttendanceRecord.person_id == NewConvert.id)
        .group_by(NewConvert.group_id)
        .all()
    )
    return [
        {
            "group_name": g.name,
            "group_year": g.year,
            "total_converts": converts.get(g.id, 0),
            "completed_milestones": completed.get(g.id, 0),
            "total_attendance_records": attendance.get(g.id, 0),
        }
        for g in db.query(Group).order_by(Group.name.asc(), Group.year.asc())
    ]


def build_export(db: Session, export_type: str, group_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
    if export_type not in EXPORT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(EXPORT_TYPES)}")
    data: Dict[str, List[Dict[str, Any]]] = {}
    if export_type in ("converts", "all"):
        data["converts"] = export_converts(db, group_id)
    if export_type in ("progress", "all"):
        data["progress"] = export_progress(db, group_id)
    if export_type in ("attendance", "all"):
        data["attendance"] = export_attendance(db, group_id)
    if export_type == "all":
        data["summary"] = export_summary(db)
    return data


# ──────────────────────────────────────────────────────────────────────────────
# Encoders
# ──────────────────────────────────────────────────────────────────────────────

def to_csv(data: Dict[str, List[Dict[str, Any]]]) -> str:
    """
    Sections as `=== NAME ===` header lines followed by a header row and the
    data rows, RFC 4180 quoting, a blank line between sections. Empty
    sections are left out.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    first = True
    for key, rows in data.items():
        if not rows:
            continue
        if not first:
            buf.write("\n")
        first = False
        buf.write(f"=== {key.upper()} ===\n")
        headers = list(rows[0].keys())
        writer.writerow(headers)
        for row in rows:
            writer.writerow(["" if row.get(h) is None else row.get(h) for h in headers])
    return buf.getvalue()


def to_xlsx(data: Dict[str, List[Dict[str, Any]]]) -> bytes:
    """One worksheet per section."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        wrote = False
        for key, rows in data.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=key[:31], index=False)
            wrote = True
        if not wrote:
            pd.DataFrame().to_excel(writer, sheet_name="export", index=False)
    return buf.getvalue()
