# flcseek/attendance/service.py
from __future__ import annotations
from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from flcseek.config import settings
from flcseek.constants import DEFAULT_WEEKLY_STATS_WEEKS
from flcseek.errors import AppError, DuplicateAttendance
from flcseek.models import AttendanceRecord, NewConvert, ProgressRecord
from flcseek.progress import service as progress
from flcseek.utils.common import parse_sheet_date, trailing_week_starts, week_bounds_for

log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Attendance-goal rule
# ──────────────────────────────────────────────────────────────────────────────

def evaluate_attendance_milestone(db: Session, person_id: str, updated_by: Optional[str]) -> bool:
    """
    Complete the attendance stage once the person's attendance count reaches
    the goal. Safe to re-run; never un-completes (deleting attendance later
    does not retract the milestone). Flushes only.
    Returns True when the stage is complete after evaluation.
    """
    count = count_for_person(db, person_id)
    if count < settings.ATTENDANCE_GOAL:
        return False
    stage = settings.ATTENDANCE_STAGE_NUMBER
    record = progress.find_one(db, person_id, stage)
    if record is None or not record.is_completed:
        log.info("Person %s reached %d attendances; completing stage %s", person_id, count, stage)
    progress.apply_upsert(db, person_id, stage, True, updated_by)
    return True


def sync_attendance_milestones(db: Session, updated_by: Optional[str] = None) -> int:
    """
    Re-run the attendance-goal rule for everyone at or above the goal.
    Returns how many people had the stage newly completed.
    """
    stage = settings.ATTENDANCE_STAGE_NUMBER
    at_goal = [
        pid for (pid, n) in db.query(AttendanceRecord.person_id, func.count(AttendanceRecord.id))
        .group_by(AttendanceRecord.person_id)
        .all()
        if n >= settings.ATTENDANCE_GOAL
    ]
    already = {
        pid for (pid,) in db.query(ProgressRecord.person_id)
        .filter(ProgressRecord.stage_number == stage, ProgressRecord.is_completed.is_(True))
    }
    newly = 0
    try:
        for pid in at_goal:
            if pid in already:
                continue
            progress.apply_upsert(db, pid, stage, True, updated_by)
            newly += 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    log.info("Attendance milestone sync: %d at goal, %d newly completed", len(at_goal), newly)
    return newly


# ──────────────────────────────────────────────────────────────────────────────
# Ledger
# ──────────────────────────────────────────────────────────────────────────────

def count_for_person(db: Session, person_id: str) -> int:
    return db.query(func.count(AttendanceRecord.id)).filter(AttendanceRecord.person_id == person_id).scalar() or 0


def list_for_person(db: Session, person_id: str) -> List[AttendanceRecord]:
    return (
        db.query(AttendanceRecord)
        .filter(AttendanceRecord.person_id == person_id)
        .order_by(AttendanceRecord.attendance_date.desc(), AttendanceRecord.created_at.desc())
        .all()
    )


def record_attendance(
    db: Session,
    person_id: str,
    attendance_date: date,
    marked_by: Optional[str],
) -> AttendanceRecord:
    """
    Insert one (person, date) entry and evaluate the attendance-goal rule in
    the same transaction. A second entry for the same day is rejected.
    """
    progress.get_person_or_404(db, person_id)

    exists = (
        db.query(AttendanceRecord.id)
        .filter_by(person_id=person_id, attendance_date=attendance_date)
        .first()
    )
    if exists:
        raise DuplicateAttendance(f"Attendance already recorded for this person on {attendance_date.isoformat()}")

    record = AttendanceRecord(person_id=person_id, attendance_date=attendance_date, marked_by=marked_by)
    try:
        db.add(record)
        db.flush()
        evaluate_attendance_milestone(db, person_id, marked_by)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateAttendance(f"Attendance already recorded for this person on {attendance_date.isoformat()}")
    except Exception:
        db.rollback()
        raise
    return record


def bulk_record(
    db: Session,
    records: Iterable[Tuple[Any, Any]],
    marked_by: Optional[str],
    group_scope: Optional[str] = None,
) -> Dict[str, list]:
    """
    Lenient batch: each (person_id, date) commits on its own, and a bad entry
    lands in `errors` without stopping the rest. Dates may arrive raw (ISO
    string, Excel serial); unparseable ones are reported. With `group_scope`
    set, people outside that group are reported instead of recorded.
    """
    created: List[AttendanceRecord] = []
    errors: List[str] = []
    for person_id, raw_date in records:
        attendance_date = parse_sheet_date(raw_date)
        if attendance_date is None:
            errors.append(f"{person_id} on {raw_date}: invalid date")
            continue
        if not person_id or not isinstance(person_id, str):
            errors.append(f"{person_id} on {attendance_date.isoformat()}: person_id is required")
            continue
        if group_scope:
            person = db.get(NewConvert, person_id)
            if person is not None and person.group_id != group_scope:
                errors.append(f"{person_id} on {attendance_date.isoformat()}: Person is not in your group")
                continue
        try:
            created.append(record_attendance(db, person_id, attendance_date, marked_by))
        except AppError as e:
            errors.append(f"{person_id} on {attendance_date.isoformat()}: {e.message}")
        except SQLAlchemyError as e:
            log.warning("Bulk attendance failed for %s on %s: %s", person_id, attendance_date, e)
            errors.append(f"Failed to record for {person_id} on {attendance_date.isoformat()}")
    return {"created": created, "errors": errors}


def remove(db: Session, record_id: str) -> bool:
    """Delete one entry. Missing ids return False. Completed milestones stay completed."""
    record = db.get(AttendanceRecord, record_id)
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True


# ──────────────────────────────────────────────────────────────────────────────
# Stats
# ──────────────────────────────────────────────────────────────────────────────

def weekly_stats(
    db: Session,
    group_id: Optional[str] = None,
    weeks: int = DEFAULT_WEEKLY_STATS_WEEKS,
    today: Optional[date] = None,
) -> List[Dict]:
    """Attendance per Monday-start week over the trailing `weeks` weeks, oldest first, zero-filled."""
    today = today or date.today()
    starts = trailing_week_starts(today, weeks)
    _, last_sunday = week_bounds_for(today)

    q = db.query(AttendanceRecord.attendance_date).filter(
        AttendanceRecord.attendance_date >= starts[0],
        AttendanceRecord.attendance_date <= last_sunday,
    )
    if group_id:
        q = q.join(NewConvert, NewConvert.id == AttendanceRecord.person_id).filter(NewConvert.group_id == group_id)

    counts: Dict[date, int] = defaultdict(int)
    for (d,) in q:
        monday, _ = week_bounds_for(d)
        counts[monday] += 1
    return [{"week_start": s.isoformat(), "count": counts.get(s, 0)} for s in starts]


def group_stats(db: Session, group_id: str) -> Dict[str, int]:
    per_person = dict(
        db.query(NewConvert.id, func.count(AttendanceRecord.id))
        .outerjoin(AttendanceRecord, AttendanceRecord.person_id == NewConvert.id)
        .filter(NewConvert.group_id == group_id)
        .group_by(NewConvert.id)
        .all()
    )
    total_people = len(per_person)
    total_attendance = sum(per_person.values())
    return {
        "total_people": total_people,
        "with_attendance": sum(1 for n in per_person.values() if n > 0),
        "goal_reached": sum(1 for n in per_person.values() if n >= settings.ATTENDANCE_GOAL),
        "average_attendance": int(total_attendance / total_people + 0.5) if total_people else 0,
        "attendance_goal": settings.ATTENDANCE_GOAL,
    }
