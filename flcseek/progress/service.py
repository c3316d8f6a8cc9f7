# flcseek/progress/service.py
from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from flcseek.errors import NotFound, ValidationError
from flcseek.models import Milestone, NewConvert, ProgressRecord
from flcseek.utils.common import now_utc, safe_percent

log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Lookups
# ──────────────────────────────────────────────────────────────────────────────

def get_person_or_404(db: Session, person_id: str) -> NewConvert:
    person = db.get(NewConvert, person_id)
    if person is None:
        raise NotFound("Person not found")
    return person


def stage_name_for(db: Session, stage_number: int) -> str:
    name = db.query(Milestone.stage_name).filter(Milestone.stage_number == stage_number).scalar()
    return name or f"Stage {stage_number}"


def find_one(db: Session, person_id: str, stage_number: int) -> Optional[ProgressRecord]:
    return (
        db.query(ProgressRecord)
        .filter_by(person_id=person_id, stage_number=stage_number)
        .first()
    )


def get_progress(db: Session, person_id: str) -> List[ProgressRecord]:
    return (
        db.query(ProgressRecord)
        .filter(ProgressRecord.person_id == person_id)
        .order_by(ProgressRecord.stage_number.asc())
        .all()
    )


# ──────────────────────────────────────────────────────────────────────────────
# Writes
# ──────────────────────────────────────────────────────────────────────────────

def apply_upsert(
    db: Session,
    person_id: str,
    stage_number: int,
    is_completed: bool,
    updated_by: Optional[str],
) -> ProgressRecord:
    """
    Create or update the (person, stage) record inside the caller's transaction.

    date_completed is stamped on the transition to completed and cleared on the
    transition back; repeating the same call leaves the row untouched.
    """
    record = find_one(db, person_id, stage_number)
    if record is None:
        record = ProgressRecord(
            person_id=person_id,
            stage_number=stage_number,
            stage_name=stage_name_for(db, stage_number),
            is_completed=is_completed,
            date_completed=now_utc() if is_completed else None,
            updated_by=updated_by,
        )
        db.add(record)
        db.flush()
        return record

    if bool(record.is_completed) == is_completed:
        return record

    record.is_completed = is_completed
    record.updated_by = updated_by
    if is_completed:
        record.date_completed = now_utc()
        # name as it reads at completion time
        record.stage_name = stage_name_for(db, stage_number)
    else:
        record.date_completed = None
    db.flush()
    return record


def upsert(
    db: Session,
    person_id: str,
    stage_number: int,
    is_completed: bool,
    updated_by: Optional[str],
) -> ProgressRecord:
    get_person_or_404(db, person_id)
    try:
        record = apply_upsert(db, person_id, stage_number, is_completed, updated_by)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return record


def toggle(db: Session, person_id: str, stage_number: int, updated_by: Optional[str]) -> ProgressRecord:
    # read-then-write; concurrent toggles are last write wins
    existing = find_one(db, person_id, stage_number)
    new_status = not (existing.is_completed if existing else False)
    return upsert(db, person_id, stage_number, new_status, updated_by)


def bulk_update(
    db: Session,
    person_id: str,
    updates: Iterable[Tuple[int, bool]],
    updated_by: Optional[str],
) -> List[ProgressRecord]:
    """All-or-nothing: any failing update rolls back the whole batch."""
    get_person_or_404(db, person_id)
    results: List[ProgressRecord] = []
    try:
        for stage_number, is_completed in updates:
            if not isinstance(stage_number, int) or stage_number < 1:
                raise ValidationError(f"Invalid stage number: {stage_number!r}")
            results.append(apply_upsert(db, person_id, stage_number, bool(is_completed), updated_by))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return results


def initialize_for_person(db: Session, person_id: str, updated_by: Optional[str]) -> int:
    """
    Give a person one incomplete record per active milestone they lack.
    Flushes only; the caller owns the commit.
    """
    have = {
        n for (n,) in db.query(ProgressRecord.stage_number).filter(ProgressRecord.person_id == person_id)
    }
    created = 0
    for m in db.query(Milestone).filter(Milestone.is_active.is_(True)).order_by(Milestone.stage_number):
        if m.stage_number in have:
            continue
        db.add(ProgressRecord(
            person_id=person_id,
            stage_number=m.stage_number,
            stage_name=m.stage_name,
            is_completed=False,
            updated_by=updated_by,
        ))
        created += 1
    db.flush()
    return created


# ──────────────────────────────────────────────────────────────────────────────
# Stats
# ──────────────────────────────────────────────────────────────────────────────

def completion_rate(db: Session, person_id: str) -> Dict[str, int]:
    """Share of the person's own records that are complete (not of the catalog)."""
    total = db.query(func.count(ProgressRecord.id)).filter(ProgressRecord.person_id == person_id).scalar() or 0
    completed = (
        db.query(func.count(ProgressRecord.id))
        .filter(ProgressRecord.person_id == person_id, ProgressRecord.is_completed.is_(True))
        .scalar()
        or 0
    )
    return {"completed": completed, "total": total, "percentage": safe_percent(completed, total)}


def group_stats(db: Session, group_id: str) -> Dict:
    total_people = db.query(func.count(NewConvert.id)).filter(NewConvert.group_id == group_id).scalar() or 0
    rows = (
        db.query(ProgressRecord.stage_number, func.count(ProgressRecord.id))
        .join(NewConvert, NewConvert.id == ProgressRecord.person_id)
        .filter(NewConvert.group_id == group_id, ProgressRecord.is_completed.is_(True))
        .group_by(ProgressRecord.stage_number)
        .all()
    )
    completed_by_stage = dict(rows)
    stages = [
        n for (n,) in db.query(Milestone.stage_number)
        .filter(Milestone.is_active.is_(True))
        .order_by(Milestone.stage_number)
    ]
    return {
        "total_people": total_people,
        "milestone_stats": [
            {
                "stage_number": n,
                "completed_count": completed_by_stage.get(n, 0),
                "percentage": safe_percent(completed_by_stage.get(n, 0), total_people),
            }
            for n in stages
        ],
    }
