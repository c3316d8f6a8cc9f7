# flcseek/milestones/service.py
from __future__ import annotations
from typing import List, Optional, Tuple
import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flcseek.errors import DuplicateStage, InUse, NotFound
from flcseek.models import Group, Milestone, NewConvert, ProgressRecord
from flcseek.schemas import milestone_out

log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Catalog
# ──────────────────────────────────────────────────────────────────────────────

def list_milestones(db: Session, *, active_only: bool = False) -> List[Milestone]:
    q = db.query(Milestone)
    if active_only:
        q = q.filter(Milestone.is_active.is_(True))
    return q.order_by(Milestone.stage_number.asc()).all()


def get_milestone(db: Session, milestone_id: str) -> Milestone:
    m = db.get(Milestone, milestone_id)
    if m is None:
        raise NotFound("Milestone not found")
    return m


def create_milestone(
    db: Session,
    stage_number: int,
    stage_name: str,
    short_name: Optional[str] = None,
    description: Optional[str] = None,
    is_active: bool = True,
) -> Milestone:
    if db.query(Milestone.id).filter(Milestone.stage_number == stage_number).first():
        raise DuplicateStage("Stage number already exists")

    m = Milestone(
        stage_number=stage_number,
        stage_name=stage_name,
        short_name=short_name,
        description=description,
        is_active=is_active,
        is_auto_calculated=False,
    )
    db.add(m)
    try:
        db.commit()
    except IntegrityError:
        # lost the race to a concurrent create
        db.rollback()
        raise DuplicateStage("Stage number already exists")
    db.refresh(m)
    return m


def update_milestone(
    db: Session,
    milestone_id: str,
    stage_name: str,
    short_name: Optional[str] = None,
    description: Optional[str] = None,
) -> Milestone:
    """Rename/describe a milestone. stage_number never changes here."""
    m = get_milestone(db, milestone_id)
    m.stage_name = stage_name
    m.short_name = short_name
    m.description = description
    db.commit()
    db.refresh(m)
    return m


def delete_milestone(db: Session, milestone_id: str) -> dict:
    """Delete an unreferenced milestone; returns its last state."""
    m = get_milestone(db, milestone_id)
    usage = (
        db.query(func.count(ProgressRecord.id))
        .filter(ProgressRecord.stage_number == m.stage_number)
        .scalar()
    )
    if usage:
        raise InUse("Cannot delete milestone that is being used in progress records")
    snapshot = milestone_out(m)
    db.delete(m)
    db.commit()
    return snapshot


def set_active(db: Session, milestone_id: str, is_active: bool, acting_user_id: Optional[str]) -> Tuple[Milestone, int]:
    """
    Flip is_active. Activation backfills missing progress records in the same
    transaction; deactivation leaves existing records alone.
    Returns (milestone, backfilled_count).
    """
    m = get_milestone(db, milestone_id)
    backfilled = 0
    try:
        m.is_active = is_active
        db.flush()
        if is_active:
            backfilled = backfill_milestone(db, m, acting_user_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(m)
    return m, backfilled


# ──────────────────────────────────────────────────────────────────────────────
# Backfill
# ──────────────────────────────────────────────────────────────────────────────

def backfill_milestone(db: Session, milestone: Milestone, updated_by: Optional[str]) -> int:
    """
    Create an incomplete record for `milestone` for every person who:
      - sits in no group or in a non-archived group,
      - has no record for this stage yet,
      - has not graduated, i.e. completed fewer records than the number of
        other active milestones (with no other active milestone nobody is
        treated as graduated).
    Flushes only; the caller owns the commit.
    """
    stage = milestone.stage_number

    # Excludes the milestone being activated rather than counting every active
    # one: with it counted, nobody lacking this stage could ever look graduated.
    graduation_total = (
        db.query(func.count(Milestone.id))
        .filter(Milestone.is_active.is_(True), Milestone.id != milestone.id)
        .scalar()
        or 0
    )

    people_ids = [
        pid for (pid,) in db.query(NewConvert.id)
        .outerjoin(Group, Group.id == NewConvert.group_id)
        .filter(or_(NewConvert.group_id.is_(None), Group.archived.is_(False)))
    ]

    has_stage = {
        pid for (pid,) in db.query(ProgressRecord.person_id).filter(ProgressRecord.stage_number == stage)
    }
    completed_counts = dict(
        db.query(ProgressRecord.person_id, func.count(ProgressRecord.id))
        .filter(ProgressRecord.is_completed.is_(True))
        .group_by(ProgressRecord.person_id)
        .all()
    )

    eligible = [
        pid for pid in people_ids
        if pid not in has_stage
        and not (graduation_total and completed_counts.get(pid, 0) >= graduation_total)
    ]

    if not eligible:
        log.info("Milestone %s activated; no progress records to backfill", stage)
        return 0

    stage_name = milestone.stage_name or f"Stage {stage}"
    db.add_all([
        ProgressRecord(
            person_id=pid,
            stage_number=stage,
            stage_name=stage_name,
            is_completed=False,
            updated_by=updated_by,
        )
        for pid in eligible
    ])
    db.flush()
    log.info("Milestone %s activated; backfilled %d progress record(s)", stage, len(eligible))
    return len(eligible)
