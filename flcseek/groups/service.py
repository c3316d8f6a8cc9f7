# flcseek/groups/service.py
from __future__ import annotations
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flcseek.errors import DuplicateGroup, InUse, NotFound
from flcseek.models import Group, NewConvert
from flcseek.schemas import group_out

log = logging.getLogger(__name__)


def _member_counts(db: Session) -> Dict[str, int]:
    return dict(
        db.query(NewConvert.group_id, func.count(NewConvert.id))
        .filter(NewConvert.group_id.isnot(None))
        .group_by(NewConvert.group_id)
        .all()
    )


def list_groups(
    db: Session,
    *,
    year: Optional[int] = None,
    include_archived: bool = False,
    group_id: Optional[str] = None,
) -> List[Tuple[Group, int]]:
    q = db.query(Group)
    if year is not None:
        q = q.filter(Group.year == year)
    if not include_archived:
        q = q.filter(Group.archived.is_(False))
    if group_id:
        q = q.filter(Group.id == group_id)
    counts = _member_counts(db)
    return [(g, counts.get(g.id, 0)) for g in q.order_by(Group.year.desc(), Group.name.asc()).all()]


def get_group(db: Session, group_id: str) -> Group:
    g = db.get(Group, group_id)
    if g is None:
        raise NotFound("Group not found")
    return g


def member_count(db: Session, group_id: str) -> int:
    return db.query(func.count(NewConvert.id)).filter(NewConvert.group_id == group_id).scalar() or 0


def _ensure_unique(db: Session, name: str, year: int, exclude_id: Optional[str] = None) -> None:
    q = db.query(Group.id).filter(Group.name == name, Group.year == year)
    if exclude_id:
        q = q.filter(Group.id != exclude_id)
    if q.first():
        raise DuplicateGroup(f"A group named {name} already exists for {year}")


def create_group(
    db: Session,
    name: str,
    year: int,
    leader_id: Optional[str] = None,
    description: Optional[str] = None,
) -> Group:
    name = name.strip()
    _ensure_unique(db, name, year)
    g = Group(name=name, year=year, leader_id=leader_id, description=description, archived=False)
    db.add(g)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateGroup(f"A group named {name} already exists for {year}")
    db.refresh(g)
    return g


def update_group(db: Session, group_id: str, changes: Dict[str, Any]) -> Group:
    g = get_group(db, group_id)
    name = changes.get("name", g.name)
    year = changes.get("year", g.year)
    if name != g.name or year != g.year:
        _ensure_unique(db, name, year, exclude_id=g.id)
    for k, v in changes.items():
        setattr(g, k, v)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateGroup(f"A group named {name} already exists for {year}")
    db.refresh(g)
    return g


def set_archived(db: Session, group_id: str, archived: bool) -> Group:
    """Archived groups are frozen: hidden from active listings and skipped by backfill."""
    return update_group(db, group_id, {"archived": archived})


def delete_group(db: Session, group_id: str) -> dict:
    g = get_group(db, group_id)
    members = member_count(db, group_id)
    if members:
        raise InUse(f"Cannot delete a group that still has {members} member(s)")
    snapshot = group_out(g)
    db.delete(g)
    db.commit()
    return snapshot


def clone_previous_year(db: Session, current_year: Optional[int] = None) -> Dict[str, Any]:
    """
    Copy every non-archived group of last year into `current_year` with the
    same name, description and leader. Groups already present are skipped.
    """
    current_year = current_year or date.today().year
    previous_year = current_year - 1
    source = (
        db.query(Group)
        .filter(Group.year == previous_year, Group.archived.is_(False))
        .order_by(Group.name)
        .all()
    )
    existing = {n for (n,) in db.query(Group.name).filter(Group.year == current_year)}

    cloned: List[Group] = []
    skipped: List[str] = []
    for g in source:
        if g.name in existing:
            skipped.append(g.name)
            continue
        clone = Group(
            name=g.name, year=current_year, leader_id=g.leader_id, description=g.description, archived=False
        )
        db.add(clone)
        cloned.append(clone)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    log.info("Cloned %d group(s) from %d to %d (%d skipped)", len(cloned), previous_year, current_year, len(skipped))
    return {
        "previous_year": previous_year,
        "current_year": current_year,
        "cloned": cloned,
        "skipped": skipped,
    }
