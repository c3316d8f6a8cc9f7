# flcseek/schemas.py
"""
Request bodies (pydantic) and the row -> API dict mapping.

Storage rows never leave the service layer except through the `*_out`
functions below, so field naming for the API lives in one place.
"""
from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, List, Optional
import json

from pydantic import BaseModel, Field, StrictBool

from flcseek.constants import Role
from flcseek import models


# ─────────────────────────────
# Request bodies
# ─────────────────────────────
class LoginInput(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class MilestoneCreate(BaseModel):
    stage_number: int = Field(ge=1)
    stage_name: str = Field(min_length=1, max_length=255)
    short_name: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None
    is_active: bool = True


class MilestoneUpdate(BaseModel):
    id: str
    stage_name: str = Field(min_length=1, max_length=255)
    short_name: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class MilestoneActiveToggle(BaseModel):
    id: str
    is_active: StrictBool


class ProgressUpdate(BaseModel):
    stage_number: int = Field(ge=1)
    is_completed: StrictBool


class ProgressBulkUpdate(BaseModel):
    updates: List[ProgressUpdate] = Field(min_length=1)


class ProgressToggle(BaseModel):
    stage_number: int = Field(ge=1)


class AttendanceInput(BaseModel):
    person_id: str
    date_attended: date


class AttendanceBulkInput(BaseModel):
    # loose rows, checked one by one so a bad entry is reported, not fatal
    records: List[Dict[str, Any]] = Field(min_length=1)


class PersonCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone_number: str = Field(min_length=1)
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    residential_location: Optional[str] = None
    group_id: Optional[str] = None


class PersonUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    residential_location: Optional[str] = None
    group_id: Optional[str] = None


class PeopleBulkInput(BaseModel):
    # rows stay loose dicts: each one is validated on its own so a bad row
    # lands in the error list instead of failing the whole request
    people: List[Dict[str, Any]] = Field(min_length=1)
    group_id: Optional[str] = None


class BulkDeleteInput(BaseModel):
    ids: List[str] = Field(min_length=1)


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    year: int = Field(ge=2000, le=2100)
    leader_id: Optional[str] = None
    description: Optional[str] = None


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    leader_id: Optional[str] = None
    description: Optional[str] = None
    archived: Optional[bool] = None


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=6)
    role: Role
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    group_id: Optional[str] = None


class UserGroupsInput(BaseModel):
    group_ids: List[str]


# ─────────────────────────────
# Row -> API mapping
# ─────────────────────────────
def _iso(value: Optional[date | datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def milestone_out(m: models.Milestone) -> Dict[str, Any]:
    return {
        "id": m.id,
        "stage_number": m.stage_number,
        "stage_name": m.stage_name,
        "short_name": m.short_name,
        "description": m.description,
        "is_active": bool(m.is_active),
        "is_auto_calculated": bool(m.is_auto_calculated),
        "created_at": _iso(m.created_at),
        "updated_at": _iso(m.updated_at),
    }


def progress_out(p: models.ProgressRecord) -> Dict[str, Any]:
    return {
        "id": p.id,
        "person_id": p.person_id,
        "stage_number": p.stage_number,
        "stage_name": p.stage_name,
        "is_completed": bool(p.is_completed),
        "date_completed": _iso(p.date_completed),
        "updated_by": p.updated_by,
    }


def attendance_out(a: models.AttendanceRecord) -> Dict[str, Any]:
    return {
        "id": a.id,
        "person_id": a.person_id,
        "date_attended": _iso(a.attendance_date),
        "recorded_by": a.marked_by,
        "created_at": _iso(a.created_at),
    }


def person_out(p: models.NewConvert) -> Dict[str, Any]:
    return {
        "id": p.id,
        "first_name": p.first_name,
        "last_name": p.last_name,
        "phone_number": p.phone_number,
        "date_of_birth": p.date_of_birth,
        "gender": p.gender,
        "residential_location": p.residential_location,
        "group_id": p.group_id,
        "group_name": p.group.name if p.group else None,
        "group_year": p.group.year if p.group else None,
        "registered_by": p.registered_by,
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
    }


def group_out(g: models.Group, member_count: Optional[int] = None) -> Dict[str, Any]:
    out = {
        "id": g.id,
        "name": g.name,
        "year": g.year,
        "leader_id": g.leader_id,
        "archived": bool(g.archived),
        "description": g.description,
        "created_at": _iso(g.created_at),
        "updated_at": _iso(g.updated_at),
    }
    if member_count is not None:
        out["member_count"] = member_count
    return out


def user_out(u: models.User) -> Dict[str, Any]:
    return {
        "id": u.id,
        "username": u.username,
        "role": u.role,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "email": u.email,
        "phone_number": u.phone_number,
        "group_id": u.group_id,
        "created_at": _iso(u.created_at),
    }


def activity_log_out(al: models.ActivityLog) -> Dict[str, Any]:
    user = al.user
    return {
        "id": al.id,
        "user_id": al.user_id,
        "action": al.action,
        "entity_type": al.entity_type,
        "entity_id": al.entity_id,
        "old_values": json.loads(al.old_values) if al.old_values else None,
        "new_values": json.loads(al.new_values) if al.new_values else None,
        "ip_address": al.ip_address,
        "user_agent": al.user_agent,
        "created_at": _iso(al.created_at),
        "user_name": user.username if user else None,
        "user_full_name": f"{user.first_name or ''} {user.last_name or ''}".strip() if user else None,
    }


def full_name(first: Optional[str], last: Optional[str]) -> Optional[str]:
    name = f"{first or ''} {last or ''}".strip()
    return name or None
