# flcseek/people/service.py
from __future__ import annotations
from typing import Any, Dict, List, Optional
import io
import logging

import pandas as pd
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flcseek.auth import ensure_group_access
from flcseek.config import settings
from flcseek.errors import AppError, DuplicatePhone, NotFound, ValidationError
from flcseek.models import AttendanceRecord, Group, NewConvert, ProgressRecord
from flcseek.progress import service as progress
from flcseek.utils.common import normalize_day_month, normalize_phone

log = logging.getLogger(__name__)

_GENDERS = {"male": "Male", "m": "Male", "female": "Female", "f": "Female"}

# spreadsheet headers we accept for each field
_HEADER_ALIASES = {
    "phone": "phone_number",
    "phone_no": "phone_number",
    "telephone": "phone_number",
    "dob": "date_of_birth",
    "birthday": "date_of_birth",
    "location": "residential_location",
    "residence": "residential_location",
    "firstname": "first_name",
    "lastname": "last_name",
    "surname": "last_name",
}


# ──────────────────────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────────────────────

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def clean_person_fields(data: Dict[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    """
    Normalize and validate person fields. With partial=True only the keys
    present are checked (updates). Raises ValidationError listing every problem.
    """
    out: Dict[str, Any] = {}
    problems: List[str] = []

    for field in ("first_name", "last_name"):
        if field in data or not partial:
            value = _text(data.get(field))
            if not value:
                problems.append(f"{field} is required")
            else:
                out[field] = value[:100]

    if "phone_number" in data or not partial:
        phone = normalize_phone(data.get("phone_number"))
        if not phone:
            problems.append("phone_number is required")
        elif not phone.isdigit() or not 9 <= len(phone) <= 15:
            problems.append("phone_number must contain 9 to 15 digits")
        else:
            out["phone_number"] = phone

    if data.get("date_of_birth") not in (None, ""):
        dob = normalize_day_month(data.get("date_of_birth"))
        if dob is None:
            problems.append("date_of_birth must be DD-MM")
        else:
            out["date_of_birth"] = dob
    elif "date_of_birth" in data:
        out["date_of_birth"] = None

    if data.get("gender") not in (None, ""):
        gender = _GENDERS.get(str(data["gender"]).strip().lower())
        if gender is None:
            problems.append("gender must be Male or Female")
        else:
            out["gender"] = gender
    elif "gender" in data:
        out["gender"] = None

    if "residential_location" in data:
        out["residential_location"] = _text(data.get("residential_location"))
    if "group_id" in data:
        out["group_id"] = _text(data.get("group_id"))

    if problems:
        raise ValidationError(", ".join(problems), details=problems)
    return out


def _check_group(db: Session, group_id: Optional[str]) -> None:
    if group_id and db.get(Group, group_id) is None:
        raise NotFound("Group not found")


def _check_phone_free(db: Session, phone: str, exclude_id: Optional[str] = None) -> None:
    q = db.query(NewConvert.id).filter(NewConvert.phone_number == phone)
    if exclude_id:
        q = q.filter(NewConvert.id != exclude_id)
    if q.first():
        raise DuplicatePhone(f"A person with phone number {phone} is already registered")


# ──────────────────────────────────────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────────────────────────────────────

def get_person(db: Session, person_id: str) -> NewConvert:
    return progress.get_person_or_404(db, person_id)


def list_people(
    db: Session,
    *,
    group_id: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> Dict[str, Any]:
    q = db.query(NewConvert)
    if group_id:
        q = q.filter(NewConvert.group_id == group_id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            NewConvert.first_name.ilike(like),
            NewConvert.last_name.ilike(like),
            NewConvert.phone_number.ilike(like),
        ))
    total = q.with_entities(func.count(NewConvert.id)).scalar() or 0
    people = (
        q.order_by(NewConvert.last_name.asc(), NewConvert.first_name.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {"total": total, "people": people}


# ──────────────────────────────────────────────────────────────────────────────
# Writes
# ──────────────────────────────────────────────────────────────────────────────

def register_person(db: Session, data: Dict[str, Any], registered_by: Optional[str]) -> NewConvert:
    """
    Register a new convert and give them an incomplete record for every
    active milestone, in one transaction.
    """
    fields = clean_person_fields(data)
    _check_group(db, fields.get("group_id"))
    _check_phone_free(db, fields["phone_number"])

    person = NewConvert(registered_by=registered_by, **fields)
    try:
        db.add(person)
        db.flush()
        progress.initialize_for_person(db, person.id, registered_by)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicatePhone(f"A person with phone number {fields['phone_number']} is already registered")
    except Exception:
        db.rollback()
        raise
    db.refresh(person)
    return person


def update_person(db: Session, person_id: str, data: Dict[str, Any]) -> NewConvert:
    person = get_person(db, person_id)
    fields = clean_person_fields(data, partial=True)
    if "group_id" in fields:
        _check_group(db, fields["group_id"])
    if "phone_number" in fields:
        _check_phone_free(db, fields["phone_number"], exclude_id=person_id)
    for k, v in fields.items():
        setattr(person, k, v)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicatePhone("Phone number is already registered")
    db.refresh(person)
    return person


def bulk_register(
    db: Session,
    rows: List[Dict[str, Any]],
    registered_by: Optional[str],
    default_group_id: Optional[str] = None,
    force_group_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Register many people; each row commits on its own and a bad row is
    reported as "Row N: ..." without stopping the rest.
    """
    if not rows:
        raise ValidationError("people array is required and must not be empty")
    if len(rows) > settings.BULK_IMPORT_MAX_ROWS:
        raise ValidationError(f"Maximum {settings.BULK_IMPORT_MAX_ROWS} people can be imported at once")

    created: List[NewConvert] = []
    errors: List[str] = []
    for i, row in enumerate(rows, start=1):
        data = dict(row)
        if force_group_id:
            data["group_id"] = force_group_id
        elif not _text(data.get("group_id")):
            data["group_id"] = default_group_id
        try:
            created.append(register_person(db, data, registered_by))
        except AppError as e:
            errors.append(f"Row {i}: {e.message}")

    log.info("Bulk registration: %d created, %d failed", len(created), len(errors))
    return {"created": created, "errors": errors}


def bulk_delete(db: Session, person_ids: List[str]) -> int:
    """Delete people with their progress and attendance, all or nothing."""
    ids = list(dict.fromkeys(person_ids))
    try:
        db.query(ProgressRecord).filter(ProgressRecord.person_id.in_(ids)).delete(synchronize_session=False)
        db.query(AttendanceRecord).filter(AttendanceRecord.person_id.in_(ids)).delete(synchronize_session=False)
        deleted = db.query(NewConvert).filter(NewConvert.id.in_(ids)).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()
    return deleted


# ──────────────────────────────────────────────────────────────────────────────
# File import
# ──────────────────────────────────────────────────────────────────────────────

def _header(raw: Any) -> str:
    key = str(raw).strip().lower().replace(" ", "_").replace("-", "_")
    return _HEADER_ALIASES.get(key, key)


def read_upload(filename: str, content: bytes) -> List[Dict[str, Any]]:
    """Parse an uploaded .csv or .xlsx into row dicts keyed by person field names."""
    name = (filename or "").lower()
    buf = io.BytesIO(content)
    if name.endswith((".xlsx", ".xlsm")):
        df = pd.read_excel(buf, engine="openpyxl", dtype=object)
    elif name.endswith(".csv"):
        df = pd.read_csv(buf, dtype=str, keep_default_na=False)
    else:
        raise ValidationError("Unsupported file type; upload a .csv or .xlsx file")

    df = df.rename(columns=_header)
    df = df.dropna(how="all")
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def get_person_for(db: Session, user, person_id: str) -> NewConvert:
    """Load a person the acting user is allowed to see (404, then 403)."""
    person = get_person(db, person_id)
    ensure_group_access(user, person.group_id)
    return person
