# flcseek/audit.py
from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
import json
import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flcseek.models import ActivityLog
from flcseek.schemas import activity_log_out

log = logging.getLogger(__name__)


def client_ip(request: Optional[Request]) -> str:
    if request is None:
        return "unknown"
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def extract_request_info(request: Optional[Request]) -> Tuple[str, str]:
    user_agent = request.headers.get("user-agent", "unknown") if request is not None else "unknown"
    return client_ip(request), user_agent[:255]


def log_audit_event(
    db: Session,
    action: str,
    *,
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> None:
    """
    Write one activity_logs row in its own commit.
    Call after the primary write has committed; a failure here is logged and dropped.
    """
    ip_address, user_agent = extract_request_info(request)
    try:
        db.add(ActivityLog(
            user_id=user_id,
            action=str(getattr(action, "value", action)),
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=json.dumps(old_values, default=str) if old_values else None,
            new_values=json.dumps(new_values, default=str) if new_values else None,
            ip_address=ip_address,
            user_agent=user_agent,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error("[AUDIT] Failed to log %s: %s", action, e)


def list_activity_logs(
    db: Session,
    *,
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    q = db.query(ActivityLog)
    if user_id:
        q = q.filter(ActivityLog.user_id == user_id)
    if entity_type:
        q = q.filter(ActivityLog.entity_type == entity_type)
    if entity_id:
        q = q.filter(ActivityLog.entity_id == entity_id)
    if action:
        q = q.filter(ActivityLog.action == action)
    rows = q.order_by(ActivityLog.created_at.desc()).offset(offset).limit(limit).all()
    return [activity_log_out(r) for r in rows]
