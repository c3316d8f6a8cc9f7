# flcseek/auth.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Header

from flcseek.config import settings
from flcseek.constants import Role, CHURCH_WIDE_ROLES
from flcseek.errors import Forbidden, Unauthorized
from flcseek.utils.common import now_utc


@dataclass
class CurrentUser:
    id: str
    username: str
    role: Role
    group_id: Optional[str] = None


# ---- passwords ----

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # malformed stored hash
        return False


# ---- tokens ----

def create_token(user_id: str, username: str, role: Role | str, group_id: Optional[str] = None) -> str:
    payload = {
        "id": user_id,
        "username": username,
        "role": Role(role).value,
        "group_id": group_id,
        "exp": now_utc() + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> CurrentUser:
    try:
        data = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return CurrentUser(
            id=data["id"],
            username=data.get("username", ""),
            role=Role(data["role"]),
            group_id=data.get("group_id"),
        )
    except (jwt.PyJWTError, KeyError, ValueError):
        raise Unauthorized("Invalid or expired token")


def get_current_user(authorization: Optional[str] = Header(default=None)) -> CurrentUser:
    """FastAPI dependency: bearer token -> CurrentUser, or 401."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Unauthorized")
    return verify_token(authorization[len("Bearer "):].strip())


# ---- policy ----

_ALL = frozenset(Role)

# Single source of truth for who may do what.
POLICY = {
    "milestones:read":   _ALL,
    "milestones:write":  frozenset({Role.SUPERADMIN}),
    "progress:read":     _ALL,
    "progress:write":    _ALL,
    "attendance:read":   _ALL,
    "attendance:write":  _ALL,
    "attendance:delete": frozenset({Role.SUPERADMIN, Role.ADMIN}),
    "attendance:sync":   frozenset({Role.SUPERADMIN}),
    "people:read":       _ALL,
    "people:write":      _ALL,
    "people:delete":     frozenset({Role.SUPERADMIN}),
    "groups:read":       _ALL,
    "groups:write":      frozenset({Role.SUPERADMIN}),
    "users:manage":      frozenset({Role.SUPERADMIN}),
    "activity:read":     frozenset({Role.SUPERADMIN}),
    "export":            frozenset({Role.SUPERADMIN, Role.LEADPASTOR}),
}

_MESSAGES = {
    "export": "Only superadmin and lead pastor can export data",
}


def authorize(user: CurrentUser, action: str) -> CurrentUser:
    allowed = POLICY.get(action)
    if allowed is None:
        raise KeyError(f"unknown action {action!r}")
    if user.role not in allowed:
        raise Forbidden(_MESSAGES.get(action, "You do not have permission to perform this action"))
    return user


def is_church_wide(user: CurrentUser) -> bool:
    return user.role in CHURCH_WIDE_ROLES


def scoped_group_id(user: CurrentUser, requested: Optional[str] = None) -> Optional[str]:
    """
    Group filter a listing should use: church-wide roles get what they ask
    for, everyone else is pinned to their own group.
    """
    if is_church_wide(user):
        return requested
    if not user.group_id:
        raise Forbidden("No group assigned to this account")
    if requested and requested != user.group_id:
        raise Forbidden("You can only access your own group")
    return user.group_id


def ensure_group_access(user: CurrentUser, group_id: Optional[str]) -> None:
    if is_church_wide(user):
        return
    if not user.group_id or group_id != user.group_id:
        raise Forbidden("You can only access people in your own group")


def require(action: str):
    """Route dependency: authenticated user allowed to perform `action`."""
    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        return authorize(user, action)
    return dependency
