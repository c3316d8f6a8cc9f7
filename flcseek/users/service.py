# flcseek/users/service.py
from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flcseek.auth import hash_password, verify_password
from flcseek.constants import Role
from flcseek.errors import DuplicateUsername, Forbidden, NotFound, Unauthorized
from flcseek.models import Group, User, UserGroup
from flcseek.schemas import user_out

log = logging.getLogger(__name__)


def get_user(db: Session, user_id: str) -> User:
    u = db.get(User, user_id)
    if u is None:
        raise NotFound("User not found")
    return u


def list_users(db: Session, *, role: Optional[Role] = None) -> List[User]:
    q = db.query(User)
    if role is not None:
        q = q.filter(User.role == role.value)
    return q.order_by(User.username.asc()).all()


def create_user(db: Session, data: Dict[str, Any]) -> User:
    username = data["username"].strip()
    if db.query(User.id).filter(User.username == username).first():
        raise DuplicateUsername("Username already exists")
    group_id = data.get("group_id")
    if group_id and db.get(Group, group_id) is None:
        raise NotFound("Group not found")

    user = User(
        username=username,
        password_hash=hash_password(data["password"]),
        role=Role(data["role"]).value,
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        email=data.get("email"),
        phone_number=data.get("phone_number"),
        group_id=group_id,
    )
    db.add(user)
    try:
        db.flush()
        if group_id:
            db.add(UserGroup(user_id=user.id, group_id=group_id))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateUsername("Username already exists")
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: str) -> dict:
    user = get_user(db, user_id)
    if user.role == Role.SUPERADMIN.value:
        raise Forbidden("Cannot delete a superadmin account")
    snapshot = user_out(user)
    db.delete(user)
    db.commit()
    return snapshot


def authenticate(db: Session, username: str, password: str) -> User:
    user = db.query(User).filter(User.username == username.strip()).first()
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid username or password")
    return user


def list_user_groups(db: Session, user_id: str) -> List[UserGroup]:
    get_user(db, user_id)
    return (
        db.query(UserGroup)
        .join(Group, Group.id == UserGroup.group_id)
        .filter(UserGroup.user_id == user_id)
        .order_by(Group.year.desc(), Group.name.asc())
        .all()
    )


def set_user_groups(db: Session, user_id: str, group_ids: List[str]) -> List[UserGroup]:
    """
    Replace the user's group assignments in one transaction. The user's
    primary group follows: kept if still assigned, else the first in the list.
    """
    user = get_user(db, user_id)
    wanted = list(dict.fromkeys(group_ids))
    if wanted:
        found = {gid for (gid,) in db.query(Group.id).filter(Group.id.in_(wanted))}
        missing = [gid for gid in wanted if gid not in found]
        if missing:
            raise NotFound(f"Group not found: {', '.join(missing)}")
    try:
        db.query(UserGroup).filter(UserGroup.user_id == user_id).delete(synchronize_session=False)
        db.add_all([UserGroup(user_id=user_id, group_id=gid) for gid in wanted])
        if user.group_id not in wanted:
            user.group_id = wanted[0] if wanted else None
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()
    return list_user_groups(db, user_id)
