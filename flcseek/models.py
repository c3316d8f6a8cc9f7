# flcseek/models.py

import uuid

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from flcseek.db import Base
from flcseek.utils.common import now_utc


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id            = Column(String(36),  primary_key=True, default=_uuid)
    username      = Column(String(100), nullable=False, unique=True, index=True)
    password_hash = Column(String(100), nullable=False)
    role          = Column(String(20),  nullable=False)  # see constants.Role
    first_name    = Column(String(100))
    last_name     = Column(String(100))
    email         = Column(String(255))
    phone_number  = Column(String(20))
    group_id      = Column(String(36),  ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    created_at    = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at    = Column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    group       = relationship("Group", foreign_keys=[group_id])
    user_groups = relationship("UserGroup", back_populates="user", cascade="all, delete-orphan")


class Group(Base):
    __tablename__ = "groups"
    __table_args__ = (UniqueConstraint("name", "year", name="uq_groups_name_year"),)

    id          = Column(String(36),  primary_key=True, default=_uuid)
    name        = Column(String(100), nullable=False)
    year        = Column(Integer,     nullable=False)
    # plain column: users.group_id already points the other way
    leader_id   = Column(String(36),  nullable=True)
    archived    = Column(Boolean,     nullable=False, default=False)
    description = Column(Text)
    created_at  = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at  = Column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    converts = relationship("NewConvert", back_populates="group")


class UserGroup(Base):
    __tablename__ = "user_groups"
    __table_args__ = (UniqueConstraint("user_id", "group_id", name="uq_user_groups_user_group"),)

    id         = Column(String(36), primary_key=True, default=_uuid)
    user_id    = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id   = Column(String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)

    user  = relationship("User", back_populates="user_groups")
    group = relationship("Group")


class NewConvert(Base):
    __tablename__ = "new_converts"

    id                   = Column(String(36),  primary_key=True, default=_uuid)
    first_name           = Column(String(100), nullable=False)
    last_name            = Column(String(100), nullable=False)
    phone_number         = Column(String(20),  nullable=False, unique=True, index=True)
    date_of_birth        = Column(String(5))   # DD-MM, no year
    gender               = Column(String(10))
    residential_location = Column(String(255))
    group_id             = Column(String(36),  ForeignKey("groups.id", ondelete="SET NULL"), nullable=True, index=True)
    registered_by        = Column(String(36),  ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at           = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at           = Column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    group              = relationship("Group", back_populates="converts")
    registered_by_user = relationship("User", foreign_keys=[registered_by])
    progress_records   = relationship(
        "ProgressRecord", back_populates="person", cascade="all, delete-orphan"
    )
    attendance_records = relationship(
        "AttendanceRecord", back_populates="person", cascade="all, delete-orphan"
    )


class Milestone(Base):
    __tablename__ = "milestones"

    id                 = Column(String(36),  primary_key=True, default=_uuid)
    stage_number       = Column(Integer,     nullable=False, unique=True, index=True)
    stage_name         = Column(String(255), nullable=False)
    short_name         = Column(String(50))
    description        = Column(Text)
    is_active          = Column(Boolean,     nullable=False, default=True)
    is_auto_calculated = Column(Boolean,     nullable=False, default=False)
    created_at         = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at         = Column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)


class ProgressRecord(Base):
    __tablename__ = "progress_records"
    __table_args__ = (UniqueConstraint("person_id", "stage_number", name="uq_progress_person_stage"),)

    id             = Column(String(36),  primary_key=True, default=_uuid)
    person_id      = Column(String(36),  ForeignKey("new_converts.id", ondelete="CASCADE"), nullable=False, index=True)
    # logical join to milestones.stage_number, not a foreign key
    stage_number   = Column(Integer,     nullable=False, index=True)
    stage_name     = Column(String(255), nullable=False)  # name as it was when written
    is_completed   = Column(Boolean,     nullable=False, default=False)
    date_completed = Column(DateTime(timezone=True), nullable=True)
    updated_by     = Column(String(36),  ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at     = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at     = Column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    person = relationship("NewConvert", back_populates="progress_records")


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("person_id", "attendance_date", name="uq_attendance_person_date"),)

    id              = Column(String(36), primary_key=True, default=_uuid)
    person_id       = Column(String(36), ForeignKey("new_converts.id", ondelete="CASCADE"), nullable=False, index=True)
    attendance_date = Column(Date,       nullable=False, index=True)
    marked_by       = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at      = Column(DateTime(timezone=True), nullable=False, default=now_utc)

    person         = relationship("NewConvert", back_populates="attendance_records")
    marked_by_user = relationship("User", foreign_keys=[marked_by])


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id          = Column(String(36),  primary_key=True, default=_uuid)
    user_id     = Column(String(36),  ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action      = Column(String(50),  nullable=False, index=True)
    entity_type = Column(String(50))
    entity_id   = Column(String(36))
    old_values  = Column(Text)   # JSON
    new_values  = Column(Text)   # JSON
    ip_address  = Column(String(64))
    user_agent  = Column(String(255))
    created_at  = Column(DateTime(timezone=True), nullable=False, default=now_utc, index=True)

    user = relationship("User")


class RateLimitRecord(Base):
    __tablename__ = "rate_limit_records"
    __table_args__ = (
        UniqueConstraint("identifier", "endpoint", "window_start", name="uq_rate_limit_window"),
    )

    id            = Column(String(36),  primary_key=True, default=_uuid)
    identifier    = Column(String(255), nullable=False)
    endpoint      = Column(String(255), nullable=False)
    window_start  = Column(DateTime(timezone=True), nullable=False)
    request_count = Column(Integer,     nullable=False, default=0)
