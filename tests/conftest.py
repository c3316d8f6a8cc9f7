import os

# must be set before flcseek.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_BACKEND"] = "memory"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from flcseek import models
from flcseek.auth import create_token, hash_password
from flcseek.cache import response_cache
from flcseek.config import settings
from flcseek.constants import Role
from flcseek.db import Base, get_db
from flcseek.ratelimit import FixedWindowRateLimiter, get_login_limiter


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def login_limiter():
    return FixedWindowRateLimiter(settings.LOGIN_RATE_LIMIT_MAX, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS)


@pytest.fixture
def client(session_factory, login_limiter):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_login_limiter] = lambda: login_limiter
    response_cache.invalidate()
    yield TestClient(app)
    app.dependency_overrides.clear()
    response_cache.invalidate()


@pytest.fixture
def goal(monkeypatch):
    """Shrink the attendance goal so tests can reach it with a few records."""
    monkeypatch.setattr(settings, "ATTENDANCE_GOAL", 3)
    return 3


# ─── Factories ────────────────────────────────────────────────────────────────
def make_user(db, username, role=Role.SUPERADMIN, group_id=None, password="secret123"):
    user = models.User(
        username=username,
        password_hash=hash_password(password),
        role=Role(role).value,
        first_name=username.title(),
        last_name="Tester",
        group_id=group_id,
    )
    db.add(user)
    db.commit()
    return user


def make_group(db, name="Alpha", year=2025, archived=False):
    group = models.Group(name=name, year=year, archived=archived)
    db.add(group)
    db.commit()
    return group


_phone_seq = iter(range(240000000, 249999999))


def make_person(db, first_name="Ama", last_name="Mensah", group_id=None):
    person = models.NewConvert(
        first_name=first_name,
        last_name=last_name,
        phone_number=str(next(_phone_seq)),
        group_id=group_id,
    )
    db.add(person)
    db.commit()
    return person


def make_milestone(db, stage_number, name=None, is_active=True):
    m = models.Milestone(
        stage_number=stage_number,
        stage_name=name or f"Milestone {stage_number}",
        is_active=is_active,
    )
    db.add(m)
    db.commit()
    return m


def make_progress(db, person_id, stage_number, is_completed=False):
    pr = models.ProgressRecord(
        person_id=person_id,
        stage_number=stage_number,
        stage_name=f"Milestone {stage_number}",
        is_completed=is_completed,
    )
    db.add(pr)
    db.commit()
    return pr


def auth_headers(user):
    token = create_token(user.id, user.username, user.role, user.group_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def superadmin(db):
    return make_user(db, "root", Role.SUPERADMIN)


@pytest.fixture
def admin_headers(superadmin):
    return auth_headers(superadmin)
