import pytest

from flcseek.errors import NotFound, ValidationError
from flcseek.models import ProgressRecord
from flcseek.progress import service

from conftest import make_milestone, make_person, make_progress


def _row(db, person_id, stage):
    db.expire_all()
    return db.query(ProgressRecord).filter_by(person_id=person_id, stage_number=stage).one()


def _state(pr):
    return (pr.id, pr.stage_name, pr.is_completed, pr.date_completed, pr.updated_by)


def test_upsert_is_idempotent(db):
    make_milestone(db, 1, "Registered")
    person = make_person(db)

    service.upsert(db, person.id, 1, True, None)
    first = _state(_row(db, person.id, 1))
    service.upsert(db, person.id, 1, True, None)
    second = _state(_row(db, person.id, 1))

    assert first == second
    assert db.query(ProgressRecord).count() == 1


def test_upsert_stamps_and_clears_date_completed(db):
    make_milestone(db, 2, "Water Baptism")
    person = make_person(db)

    rec = service.upsert(db, person.id, 2, True, None)
    assert rec.is_completed is True
    assert rec.date_completed is not None
    assert rec.stage_name == "Water Baptism"

    rec = service.upsert(db, person.id, 2, False, None)
    assert rec.is_completed is False
    assert rec.date_completed is None


def test_upsert_falls_back_to_synthetic_stage_name(db):
    person = make_person(db)
    rec = service.upsert(db, person.id, 42, False, None)
    assert rec.stage_name == "Stage 42"


def test_upsert_unknown_person(db):
    with pytest.raises(NotFound):
        service.upsert(db, "missing", 1, True, None)


def test_stage_name_keeps_value_from_completion_time(db):
    m = make_milestone(db, 3, "Old Name")
    person = make_person(db)
    service.upsert(db, person.id, 3, True, None)

    m.stage_name = "New Name"
    db.commit()

    assert _row(db, person.id, 3).stage_name == "Old Name"


def test_toggle_flips_state(db):
    make_milestone(db, 1)
    person = make_person(db)

    assert service.toggle(db, person.id, 1, None).is_completed is True
    assert service.toggle(db, person.id, 1, None).is_completed is False


def test_bulk_update_is_all_or_nothing(db):
    make_milestone(db, 1)
    make_milestone(db, 2)
    person = make_person(db)
    make_progress(db, person.id, 1, is_completed=False)

    with pytest.raises(ValidationError):
        service.bulk_update(db, person.id, [(1, True), (0, True)], None)

    assert _row(db, person.id, 1).is_completed is False
    assert db.query(ProgressRecord).filter_by(person_id=person.id).count() == 1


def test_bulk_update_applies_every_pair(db):
    make_milestone(db, 1)
    make_milestone(db, 2)
    person = make_person(db)

    records = service.bulk_update(db, person.id, [(1, True), (2, False)], None)

    assert [(r.stage_number, r.is_completed) for r in records] == [(1, True), (2, False)]


def test_completion_rate_rounds_to_nearest(db):
    person = make_person(db)
    make_progress(db, person.id, 1, True)
    make_progress(db, person.id, 2, True)
    make_progress(db, person.id, 3, False)

    assert service.completion_rate(db, person.id) == {"completed": 2, "total": 3, "percentage": 67}


def test_completion_rate_without_records(db):
    person = make_person(db)
    assert service.completion_rate(db, person.id) == {"completed": 0, "total": 0, "percentage": 0}


def test_initialize_for_person_skips_inactive_and_existing(db):
    make_milestone(db, 1)
    make_milestone(db, 2)
    make_milestone(db, 3, is_active=False)
    person = make_person(db)
    make_progress(db, person.id, 1, True)

    assert service.initialize_for_person(db, person.id, None) == 1
    db.commit()
    assert [p.stage_number for p in service.get_progress(db, person.id)] == [1, 2]


# ─── HTTP ─────────────────────────────────────────────────────────────────────
def test_patch_progress_endpoint(client, db, admin_headers):
    make_milestone(db, 1, "Registered")
    person = make_person(db)

    r = client.patch(f"/progress/{person.id}", json={"stage_number": 1, "is_completed": True}, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()["progress"]
    assert body["is_completed"] is True
    assert body["stage_name"] == "Registered"
    assert body["date_completed"]

    r = client.get(f"/progress/{person.id}", headers=admin_headers)
    assert r.json()["completion"] == {"completed": 1, "total": 1, "percentage": 100}


def test_patch_progress_rejects_non_boolean(client, db, admin_headers):
    person = make_person(db)
    r = client.patch(f"/progress/{person.id}", json={"stage_number": 1, "is_completed": "yes"}, headers=admin_headers)
    assert r.status_code == 400
    assert "error" in r.json()


def test_progress_requires_token(client, db):
    person = make_person(db)
    r = client.get(f"/progress/{person.id}")
    assert r.status_code == 401
