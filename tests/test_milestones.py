import pytest

from flcseek.constants import Role
from flcseek.errors import DuplicateStage, InUse, NotFound
from flcseek.milestones import service
from flcseek.models import Milestone, ProgressRecord

from conftest import auth_headers, make_milestone, make_person, make_progress, make_user


def test_list_is_ordered_by_stage(db):
    make_milestone(db, 3)
    make_milestone(db, 1)
    make_milestone(db, 2, is_active=False)

    assert [m.stage_number for m in service.list_milestones(db)] == [1, 2, 3]
    assert [m.stage_number for m in service.list_milestones(db, active_only=True)] == [1, 3]


def test_list_empty_catalog(db):
    assert service.list_milestones(db) == []


def test_create_duplicate_stage(db):
    service.create_milestone(db, 5, "Prayer Meeting")
    with pytest.raises(DuplicateStage):
        service.create_milestone(db, 5, "Something Else")
    assert db.query(Milestone).count() == 1


def test_update_keeps_stage_number(db):
    m = make_milestone(db, 4, "Old")
    updated = service.update_milestone(db, m.id, "New", short_name="N", description="desc")
    assert (updated.stage_number, updated.stage_name, updated.short_name) == (4, "New", "N")


def test_update_missing(db):
    with pytest.raises(NotFound):
        service.update_milestone(db, "nope", "Name")


def test_delete_referenced_milestone_is_blocked(db):
    m = make_milestone(db, 7)
    person = make_person(db)
    make_progress(db, person.id, 7)

    with pytest.raises(InUse):
        service.delete_milestone(db, m.id)
    assert db.query(Milestone).count() == 1


def test_delete_unreferenced_milestone(db):
    m = make_milestone(db, 8, "Gone")
    snapshot = service.delete_milestone(db, m.id)
    assert snapshot["stage_name"] == "Gone"
    assert db.query(Milestone).count() == 0


def test_deactivate_keeps_progress(db):
    m = make_milestone(db, 2)
    person = make_person(db)
    make_progress(db, person.id, 2, True)

    m, backfilled = service.set_active(db, m.id, False, None)
    assert m.is_active is False
    assert backfilled == 0
    assert db.query(ProgressRecord).filter_by(person_id=person.id, stage_number=2).count() == 1


# ─── HTTP ─────────────────────────────────────────────────────────────────────
def test_create_and_list_over_http(client, admin_headers):
    r = client.post(
        "/milestones",
        json={"stage_number": 1, "stage_name": "Registered", "short_name": "Reg"},
        headers=admin_headers,
    )
    assert r.status_code == 201
    assert r.json()["milestone"]["stage_number"] == 1

    r = client.get("/milestones", headers=admin_headers)
    assert [m["stage_name"] for m in r.json()["milestones"]] == ["Registered"]


def test_duplicate_stage_is_conflict(client, db, admin_headers):
    make_milestone(db, 1)
    r = client.post("/milestones", json={"stage_number": 1, "stage_name": "Again"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["error"] == "Stage number already exists"


def test_delete_in_use_is_400(client, db, admin_headers):
    m = make_milestone(db, 1)
    make_progress(db, make_person(db).id, 1)
    r = client.delete("/milestones", params={"id": m.id}, headers=admin_headers)
    assert r.status_code == 400


def test_list_cache_is_invalidated_by_writes(client, db, admin_headers):
    make_milestone(db, 1, "First")
    assert len(client.get("/milestones", headers=admin_headers).json()["milestones"]) == 1

    # written behind the API's back: the cached list is still served
    make_milestone(db, 2, "Second")
    assert len(client.get("/milestones", headers=admin_headers).json()["milestones"]) == 1

    client.post("/milestones", json={"stage_number": 3, "stage_name": "Third"}, headers=admin_headers)
    assert len(client.get("/milestones", headers=admin_headers).json()["milestones"]) == 3


def test_only_superadmin_writes(client, db):
    leader = make_user(db, "pastor", Role.LEADPASTOR)
    headers = auth_headers(leader)
    assert client.get("/milestones", headers=headers).status_code == 200
    r = client.post("/milestones", json={"stage_number": 1, "stage_name": "X"}, headers=headers)
    assert r.status_code == 403


def test_writes_are_audited(client, db, admin_headers):
    client.post("/milestones", json={"stage_number": 1, "stage_name": "Registered"}, headers=admin_headers)
    logs = client.get("/superadmin/activity-logs", headers=admin_headers).json()["logs"]
    assert logs[0]["action"] == "CREATE_MILESTONE"
    assert logs[0]["new_values"]["stage_name"] == "Registered"
