from datetime import date, timedelta

import pytest

from flcseek.attendance import service
from flcseek.config import settings
from flcseek.constants import Role
from flcseek.errors import DuplicateAttendance, NotFound
from flcseek.models import AttendanceRecord, ProgressRecord
from flcseek.progress import service as progress

from conftest import auth_headers, make_group, make_milestone, make_person, make_user

SUNDAY = date(2025, 3, 2)


def _sundays(n, start=SUNDAY):
    return [start + timedelta(weeks=i) for i in range(n)]


def _attendance_stage(db, person_id):
    db.expire_all()
    return progress.find_one(db, person_id, settings.ATTENDANCE_STAGE_NUMBER)


def test_duplicate_date_is_rejected(db):
    person = make_person(db)
    first = service.record_attendance(db, person.id, SUNDAY, None)
    first_id = first.id

    with pytest.raises(DuplicateAttendance):
        service.record_attendance(db, person.id, SUNDAY, None)

    rows = db.query(AttendanceRecord).all()
    assert [r.id for r in rows] == [first_id]


def test_record_for_unknown_person(db):
    with pytest.raises(NotFound):
        service.record_attendance(db, "nobody", SUNDAY, None)


def test_goal_completes_attendance_stage(db, goal):
    make_milestone(db, settings.ATTENDANCE_STAGE_NUMBER, "Attended Sunday Services")
    person = make_person(db)

    for d in _sundays(goal - 1):
        service.record_attendance(db, person.id, d, None)
    assert _attendance_stage(db, person.id) is None

    service.record_attendance(db, person.id, SUNDAY + timedelta(weeks=goal), None)
    stage = _attendance_stage(db, person.id)
    assert stage.is_completed is True
    assert stage.date_completed is not None
    assert stage.stage_name == "Attended Sunday Services"


def test_deleting_attendance_never_retracts_completion(db, goal):
    person = make_person(db)
    records = [service.record_attendance(db, person.id, d, None) for d in _sundays(goal)]
    assert _attendance_stage(db, person.id).is_completed is True

    for r in records[:2]:
        assert service.remove(db, r.id) is True
    assert service.count_for_person(db, person.id) < goal
    assert _attendance_stage(db, person.id).is_completed is True


def test_completion_is_idempotent_past_goal(db, goal):
    person = make_person(db)
    for d in _sundays(goal):
        service.record_attendance(db, person.id, d, None)
    stamped = _attendance_stage(db, person.id).date_completed

    service.record_attendance(db, person.id, SUNDAY + timedelta(weeks=goal + 1), None)
    assert _attendance_stage(db, person.id).date_completed == stamped
    assert db.query(ProgressRecord).filter_by(person_id=person.id).count() == 1


def test_remove_missing_returns_false(db):
    assert service.remove(db, "does-not-exist") is False


def test_bulk_record_is_lenient(db):
    a = make_person(db, "Ama")
    b = make_person(db, "Kofi")
    service.record_attendance(db, a.id, SUNDAY, None)

    res = service.bulk_record(
        db,
        [(a.id, SUNDAY), (b.id, SUNDAY), ("ghost", SUNDAY), (a.id, SUNDAY + timedelta(weeks=1))],
        None,
    )

    assert len(res["created"]) == 2
    assert len(res["errors"]) == 2
    assert "already recorded" in res["errors"][0]
    assert "ghost" in res["errors"][1]
    assert service.count_for_person(db, a.id) == 2


def test_bulk_record_reports_unparseable_rows(db):
    person = make_person(db)

    res = service.bulk_record(
        db,
        [(person.id, "2025-03-02"), (person.id, "not-a-date"), (None, "2025-03-09")],
        None,
    )

    assert [r.attendance_date for r in res["created"]] == [SUNDAY]
    assert res["errors"] == [
        f"{person.id} on not-a-date: invalid date",
        "None on 2025-03-09: person_id is required",
    ]


def test_bulk_record_respects_group_scope(db):
    mine = make_group(db, "Mine")
    other = make_group(db, "Other")
    inside = make_person(db, "In", group_id=mine.id)
    outside = make_person(db, "Out", group_id=other.id)

    res = service.bulk_record(db, [(inside.id, SUNDAY), (outside.id, SUNDAY)], None, group_scope=mine.id)

    assert len(res["created"]) == 1
    assert "not in your group" in res["errors"][0]


def test_sync_completes_people_already_at_goal(db, goal, monkeypatch):
    person = make_person(db)
    monkeypatch.setattr(settings, "ATTENDANCE_GOAL", 100)
    for d in _sundays(goal):
        service.record_attendance(db, person.id, d, None)
    assert _attendance_stage(db, person.id) is None

    monkeypatch.setattr(settings, "ATTENDANCE_GOAL", goal)
    assert service.sync_attendance_milestones(db) == 1
    assert _attendance_stage(db, person.id).is_completed is True
    assert service.sync_attendance_milestones(db) == 0


def test_weekly_stats_buckets_by_monday(db):
    group = make_group(db)
    p = make_person(db, group_id=group.id)
    q = make_person(db, "Esi")
    today = date(2025, 3, 19)  # Wednesday
    # Sunday 2025-03-16 belongs to the week starting Monday 2025-03-10
    service.record_attendance(db, p.id, date(2025, 3, 16), None)
    service.record_attendance(db, q.id, date(2025, 3, 16), None)
    service.record_attendance(db, p.id, date(2025, 3, 17), None)
    service.record_attendance(db, p.id, date(2024, 1, 7), None)

    stats = service.weekly_stats(db, weeks=3, today=today)
    assert stats == [
        {"week_start": "2025-03-03", "count": 0},
        {"week_start": "2025-03-10", "count": 2},
        {"week_start": "2025-03-17", "count": 1},
    ]

    scoped = service.weekly_stats(db, group_id=group.id, weeks=2, today=today)
    assert [s["count"] for s in scoped] == [1, 1]


# ─── HTTP ─────────────────────────────────────────────────────────────────────
def test_post_attendance_reports_goal(client, db, admin_headers, goal):
    person = make_person(db)
    for d in _sundays(goal - 1):
        r = client.post("/attendance", json={"person_id": person.id, "date_attended": d.isoformat()}, headers=admin_headers)
        assert r.status_code == 201
        assert r.json()["milestone_completed"] is False

    r = client.post(
        "/attendance",
        json={"person_id": person.id, "date_attended": "2026-01-04"},
        headers=admin_headers,
    )
    body = r.json()
    assert r.status_code == 201
    assert body["attendance_count"] == goal
    assert body["attendance_goal"] == goal
    assert body["milestone_completed"] is True


def test_post_duplicate_attendance_is_conflict(client, db, admin_headers):
    person = make_person(db)
    payload = {"person_id": person.id, "date_attended": SUNDAY.isoformat()}
    assert client.post("/attendance", json=payload, headers=admin_headers).status_code == 201
    r = client.post("/attendance", json=payload, headers=admin_headers)
    assert r.status_code == 409
    assert "already recorded" in r.json()["error"]


def test_bulk_endpoint_records_valid_rows_and_reports_bad_ones(client, db, admin_headers):
    person = make_person(db)

    r = client.post(
        "/attendance/bulk",
        json={"records": [
            {"person_id": person.id, "date_attended": SUNDAY.isoformat()},
            {"person_id": person.id, "date_attended": "not-a-date"},
            {"date_attended": "2025-03-09"},
        ]},
        headers=admin_headers,
    )

    body = r.json()
    assert r.status_code == 200
    assert [a["date_attended"] for a in body["created"]] == [SUNDAY.isoformat()]
    assert len(body["errors"]) == 2
    assert "invalid date" in body["errors"][0]
    assert service.count_for_person(db, person.id) == 1


def test_delete_missing_record_is_not_an_error(client, admin_headers):
    r = client.delete("/attendance/nope", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {"deleted": False}


def test_leader_cannot_delete_attendance(client, db):
    group = make_group(db)
    leader = make_user(db, "leader", Role.LEADER, group_id=group.id)
    r = client.delete("/attendance/whatever", headers=auth_headers(leader))
    assert r.status_code == 403


def test_leader_cannot_mark_outside_group(client, db):
    mine = make_group(db, "Mine")
    other = make_group(db, "Other")
    leader = make_user(db, "leader", Role.LEADER, group_id=mine.id)
    stranger = make_person(db, group_id=other.id)

    r = client.post(
        "/attendance",
        json={"person_id": stranger.id, "date_attended": SUNDAY.isoformat()},
        headers=auth_headers(leader),
    )
    assert r.status_code == 403


def test_sync_endpoint_is_superadmin_only(client, db, admin_headers):
    admin = make_user(db, "admin", Role.ADMIN)
    assert client.post("/attendance/sync-milestone", headers=auth_headers(admin)).status_code == 403

    r = client.post("/attendance/sync-milestone", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["newly_completed"] == 0
