import csv
import io
from datetime import date

from flcseek.attendance import service as attendance
from flcseek.constants import Role
from flcseek.exports import service

from conftest import auth_headers, make_group, make_milestone, make_person, make_progress, make_user


def _seed(db):
    group = make_group(db, "Alpha")
    make_milestone(db, 1, "Registered")
    make_milestone(db, 2, "Baptised, \"water\"")
    ama = make_person(db, "Ama", group_id=group.id)
    make_person(db, "Kofi")
    make_progress(db, ama.id, 1, True)
    attendance.record_attendance(db, ama.id, date(2025, 3, 2), None)
    return group, ama


def test_progress_export_covers_every_milestone(db):
    _seed(db)
    rows = service.export_progress(db)
    assert len(rows) == 4
    ama = [r for r in rows if r["first_name"] == "Ama"]
    assert [(r["stage_number"], r["is_completed"]) for r in ama] == [(1, True), (2, False)]


def test_group_filter(db):
    group, _ = _seed(db)
    data = service.build_export(db, "all", group.id)
    assert [r["first_name"] for r in data["converts"]] == ["Ama"]
    assert set(data) == {"converts", "progress", "attendance", "summary"}
    assert data["summary"] == [{
        "group_name": "Alpha",
        "group_year": 2025,
        "total_converts": 1,
        "completed_milestones": 1,
        "total_attendance_records": 1,
    }]


def test_csv_sections_and_quoting():
    text = service.to_csv({
        "converts": [{"first_name": "Ama", "note": 'says "hi", loudly'}],
        "attendance": [],
        "summary": [{"group_name": "Alpha", "total": 3}],
    })
    blocks = text.split("\n\n")
    assert blocks[0].startswith("=== CONVERTS ===\n")
    assert blocks[1].startswith("=== SUMMARY ===\n")
    row = list(csv.reader(io.StringIO(blocks[0].split("\n", 1)[1])))[1]
    assert row == ["Ama", 'says "hi", loudly']
    assert '"says ""hi"", loudly"' in text


# ─── HTTP ─────────────────────────────────────────────────────────────────────
def test_json_export(client, db, admin_headers):
    _seed(db)
    r = client.get("/export", params={"type": "converts"}, headers=admin_headers)
    body = r.json()
    assert r.status_code == 200
    assert body["exported_by"] == "root"
    assert body["filters"] == {"type": "converts", "group_id": None}
    assert len(body["data"]["converts"]) == 2


def test_csv_export(client, db):
    _seed(db)
    pastor = make_user(db, "pastor", Role.LEADPASTOR)
    r = client.get("/export", params={"type": "progress", "format": "csv"}, headers=auth_headers(pastor))
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "attachment;" in r.headers["content-disposition"]
    assert r.text.startswith("=== PROGRESS ===\n")
    assert '"Baptised, ""water"""' in r.text


def test_xlsx_export(client, db, admin_headers):
    _seed(db)
    r = client.get("/export", params={"type": "all", "format": "xlsx"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.content[:2] == b"PK"


def test_leader_cannot_export(client, db):
    leader = make_user(db, "leader", Role.LEADER, group_id=make_group(db).id)
    r = client.get("/export", headers=auth_headers(leader))
    assert r.status_code == 403
    assert r.json()["error"] == "Only superadmin and lead pastor can export data"


def test_unknown_type_is_rejected(client, admin_headers):
    r = client.get("/export", params={"type": "secrets"}, headers=admin_headers)
    assert r.status_code == 400
