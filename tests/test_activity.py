import csv
import io


def test_activity_lists_newest_first(bph, document_type_id):
    bph.post("/admin/finance-categories", json={"name": "Dues"})
    r = bph.get("/admin/activity")
    assert r.status_code == 200
    actions = [e["action"] for e in r.json["data"]]
    assert actions[:2] == ["finance_category.create", "document_type.create"]
    assert "auth.login" in actions


def test_activity_filters(bph, pengurus, document_type_id):
    pengurus.post(
        "/admin/documents",
        json={"name": "Minutes", "document_type_id": document_type_id, "file_url": "https://drive.example.com/m"},
    )

    r = bph.get("/admin/activity?action=document.")
    assert [e["action"] for e in r.json["data"]] == ["document.create"]

    r = bph.get("/admin/activity?entity_type=Approval")
    assert [e["action"] for e in r.json["data"]] == ["approval.submit"]
    assert r.json["data"][0]["metadata"]["approval_status"] == {"from": None, "to": "PENDING"}

    r = bph.get("/admin/activity?actor_email=PENGURUS@")
    assert {e["actor_user_email"] for e in r.json["data"]} == {"pengurus@example.com"}

    r = bph.get("/admin/activity?start_date=2000-01-01&end_date=2000-01-31")
    assert r.json["data"] == []

    assert bph.get("/admin/activity?start_date=yesterday").status_code == 400


def test_activity_export_is_audited(bph, document_type_id):
    r = bph.get("/admin/activity/export?entity_type=DocumentType")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "attachment" in r.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0][:3] == ["Time (UTC)", "Actor", "Action"]
    assert [row[2] for row in rows[1:]] == ["document_type.create"]

    r = bph.get("/admin/activity?action=activity.export")
    assert len(r.json["data"]) == 1
    assert r.json["data"][0]["metadata"]["row_count"] == 1


def test_activity_permissions(dpo, pengurus, login):
    assert dpo.get("/admin/activity").status_code == 200

    r = dpo.get("/admin/activity/export")
    assert r.status_code == 403
    assert r.json["missing_permission"] == "activity.export"

    assert pengurus.get("/admin/activity").status_code == 403
    assert login("anggota@example.com").get("/admin/activity").status_code == 403


def test_activity_filters_match_wildcards_literally(bph, document_type_id):
    bph.post(
        "/admin/documents",
        json={"name": "Minutes", "document_type_id": document_type_id, "file_url": "https://drive.example.com/m"},
    )

    # "_" is literal: matches document_type.create, not document.create
    r = bph.get("/admin/activity?action=document_")
    assert [e["action"] for e in r.json["data"]] == ["document_type.create"]

    r = bph.get("/admin/activity?action=%25")
    assert r.json["data"] == []

    r = bph.get("/admin/activity?actor_email=%25example")
    assert r.json["data"] == []
