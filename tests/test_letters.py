BASE = {
    "regarding": "Request for venue",
    "origin": "Secretariat",
    "destination": "Faculty dean",
    "date": "2026-02-10",
    "type": "outgoing",
    "priority": "urgent",
}


def _create(client, **overrides) -> dict:
    payload = {**BASE, **overrides}
    r = client.post("/admin/letters", json=payload)
    assert r.status_code == 201, r.json
    return r.json["letter"]


def test_create_letter_defaults(bph):
    letter = _create(bph)
    assert letter["type"] == "OUTGOING"
    assert letter["priority"] == "URGENT"
    assert letter["classification"] == "GENERAL"
    assert letter["status"] == "DRAFT"
    assert letter["date"] == "2026-02-10"


def test_create_letter_requires_fields(bph):
    r = bph.post("/admin/letters", json={"regarding": "x", "date": "10/02/2026", "type": "memo"})
    assert r.status_code == 400
    fields = {e["field"] for e in r.json["errors"]}
    assert fields == {"origin", "destination", "date", "type", "priority"}


def test_new_letter_cannot_start_published(bph):
    r = bph.post("/admin/letters", json={**BASE, "status": "PUBLISH"})
    assert r.status_code == 400


def test_create_pending_letter_submits(bph, dpo):
    letter = _create(bph, status="PENDING")
    assert letter["status"] == "PENDING"
    assert letter["approval"]["status"] == "PENDING"

    r = dpo.post(f"/admin/approvals/{letter['approval']['id']}/approve", json={"note": "OK to send"})
    assert r.status_code == 200

    r = bph.get(f"/admin/letters/{letter['id']}")
    body = r.json["letter"]
    assert body["status"] == "PUBLISH"
    assert body["approval"]["note"] == "OK to send"
    assert body["approved_by_user_id"] == r.json["letter"]["approval"]["decided_by"]["id"]


def test_update_with_pending_status_submits(bph):
    letter = _create(bph)
    r = bph.put(f"/admin/letters/{letter['id']}", json={"number": "012/SEK/II/2026", "status": "PENDING"})
    assert r.status_code == 200
    assert r.json["letter"]["number"] == "012/SEK/II/2026"
    assert r.json["letter"]["status"] == "PENDING"


def test_revision_then_edit_resubmits_and_clears_approver(bph, dpo):
    letter = _create(bph, status="PENDING")
    approval_id = letter["approval"]["id"]
    dpo.post(f"/admin/approvals/{approval_id}/approve", json={})
    assert bph.get(f"/admin/letters/{letter['id']}").json["letter"]["approved_by_user_id"] is not None

    r = bph.put(f"/admin/letters/{letter['id']}", json={"body": "Updated body"})
    assert r.json["letter"]["status"] == "PENDING"
    assert r.json["letter"]["approved_by_user_id"] is None

    dpo.post(f"/admin/approvals/{approval_id}/revision", json={})
    r = bph.put(f"/admin/letters/{letter['id']}", json={"destination": "Rector"})
    assert r.json["letter"]["status"] == "PENDING"
    assert r.json["letter"]["approval"]["status"] == "PENDING"


def test_update_validation(bph):
    letter = _create(bph)
    r = bph.put(f"/admin/letters/{letter['id']}", json={"priority": "LOW"})
    assert r.status_code == 400
    r = bph.put(f"/admin/letters/{letter['id']}", json={"regarding": ""})
    assert r.status_code == 400
    assert bph.put("/admin/letters/999", json={}).status_code == 404


def test_list_letters_filters(bph):
    _create(bph, regarding="Sponsorship proposal", date="2026-01-05")
    _create(bph, regarding="Thank you note", type="INCOMING", priority="NORMAL", date="2026-03-01")
    _create(bph, regarding="Room booking", origin="Sponsorship division", date="2026-02-01")

    r = bph.get("/admin/letters")
    assert [l["date"] for l in r.json["data"]] == ["2026-03-01", "2026-02-01", "2026-01-05"]

    r = bph.get("/admin/letters?type=incoming")
    assert [l["regarding"] for l in r.json["data"]] == ["Thank you note"]

    r = bph.get("/admin/letters?search=sponsorship")
    assert {l["regarding"] for l in r.json["data"]} == {"Sponsorship proposal", "Room booking"}

    r = bph.get("/admin/letters?priority=URGENT&status=DRAFT")
    assert r.json["pagination"]["total"] == 2


def test_delete_and_bulk_delete_letters(bph):
    a = _create(bph)
    b = _create(bph, status="PENDING")
    assert bph.delete(f"/admin/letters/{a['id']}").status_code == 200
    r = bph.post("/admin/letters/bulk-delete", json={"ids": [a["id"], b["id"]]})
    assert r.json == {"deleted": [b["id"]], "missing": [a["id"]]}


def test_document_link_survives_letter_delete(bph, document_type_id):
    letter = _create(bph)
    r = bph.post(
        "/admin/documents",
        json={
            "name": "Scan",
            "document_type_id": document_type_id,
            "file_url": "https://drive.example.com/scan",
            "letter_id": letter["id"],
        },
    )
    doc_id = r.json["document"]["id"]
    assert r.json["document"]["letter_id"] == letter["id"]

    bph.delete(f"/admin/letters/{letter['id']}")
    assert bph.get(f"/admin/documents/{doc_id}").json["document"]["letter_id"] is None
