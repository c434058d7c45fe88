import pytest

from app.orgms.db import session_scope
from app.orgms.models import Permission, Role, User
from app.orgms.modules.approvals.models import Approval
from app.orgms.modules.approvals.service import (
    ApprovalError,
    InvalidTransition,
    MANUAL_TRANSITIONS,
    bulk_decide,
    get_decision,
)
from app.orgms.modules.documents.models import Document


def _create_document(client, type_id: int, name: str = "Proposal Dies Natalis") -> dict:
    r = client.post(
        "/admin/documents",
        json={"name": name, "document_type_id": type_id, "file_url": "https://drive.example.com/doc"},
    )
    assert r.status_code == 201, r.json
    return r.json["document"]


def _create_letter(client, **overrides) -> dict:
    payload = {
        "regarding": "Invitation to general assembly",
        "origin": "Secretariat",
        "destination": "All members",
        "date": "2026-03-01",
        "type": "OUTGOING",
        "priority": "NORMAL",
    }
    payload.update(overrides)
    r = client.post("/admin/letters", json=payload)
    assert r.status_code == 201, r.json
    return r.json["letter"]


# ---------- Decision table ----------


def test_decision_table():
    assert get_decision("approve").entity_status == "PUBLISH"
    assert get_decision("REJECT").approval_status == "REJECTED"
    assert get_decision("request_revision").approval_status == "REVISION"
    assert get_decision("return").default_note == "Returned for review"
    with pytest.raises(ApprovalError):
        get_decision("publish")


def test_manual_transitions_never_enter_pending():
    assert MANUAL_TRANSITIONS["PENDING"] == frozenset()
    assert all("PENDING" not in targets for targets in MANUAL_TRANSITIONS.values())


# ---------- Submit / approve lifecycle ----------


def test_create_document_submits_for_approval(bph, dpo, document_type_id):
    doc = _create_document(bph, document_type_id)
    assert doc["status"] == "PENDING"
    assert doc["approval"]["status"] == "PENDING"
    assert doc["approval"]["note"] == "Document submitted for approval"

    r = dpo.get("/admin/approvals?status=pending")
    assert r.status_code == 200
    assert r.json["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}
    row = r.json["data"][0]
    assert row["entity_type"] == "DOCUMENT"
    assert row["entity_id"] == doc["id"]
    assert row["name"] == "Proposal Dies Natalis"
    assert row["entity_status"] == "PENDING"
    assert row["requested_by"]["email"] == "bph@example.com"


def test_approve_publishes_record(bph, dpo, client, document_type_id):
    doc = _create_document(bph, document_type_id)
    approval_id = doc["approval"]["id"]

    r = dpo.post(f"/admin/approvals/{approval_id}/approve", json={})
    assert r.status_code == 200, r.json
    assert r.json["approval"]["status"] == "APPROVED"
    assert r.json["approval"]["note"] == "Approved"
    assert r.json["approval"]["entity_status"] == "PUBLISH"
    assert r.json["approval"]["decided_by"]["email"] == "dpo@example.com"
    assert r.json["approval"]["decided_at"]

    r = client.get("/public/documents")
    assert r.status_code == 200
    assert [d["id"] for d in r.json["data"]] == [doc["id"]]


def test_decide_twice_conflicts(bph, dpo, document_type_id):
    approval_id = _create_document(bph, document_type_id)["approval"]["id"]
    assert dpo.post(f"/admin/approvals/{approval_id}/reject", json={"note": "Wrong format"}).status_code == 200
    r = dpo.post(f"/admin/approvals/{approval_id}/approve", json={})
    assert r.status_code == 409
    assert "only PENDING" in r.json["error"]


@pytest.mark.parametrize(
    "action,approval_status,note",
    [
        ("reject", "REJECTED", "Rejected"),
        ("revision", "REVISION", "Please revise and resubmit"),
        ("return", "RETURNED", "Returned for review"),
    ],
)
def test_negative_decisions_return_record_to_draft(bph, dpo, document_type_id, action, approval_status, note):
    doc = _create_document(bph, document_type_id)
    r = dpo.post(f"/admin/approvals/{doc['approval']['id']}/{action}", json={})
    assert r.status_code == 200
    assert r.json["approval"]["status"] == approval_status
    assert r.json["approval"]["note"] == note
    assert r.json["approval"]["entity_status"] == "DRAFT"


def test_unknown_action_is_bad_request(bph, dpo, document_type_id):
    approval_id = _create_document(bph, document_type_id)["approval"]["id"]
    r = dpo.post(f"/admin/approvals/{approval_id}/publish", json={})
    assert r.status_code == 400


def test_status_driven_update(bph, dpo, document_type_id):
    approval_id = _create_document(bph, document_type_id)["approval"]["id"]

    r = dpo.put(f"/admin/approvals/{approval_id}", json={"status": "PENDING"})
    assert r.status_code == 400

    r = dpo.put(f"/admin/approvals/{approval_id}", json={"status": "revision", "note": "Add the budget page"})
    assert r.status_code == 200
    assert r.json["approval"]["status"] == "REVISION"
    assert r.json["approval"]["note"] == "Add the budget page"


# ---------- Resubmission on edit ----------


def test_edit_after_approval_resubmits(bph, dpo, document_type_id):
    doc = _create_document(bph, document_type_id)
    approval_id = doc["approval"]["id"]
    dpo.post(f"/admin/approvals/{approval_id}/approve", json={})

    r = bph.put(f"/admin/documents/{doc['id']}", json={"name": "Proposal Dies Natalis (rev 2)"})
    assert r.status_code == 200
    assert r.json["document"]["status"] == "PENDING"
    assert r.json["document"]["approval"]["status"] == "PENDING"
    assert r.json["document"]["approval"]["note"] == "Document updated and resubmitted for approval"

    r = dpo.get(f"/admin/approvals/{approval_id}/history")
    actions = [e["action"] for e in r.json["events"]]
    assert actions == ["approval.submit", "approval.approve", "approval.resubmit"]
    resubmit = r.json["events"][-1]["metadata"]
    assert resubmit["approval_status"] == {"from": "APPROVED", "to": "PENDING"}
    assert resubmit["entity_status"] == {"from": "PUBLISH", "to": "PENDING"}
    assert resubmit["fields_changed"] == ["name"]


def test_edit_without_changes_does_not_resubmit(bph, dpo, document_type_id):
    doc = _create_document(bph, document_type_id)
    dpo.post(f"/admin/approvals/{doc['approval']['id']}/approve", json={})
    r = bph.put(f"/admin/documents/{doc['id']}", json={"name": doc["name"]})
    assert r.json["document"]["status"] == "PUBLISH"


def test_edit_after_return_stays_draft(bph, dpo, document_type_id):
    doc = _create_document(bph, document_type_id)
    dpo.post(f"/admin/approvals/{doc['approval']['id']}/return", json={})

    r = bph.put(f"/admin/documents/{doc['id']}", json={"name": "Renamed"})
    assert r.json["document"]["status"] == "DRAFT"
    assert r.json["document"]["approval"]["status"] == "RETURNED"

    # explicit submit re-opens the same approval
    r = bph.post(f"/admin/documents/{doc['id']}/submit", json={"note": "Fixed"})
    assert r.status_code == 200
    assert r.json["document"]["status"] == "PENDING"
    assert r.json["document"]["approval"]["id"] == doc["approval"]["id"]
    assert r.json["document"]["approval"]["note"] == "Fixed"


def test_submit_requires_draft(bph, document_type_id):
    doc = _create_document(bph, document_type_id)
    r = bph.post(f"/admin/documents/{doc['id']}/submit", json={})
    assert r.status_code == 409


# ---------- Permissions ----------


def test_manager_cannot_see_queue(bph, pengurus, document_type_id):
    approval_id = _create_document(bph, document_type_id)["approval"]["id"]
    r = pengurus.post(f"/admin/approvals/{approval_id}/approve", json={})
    assert r.status_code == 403
    assert r.json["missing_permission"] == "approvals.view"


def test_decision_requires_resource_approve_permission(app, login, bph, document_type_id):
    with session_scope(app) as s:
        view = s.query(Permission).filter(Permission.key == "approvals.view").one()
        letters = s.query(Permission).filter(Permission.key == "letters.approve").one()
        role = Role(key="letter_reviewer", name="Letter reviewer")
        role.permissions.extend([view, letters])
        s.add(role)
        u = s.query(User).filter(User.email == "pengurus@example.com").one()
        u.roles.append(role)

    approval_id = _create_document(bph, document_type_id)["approval"]["id"]
    reviewer = login("pengurus@example.com")
    r = reviewer.post(f"/admin/approvals/{approval_id}/approve", json={})
    assert r.status_code == 403
    assert r.json["error"] == "Missing permission: documents.approve"


# ---------- Bulk ----------


def test_bulk_approve_reports_per_item(bph, dpo, document_type_id):
    ids = [_create_document(bph, document_type_id, name=f"Doc {i}")["approval"]["id"] for i in range(3)]
    dpo.post(f"/admin/approvals/{ids[0]}/reject", json={})

    r = dpo.post("/admin/approvals/bulk", json={"ids": ids + [9999], "action": "approve"})
    assert r.status_code == 200
    assert sorted(a["id"] for a in r.json["updated"]) == sorted(ids[1:])
    assert all(a["entity_status"] == "PUBLISH" for a in r.json["updated"])
    failed = {f["id"]: f["error"] for f in r.json["failed"]}
    assert set(failed) == {ids[0], 9999}
    assert "not found" in failed[9999]

    r = dpo.get("/admin/approvals?status=APPROVED")
    assert r.json["pagination"]["total"] == 2


def test_bulk_rejects_empty_ids(dpo):
    r = dpo.post("/admin/approvals/bulk", json={"ids": ["x", None], "action": "approve"})
    assert r.status_code == 400


def test_bulk_failure_keeps_other_items(app, bph, document_type_id):
    ids = [_create_document(bph, document_type_id, name=f"Doc {i}")["approval"]["id"] for i in range(2)]

    with session_scope(app) as s:
        # Break lockstep on the second record so its decision fails mid-batch
        second = s.get(Approval, ids[1])
        s.get(Document, second.entity_id).status = "DRAFT"

    with session_scope(app) as s:
        dpo_user = s.query(User).filter(User.email == "dpo@example.com").one()
        result = bulk_decide(s, ids, "approve", dpo_user)
        assert [a.id for a in result["updated"]] == [ids[0]]
        assert result["failed"][0]["id"] == ids[1]

    with session_scope(app) as s:
        assert s.get(Approval, ids[0]).status == "APPROVED"
        assert s.get(Approval, ids[1]).status == "PENDING"


# ---------- Explicit creation / deletion ----------


def test_create_approval_explicitly(bph, dpo):
    letter = _create_letter(bph)
    assert letter["status"] == "DRAFT"
    assert letter["approval"] is None

    r = bph.post("/admin/approvals", json={"entity_type": "letter", "entity_id": letter["id"]})
    assert r.status_code == 201, r.json
    assert r.json["approval"]["entity_status"] == "PENDING"
    assert r.json["approval"]["note"] == "Letter submitted for approval"

    r = bph.post("/admin/approvals", json={"entity_type": "LETTER", "entity_id": letter["id"]})
    assert r.status_code == 409
    assert r.json["error"] == "Approval already exists for this entity"


def test_create_approval_errors(bph):
    r = bph.post("/admin/approvals", json={"entity_type": "ARTICLE", "entity_id": 1})
    assert r.status_code == 400
    r = bph.post("/admin/approvals", json={"entity_type": "LETTER", "entity_id": 4242})
    assert r.status_code == 404
    r = bph.post("/admin/approvals", json={"entity_type": "LETTER"})
    assert r.status_code == 400


def test_delete_pending_approval_returns_record_to_draft(bph, dpo, document_type_id):
    doc = _create_document(bph, document_type_id)
    approval_id = doc["approval"]["id"]

    assert dpo.delete(f"/admin/approvals/{approval_id}").status_code == 403

    r = bph.delete(f"/admin/approvals/{approval_id}")
    assert r.status_code == 200
    assert bph.get(f"/admin/approvals/{approval_id}").status_code == 404

    r = bph.get(f"/admin/documents/{doc['id']}")
    assert r.json["document"]["status"] == "DRAFT"
    assert r.json["document"]["approval"] is None


def test_deleting_record_discards_approval(app, bph, document_type_id):
    doc = _create_document(bph, document_type_id)
    assert bph.delete(f"/admin/documents/{doc['id']}").status_code == 200
    with session_scope(app) as s:
        assert s.query(Approval).count() == 0


def test_approval_of_vanished_record(app, bph, dpo, document_type_id):
    doc = _create_document(bph, document_type_id)
    approval_id = doc["approval"]["id"]

    with session_scope(app) as s:
        # bulk delete skips discard_for_entity, leaving the approval behind
        s.query(Document).filter(Document.id == doc["id"]).delete()

    r = dpo.get("/admin/approvals")
    assert r.status_code == 200
    row = r.json["data"][0]
    assert row["id"] == approval_id
    assert row["name"] == ""
    assert row["entity_status"] is None

    r = dpo.post(f"/admin/approvals/{approval_id}/approve", json={})
    assert r.status_code == 404
    assert "no longer exists" in r.json["error"]

    r = dpo.post("/admin/approvals/bulk", json={"ids": [approval_id], "action": "reject"})
    assert r.json["updated"] == []
    assert r.json["failed"][0]["id"] == approval_id


# ---------- Queries ----------


def test_list_filters(bph, dpo, document_type_id):
    _create_document(bph, document_type_id)
    _create_letter(bph, status="PENDING")

    r = dpo.get("/admin/approvals?entity_type=letter")
    assert [a["entity_type"] for a in r.json["data"]] == ["LETTER"]

    r = dpo.get("/admin/approvals?status=all&limit=1&page=2")
    assert r.json["pagination"] == {"page": 2, "limit": 1, "total": 2, "pages": 2}
    assert len(r.json["data"]) == 1

    assert dpo.get("/admin/approvals?status=CANCELLED").status_code == 400
    assert dpo.get("/admin/approvals?entity_type=gallery").status_code == 400


def test_transition_audit_records_from_and_to(bph, dpo, document_type_id):
    approval_id = _create_document(bph, document_type_id)["approval"]["id"]
    dpo.post(f"/admin/approvals/{approval_id}/revision", json={"note": "Missing signature"})

    events = dpo.get(f"/admin/approvals/{approval_id}/history").json["events"]
    decision = events[-1]
    assert decision["action"] == "approval.request_revision"
    assert decision["actor_user_email"] == "dpo@example.com"
    assert decision["reason"] == "Missing signature"
    assert decision["metadata"]["approval_status"] == {"from": "PENDING", "to": "REVISION"}
    assert decision["metadata"]["entity_status"] == {"from": "PENDING", "to": "DRAFT"}


def test_invalid_transition_is_value_error():
    assert issubclass(InvalidTransition, ValueError)
