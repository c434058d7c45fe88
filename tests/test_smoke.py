def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_login_and_admin_access(client):
    # Anonymous is unauthenticated
    r = client.get("/admin/")
    assert r.status_code == 401

    r = client.post("/auth/login", json={"email": "bph@example.com", "password": "pw"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "bph@example.com"
    assert "documents.approve" in r.json["permissions"]
    assert r.json["csrf_token"]

    r = client.get("/admin/")
    assert r.status_code == 200
    assert set(r.json["records"]) == {"DOCUMENT", "LETTER", "FINANCE", "WORK_PROGRAM"}


def test_login_failure_is_audited(app, client):
    r = client.post("/auth/login", json={"email": "bph@example.com", "password": "wrong"})
    assert r.status_code == 401

    from app.orgms.db import session_scope
    from app.orgms.models import AuditEvent

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").one()
        assert ev.entity_id == "bph@example.com"


def test_login_rate_limited(client):
    for _ in range(5):
        client.post("/auth/login", json={"email": "bph@example.com", "password": "wrong"})
    r = client.post("/auth/login", json={"email": "bph@example.com", "password": "pw"})
    assert r.status_code == 429


def test_me_and_logout(bph):
    r = bph.get("/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["roles"] == ["bph"]

    r = bph.post("/auth/logout")
    assert r.status_code == 200
    assert bph.get("/auth/me").status_code == 401


def test_member_has_no_admin_access(login):
    anggota = login("anggota@example.com")
    r = anggota.get("/admin/")
    assert r.status_code == 403
    assert r.json["missing_permission"] == "admin.view"


def test_csrf_required_for_writes(bph):
    del bph.environ_base["HTTP_X_CSRF_TOKEN"]
    r = bph.post("/admin/document-types", json={"name": "LPJ"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]


def test_csrf_token_accepted_in_json_body(bph):
    token = bph.environ_base.pop("HTTP_X_CSRF_TOKEN")
    r = bph.post("/admin/document-types", json={"name": "LPJ", "csrf_token": token})
    assert r.status_code == 201


def test_unknown_route_is_json_404(bph):
    r = bph.get("/admin/nope")
    assert r.status_code == 404
    assert r.json["error"]


def test_dashboard_counts(bph, document_type_id):
    bph.post(
        "/admin/documents",
        json={"name": "Proposal A", "document_type_id": document_type_id, "file_url": "https://drive.example.com/a"},
    )
    r = bph.get("/admin/")
    assert r.status_code == 200
    assert r.json["records"]["DOCUMENT"]["PENDING"] == 1
    assert r.json["records"]["DOCUMENT"]["total"] == 1
    assert r.json["pending_approvals"] == {"total": 1, "by_entity_type": {"DOCUMENT": 1}}
    assert r.json["finance"] == {"income": "0.00", "expense": "0.00", "balance": "0.00"}
