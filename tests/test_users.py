from app.orgms.db import session_scope
from app.orgms.models import AuditEvent


def _new_user(client, **overrides) -> dict:
    payload = {
        "email": "Treasurer@Example.com",
        "name": "Treasurer",
        "password": "s3cret-pass",
        "department": "kwu",
        "roles": ["pengurus"],
    }
    payload.update(overrides)
    r = client.post("/admin/users", json=payload)
    assert r.status_code == 201, r.json
    return r.json["user"]


def test_list_users_and_roles(bph):
    r = bph.get("/admin/users")
    assert r.status_code == 200
    assert {u["email"] for u in r.json["data"]} == {
        "bph@example.com",
        "dpo@example.com",
        "pengurus@example.com",
        "anggota@example.com",
    }

    r = bph.get("/admin/users?role=dpo")
    assert [u["email"] for u in r.json["data"]] == ["dpo@example.com"]

    r = bph.get("/admin/users?department=infokom&search=peng")
    assert [u["email"] for u in r.json["data"]] == ["pengurus@example.com"]

    r = bph.get("/admin/roles")
    roles = {role["key"]: role for role in r.json["data"]}
    assert set(roles) == {"anggota", "bph", "dpo", "pengurus"}
    assert "users.edit" in roles["bph"]["permissions"]
    assert "documents.approve" not in roles["pengurus"]["permissions"]


def test_create_user_can_log_in(app, bph):
    user = _new_user(bph)
    assert user["email"] == "treasurer@example.com"
    assert user["department"] == "KWU"
    assert user["roles"] == ["pengurus"]
    assert user["is_active"] is True

    c = app.test_client()
    r = c.post("/auth/login", json={"email": "treasurer@example.com", "password": "s3cret-pass"})
    assert r.status_code == 200
    assert "documents.create" in r.json["permissions"]

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "user.create").one()
        assert ev.entity_id == str(user["id"])
        assert "s3cret" not in (ev.metadata_json or "")


def test_create_user_validation(bph):
    r = bph.post(
        "/admin/users",
        json={"email": "BPH@example.com", "name": "", "password": "short", "department": "sales", "roles": ["root"]},
    )
    assert r.status_code == 400
    assert {e["field"] for e in r.json["errors"]} == {"email", "name", "password", "department", "roles"}

    r = bph.post("/admin/users", json={"email": "not-an-email", "name": "X", "password": "long-enough"})
    assert [e["field"] for e in r.json["errors"]] == ["email"]


def test_update_roles_department_and_password(app, bph):
    user = _new_user(bph)
    r = bph.put(
        f"/admin/users/{user['id']}",
        json={"roles": ["dpo", "anggota"], "department": "", "password": "another-pass"},
    )
    assert r.status_code == 200
    assert r.json["user"]["roles"] == ["anggota", "dpo"]
    assert r.json["user"]["department"] is None

    c = app.test_client()
    assert c.post("/auth/login", json={"email": user["email"], "password": "s3cret-pass"}).status_code == 401
    assert c.post("/auth/login", json={"email": user["email"], "password": "another-pass"}).status_code == 200

    r = bph.get("/admin/activity?action=user.update")
    changes = r.json["data"][0]["metadata"]["changes"]
    assert changes["roles"] == {"old": ["pengurus"], "new": ["anggota", "dpo"]}
    assert changes["password"]["new"] == "(reset)"


def test_deactivated_user_cannot_log_in(app, bph):
    user = _new_user(bph)
    r = bph.delete(f"/admin/users/{user['id']}")
    assert r.status_code == 200
    assert r.json["user"]["is_active"] is False

    r = app.test_client().post("/auth/login", json={"email": user["email"], "password": "s3cret-pass"})
    assert r.status_code == 401

    assert [u["email"] for u in bph.get("/admin/users?is_active=false").json["data"]] == [user["email"]]

    r = bph.put(f"/admin/users/{user['id']}", json={"is_active": True})
    assert r.json["user"]["is_active"] is True


def test_cannot_lock_yourself_out(bph):
    me = bph.get("/auth/me").json["user"]
    assert bph.delete(f"/admin/users/{me['id']}").status_code == 400

    r = bph.put(f"/admin/users/{me['id']}", json={"roles": ["anggota"]})
    assert r.status_code == 400

    r = bph.put(f"/admin/users/{me['id']}", json={"name": "Chair"})
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Chair"


def test_user_management_permissions(dpo, pengurus):
    assert dpo.get("/admin/users").status_code == 200
    r = dpo.post("/admin/users", json={"email": "x@example.com", "name": "X", "password": "long-enough"})
    assert r.status_code == 403
    assert r.json["missing_permission"] == "users.create"

    r = pengurus.get("/admin/users")
    assert r.status_code == 403
    assert r.json["missing_permission"] == "users.view"

    assert pengurus.get("/admin/users/999").status_code == 403
