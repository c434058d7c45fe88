def _wp(**overrides) -> dict:
    payload = {
        "name": "Web dev bootcamp",
        "department": "infokom",
        "schedule": "March 2026",
        "goal": "Train 30 members in web development",
        "funds": "1500000",
        "used_funds": "250000",
    }
    payload.update(overrides)
    return payload


def _create(client, **overrides) -> dict:
    r = client.post("/admin/work-programs", json=_wp(**overrides))
    assert r.status_code == 201, r.json
    return r.json["work_program"]


def _user_id(client) -> int:
    return client.get("/auth/me").json["user"]["id"]


def test_create_computes_remaining_funds(bph):
    wp = _create(bph, responsible_user_id=_user_id(bph))
    assert wp["department"] == "INFOKOM"
    assert wp["funds"] == "1500000.00"
    assert wp["used_funds"] == "250000.00"
    assert wp["remaining_funds"] == "1250000.00"
    assert wp["responsible"]["email"] == "bph@example.com"
    assert wp["status"] == "DRAFT"


def test_update_recomputes_remaining_funds(bph):
    wp = _create(bph)
    r = bph.put(f"/admin/work-programs/{wp['id']}", json={"used_funds": "1000000"})
    assert r.status_code == 200
    assert r.json["work_program"]["remaining_funds"] == "500000.00"

    r = bph.put(f"/admin/work-programs/{wp['id']}", json={"funds": "2000000"})
    assert r.json["work_program"]["remaining_funds"] == "1000000.00"


def test_used_funds_cannot_exceed_funds(bph):
    r = bph.post("/admin/work-programs", json=_wp(used_funds="2000000"))
    assert r.status_code == 400
    assert r.json["errors"][0]["field"] == "used_funds"

    wp = _create(bph)
    r = bph.put(f"/admin/work-programs/{wp['id']}", json={"funds": "100"})
    assert r.status_code == 400
    assert r.json["errors"][0]["field"] == "used_funds"


def test_create_validation(bph):
    r = bph.post(
        "/admin/work-programs",
        json=_wp(name=" ", department="marketing", funds="-1", used_funds="0", responsible_user_id=999),
    )
    assert r.status_code == 400
    assert {e["field"] for e in r.json["errors"]} == {"name", "department", "funds", "responsible_user_id"}


def test_change_responsible(bph, pengurus):
    wp = _create(bph, responsible_user_id=_user_id(bph))
    r = bph.put(f"/admin/work-programs/{wp['id']}", json={"responsible_user_id": _user_id(pengurus)})
    assert r.json["work_program"]["responsible"]["email"] == "pengurus@example.com"

    r = bph.put(f"/admin/work-programs/{wp['id']}", json={"responsible_user_id": None})
    assert r.json["work_program"]["responsible"] is None


def test_list_filters(bph):
    _create(bph, name="Bootcamp")
    _create(bph, name="Leadership training", department="PSDM", goal="Grow future leaders")

    r = bph.get("/admin/work-programs?department=psdm")
    assert [w["name"] for w in r.json["data"]] == ["Leadership training"]

    r = bph.get("/admin/work-programs?search=leaders")
    assert r.json["pagination"]["total"] == 1


def test_public_work_programs_show_published_only(client, bph, dpo):
    published = _create(bph, name="Open house", status="PENDING")
    _create(bph, name="Internal retreat", status="PENDING")
    _create(bph, name="Draft idea")

    dpo.post(f"/admin/approvals/{published['approval']['id']}/approve", json={})

    r = client.get("/public/work-programs")
    assert r.status_code == 200
    assert [w["name"] for w in r.json["data"]] == ["Open house"]
    assert "funds" not in r.json["data"][0]


def test_delete_work_program(bph):
    wp = _create(bph, status="PENDING")
    assert bph.delete(f"/admin/work-programs/{wp['id']}").status_code == 200
    assert bph.get(f"/admin/work-programs/{wp['id']}").status_code == 404
    assert bph.get("/admin/approvals").json["pagination"]["total"] == 0


def test_funds_must_fit_money_column(bph):
    r = bph.post("/admin/work-programs", json=_wp(funds="1e30", used_funds="0"))
    assert r.status_code == 400
    assert [e["field"] for e in r.json["errors"]] == ["funds"]

    r = bph.post("/admin/work-programs", json=_wp(funds="5000000000000", used_funds="1e13"))
    assert r.status_code == 400
    assert {e["field"] for e in r.json["errors"]} == {"funds", "used_funds"}

    wp = _create(bph)
    r = bph.put(f"/admin/work-programs/{wp['id']}", json={"used_funds": "1e30"})
    assert r.status_code == 400


def test_sub_cent_funds_are_rounded_before_comparison(bph):
    # 0.004 rounds to 0.00, which does not exceed zero funds
    wp = _create(bph, funds="0", used_funds="0.004")
    assert wp["used_funds"] == "0.00"
    assert wp["remaining_funds"] == "0.00"
