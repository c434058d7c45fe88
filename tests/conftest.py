import pytest
from werkzeug.security import generate_password_hash

from app.orgms import auth, create_app
from app.orgms.db import session_scope
from app.orgms.models import Base, User
from scripts.init_db import seed_roles

PASSWORD = "pw"

# email -> (role key, department)
USERS = {
    "bph@example.com": ("bph", "BPH"),
    "dpo@example.com": ("dpo", None),
    "pengurus@example.com": ("pengurus", "INFOKOM"),
    "anggota@example.com": ("anggota", "PSDM"),
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    # login throttling is process-wide
    auth._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = seed_roles(s)
        for email, (role_key, dept) in USERS.items():
            u = User(
                email=email,
                name=email.split("@", 1)[0].upper(),
                department=dept,
                password_hash=generate_password_hash(PASSWORD),
                is_active=True,
            )
            u.roles.append(roles[role_key])
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(app):
    """Returns a factory: login("bph@example.com") -> test client with session + CSRF header set."""

    def _login(email: str):
        c = app.test_client()
        r = c.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert r.status_code == 200, r.json
        c.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
        return c

    return _login


@pytest.fixture()
def bph(login):
    return login("bph@example.com")


@pytest.fixture()
def dpo(login):
    return login("dpo@example.com")


@pytest.fixture()
def pengurus(login):
    return login("pengurus@example.com")


@pytest.fixture()
def document_type_id(bph):
    r = bph.post("/admin/document-types", json={"name": "proposal", "description": "Event proposals"})
    assert r.status_code == 201, r.json
    return r.json["document_type"]["id"]


@pytest.fixture()
def category_id(bph):
    r = bph.post("/admin/finance-categories", json={"name": "Sponsorship"})
    assert r.status_code == 201, r.json
    return r.json["category"]["id"]
