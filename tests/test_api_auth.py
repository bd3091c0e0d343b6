import time

from sqlmodel import Session, select

from helpers import TEST_PASSWORD, auth_headers, invite_and_login, register
from models.models import User


def test_register_creates_account_with_unique_slug(client):
    first = register(client, "a@x.com", "Acme")
    second = register(client, "b@x.com", "Acme")

    assert first["account"]["slug"] == "acme"
    assert second["account"]["slug"] == "acme-1"
    assert first["user"]["role"] == "admin"
    assert first["account"]["plan"] == "free"
    assert first["account"]["noteLimit"] == 3
    assert first["token"]


def test_register_slug_strips_punctuation(client):
    data = register(client, "c@x.com", "  Big   Co. & Sons!! ")
    assert data["account"]["slug"] == "big-co-sons"


def test_register_duplicate_email_conflicts(client):
    register(client, "dup@x.com", "One")
    response = client.post(
        "/auth/register",
        json={"email": "DUP@x.com", "password": TEST_PASSWORD, "name": "Two", "accountName": "Two"},
    )
    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "User with this email already exists"


def test_register_validation_error_envelope(client):
    response = client.post("/auth/register", json={"email": "not-an-email", "password": "x", "name": ""})
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation error"
    fields = {e["field"] for e in body["errors"]}
    assert {"email", "password", "accountName"} <= fields
    assert "timestamp" in body


def test_login_success_records_last_login(client, engine):
    register(client, "login@x.com", "Login Co")
    response = client.post("/auth/login", json={"email": "login@x.com", "password": TEST_PASSWORD})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token"]
    assert data["user"]["lastLogin"] is not None

    with Session(engine) as session:
        user = session.exec(select(User).where(User.email == "login@x.com")).one()
        assert user.last_ip == "testclient"


def test_login_with_wrong_password(client):
    register(client, "wrong@x.com", "Wrong Co")
    response = client.post("/auth/login", json={"email": "wrong@x.com", "password": "nope-nope"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"

    response = client.post("/auth/login", json={"email": "ghost@x.com", "password": "nope-nope"})
    assert response.status_code == 401


def test_profile_requires_token(client):
    response = client.get("/auth/profile")
    assert response.status_code == 401
    assert response.json()["message"] == "Access token required"

    response = client.get("/auth/profile", headers=auth_headers("garbage"))
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token format"


def test_profile_accepts_cookie(client):
    token = register(client, "cookie@x.com", "Cookie Co")["token"]
    client.cookies.set("token", token)
    response = client.get("/auth/profile")
    client.cookies.clear()

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["email"] == "cookie@x.com"
    assert data["subscription"]["canCreateNote"] is True


def test_change_password_revokes_existing_tokens(client):
    token = register(client, "pw@x.com", "Pw Co")["token"]
    time.sleep(0.01)

    response = client.post(
        "/auth/change-password",
        json={"currentPassword": TEST_PASSWORD, "newPassword": "brand-new-pass"},
        headers=auth_headers(token),
    )
    assert response.status_code == 200

    response = client.get("/auth/profile", headers=auth_headers(token))
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been invalidated"

    login = client.post("/auth/login", json={"email": "pw@x.com", "password": "brand-new-pass"})
    assert login.status_code == 200
    assert client.get("/auth/profile", headers=auth_headers(login.json()["data"]["token"])).status_code == 200


def test_change_password_rejects_wrong_current(client):
    token = register(client, "pw2@x.com", "Pw2 Co")["token"]
    response = client.post(
        "/auth/change-password",
        json={"currentPassword": "incorrect", "newPassword": "brand-new-pass"},
        headers=auth_headers(token),
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "currentPassword"


def test_change_password_requires_a_different_password(client):
    token = register(client, "pw3@x.com", "Pw3 Co")["token"]
    response = client.post(
        "/auth/change-password",
        json={"currentPassword": TEST_PASSWORD, "newPassword": TEST_PASSWORD},
        headers=auth_headers(token),
    )
    assert response.status_code == 400
    body = response.json()
    assert body["errors"][0]["field"] == "newPassword"
    assert body["errors"][0]["message"] == "New password cannot be the same as the old password"
    assert client.get("/auth/profile", headers=auth_headers(token)).status_code == 200


def test_register_reuses_email_of_deleted_user(client, engine):
    register(client, "gone@x.com", "Gone Co")
    with Session(engine) as session:
        user = session.exec(select(User).where(User.email == "gone@x.com")).one()
        user.is_deleted = True
        session.add(user)
        session.commit()

    data = register(client, "gone@x.com", "Fresh Co")
    assert data["account"]["slug"] == "fresh-co"


def test_logout_revokes_token(client):
    token = register(client, "out@x.com", "Out Co")["token"]
    time.sleep(0.01)

    assert client.post("/auth/logout", headers=auth_headers(token)).status_code == 200
    assert client.get("/auth/profile", headers=auth_headers(token)).status_code == 401


def test_invite_creates_active_member(client):
    admin_token = register(client, "boss@x.com", "Invite Co")["token"]
    member_token = invite_and_login(client, admin_token, "member@x.com")

    profile = client.get("/auth/profile", headers=auth_headers(member_token)).json()["data"]
    assert profile["user"]["role"] == "member"
    assert profile["account"]["slug"] == "invite-co"


def test_invite_duplicate_in_account_conflicts(client):
    admin_token = register(client, "boss2@x.com", "Dup Invite")["token"]
    invite_and_login(client, admin_token, "again@x.com")
    response = client.post(
        "/auth/invite", json={"email": "again@x.com", "name": "Again"}, headers=auth_headers(admin_token)
    )
    assert response.status_code == 409


def test_member_cannot_invite(client):
    admin_token = register(client, "boss3@x.com", "Gate Co")["token"]
    member_token = invite_and_login(client, admin_token, "m3@x.com")

    response = client.post(
        "/auth/invite", json={"email": "other@x.com", "name": "Other"}, headers=auth_headers(member_token)
    )
    assert response.status_code == 403
