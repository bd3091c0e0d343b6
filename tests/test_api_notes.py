import pytest

from helpers import auth_headers, invite_and_login, register


@pytest.fixture
def admin_token(client):
    return register(client, "admin@acme.example.com", "Acme")["token"]


@pytest.fixture
def member_token(client, admin_token):
    return invite_and_login(client, admin_token, "member@acme.example.com")


def _create(client, token, title, **extra):
    return client.post("/notes", json={"title": title, **extra}, headers=auth_headers(token))


def test_create_note(client, admin_token):
    response = _create(client, admin_token, "First", description="Body", tags=["Work", " work ", "WORK"])
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["title"] == "First"
    assert data["tags"] == ["work"]
    assert data["author"]["email"] == "admin@acme.example.com"


def test_free_plan_quota(client, admin_token):
    for i in range(3):
        assert _create(client, admin_token, f"Note {i}").status_code == 201

    response = _create(client, admin_token, "One too many")
    assert response.status_code == 403
    body = response.json()
    assert body["errors"]["upgradeRequired"] is True
    assert body["errors"]["noteCount"] == 3
    assert body["errors"]["maxNotes"] == 3


def test_quota_is_shared_by_the_account(client, admin_token, member_token):
    _create(client, admin_token, "A")
    _create(client, member_token, "B")
    _create(client, admin_token, "C")
    assert _create(client, member_token, "D").status_code == 403


def test_deleting_frees_quota(client, admin_token):
    ids = [_create(client, admin_token, f"N{i}").json()["data"]["id"] for i in range(3)]
    assert client.delete(f"/notes/{ids[0]}", headers=auth_headers(admin_token)).status_code == 200
    assert _create(client, admin_token, "Replacement").status_code == 201

    usage = client.get("/subscription", headers=auth_headers(admin_token)).json()["data"]["usage"]
    assert usage["noteCount"] == 3


def test_member_cannot_touch_admin_note(client, admin_token, member_token):
    note_id = _create(client, admin_token, "Admin only").json()["data"]["id"]
    headers = auth_headers(member_token)

    for response in (
        client.get(f"/notes/{note_id}", headers=headers),
        client.put(f"/notes/{note_id}", json={"title": "Hijack"}, headers=headers),
        client.delete(f"/notes/{note_id}", headers=headers),
    ):
        assert response.status_code == 404
        assert response.json()["message"] == "Note not found"


def test_admin_sees_member_notes(client, admin_token, member_token):
    note_id = _create(client, member_token, "Member note").json()["data"]["id"]
    assert client.get(f"/notes/{note_id}", headers=auth_headers(admin_token)).status_code == 200


def test_list_spans_the_tenant_for_members(client, admin_token, member_token):
    _create(client, admin_token, "Admin note")
    _create(client, member_token, "Member note")

    admin_list = client.get("/notes", headers=auth_headers(admin_token)).json()["data"]
    member_list = client.get("/notes", headers=auth_headers(member_token)).json()["data"]
    member_own = client.get("/notes/my-notes", headers=auth_headers(member_token)).json()["data"]

    assert admin_list["pagination"]["total"] == 2
    assert member_list["pagination"]["total"] == 2
    assert {n["title"] for n in member_list["notes"]} == {"Admin note", "Member note"}
    assert [n["title"] for n in member_own["notes"]] == ["Member note"]


def test_my_notes_is_owner_scoped_for_admins(client, admin_token, member_token):
    _create(client, member_token, "Member note")
    mine = _create(client, admin_token, "Admin note").json()["data"]["id"]

    data = client.get("/notes/my-notes", headers=auth_headers(admin_token)).json()["data"]
    assert [n["id"] for n in data["notes"]] == [mine]


def test_other_tenant_is_invisible(client, admin_token):
    note_id = _create(client, admin_token, "Acme secret").json()["data"]["id"]
    other_token = register(client, "admin@globex.example.com", "Globex")["token"]
    headers = auth_headers(other_token)

    assert client.get(f"/notes/{note_id}", headers=headers).status_code == 404
    assert client.put(f"/notes/{note_id}", json={"title": "x"}, headers=headers).status_code == 404
    assert client.delete(f"/notes/{note_id}", headers=headers).status_code == 404
    assert client.get("/notes", headers=headers).json()["data"]["pagination"]["total"] == 0


def test_update_is_partial(client, admin_token):
    note_id = _create(client, admin_token, "Title", description="Body", tags=["a"]).json()["data"]["id"]
    response = client.put(f"/notes/{note_id}", json={"tags": ["B"]}, headers=auth_headers(admin_token))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Title"
    assert data["description"] == "Body"
    assert data["tags"] == ["b"]


def test_list_search_and_tag_filters(client, admin_token):
    headers = auth_headers(admin_token)
    _create(client, admin_token, "Groceries", description="milk and bread", tags=["home"])
    _create(client, admin_token, "Bread recipe", tags=["cooking"])

    data = client.get("/notes", params={"search": "bread"}, headers=headers).json()["data"]
    assert [n["title"] for n in data["notes"]] == ["Bread recipe", "Groceries"]

    data = client.get("/notes", params={"tags": "home,cooking"}, headers=headers).json()["data"]
    assert data["pagination"]["total"] == 2

    data = client.get("/notes?tags=home&tags=unknown", headers=headers).json()["data"]
    assert data["pagination"]["total"] == 1

    data = client.get("/notes", params={"tags": "unknown"}, headers=headers).json()["data"]
    assert data["notes"] == []


def test_list_limit_is_capped(client, admin_token):
    response = client.get("/notes", params={"limit": 101}, headers=auth_headers(admin_token))
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "limit"


def test_malformed_note_id(client, admin_token):
    response = client.get("/notes/not-a-number", headers=auth_headers(admin_token))
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "note_id"


def test_blank_title_rejected(client, admin_token):
    response = _create(client, admin_token, "   ")
    assert response.status_code == 400
    assert response.json()["errors"] == [{"field": "title", "message": "Title is required"}]


def test_notes_require_authentication(client):
    assert client.get("/notes").status_code == 401
    assert client.post("/notes", json={"title": "x"}).status_code == 401
