from pymongo.errors import PyMongoError

import database
from security import decode_token


def register(client, files=True, **fields):
    data = {"fullname": "Alice Liddell", "email": "alice@example.com", "username": "Alice", "password": "secret123"}
    data.update(fields)
    upload = {}
    if files:
        upload = {
            "avatar": ("avatar.png", b"png-bytes", "image/png"),
            "cover_image": ("cover.png", b"png-bytes", "image/png"),
        }
    return client.post("/users/register", data=data, files=upload or None)


def test_register_creates_user(client, mongo, media_store):
    resp = register(client)

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    user = body["data"]
    assert user["username"] == "alice"
    assert user["avatar"].startswith("https://media.test/avatars/")
    assert user["cover_image"].startswith("https://media.test/covers/")
    assert "password" not in user
    assert "refresh_token" not in user
    assert "avatar_handle" not in user
    assert mongo["user"].count_documents({}) == 1
    assert len(media_store.uploaded) == 2


def test_register_empty_fullname_is_rejected_before_upload(client, mongo, media_store):
    resp = register(client, fullname="   ")

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert resp.json()["errors"] == []
    assert mongo["user"].count_documents({}) == 0
    assert media_store.uploaded == []


def test_register_requires_avatar(client, mongo, media_store):
    resp = register(client, files=False)

    assert resp.status_code == 400
    assert resp.json()["message"] == "Avatar file is missing"
    assert media_store.uploaded == []


def test_register_rejects_bad_email(client, media_store):
    resp = register(client, email="not-an-email")
    assert resp.status_code == 400
    assert media_store.uploaded == []


def test_register_duplicate_is_conflict(client, make_user, media_store):
    make_user("alice")
    resp = register(client, email="other@example.com")

    assert resp.status_code == 409
    assert media_store.uploaded == []


def test_register_persistence_failure_removes_uploads(client, mongo, media_store, monkeypatch):
    def fail(*args, **kwargs):
        raise PyMongoError("write failed")

    monkeypatch.setattr(database, "create_document", fail)
    resp = register(client)

    assert resp.status_code == 500
    assert len(media_store.uploaded) == 2
    assert sorted(media_store.deleted) == sorted(media_store.uploaded)
    assert mongo["user"].count_documents({}) == 0


def test_register_cover_upload_failure_removes_avatar(client, mongo, media_store):
    media_store.fail_folders.add("covers")
    resp = register(client)

    assert resp.status_code == 500
    assert media_store.deleted == media_store.uploaded == ["avatars/1"]
    assert mongo["user"].count_documents({}) == 0


def test_login_sets_cookies_and_persists_refresh_token(client, mongo, make_user):
    user = make_user("alice")
    resp = client.post("/users/login", json={"username": "ALICE", "password": "secret123"})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["username"] == "alice"
    assert "password" not in data["user"]

    cookies = resp.headers.get_list("set-cookie")
    assert any(c.startswith("access_token=") and "HttpOnly" in c for c in cookies)
    assert any(c.startswith("refresh_token=") and "HttpOnly" in c for c in cookies)

    stored = mongo["user"].find_one({"_id": user["_id"]})
    assert stored["refresh_token"] == data["refresh_token"]
    assert decode_token(data["access_token"], "access")["sub"] == str(user["_id"])


def test_login_wrong_password(client, make_user):
    make_user("alice")
    resp = client.post("/users/login", json={"email": "alice@example.com", "password": "nope"})
    assert resp.status_code == 401


def test_current_user_requires_auth(client, make_user, headers):
    assert client.get("/users/current-user").status_code == 401
    assert client.get("/users/current-user", headers={"Authorization": "Bearer junk"}).status_code == 401

    user = make_user("alice")
    resp = client.get("/users/current-user", headers=headers(user))
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == str(user["_id"])
    assert "password" not in resp.json()["data"]


def test_refresh_token_rotates(client, mongo, make_user):
    make_user("alice")
    login = client.post("/users/login", json={"username": "alice", "password": "secret123"}).json()["data"]

    resp = client.post("/users/refresh-token", json={"refresh_token": login["refresh_token"]})
    assert resp.status_code == 200
    fresh = resp.json()["data"]["refresh_token"]
    assert mongo["user"].find_one({"username": "alice"})["refresh_token"] == fresh


def test_refresh_token_rejects_access_token(client, make_user):
    make_user("alice")
    login = client.post("/users/login", json={"username": "alice", "password": "secret123"}).json()["data"]
    resp = client.post("/users/refresh-token", json={"refresh_token": login["access_token"]})
    assert resp.status_code == 401


def test_logout_clears_refresh_token(client, mongo, make_user, headers):
    user = make_user("alice")
    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"refresh_token": "abc"}})

    resp = client.post("/users/logout", headers=headers(user))
    assert resp.status_code == 200
    assert mongo["user"].find_one({"_id": user["_id"]})["refresh_token"] is None


def test_change_password(client, make_user, headers):
    user = make_user("alice")
    bad = client.post("/users/change-password", json={"old_password": "wrong", "new_password": "x1"}, headers=headers(user))
    assert bad.status_code == 400

    ok = client.post(
        "/users/change-password", json={"old_password": "secret123", "new_password": "n3w"}, headers=headers(user)
    )
    assert ok.status_code == 200
    assert client.post("/users/login", json={"username": "alice", "password": "n3w"}).status_code == 200


def test_update_account_email_conflict(client, make_user, headers):
    alice = make_user("alice")
    make_user("bob")
    resp = client.patch(
        "/users/account", json={"fullname": "Alice", "email": "bob@example.com"}, headers=headers(alice)
    )
    assert resp.status_code == 409

    resp = client.patch(
        "/users/account", json={"fullname": "Alice L", "email": "al@example.com"}, headers=headers(alice)
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "al@example.com"


def test_update_avatar_replaces_old_file(client, mongo, make_user, headers, media_store):
    user = make_user("alice")
    resp = client.patch(
        "/users/avatar", files={"avatar": ("new.png", b"png", "image/png")}, headers=headers(user)
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["avatar"] == "https://media.test/avatars/1"
    assert media_store.deleted == ["avatars/alice.png"]
    assert mongo["user"].find_one({"_id": user["_id"]})["avatar_handle"] == "avatars/1"


def test_channel_profile(client, mongo, make_user, headers):
    alice = make_user("alice")
    bob = make_user("bob")
    mongo["subscription"].insert_one({"subscriber": bob["_id"], "channel": alice["_id"]})

    resp = client.get("/users/channel/Alice", headers=headers(bob))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["subscribers_count"] == 1
    assert data["channels_subscribed_to_count"] == 0
    assert data["is_subscribed"] is True
    assert "password" not in data

    assert client.get("/users/channel/nobody", headers=headers(bob)).status_code == 404
