from bson import ObjectId


def test_add_and_list_comments(client, make_user, make_video, headers):
    alice = make_user("alice")
    bob = make_user("bob")
    video = make_video(alice, 1)

    first = client.post(f"/comments/{video['_id']}", json={"content": "first!"}, headers=headers(bob))
    assert first.status_code == 201
    assert first.json()["data"]["video"] == str(video["_id"])
    client.post(f"/comments/{video['_id']}", json={"content": "second"}, headers=headers(alice))

    page = client.get(f"/comments/{video['_id']}", params={"limit": "1"}).json()["data"]
    assert page["total_docs"] == 2
    assert page["total_pages"] == 2
    assert page["has_next_page"] is True
    assert page["docs"][0]["content"] == "second"
    assert page["docs"][0]["owner"]["username"] == "alice"


def test_comment_validation(client, make_user, make_video, headers):
    alice = make_user("alice")
    video = make_video(alice, 1)

    assert client.post(f"/comments/{video['_id']}", json={"content": "  "}, headers=headers(alice)).status_code == 400
    assert client.post(f"/comments/{ObjectId()}", json={"content": "hi"}, headers=headers(alice)).status_code == 404
    assert client.post("/comments/nope", json={"content": "hi"}, headers=headers(alice)).status_code == 400
    assert client.post(f"/comments/{video['_id']}", json={"content": "hi"}).status_code == 401


def test_comment_edit_and_delete_are_owner_only(client, mongo, make_user, make_video, headers):
    alice = make_user("alice")
    bob = make_user("bob")
    video = make_video(alice, 1)
    comment = client.post(f"/comments/{video['_id']}", json={"content": "hi"}, headers=headers(bob)).json()["data"]
    mongo["like"].insert_one({"liked_by": alice["_id"], "target_kind": "comment", "target_id": ObjectId(comment["id"])})
    url = f"/comments/c/{comment['id']}"

    assert client.patch(url, json={"content": "hijacked"}, headers=headers(alice)).status_code == 403
    assert client.delete(url, headers=headers(alice)).status_code == 403

    edited = client.patch(url, json={"content": "hello"}, headers=headers(bob))
    assert edited.status_code == 200
    assert edited.json()["data"]["content"] == "hello"

    assert client.delete(url, headers=headers(bob)).status_code == 200
    assert mongo["comment"].count_documents({}) == 0
    assert mongo["like"].count_documents({}) == 0
    assert client.delete(url, headers=headers(bob)).status_code == 404


def test_tweets(client, mongo, make_user, headers):
    alice = make_user("alice")
    bob = make_user("bob")

    created = client.post("/tweets", json={"content": "hello world"}, headers=headers(alice))
    assert created.status_code == 201
    tweet_id = created.json()["data"]["id"]
    assert client.post("/tweets", json={"content": ""}, headers=headers(alice)).status_code == 400

    feed = client.get(f"/tweets/user/{alice['_id']}").json()["data"]
    assert [t["content"] for t in feed["docs"]] == ["hello world"]
    assert feed["docs"][0]["owner"]["username"] == "alice"
    assert client.get(f"/tweets/user/{bob['_id']}").json()["data"]["docs"] == []

    assert client.patch(f"/tweets/{tweet_id}", json={"content": "x"}, headers=headers(bob)).status_code == 403
    updated = client.patch(f"/tweets/{tweet_id}", json={"content": "edited"}, headers=headers(alice))
    assert updated.json()["data"]["content"] == "edited"

    assert client.delete(f"/tweets/{tweet_id}", headers=headers(alice)).status_code == 200
    assert mongo["tweet"].count_documents({}) == 0
