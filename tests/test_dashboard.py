def test_channel_stats(client, mongo, make_user, make_video, headers):
    alice = make_user("alice")
    bob = make_user("bob")
    carol = make_user("carol")
    v1 = make_video(alice, 1, views=10)
    v2 = make_video(alice, 2, views=5, is_published=False)
    make_video(bob, 3, views=100)

    client.post(f"/likes/toggle/v/{v1['_id']}", headers=headers(bob))
    client.post(f"/likes/toggle/v/{v1['_id']}", headers=headers(carol))
    client.post(f"/likes/toggle/v/{v2['_id']}", headers=headers(bob))
    client.post(f"/comments/{v1['_id']}", json={"content": "nice"}, headers=headers(bob))
    client.post(f"/subscriptions/c/{alice['_id']}", headers=headers(bob))

    stats = client.get("/dashboard/stats", headers=headers(alice)).json()["data"]
    assert stats == {
        "total_videos": 2,
        "total_subscribers": 1,
        "total_views": 15,
        "total_likes": 3,
        "total_comments": 1,
    }


def test_stats_for_empty_channel(client, make_user, headers):
    alice = make_user("alice")
    stats = client.get("/dashboard/stats", headers=headers(alice)).json()["data"]
    assert stats == {
        "total_videos": 0,
        "total_subscribers": 0,
        "total_views": 0,
        "total_likes": 0,
        "total_comments": 0,
    }


def test_channel_videos_include_unpublished(client, make_user, make_video, headers):
    alice = make_user("alice")
    make_video(alice, 1)
    make_video(alice, 2, is_published=False)

    resp = client.get("/dashboard/videos", headers=headers(alice))
    assert resp.status_code == 200
    videos = resp.json()["data"]
    assert [v["title"] for v in videos] == ["Video 2", "Video 1"]
    assert all("video_file_handle" not in v for v in videos)
    assert client.get("/dashboard/videos").status_code == 401
