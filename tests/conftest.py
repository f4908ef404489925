import os
from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from config import settings
from media import MediaAsset, MediaStore, MediaUploadError, get_media_store
from security import create_access_token, hash_password

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


class FakeMediaStore(MediaStore):
    """Records uploads and deletes instead of talking to real storage."""

    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail_folders = set()

    def upload(self, local_path, folder):
        os.remove(local_path)
        if folder in self.fail_folders:
            raise MediaUploadError(f"{folder} upload refused")
        handle = f"{folder}/{len(self.uploaded) + 1}"
        self.uploaded.append(handle)
        duration = 12.6 if folder == "videos" else None
        return MediaAsset(url=f"https://media.test/{handle}", deletion_handle=handle, duration=duration)

    def delete(self, deletion_handle):
        self.deleted.append(deletion_handle)
        return True


@pytest.fixture
def mongo(monkeypatch):
    mock_db = mongomock.MongoClient()["videotube_test"]
    monkeypatch.setattr(database, "db", mock_db)
    database.ensure_indexes()
    return mock_db


@pytest.fixture
def media_store(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "TEMP_DIR", str(tmp_path))
    store = FakeMediaStore()
    main.app.dependency_overrides[get_media_store] = lambda: store
    yield store
    main.app.dependency_overrides.pop(get_media_store, None)


@pytest.fixture
def client(mongo, media_store):
    return TestClient(main.app)


@pytest.fixture
def make_user(mongo):
    def _make(username="alice", fullname=None):
        return database.create_document(
            "user",
            {
                "fullname": fullname or username.capitalize(),
                "email": f"{username}@example.com",
                "username": username,
                "password": PASSWORD_HASH,
                "avatar": f"https://media.test/avatars/{username}.png",
                "avatar_handle": f"avatars/{username}.png",
                "cover_image": "",
                "cover_image_handle": None,
                "refresh_token": None,
            },
        )
    return _make


@pytest.fixture
def make_video(mongo):
    base = datetime(2024, 1, 1)

    def _make(owner, index=0, title=None, is_published=True, views=0):
        created_at = base + timedelta(minutes=index)
        doc = {
            "owner": owner["_id"],
            "video_file": f"https://media.test/videos/{index}.mp4",
            "video_file_handle": f"videos/{index}.mp4",
            "thumbnail": f"https://media.test/thumbnails/{index}.png",
            "thumbnail_handle": f"thumbnails/{index}.png",
            "title": title or f"Video {index}",
            "description": "",
            "duration": 60,
            "views": views,
            "is_published": is_published,
            "created_at": created_at,
            "updated_at": created_at,
        }
        doc["_id"] = mongo["video"].insert_one(doc).inserted_id
        return doc

    return _make


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def headers():
    return auth_headers
