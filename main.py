import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from fastapi import Cookie, Depends, FastAPI, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError

import database
from config import settings
from feed import OWNER_SUMMARY_FIELDS, paginate_feed
from media import MediaAsset, MediaStore, MediaUploadError, get_media_store, save_upload
from pipeline import Group, Lookup, Match, Project, Sort, Unwind
from responses import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    api_response,
    register_exception_handlers,
)
from schemas import (
    AccountUpdateRequest,
    ChangePasswordRequest,
    Comment,
    ContentRequest,
    Like,
    LikeTarget,
    LoginRequest,
    Playlist,
    PlaylistRequest,
    RefreshRequest,
    RegisterRequest,
    Subscription,
    Tweet,
    User,
    Video,
)
from security import (
    PRIVATE_USER_FIELDS,
    clear_auth_cookies,
    decode_token,
    get_current_user,
    hash_password,
    issue_tokens,
    set_auth_cookies,
    verify_password,
)

logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s:%(name)s:%(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.ensure_indexes()
    logger.info("Database indexes ensured")
    yield


app = FastAPI(title="Video Sharing Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Uploaded media is served from disk when the local backend is used
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
os.makedirs(settings.TEMP_DIR, exist_ok=True)
app.mount("/static", StaticFiles(directory=settings.UPLOAD_DIR), name="static")

OWNER_PROJECTION = {name: 1 for name in OWNER_SUMMARY_FIELDS}
VIDEO_PRIVATE_FIELDS = {"video_file_handle": 0, "thumbnail_handle": 0}


# -------------------- Helpers --------------------

def public_user(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if k not in PRIVATE_USER_FIELDS}


def public_video(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if k not in VIDEO_PRIVATE_FIELDS}


def require_text(message: str, *values: Optional[str]) -> None:
    if any(not (v or "").strip() for v in values):
        raise ValidationError(message)


def has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


def load_owned(collection: str, _id: str, actor: dict, label: str) -> dict:
    """Existence first (404), then ownership (403)."""
    doc = database.find_by_id(collection, database.objid(_id, f"{label} id"))
    if not doc:
        raise NotFoundError(f"{label.capitalize()} not found")
    if doc.get("owner") != actor["_id"]:
        raise ForbiddenError(f"You are not authorized to modify this {label}")
    return doc


async def discard_assets(store: MediaStore, assets: List[MediaAsset]) -> None:
    for asset in assets:
        await run_in_threadpool(store.delete, asset.deletion_handle)


async def upload_files(store: MediaStore, files: List[Tuple[UploadFile, str]]) -> List[MediaAsset]:
    """Upload files in order; if one fails, the ones already uploaded are removed."""
    uploaded: List[MediaAsset] = []
    for upload, folder in files:
        try:
            path = await save_upload(upload)
            uploaded.append(await run_in_threadpool(store.upload, path, folder))
        except (MediaUploadError, OSError) as exc:
            logger.error("Upload to %s failed: %s", folder, exc)
            await discard_assets(store, uploaded)
            raise InternalError(f"Failed to upload {upload.filename}")
    return uploaded


# -------------------- Basic Routes --------------------

@app.get("/")
def read_root():
    return api_response({"backend": "running"}, "Video Sharing Backend is running")


@app.get("/test")
def test_database():
    info = {
        "backend": "running",
        "database_connected": False,
        "collections": [],
    }
    try:
        info["collections"] = database.db.list_collection_names()
        info["database_connected"] = True
    except PyMongoError as e:
        info["error"] = str(e)
    return api_response(info, "Health check")


# -------------------- Users --------------------

@app.post("/users/register")
async def register(
    fullname: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None),
    store: MediaStore = Depends(get_media_store),
):
    require_text("All fields are required", fullname, email, username, password)
    try:
        payload = RegisterRequest(fullname=fullname.strip(), email=email.strip(), username=username, password=password)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid registration details", [e["msg"] for e in exc.errors()])
    if not has_file(avatar):
        raise ValidationError("Avatar file is missing")

    if database.find_one("user", {"$or": [{"username": payload.username}, {"email": payload.email}]}):
        raise ConflictError("User with email or username already exists")

    files = [(avatar, "avatars")]
    if has_file(cover_image):
        files.append((cover_image, "covers"))
    assets = await upload_files(store, files)
    avatar_asset = assets[0]
    cover_asset = assets[1] if len(assets) > 1 else None

    try:
        user = User(
            fullname=payload.fullname,
            email=payload.email,
            username=payload.username,
            password=hash_password(payload.password),
            avatar=avatar_asset.url,
            avatar_handle=avatar_asset.deletion_handle,
            cover_image=cover_asset.url if cover_asset else "",
            cover_image_handle=cover_asset.deletion_handle if cover_asset else None,
        )
        created = database.create_document("user", user.model_dump())
    except DuplicateKeyError:
        await discard_assets(store, assets)
        raise ConflictError("User with email or username already exists")
    except (PyMongoError, ValueError):
        logger.exception("User creation failed, removing uploaded images")
        await discard_assets(store, assets)
        raise InternalError("Something went wrong while registering the user")

    return api_response(public_user(created), "User registered successfully", 201)


@app.post("/users/login")
def login(payload: LoginRequest):
    if not payload.email and not (payload.username or "").strip():
        raise ValidationError("Username or email is required")
    if payload.email:
        query = {"email": payload.email}
    else:
        query = {"username": payload.username.strip().lower()}

    user = database.find_one("user", query)
    if not user or not verify_password(payload.password, user.get("password", "")):
        raise UnauthorizedError("Invalid user credentials")

    access_token, refresh_token = issue_tokens(user)
    response = api_response(
        {"user": public_user(user), "access_token": access_token, "refresh_token": refresh_token},
        "User logged in successfully",
    )
    set_auth_cookies(response, access_token, refresh_token)
    return response


@app.post("/users/logout")
def logout(actor: dict = Depends(get_current_user)):
    database.update_by_id("user", actor["_id"], {"refresh_token": None})
    response = api_response({}, "User logged out")
    clear_auth_cookies(response)
    return response


@app.post("/users/refresh-token")
def refresh_access_token(payload: Optional[RefreshRequest] = None, refresh_token: Optional[str] = Cookie(None)):
    incoming = refresh_token or (payload.refresh_token if payload else None)
    if not incoming:
        raise UnauthorizedError("Unauthorized request")

    claims = decode_token(incoming, "refresh")
    user = database.find_one("user", {"_id": database.objid(claims["sub"])})
    if not user:
        raise UnauthorizedError("Invalid refresh token")
    if user.get("refresh_token") != incoming:
        raise UnauthorizedError("Refresh token is expired or used")

    access_token, new_refresh_token = issue_tokens(user)
    response = api_response(
        {"access_token": access_token, "refresh_token": new_refresh_token},
        "Access token refreshed",
    )
    set_auth_cookies(response, access_token, new_refresh_token)
    return response


@app.get("/users/current-user")
def current_user(actor: dict = Depends(get_current_user)):
    return api_response(actor, "Current user fetched successfully")


@app.post("/users/change-password")
def change_password(payload: ChangePasswordRequest, actor: dict = Depends(get_current_user)):
    user = database.find_by_id("user", actor["_id"])
    if not verify_password(payload.old_password, user.get("password", "")):
        raise ValidationError("Invalid old password")
    database.update_by_id("user", actor["_id"], {"password": hash_password(payload.new_password)})
    return api_response({}, "Password changed successfully")


@app.patch("/users/account")
def update_account(payload: AccountUpdateRequest, actor: dict = Depends(get_current_user)):
    require_text("All fields are required", payload.fullname)
    taken = database.find_one("user", {"email": payload.email, "_id": {"$ne": actor["_id"]}})
    if taken:
        raise ConflictError("Email is already in use")
    updated = database.update_by_id("user", actor["_id"], {"fullname": payload.fullname.strip(), "email": payload.email})
    if not updated:
        raise NotFoundError("User not found")
    return api_response(public_user(updated), "Account details updated successfully")


async def replace_user_image(actor: dict, upload: Optional[UploadFile], field: str, folder: str, store: MediaStore):
    if not has_file(upload):
        raise ValidationError(f"{field.replace('_', ' ').capitalize()} file is missing")

    previous = database.find_by_id("user", actor["_id"])
    assets = await upload_files(store, [(upload, folder)])
    try:
        updated = database.update_by_id(
            "user", actor["_id"], {field: assets[0].url, f"{field}_handle": assets[0].deletion_handle}
        )
    except PyMongoError:
        logger.exception("Updating %s failed, removing uploaded file", field)
        await discard_assets(store, assets)
        raise InternalError(f"Something went wrong while updating {field.replace('_', ' ')}")
    if not updated:
        await discard_assets(store, assets)
        raise NotFoundError("User not found")

    old_handle = (previous or {}).get(f"{field}_handle")
    if old_handle:
        await run_in_threadpool(store.delete, old_handle)
    return public_user(updated)


@app.patch("/users/avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    actor: dict = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    user = await replace_user_image(actor, avatar, "avatar", "avatars", store)
    return api_response(user, "Avatar updated successfully")


@app.patch("/users/cover-image")
async def update_cover_image(
    cover_image: Optional[UploadFile] = File(None),
    actor: dict = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    user = await replace_user_image(actor, cover_image, "cover_image", "covers", store)
    return api_response(user, "Cover image updated successfully")


@app.get("/users/channel/{username}")
def get_channel_profile(username: str, actor: dict = Depends(get_current_user)):
    require_text("Username is missing", username)
    channel = database.find_one("user", {"username": username.strip().lower()}, PRIVATE_USER_FIELDS)
    if not channel:
        raise NotFoundError("Channel does not exist")

    channel["subscribers_count"] = database.count_documents("subscription", {"channel": channel["_id"]})
    channel["channels_subscribed_to_count"] = database.count_documents(
        "subscription", {"subscriber": channel["_id"]}
    )
    channel["is_subscribed"] = (
        database.find_one("subscription", {"channel": channel["_id"], "subscriber": actor["_id"]}) is not None
    )
    return api_response(channel, "User channel fetched successfully")


# -------------------- Videos --------------------

@app.get("/videos")
def list_videos(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    query: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_type: Optional[str] = None,
    user_id: Optional[str] = None,
):
    filters = {"owner": user_id} if user_id else None
    result = paginate_feed("video", page, limit, filters, query, sort_by, sort_type)
    return api_response(result, "Videos fetched successfully")


@app.post("/videos")
async def publish_video(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    video_file: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    actor: dict = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    require_text("Title is required", title)
    if not has_file(video_file):
        raise ValidationError("Video file is required")
    if not has_file(thumbnail):
        raise ValidationError("Thumbnail is required")

    assets = await upload_files(store, [(video_file, "videos"), (thumbnail, "thumbnails")])
    video_asset, thumbnail_asset = assets

    try:
        video = Video(
            owner=actor["_id"],
            video_file=video_asset.url,
            video_file_handle=video_asset.deletion_handle,
            thumbnail=thumbnail_asset.url,
            thumbnail_handle=thumbnail_asset.deletion_handle,
            title=title.strip(),
            description=(description or "").strip(),
            duration=int(round(video_asset.duration or 0)),
        )
        created = database.create_document("video", video.model_dump())
    except (PyMongoError, ValueError):
        logger.exception("Video creation failed, removing uploaded files")
        await discard_assets(store, assets)
        raise InternalError("Something went wrong while creating the video")

    return api_response(public_video(created), "Video created successfully", 201)


@app.get("/videos/{video_id}")
def get_video(video_id: str):
    vid = database.objid(video_id, "video id")
    # increment views
    video = database.increment("video", vid, "views")
    if not video:
        raise NotFoundError("Video not found")
    database.populate([video], "owner", "user", OWNER_PROJECTION)
    return api_response(public_video(video), "Video fetched successfully")


@app.patch("/videos/{video_id}")
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    actor: dict = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    require_text("Title and description are required", title, description)
    current = load_owned("video", video_id, actor, "video")

    patch = {"title": title.strip(), "description": description.strip()}
    assets: List[MediaAsset] = []
    if has_file(thumbnail):
        assets = await upload_files(store, [(thumbnail, "thumbnails")])
        patch["thumbnail"] = assets[0].url
        patch["thumbnail_handle"] = assets[0].deletion_handle

    try:
        updated = database.update_by_id("video", current["_id"], patch)
    except PyMongoError:
        logger.exception("Video update failed, removing uploaded thumbnail")
        await discard_assets(store, assets)
        raise InternalError("Something went wrong while updating the video")
    if not updated:
        await discard_assets(store, assets)
        raise InternalError("Failed to update video")

    if assets and current.get("thumbnail_handle"):
        await run_in_threadpool(store.delete, current["thumbnail_handle"])
    return api_response(public_video(updated), "Video updated successfully")


@app.delete("/videos/{video_id}")
def delete_video(
    video_id: str,
    actor: dict = Depends(get_current_user),
    store: MediaStore = Depends(get_media_store),
):
    video = load_owned("video", video_id, actor, "video")
    if not database.delete_by_id("video", video["_id"]):
        raise InternalError("Failed to delete video")

    comment_ids = [c["_id"] for c in database.get_documents("comment", {"video": video["_id"]}, projection={"_id": 1})]
    database.delete_many("like", {"target_id": {"$in": [video["_id"]] + comment_ids}})
    database.delete_many("comment", {"video": video["_id"]})
    database.update_many("playlist", {"videos": video["_id"]}, {"$pull": {"videos": video["_id"]}})

    for handle in (video.get("video_file_handle"), video.get("thumbnail_handle")):
        if handle:
            store.delete(handle)
    return api_response(None, "Video deleted successfully")


@app.patch("/videos/{video_id}/toggle-publish")
def toggle_publish_status(video_id: str, actor: dict = Depends(get_current_user)):
    video = load_owned("video", video_id, actor, "video")
    updated = database.update_by_id("video", video["_id"], {"is_published": not video.get("is_published", False)})
    if not updated:
        raise InternalError("Failed to toggle publish status")

    publish_status = {
        "_id": updated["_id"],
        "owner": updated["owner"],
        "title": updated["title"],
        "description": updated.get("description", ""),
        "is_published": updated["is_published"],
    }
    return api_response(publish_status, "Video publish status toggled successfully")


# -------------------- Comments --------------------

@app.get("/comments/{video_id}")
def list_comments(video_id: str, page: Optional[str] = None, limit: Optional[str] = None):
    result = paginate_feed("comment", page, limit, filters={"video": video_id})
    return api_response(result, "Comments fetched successfully")


@app.post("/comments/{video_id}")
def add_comment(video_id: str, payload: ContentRequest, actor: dict = Depends(get_current_user)):
    vid = database.objid(video_id, "video id")
    require_text("Content cannot be empty", payload.content)
    if not database.find_by_id("video", vid, {"_id": 1}):
        raise NotFoundError("Video not found")

    comment = Comment(owner=actor["_id"], video=vid, content=payload.content.strip())
    created = database.create_document("comment", comment.model_dump())
    return api_response(created, "Comment added successfully", 201)


@app.patch("/comments/c/{comment_id}")
def update_comment(comment_id: str, payload: ContentRequest, actor: dict = Depends(get_current_user)):
    database.objid(comment_id, "comment id")
    require_text("Content cannot be empty", payload.content)
    comment = load_owned("comment", comment_id, actor, "comment")

    updated = database.update_by_id("comment", comment["_id"], {"content": payload.content.strip()})
    if not updated:
        raise InternalError("Failed to update comment")
    return api_response(updated, "Comment updated successfully")


@app.delete("/comments/c/{comment_id}")
def delete_comment(comment_id: str, actor: dict = Depends(get_current_user)):
    comment = load_owned("comment", comment_id, actor, "comment")
    if not database.delete_by_id("comment", comment["_id"]):
        raise InternalError("Failed to delete comment")
    database.delete_many("like", {"target_kind": LikeTarget.comment.value, "target_id": comment["_id"]})
    return api_response({}, "Comment deleted successfully")


# -------------------- Tweets --------------------

@app.post("/tweets")
def create_tweet(payload: ContentRequest, actor: dict = Depends(get_current_user)):
    require_text("Content is required", payload.content)
    tweet = Tweet(owner=actor["_id"], content=payload.content.strip())
    created = database.create_document("tweet", tweet.model_dump())
    return api_response(created, "Tweet created successfully", 201)


@app.get("/tweets/user/{user_id}")
def list_user_tweets(user_id: str, page: Optional[str] = None, limit: Optional[str] = None):
    result = paginate_feed("tweet", page, limit, filters={"owner": user_id})
    return api_response(result, "User tweets fetched successfully")


@app.patch("/tweets/{tweet_id}")
def update_tweet(tweet_id: str, payload: ContentRequest, actor: dict = Depends(get_current_user)):
    database.objid(tweet_id, "tweet id")
    require_text("Content is required", payload.content)
    tweet = load_owned("tweet", tweet_id, actor, "tweet")

    updated = database.update_by_id("tweet", tweet["_id"], {"content": payload.content.strip()})
    if not updated:
        raise InternalError("Failed to update tweet")
    return api_response(updated, "Tweet updated successfully")


@app.delete("/tweets/{tweet_id}")
def delete_tweet(tweet_id: str, actor: dict = Depends(get_current_user)):
    tweet = load_owned("tweet", tweet_id, actor, "tweet")
    if not database.delete_by_id("tweet", tweet["_id"]):
        raise InternalError("Failed to delete tweet")
    database.delete_many("like", {"target_kind": LikeTarget.tweet.value, "target_id": tweet["_id"]})
    return api_response({}, "Tweet deleted successfully")


# -------------------- Likes --------------------

def toggle_like(kind: LikeTarget, target_id: str, actor: dict):
    like = Like(liked_by=actor["_id"], target_kind=kind, target_id=database.objid(target_id, f"{kind.value} id"))
    if not database.find_by_id(kind.value, like.target_id, {"_id": 1}):
        raise NotFoundError(f"{kind.value.capitalize()} not found")

    doc, created = database.toggle_document("like", like.key())
    if created:
        return api_response(doc, f"Liked {kind.value} successfully", 201)
    return api_response({}, f"Like removed from {kind.value}")


@app.post("/likes/toggle/v/{video_id}")
def toggle_video_like(video_id: str, actor: dict = Depends(get_current_user)):
    return toggle_like(LikeTarget.video, video_id, actor)


@app.post("/likes/toggle/c/{comment_id}")
def toggle_comment_like(comment_id: str, actor: dict = Depends(get_current_user)):
    return toggle_like(LikeTarget.comment, comment_id, actor)


@app.post("/likes/toggle/t/{tweet_id}")
def toggle_tweet_like(tweet_id: str, actor: dict = Depends(get_current_user)):
    return toggle_like(LikeTarget.tweet, tweet_id, actor)


@app.get("/likes/videos")
def list_liked_videos(actor: dict = Depends(get_current_user)):
    likes = database.run_pipeline(
        "like",
        [
            Match({"liked_by": actor["_id"], "target_kind": LikeTarget.video.value}),
            Lookup("video", "target_id", "_id", "video"),
            Unwind("video"),
            Sort((("created_at", -1), ("_id", -1))),
        ],
    )
    videos = [public_video(like["video"]) for like in likes]
    database.populate(videos, "owner", "user", OWNER_PROJECTION)
    return api_response(videos, "Liked videos fetched successfully")


# -------------------- Playlists --------------------

PLAYLIST_VIDEO_PROJECTION = {"title": 1, "thumbnail": 1, "duration": 1, "views": 1, "owner": 1}


def populate_playlists(playlists: List[dict]) -> List[dict]:
    database.populate(playlists, "videos", "video", PLAYLIST_VIDEO_PROJECTION)
    database.populate(playlists, "owner", "user", OWNER_PROJECTION)
    return playlists


@app.post("/playlists")
def create_playlist(payload: PlaylistRequest, actor: dict = Depends(get_current_user)):
    require_text("Name and description are required", payload.name, payload.description)
    playlist = Playlist(owner=actor["_id"], name=payload.name.strip(), description=payload.description.strip())
    created = database.create_document("playlist", playlist.model_dump())
    return api_response(created, "Playlist created successfully", 201)


@app.get("/playlists/user/{user_id}")
def list_user_playlists(user_id: str):
    owner = database.objid(user_id, "user id")
    playlists = database.get_documents("playlist", {"owner": owner}, sort=[("created_at", -1)])
    return api_response(populate_playlists(playlists), "Playlists fetched successfully")


@app.get("/playlists/{playlist_id}")
def get_playlist(playlist_id: str):
    playlist = database.find_by_id("playlist", database.objid(playlist_id, "playlist id"))
    if not playlist:
        raise NotFoundError("Playlist not found")
    return api_response(populate_playlists([playlist])[0], "Playlist fetched successfully")


@app.patch("/playlists/add/{video_id}/{playlist_id}")
def add_video_to_playlist(video_id: str, playlist_id: str, actor: dict = Depends(get_current_user)):
    vid = database.objid(video_id, "video id")
    database.objid(playlist_id, "playlist id")
    playlist = load_owned("playlist", playlist_id, actor, "playlist")
    if not database.find_by_id("video", vid, {"_id": 1}):
        raise NotFoundError("Video not found")
    if vid in playlist.get("videos", []):
        raise ConflictError("Video already exists in the playlist")

    updated = database.update_by_id("playlist", playlist["_id"], {"videos": playlist.get("videos", []) + [vid]})
    if not updated:
        raise InternalError("Failed to add video to playlist")
    return api_response(updated, "Video added to playlist successfully")


@app.patch("/playlists/remove/{video_id}/{playlist_id}")
def remove_video_from_playlist(video_id: str, playlist_id: str, actor: dict = Depends(get_current_user)):
    vid = database.objid(video_id, "video id")
    database.objid(playlist_id, "playlist id")
    playlist = load_owned("playlist", playlist_id, actor, "playlist")
    videos = playlist.get("videos", [])
    if vid not in videos:
        raise NotFoundError("Video not found in the playlist")

    updated = database.update_by_id("playlist", playlist["_id"], {"videos": [v for v in videos if v != vid]})
    if not updated:
        raise InternalError("Failed to remove video from playlist")
    return api_response(updated, "Video removed from playlist successfully")


@app.patch("/playlists/{playlist_id}")
def update_playlist(playlist_id: str, payload: PlaylistRequest, actor: dict = Depends(get_current_user)):
    database.objid(playlist_id, "playlist id")
    require_text("Name and description are required", payload.name, payload.description)
    playlist = load_owned("playlist", playlist_id, actor, "playlist")

    updated = database.update_by_id(
        "playlist", playlist["_id"], {"name": payload.name.strip(), "description": payload.description.strip()}
    )
    if not updated:
        raise InternalError("Failed to update playlist")
    return api_response(updated, "Playlist updated successfully")


@app.delete("/playlists/{playlist_id}")
def delete_playlist(playlist_id: str, actor: dict = Depends(get_current_user)):
    playlist = load_owned("playlist", playlist_id, actor, "playlist")
    if not database.delete_by_id("playlist", playlist["_id"]):
        raise InternalError("Failed to delete playlist")
    return api_response(None, "Playlist deleted successfully")


# -------------------- Subscriptions --------------------

def subscription_people(match: dict, person_field: str) -> List[dict]:
    rows = database.run_pipeline(
        "subscription",
        [
            Match(match),
            Lookup("user", person_field, "_id", person_field),
            Unwind(person_field),
            Project.include("created_at", *(f"{person_field}.{name}" for name in OWNER_SUMMARY_FIELDS)),
            Sort((("created_at", -1), ("_id", -1))),
        ],
    )
    return [{**row[person_field], "subscribed_at": row.get("created_at")} for row in rows]


@app.post("/subscriptions/c/{channel_id}")
def toggle_subscription(channel_id: str, actor: dict = Depends(get_current_user)):
    cid = database.objid(channel_id, "channel id")
    channel = database.find_by_id("user", cid, OWNER_PROJECTION)
    if not channel:
        raise NotFoundError("Channel not found")

    subscription = Subscription(subscriber=actor["_id"], channel=cid)
    _, created = database.toggle_document("subscription", subscription.model_dump())
    if not created:
        return api_response(None, "Unsubscribed from channel successfully")

    subscriber = {k: v for k, v in actor.items() if k in OWNER_PROJECTION}
    return api_response(
        {"subscriber": subscriber, "channel": channel},
        "Subscribed to channel successfully",
        201,
    )


@app.get("/subscriptions/c/{channel_id}")
def list_channel_subscribers(channel_id: str):
    cid = database.objid(channel_id, "channel id")
    channel = database.find_by_id("user", cid, OWNER_PROJECTION)
    if not channel:
        raise NotFoundError("Channel not found")

    subscribers = subscription_people({"channel": cid}, "subscriber")
    return api_response(
        {"channel": channel, "subscriber_count": len(subscribers), "subscribers": subscribers},
        "Subscribers fetched successfully",
    )


@app.get("/subscriptions/u/{subscriber_id}")
def list_subscribed_channels(subscriber_id: str):
    sid = database.objid(subscriber_id, "subscriber id")
    user = database.find_by_id("user", sid, OWNER_PROJECTION)
    if not user:
        raise NotFoundError("User not found")

    channels = subscription_people({"subscriber": sid}, "channel")
    return api_response(
        {"user": user, "subscribed_channel_count": len(channels), "channels": channels},
        "Subscribed channels fetched successfully",
    )


# -------------------- Dashboard --------------------

def _sum_over_videos(owner, collection: str, foreign_field: str) -> int:
    """Number of ``collection`` documents pointing at any of the owner's videos."""
    rows = database.run_pipeline(
        "video",
        [
            Match({"owner": owner}),
            Lookup(collection, "_id", foreign_field, "joined"),
            Project({"joined_count": {"$size": "$joined"}}),
            Group(None, {"total": {"$sum": "$joined_count"}}),
        ],
    )
    return rows[0]["total"] if rows else 0


@app.get("/dashboard/stats")
def get_channel_stats(actor: dict = Depends(get_current_user)):
    owner = actor["_id"]
    views = database.run_pipeline(
        "video",
        [Match({"owner": owner}), Group(None, {"total_views": {"$sum": "$views"}})],
    )
    stats = {
        "total_videos": database.count_documents("video", {"owner": owner}),
        "total_subscribers": database.count_documents("subscription", {"channel": owner}),
        "total_views": views[0]["total_views"] if views else 0,
        "total_likes": _sum_over_videos(owner, "like", "target_id"),
        "total_comments": _sum_over_videos(owner, "comment", "video"),
    }
    return api_response(stats, "Channel stats fetched successfully")


@app.get("/dashboard/videos")
def get_channel_videos(actor: dict = Depends(get_current_user)):
    videos = database.get_documents(
        "video",
        {"owner": actor["_id"]},
        sort=[("created_at", -1), ("_id", -1)],
        projection=VIDEO_PRIVATE_FIELDS,
    )
    database.populate(videos, "owner", "user", OWNER_PROJECTION)
    return api_response(videos, "Channel videos fetched successfully")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
