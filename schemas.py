"""
Database Schemas for the video sharing backend

Each Pydantic model maps to a MongoDB collection. The collection name is the lowercase of the class name.
References to other documents are stored as ObjectIds.

Collections:
- User -> user
- Video -> video
- Comment -> comment
- Like -> like
- Playlist -> playlist
- Subscription -> subscription
- Tweet -> tweet
"""

from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class MongoModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class User(MongoModel):
    fullname: str = Field(..., min_length=1)
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=30)
    password: str = Field(..., description="Bcrypt hash")
    avatar: str
    avatar_handle: str
    cover_image: str = ""
    cover_image_handle: Optional[str] = None
    refresh_token: Optional[str] = None

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v: str) -> str:
        return v.strip().lower()


class Video(MongoModel):
    owner: ObjectId
    video_file: str
    video_file_handle: str
    thumbnail: str
    thumbnail_handle: str
    title: str = Field(..., min_length=1)
    description: str = ""
    duration: int = Field(0, ge=0, description="Seconds")
    views: int = 0
    is_published: bool = True


class Comment(MongoModel):
    owner: ObjectId
    video: ObjectId
    content: str = Field(..., min_length=1)


class LikeTarget(str, Enum):
    video = "video"
    comment = "comment"
    tweet = "tweet"


class Like(MongoModel):
    """A like points at exactly one target: (target_kind, target_id)."""
    liked_by: ObjectId
    target_kind: LikeTarget
    target_id: ObjectId

    def key(self) -> dict:
        return {"liked_by": self.liked_by, "target_kind": self.target_kind.value, "target_id": self.target_id}


class Playlist(MongoModel):
    owner: ObjectId
    name: str = Field(..., min_length=1)
    description: str = ""
    videos: List[ObjectId] = Field(default_factory=list)


class Subscription(MongoModel):
    subscriber: ObjectId = Field(..., description="The user id of the subscriber")
    channel: ObjectId = Field(..., description="The user id of the channel being subscribed to")


class Tweet(MongoModel):
    owner: ObjectId
    content: str = Field(..., min_length=1)


# -------------------- Requests --------------------

class RegisterRequest(BaseModel):
    fullname: str = Field(..., min_length=1)
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=30)
    password: str = Field(..., min_length=1)

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v: str) -> str:
        return v.strip().lower()


class LoginRequest(BaseModel):
    email: Optional[EmailStr] = None
    username: Optional[str] = None
    password: str


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=1)


class AccountUpdateRequest(BaseModel):
    fullname: str
    email: EmailStr


class ContentRequest(BaseModel):
    content: str = ""


class PlaylistRequest(BaseModel):
    name: str = ""
    description: str = ""
