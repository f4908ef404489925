"""
Media storage for avatars, cover images, thumbnails and video files.

Incoming files are first written to a local temp path, then handed to a
MediaStore which returns a durable URL plus an opaque deletion handle. The
temp file is always removed after the upload attempt.
"""

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError
from bson import ObjectId
from fastapi import UploadFile

from config import settings

logger = logging.getLogger(__name__)


class MediaUploadError(Exception):
    pass


@dataclass(frozen=True)
class MediaAsset:
    url: str
    deletion_handle: str
    duration: Optional[float] = None


def probe_duration(path: str) -> Optional[float]:
    """Media duration in seconds via ffprobe, or None when ffprobe is missing or fails."""
    try:
        proc = subprocess.run(
            ["ffprobe", "-v", "quiet", "-print_format", "json", "-show_format", path],
            capture_output=True,
            timeout=30,
            check=True,
        )
        return float(json.loads(proc.stdout)["format"]["duration"])
    except (OSError, subprocess.SubprocessError, ValueError, KeyError):
        return None


async def save_upload(upload: UploadFile, dest_dir: str = None) -> str:
    dest_dir = dest_dir or settings.TEMP_DIR
    os.makedirs(dest_dir, exist_ok=True)
    ext = os.path.splitext(upload.filename or "")[1]
    path = os.path.join(dest_dir, f"{ObjectId()}{ext}")
    with open(path, "wb") as f:
        f.write(await upload.read())
    return path


def _discard(local_path: str) -> None:
    try:
        os.remove(local_path)
    except FileNotFoundError:
        pass


class MediaStore:
    def upload(self, local_path: str, folder: str) -> MediaAsset:
        raise NotImplementedError

    def delete(self, deletion_handle: str) -> bool:
        raise NotImplementedError


class LocalMediaStore(MediaStore):
    """Keeps files on disk under ``root``, served by the app's /static mount."""

    def __init__(self, root: str, base_url: str = "/static"):
        self.root = root
        self.base_url = base_url.rstrip("/")

    def upload(self, local_path: str, folder: str) -> MediaAsset:
        if not local_path or not os.path.exists(local_path):
            raise MediaUploadError("File to upload is missing")
        duration = probe_duration(local_path) if folder == "videos" else None
        name = f"{ObjectId()}{os.path.splitext(local_path)[1]}"
        handle = f"{folder}/{name}"
        try:
            os.makedirs(os.path.join(self.root, folder), exist_ok=True)
            shutil.move(local_path, os.path.join(self.root, folder, name))
        except OSError as exc:
            _discard(local_path)
            raise MediaUploadError(f"Failed to store file: {exc}") from exc
        logger.info("File stored: %s", handle)
        return MediaAsset(url=f"{self.base_url}/{handle}", deletion_handle=handle, duration=duration)

    def delete(self, deletion_handle: str) -> bool:
        try:
            os.remove(os.path.join(self.root, deletion_handle))
        except OSError as exc:
            logger.warning("Failed to delete media %s: %s", deletion_handle, exc)
            return False
        logger.info("Media deleted: %s", deletion_handle)
        return True


class S3MediaStore(MediaStore):
    """S3 or any S3-compatible object store (MinIO, R2...)."""

    def __init__(self, bucket: str, endpoint_url: str = None, region: str = None, public_url: str = None):
        self.bucket = bucket
        self.client = boto3.client("s3", endpoint_url=endpoint_url, region_name=region)
        if public_url:
            self.public_url = public_url.rstrip("/")
        elif endpoint_url:
            self.public_url = f"{endpoint_url.rstrip('/')}/{bucket}"
        else:
            self.public_url = f"https://{bucket}.s3.amazonaws.com"

    def upload(self, local_path: str, folder: str) -> MediaAsset:
        if not local_path or not os.path.exists(local_path):
            raise MediaUploadError("File to upload is missing")
        duration = probe_duration(local_path) if folder == "videos" else None
        key = f"{folder}/{ObjectId()}{os.path.splitext(local_path)[1]}"
        try:
            self.client.upload_file(local_path, self.bucket, key)
        except (Boto3Error, BotoCoreError, ClientError) as exc:
            raise MediaUploadError(f"Failed to upload file: {exc}") from exc
        finally:
            _discard(local_path)
        logger.info("File uploaded to %s: %s", self.bucket, key)
        return MediaAsset(url=f"{self.public_url}/{key}", deletion_handle=key, duration=duration)

    def delete(self, deletion_handle: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=deletion_handle)
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Failed to delete media %s: %s", deletion_handle, exc)
            return False
        logger.info("Media deleted from %s: %s", self.bucket, deletion_handle)
        return True


_store: Optional[MediaStore] = None


def get_media_store() -> MediaStore:
    global _store
    if _store is None:
        if settings.MEDIA_BACKEND == "s3":
            _store = S3MediaStore(
                settings.S3_BUCKET,
                endpoint_url=settings.S3_ENDPOINT_URL,
                region=settings.S3_REGION,
                public_url=settings.S3_PUBLIC_URL,
            )
        else:
            _store = LocalMediaStore(settings.UPLOAD_DIR)
    return _store
