"""Filesystem-backed bucket storage: {base}/{bucket}/{key}, no caching."""

import errno
import logging
import mimetypes
import os
import shutil
from pathlib import Path
from typing import BinaryIO

from .errors import BucketNotEmpty, BucketNotFound, InvalidPath, ObjectNotFound, StorageError

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "text/plain": "txt",
    "text/html": "html",
    "text/css": "css",
    "text/csv": "csv",
    "text/javascript": "js",
    "application/json": "json",
    "application/xml": "xml",
    "application/pdf": "pdf",
    "application/zip": "zip",
    "application/x-zip-compressed": "zip",
    "application/x-7z-compressed": "7z",
    "application/x-tar": "tar",
    "application/x-rar-compressed": "rar",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/ogg": "ogg",
    "video/mp4": "mp4",
    "video/mpeg": "mpeg",
    "video/quicktime": "mov",
    "video/webm": "webm",
}


def infer_extension(mime_type: str, filename: str) -> str:
    # an extension already on the name wins, even for dotfiles like ".env"
    base = filename.rsplit("/", 1)[-1]
    dot = base.rfind(".")
    if dot >= 0:
        return base[dot + 1:]

    media_type = (mime_type or "").split(";", 1)[0].strip().lower()
    if not media_type:
        return ""
    if media_type in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[media_type]

    guessed = mimetypes.guess_extension(media_type)
    if guessed:
        return guessed.lstrip(".")
    return ""


def _check_segment(segment: str, what: str) -> None:
    if segment in ("", ".", ".."):
        raise InvalidPath(f"Invalid {what}: {segment!r}")
    if "/" in segment or "\\" in segment or "\x00" in segment:
        raise InvalidPath(f"Invalid {what}: {segment!r}")


class FileStorage:
    """Bucket/object storage on top of a local directory."""

    def __init__(self, base_path: str | os.PathLike = "./uploads"):
        self.base_path = Path(base_path).resolve()
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create storage root %s: %s", self.base_path, e)

    def _bucket_path(self, bucket: str) -> Path:
        _check_segment(bucket, "bucket name")
        return self.base_path / bucket

    def _object_path(self, bucket: str, key: str) -> Path:
        bucket_dir = self._bucket_path(bucket)
        if not key or key.startswith("/"):
            raise InvalidPath(f"Invalid object key: {key!r}")
        parts = key.split("/")
        for part in parts:
            _check_segment(part, "object key")

        path = bucket_dir.joinpath(*parts)
        resolved = path.resolve()
        if not resolved.is_relative_to(self.base_path) or not resolved.is_relative_to(bucket_dir.resolve()):
            raise InvalidPath(f"Object key escapes its bucket: {key!r}")
        return path

    def save_object(self, bucket: str, key: str, stream: BinaryIO) -> int:
        # a failed copy leaves the partial file in place
        bucket_dir = self._bucket_path(bucket)
        path = self._object_path(bucket, key)
        try:
            bucket_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as dst:
                shutil.copyfileobj(stream, dst, COPY_CHUNK_SIZE)
                size = dst.tell()
        except OSError as e:
            raise StorageError(
                f"Failed to save object {bucket}/{key}: {e}",
                {"bucket": bucket, "key": key},
            ) from e

        logger.debug("Saved object %s/%s (%d bytes)", bucket, key, size)
        return size

    def object_path(self, bucket: str, key: str) -> Path:
        """Return the on-disk path of an existing object."""
        path = self._object_path(bucket, key)
        if not path.is_file():
            raise ObjectNotFound(f"Object not found: {bucket}/{key}")
        return path

    def delete_object(self, bucket: str, key: str) -> None:
        path = self._object_path(bucket, key)
        if not path.is_file():
            raise ObjectNotFound(f"Object not found: {bucket}/{key}")
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise ObjectNotFound(f"Object not found: {bucket}/{key}") from e
        except OSError as e:
            raise StorageError(f"Failed to delete object {bucket}/{key}: {e}") from e
        logger.debug("Deleted object %s/%s", bucket, key)

    def list_objects(self, bucket: str) -> list[str]:
        bucket_dir = self._bucket_path(bucket)
        if not bucket_dir.is_dir():
            raise BucketNotFound(f"Bucket not found: {bucket}")
        try:
            with os.scandir(bucket_dir) as entries:
                return sorted(entry.name for entry in entries if entry.is_file())
        except FileNotFoundError as e:
            raise BucketNotFound(f"Bucket not found: {bucket}") from e
        except OSError as e:
            raise StorageError(f"Failed to list bucket {bucket}: {e}") from e

    def list_buckets(self) -> list[str]:
        """List bucket names, sorted. A missing storage root means no buckets."""
        try:
            with os.scandir(self.base_path) as entries:
                return sorted(entry.name for entry in entries if entry.is_dir())
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"Failed to list buckets: {e}") from e

    def create_bucket(self, name: str) -> bool:
        path = self._bucket_path(name)
        if path.exists():
            return False
        try:
            path.mkdir(parents=True)
        except FileExistsError:
            # lost a race with a concurrent create
            return False
        except OSError as e:
            raise StorageError(f"Failed to create bucket {name}: {e}") from e

        logger.info("Created bucket %s", name)
        return True

    def delete_bucket(self, name: str) -> bool:
        path = self._bucket_path(name)
        if not path.is_dir():
            raise BucketNotFound(f"Bucket not found: {name}")
        try:
            with os.scandir(path) as entries:
                has_entries = any(True for _ in entries)
        except OSError as e:
            raise StorageError(f"Failed to inspect bucket {name}: {e}") from e
        if has_entries:
            raise BucketNotEmpty(f"Bucket is not empty: {name}")

        try:
            path.rmdir()
        except FileNotFoundError as e:
            raise BucketNotFound(f"Bucket not found: {name}") from e
        except OSError as e:
            if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                raise BucketNotEmpty(f"Bucket is not empty: {name}") from e
            raise StorageError(f"Failed to delete bucket {name}: {e}") from e

        logger.info("Deleted bucket %s", name)
        return True
