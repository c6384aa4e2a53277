from __future__ import annotations

import os
import re
import uuid
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import BinaryIO

import boto3
from botocore.exceptions import ClientError

# Stored keys always end in the extension of the sniffed type.
IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}
MEDIA_TYPES = {ext: ctype for ctype, ext in IMAGE_EXTENSIONS.items()} | {".jpeg": "image/jpeg"}
MAX_IMAGE_BYTES = 10 * 1024 * 1024


class StorageError(RuntimeError):
    pass


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def public_url(self, key: str) -> str | None:
        """Direct URL for the object, or None when it must be served through /media/."""
        return None


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        p = (self.root / safe_key).resolve()
        if self.root.resolve() not in p.parents:
            raise StorageError(f"Invalid storage key: {key}")
        return p

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        return self._path(key).open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).exists()


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def _client(self):
        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {"ACL": "public-read"}
        if content_type:
            extra["ContentType"] = content_type
        self._client().put_object(Bucket=self.bucket, Key=key, Body=data, **extra)

    def open(self, key: str) -> BinaryIO:
        obj = self._client().get_object(Bucket=self.bucket, Key=key)
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError:
            return False

    def public_url(self, key: str) -> str | None:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint:
            return f"https://{self.bucket}.{self.endpoint}/{key}"
        return None


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "lon1").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
            public_base_url=(config.get("S3_PUBLIC_URL") or "").strip(),
        )
    # default local
    root = Path(config.get("STORAGE_ROOT") or Path(os.getcwd()) / "storage")
    return LocalStorage(root=root)


def _safe_stem(filename: str) -> str:
    name = os.path.basename((filename or "").replace("\\", "/")).strip()
    stem = os.path.splitext(name)[0]
    return re.sub(r"[^A-Za-z0-9_-]+", "-", stem).strip("-")[:60] or "image"


def sniff_image_type(data: bytes) -> str | None:
    """Content type from the file's magic bytes; None when it is not an allowed image."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def listing_media_key(owner_id: str, filename: str, content_type: str, *, today: date | None = None) -> str:
    """properties/<owner_id>/<yyyy-mm-dd>/<short-uuid>-<stem><ext of content_type>"""
    ext = IMAGE_EXTENSIONS.get(content_type)
    if ext is None:
        raise StorageError(f"Unsupported media type: {content_type}")
    today = today or date.today()
    return f"properties/{owner_id}/{today.isoformat()}/{uuid.uuid4().hex[:8]}-{_safe_stem(filename)}{ext}"


def media_type_for_key(key: str) -> str | None:
    return MEDIA_TYPES.get(os.path.splitext(key)[1].lower())
