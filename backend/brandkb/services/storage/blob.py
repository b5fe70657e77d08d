"""Object storage for raw page snapshots: MinIO/S3 in deployments, local filesystem in dev and tests."""

import io
import logging
from pathlib import Path
from typing import Optional, Protocol

from minio import Minio
from minio.error import S3Error

from brandkb.config import Settings, get_settings

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "NoSuchObject", "NoSuchBucket"}


class BlobStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        ...

    def exists(self, key: str) -> bool:
        ...

    def get(self, key: str) -> bytes:
        ...

    def uri(self, key: str) -> str:
        ...


class LocalBlobStore:
    """Keys map to files below ``root``."""

    def __init__(self, root: str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Blob key escapes store root: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        return self.uri(key)

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def get(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def uri(self, key: str) -> str:
        return self._path(key).as_uri()


class MinioBlobStore:
    """S3-compatible bucket accessed through the minio client."""

    def __init__(self, client: Minio, bucket: str, ensure_bucket: bool = True):
        self.client = client
        self.bucket = bucket
        if ensure_bucket and not client.bucket_exists(bucket):
            logger.info("Creating bucket %s", bucket)
            client.make_bucket(bucket)

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        self.client.put_object(
            self.bucket,
            key,
            io.BytesIO(data),
            length=len(data),
            content_type=content_type or "application/octet-stream",
        )
        return self.uri(key)

    def exists(self, key: str) -> bool:
        try:
            self.client.stat_object(self.bucket, key)
        except S3Error as exc:
            if exc.code in _MISSING_CODES:
                return False
            raise
        return True

    def get(self, key: str) -> bytes:
        response = self.client.get_object(self.bucket, key)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def uri(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"


def get_blob_store(settings: Optional[Settings] = None) -> BlobStore:
    settings = settings or get_settings()
    backend = (settings.blob_backend or "local").lower()
    if backend == "minio":
        client = Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_secure,
        )
        return MinioBlobStore(client, settings.minio_bucket)
    if backend == "local":
        return LocalBlobStore(settings.blob_local_root)
    raise ValueError(f"Unknown blob backend: {settings.blob_backend}")
