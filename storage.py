"""
File storage for home logos, cover images, need photos and registration
documents.

Files live under ``<root>/<bucket>/<key>``. The ``images`` bucket is
public and served directly; the ``documents`` bucket is private and only
reachable through short-lived signed URLs.
"""
import logging
import re
import time
from pathlib import Path
from typing import Optional

from itsdangerous import BadData, SignatureExpired, URLSafeTimedSerializer

logger = logging.getLogger("givehaven.storage")

PUBLIC_BUCKETS = frozenset({"images"})
PRIVATE_BUCKETS = frozenset({"documents"})

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(Exception):
    pass


def make_key(prefix: str, filename: Optional[str]) -> str:
    """
    Build a unique object key such as ``logos/1712345678901-logo.png``.
    """
    name = Path(filename or "upload").name
    name = _UNSAFE_CHARS.sub("-", name).strip(".-") or "upload"
    return f"{prefix}/{int(time.time() * 1000)}-{name}"


class ObjectStorage:
    def __init__(self, root: str, secret_key: str, ttl_seconds: int = 3600):
        self.root = Path(root)
        self.ttl_seconds = ttl_seconds
        self._serializer = URLSafeTimedSerializer(secret_key, salt="signed-file")

    def _path_for(self, bucket: str, key: str) -> Path:
        if bucket not in PUBLIC_BUCKETS | PRIVATE_BUCKETS:
            raise StorageError(f"Unknown bucket {bucket!r}")
        bucket_root = (self.root / bucket).resolve()
        path = (bucket_root / key).resolve()
        if bucket_root not in path.parents:
            raise StorageError(f"Invalid key {key!r}")
        return path

    def upload(self, bucket: str, key: str, data: bytes) -> str:
        """
        Store ``data`` and return its URL (public buckets) or its key
        (private buckets, which need ``signed_url`` to be read).
        """
        if not data:
            raise StorageError("Refusing to store an empty file")
        path = self._path_for(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("Stored %s/%s (%d bytes)", bucket, key, len(data))
        if bucket in PUBLIC_BUCKETS:
            return self.public_url(bucket, key)
        return key

    def public_url(self, bucket: str, key: str) -> str:
        if bucket not in PUBLIC_BUCKETS:
            raise StorageError(f"Bucket {bucket!r} is private")
        return f"/files/{bucket}/{key}"

    def open_public(self, bucket: str, key: str) -> Path:
        if bucket not in PUBLIC_BUCKETS:
            raise StorageError(f"Bucket {bucket!r} is private")
        path = self._path_for(bucket, key)
        if not path.is_file():
            raise StorageError("File not found")
        return path

    def signed_url(self, key: str, bucket: str = "documents") -> str:
        token = self._serializer.dumps({"bucket": bucket, "key": key})
        return f"/files/signed/{token}"

    def resolve_signed(self, token: str) -> Path:
        try:
            data = self._serializer.loads(token, max_age=self.ttl_seconds)
        except SignatureExpired as exc:
            raise StorageError("Link has expired") from exc
        except BadData as exc:
            raise StorageError("Invalid link") from exc
        path = self._path_for(data["bucket"], data["key"])
        if not path.is_file():
            raise StorageError("File not found")
        return path
