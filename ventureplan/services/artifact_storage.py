"""Artifact storage — bucketed blob store for templates and generated documents.

LocalArtifactStorage keeps each bucket as a directory under STORAGE_ROOT.
Download links are itsdangerous-signed tokens carrying bucket, path and an
absolute expiry; GET /api/v1/files/<token> resolves them.

Usage:
    storage = get_storage()
    storage.upload("documents", "p1/vision-problem/abc.md", b"...", "text/markdown")
    url = storage.create_signed_url("documents", "p1/vision-problem/abc.md", 3600)
"""

import logging
import mimetypes
import time
from pathlib import Path, PurePosixPath

from flask import current_app
from itsdangerous import BadData, URLSafeSerializer

from ventureplan.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_SIGNING_SALT = "ventureplan.artifact-download"


class LocalArtifactStorage:
    """Filesystem-backed storage. One directory per bucket."""

    def __init__(self, root, secret_key, url_prefix="/api/v1/files"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self._serializer = URLSafeSerializer(secret_key, salt=_SIGNING_SALT)

    def _resolve(self, bucket, path) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValidationError(f"Invalid storage path: {path!r}")
        if "/" in bucket or bucket in ("", ".", ".."):
            raise ValidationError(f"Invalid bucket: {bucket!r}")
        return self.root / bucket / Path(*rel.parts)

    def upload(self, bucket, path, data: bytes, content_type=None, upsert=False):
        target = self._resolve(bucket, path)
        if target.exists() and not upsert:
            raise ValidationError(f"Object already exists: {bucket}/{path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info(
            "Stored %s/%s (%d bytes)", bucket, path, len(data),
            extra={"bucket": bucket, "content_type": content_type},
        )
        return path

    def download(self, bucket, path) -> bytes:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise NotFoundError(resource="StorageObject", resource_id=f"{bucket}/{path}")
        return target.read_bytes()

    def exists(self, bucket, path) -> bool:
        return self._resolve(bucket, path).is_file()

    def delete(self, bucket, path):
        target = self._resolve(bucket, path)
        if target.is_file():
            target.unlink()
            return True
        return False

    def create_signed_url(self, bucket, path, expires_in=3600) -> str:
        if not self.exists(bucket, path):
            raise NotFoundError(resource="StorageObject", resource_id=f"{bucket}/{path}")
        token = self._serializer.dumps(
            {"b": bucket, "p": path, "x": int(time.time()) + int(expires_in)}
        )
        return f"{self.url_prefix}/{token}"

    def resolve_signed_token(self, token):
        """Return (bucket, path, content_type) for a valid, unexpired token."""
        try:
            payload = self._serializer.loads(token)
        except BadData:
            raise NotFoundError(resource="StorageObject", reason="invalid download link")
        if payload.get("x", 0) < time.time():
            raise NotFoundError(resource="StorageObject", reason="download link expired")
        bucket, path = payload["b"], payload["p"]
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        if path.endswith(".md"):
            content_type = "text/markdown"
        return bucket, path, content_type


def get_storage():
    """Storage bound to the current app, created on first use."""
    storage = current_app.extensions.get("artifact_storage")
    if storage is None:
        storage = LocalArtifactStorage(
            root=current_app.config["STORAGE_ROOT"],
            secret_key=current_app.config["SECRET_KEY"],
        )
        current_app.extensions["artifact_storage"] = storage
    return storage
