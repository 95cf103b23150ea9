"""inventory_shared.storage — Blob store capability for JSON documents.

A store is anything with ``get(key) -> Optional[str]`` and
``set(key, text, content_type=...)``. Documents are addressed by a fixed
logical key (``inventory.json``, ``uploads.json``) inside a named store.

Requires environment variables (production):
    INVENTORY_BUCKET   — S3 bucket holding the documents
Optional:
    INVENTORY_PREFIX   — store name / key prefix (default: inventory)
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from inventory_shared import config
from inventory_shared.aws_clients import _get_s3
from inventory_shared.errors import StorageReadError, StorageWriteError

logger = logging.getLogger(__name__)

__all__ = [
    "BlobStore",
    "MemoryBlobStore",
    "S3BlobStore",
    "_get_store",
]


class BlobStore:
    """Opaque key/value text store."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, text: str, content_type: str = "application/json") -> None:
        raise NotImplementedError


class S3BlobStore(BlobStore):
    """Documents stored as S3 objects under ``<prefix>/<key>``."""

    def __init__(self, bucket: str, prefix: str = "", client=None) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _get_s3()
        return self._client

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def get(self, key: str) -> Optional[str]:
        object_key = self._object_key(key)
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=object_key)
            return resp["Body"].read().decode("utf-8")
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise StorageReadError(f"Failed to read {key}", detail=str(exc)) from exc
        except (BotoCoreError, UnicodeDecodeError) as exc:
            raise StorageReadError(f"Failed to read {key}", detail=str(exc)) from exc

    def set(self, key: str, text: str, content_type: str = "application/json") -> None:
        object_key = self._object_key(key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=object_key,
                Body=text.encode("utf-8"),
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageWriteError(f"Failed to write {key}", detail=str(exc)) from exc
        logger.info("wrote s3://%s/%s (%d bytes)", self.bucket, object_key, len(text))


class MemoryBlobStore(BlobStore):
    """Process-local store for local runs and tests."""

    def __init__(self, documents: Optional[Dict[str, str]] = None) -> None:
        self.documents: Dict[str, str] = dict(documents or {})
        self.content_types: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self.documents.get(key)

    def set(self, key: str, text: str, content_type: str = "application/json") -> None:
        with self._lock:
            self.documents[key] = text
            self.content_types[key] = content_type


# ---------------------------------------------------------------------------
# Default store singleton
# ---------------------------------------------------------------------------

_store: Optional[BlobStore] = None


def _get_store() -> BlobStore:
    """Get (or create) the configured store.

    Falls back to an in-memory store when no bucket is configured; its
    contents do not survive the execution environment.
    """
    global _store
    if _store is None:
        if config.INVENTORY_BUCKET:
            _store = S3BlobStore(config.INVENTORY_BUCKET, config.INVENTORY_PREFIX)
        else:
            logger.warning("INVENTORY_BUCKET not set; using in-memory store")
            _store = MemoryBlobStore()
    return _store
