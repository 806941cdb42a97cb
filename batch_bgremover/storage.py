"""
Durable storage for uploaded sources.

Jobs commit their original bytes here while in the Uploading state and keep
the returned URL. The memory backend serves local runs and tests; the R2
backend talks to Cloudflare R2 (or any S3-compatible endpoint).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
import logging
from threading import Lock
import time
from typing import Optional
from urllib.parse import urljoin

import boto3
from botocore.client import Config as BotoConfig

from . import config
from .errors import UploadFailure

logger = logging.getLogger(__name__)


def build_key(prefix: str, filename: str) -> str:
    return f"{prefix.strip('/')}/{int(time.time() * 1000)}-{filename}"


class DurableStorage(ABC):
    @abstractmethod
    def upload(self, filename: str, content: bytes, media_type: str) -> str:
        """Store `content` and return a URL it can be retrieved from."""


class MemoryStorage(DurableStorage):
    """
    Process-local store for local runs and tests; nothing survives a restart.

    When `max_objects` is set, the oldest uploads are evicted past that count.
    Jobs never read their source back from storage, so eviction only drops
    the stored copy.
    """

    def __init__(self, prefix: str = "background-removal", max_objects: Optional[int] = None):
        self.prefix = prefix
        self.max_objects = max_objects
        self._objects: "OrderedDict[str, bytes]" = OrderedDict()
        self._lock = Lock()

    def upload(self, filename: str, content: bytes, media_type: str) -> str:
        key = build_key(self.prefix, filename)
        with self._lock:
            self._objects[key] = bytes(content)
            self._objects.move_to_end(key)
            if self.max_objects is not None:
                while len(self._objects) > self.max_objects:
                    evicted, _ = self._objects.popitem(last=False)
                    logger.debug("memory storage: evicted %s", evicted)
        return f"memory://{key}"

    def get(self, url: str) -> bytes:
        key = url[len("memory://") :] if url.startswith("memory://") else url
        with self._lock:
            return self._objects[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)


class R2Storage(DurableStorage):
    def __init__(self, settings: config.Settings):
        required = [
            settings.r2_endpoint,
            settings.r2_access_key_id,
            settings.r2_secret_access_key,
            settings.r2_bucket_name,
        ]
        if any(v is None for v in required):
            raise RuntimeError("R2 configuration is incomplete; check env vars.")
        self.settings = settings
        self._client = None

    def _get_s3_client(self):
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                service_name="s3",
                aws_access_key_id=self.settings.r2_access_key_id,
                aws_secret_access_key=self.settings.r2_secret_access_key,
                endpoint_url=self.settings.r2_endpoint,
                config=BotoConfig(signature_version="s3v4"),
            )
        return self._client

    def _build_public_url(self, key: str) -> str:
        if self.settings.r2_public_base_url:
            return urljoin(self.settings.r2_public_base_url.rstrip("/") + "/", key)
        # Fallback: virtual-hosted-style may not be available; presigned URLs are safer
        return self._get_s3_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self.settings.r2_bucket_name, "Key": key},
            ExpiresIn=3600,
        )

    def upload(self, filename: str, content: bytes, media_type: str) -> str:
        key = build_key(self.settings.storage_prefix, filename)
        try:
            self._get_s3_client().put_object(
                Bucket=self.settings.r2_bucket_name,
                Key=key,
                Body=content,
                ContentType=media_type,
            )
            return self._build_public_url(key)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to upload source to R2: %s", exc)
            raise UploadFailure("Upload to storage failed") from exc


def build_storage(settings: Optional[config.Settings] = None) -> DurableStorage:
    settings = settings if settings is not None else config.get_settings()
    if settings.storage_backend == "r2":
        return R2Storage(settings)
    return MemoryStorage(prefix=settings.storage_prefix, max_objects=settings.memory_storage_max_objects)
