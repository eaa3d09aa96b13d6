"""
Object storage access (S3-compatible) with an in-memory test double.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from userfeedback.errors import EmptyInputError, ObjectStoreError

logger = logging.getLogger(__name__)


class StorageClient(Protocol):
    """Defines the operations the service needs from object storage."""

    def delete_object(self, path: str) -> None:
        ...

    def list_objects(self, prefix: str) -> list[str]:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def put_bytes(self, path: str, data: bytes) -> None:
        self.stored_objects[path] = data

    def delete_object(self, path: str) -> None:
        # Deleting a missing key succeeds, as it does on S3.
        self.stored_objects.pop(path, None)

    def list_objects(self, prefix: str) -> list[str]:
        return sorted(p for p in self.stored_objects if p.startswith(prefix))


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client, authenticated with the admin key pair.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy OSS/COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def delete_object(self, path: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=path)

    def list_objects(self, prefix: str) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys.extend(item["Key"] for item in page.get("Contents", []))
        return keys


def delete_objects(storage: StorageClient, paths: Iterable[str]) -> None:
    """
    Delete each path in order, stopping at the first failure.

    Raises EmptyInputError when no paths are given and ObjectStoreError
    naming the path that could not be deleted.
    """
    paths = list(paths)
    if not paths:
        raise EmptyInputError("No object paths to delete")

    for path in paths:
        try:
            storage.delete_object(path)
        except (BotoCoreError, ClientError, OSError) as exc:
            logger.error("Failed to delete object %s: %s", path, exc)
            raise ObjectStoreError(f"Failed to delete object {path}", path=path) from exc
        logger.debug("Deleted object %s", path)
    logger.info("Deleted %d object(s)", len(paths))
