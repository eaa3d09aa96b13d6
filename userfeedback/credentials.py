"""
Temporary upload credentials scoped to freshly generated storage paths.

Clients never receive the long-lived keys: the issuer builds a write-only
session policy covering exactly the destination objects of one upload batch
and exchanges it for short-lived credentials through STS AssumeRole.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from userfeedback.errors import CredentialServiceError, EmptyInputError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_DURATION_SECONDS = 3600


@dataclass
class UploadTarget:
    original_path: str
    storage_path: str


@dataclass
class UploadCredentials:
    bucket: str
    endpoint: str
    region: str
    access_key_id: str
    access_key_secret: str
    security_token: str
    expiration: datetime
    files: list[UploadTarget] = field(default_factory=list)

    def mapping(self) -> dict[str, str]:
        return {t.original_path: t.storage_path for t in self.files}


def base_file_name(original_path: str) -> str:
    """Strip every directory component from a client-supplied path."""
    name = PurePosixPath(original_path.replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise ValidationError(
            f"Invalid file name: {original_path!r}",
            details={"path": original_path},
        )
    return name


def build_storage_paths(
    original_paths: list[str], feedback_dir: str, timestamp_ms: int
) -> list[UploadTarget]:
    """
    Map each path to `{feedback_dir}/{timestamp_ms}/{name}`.

    A name already used in the batch gets a `_n` suffix before its extension.
    """
    prefix = feedback_dir.strip("/")
    used: set[str] = set()
    targets: list[UploadTarget] = []
    for original in original_paths:
        name = base_file_name(original)
        pure = PurePosixPath(name)
        candidate, n = name, 0
        while candidate in used:
            n += 1
            candidate = f"{pure.stem}_{n}{pure.suffix}"
        used.add(candidate)
        folder = f"{prefix}/{timestamp_ms}" if prefix else str(timestamp_ms)
        targets.append(
            UploadTarget(original_path=original, storage_path=f"{folder}/{candidate}")
        )
    return targets


def build_upload_policy(
    bucket: str, storage_paths: list[str], resource_prefix: str = "arn:aws:s3:::"
) -> dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": ["s3:PutObject"],
                "Resource": [f"{resource_prefix}{bucket}/{p}" for p in storage_paths],
            }
        ],
    }


@dataclass
class InMemoryStsClient:
    """Test double for the STS AssumeRole call."""

    calls: list = None

    def __post_init__(self):
        if self.calls is None:
            self.calls = []

    def assume_role(self, **kwargs) -> dict:
        self.calls.append(kwargs)
        n = len(self.calls)
        expires_in = kwargs.get("DurationSeconds", DEFAULT_DURATION_SECONDS)
        return {
            "Credentials": {
                "AccessKeyId": f"STS.local-{n}",
                "SecretAccessKey": f"local-secret-{n}",
                "SessionToken": f"local-token-{n}",
                "Expiration": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            }
        }


class UploadCredentialIssuer:
    """Issues time-boxed, path-scoped write credentials for one upload batch."""

    def __init__(
        self,
        sts_client,
        *,
        bucket: str,
        role_arn: str,
        endpoint: str = "",
        region: str = "",
        feedback_dir: str = "feedback",
        role_session_name: str = "userfeedback",
        duration_seconds: int = DEFAULT_DURATION_SECONDS,
        resource_prefix: str = "arn:aws:s3:::",
        clock: Callable[[], float] = time.time,
    ):
        self._sts = sts_client
        self.bucket = bucket
        self.role_arn = role_arn
        self.endpoint = endpoint
        self.region = region
        self.feedback_dir = feedback_dir
        self.role_session_name = role_session_name
        self.duration_seconds = duration_seconds
        self.resource_prefix = resource_prefix
        self._clock = clock

    def generate_upload_credentials(self, original_paths: list[str]) -> UploadCredentials:
        if not original_paths:
            raise EmptyInputError("At least one file name is required")

        timestamp_ms = int(self._clock() * 1000)
        targets = build_storage_paths(original_paths, self.feedback_dir, timestamp_ms)
        policy = build_upload_policy(
            self.bucket, [t.storage_path for t in targets], self.resource_prefix
        )

        try:
            response = self._sts.assume_role(
                RoleArn=self.role_arn,
                RoleSessionName=self.role_session_name,
                Policy=json.dumps(policy),
                DurationSeconds=self.duration_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("AssumeRole failed for %s: %s", self.role_arn, exc)
            raise CredentialServiceError("Failed to obtain upload credentials") from exc

        creds = response["Credentials"]
        logger.info(
            "Issued upload credentials for %d file(s) under %s/%d",
            len(targets),
            self.feedback_dir,
            timestamp_ms,
        )
        return UploadCredentials(
            bucket=self.bucket,
            endpoint=self.endpoint,
            region=self.region,
            access_key_id=creds["AccessKeyId"],
            access_key_secret=creds["SecretAccessKey"],
            security_token=creds["SessionToken"],
            expiration=creds["Expiration"],
            files=targets,
        )
