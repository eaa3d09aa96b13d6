"""
Service construction and FastAPI dependency wiring.

Everything a request needs is built once by `build_services()` before the
app starts serving, attached to `app.state`, and handed to routes through
the `get_*` dependencies below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import boto3
from fastapi import Depends, Request

from userfeedback.config import Settings
from userfeedback.credentials import InMemoryStsClient, UploadCredentialIssuer
from userfeedback.db import FeedbackStore
from userfeedback.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)

IN_MEMORY_DATABASE_URL = "sqlite+pysqlite:///:memory:"


@dataclass
class FeedbackServices:
    store: FeedbackStore
    storage: StorageClient
    issuer: UploadCredentialIssuer


def build_services(settings: Settings) -> FeedbackServices:
    oss = settings.oss

    database_url = settings.database.sqlalchemy_url()
    if settings.use_in_memory_backends or not database_url:
        if not settings.use_in_memory_backends:
            logger.warning("No database configured; using in-memory SQLite")
        database_url = IN_MEMORY_DATABASE_URL
    store = FeedbackStore(database_url, public_base_url=oss.resolved_public_base_url())

    if settings.use_in_memory_backends or not oss.bucket_name:
        storage: StorageClient = InMemoryStorageClient()
        sts_client = InMemoryStsClient()
    else:
        storage = S3StorageClient(
            bucket=oss.bucket_name,
            region=oss.region or "",
            endpoint=oss.oss_endpoint_url() or "",
            access_key_id=oss.admin_access_key_id or "",
            secret_access_key=oss.admin_access_key_secret or "",
        )
        sts_client = boto3.client(
            "sts",
            endpoint_url=oss.sts_endpoint_url(),
            region_name=oss.region or None,
            aws_access_key_id=oss.access_key_id,
            aws_secret_access_key=oss.access_key_secret,
        )

    issuer = UploadCredentialIssuer(
        sts_client,
        bucket=oss.bucket_name or "",
        role_arn=oss.feedback_role or "",
        endpoint=oss.oss_endpoint or "",
        region=oss.region or "",
        feedback_dir=oss.dir_feedback,
        role_session_name=oss.role_session_name,
        duration_seconds=oss.credential_ttl_seconds,
        resource_prefix=oss.resource_prefix,
    )
    return FeedbackServices(store=store, storage=storage, issuer=issuer)


def get_services(request: Request) -> FeedbackServices:
    return request.app.state.services


def get_feedback_store(services: FeedbackServices = Depends(get_services)) -> FeedbackStore:
    return services.store


def get_storage_client(services: FeedbackServices = Depends(get_services)) -> StorageClient:
    return services.storage


def get_credential_issuer(
    services: FeedbackServices = Depends(get_services),
) -> UploadCredentialIssuer:
    return services.issuer
