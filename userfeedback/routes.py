"""
HTTP routes for the feedback API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from userfeedback.credentials import UploadCredentialIssuer
from userfeedback.db import MIN_PAGE_SIZE, AttachedFile, FeedbackRecord, FeedbackStore
from userfeedback.dependencies import (
    get_credential_issuer,
    get_feedback_store,
    get_storage_client,
)
from userfeedback.errors import EmptyInputError
from userfeedback.schemas import (
    DeleteFeedbackRequest,
    FeedbackFileView,
    FeedbackSubmission,
    FeedbackView,
    QueryFeedbackResponse,
    StatusResponse,
    SubmitFeedbackResponse,
    UploadCredentialsRequest,
    UploadCredentialsResponse,
    UploadTargetView,
)
from userfeedback.storage import StorageClient, delete_objects

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_view(record: FeedbackRecord) -> FeedbackView:
    time_stamp = None
    if record.created_at is not None:
        time_stamp = int(record.created_at.timestamp() * 1000)
    return FeedbackView(
        feedback_id=record.feedback_id,
        impacted_module=record.impacted_module,
        occurring_frequency=record.occurring_frequency,
        bug_description=record.bug_description,
        reproduce_steps=record.reproduce_steps,
        user_info=record.user_info,
        process_info=record.process_info,
        email=record.email,
        app_version=record.app_version,
        time_stamp=time_stamp,
        files=[
            FeedbackFileView(
                file_name=f.file_name,
                file_path_on_oss=f.file_path,
                file_size=f.file_size,
            )
            for f in record.files
        ],
    )


@router.get("/health", response_model=StatusResponse)
def health():
    return StatusResponse(status="ok")


@router.post("/feedback", response_model=SubmitFeedbackResponse, status_code=201)
def submit_feedback(
    payload: FeedbackSubmission, store: FeedbackStore = Depends(get_feedback_store)
):
    record = FeedbackRecord(
        bug_description=payload.bug_description,
        impacted_module=payload.impacted_module,
        reproduce_steps=payload.reproduce_steps,
        occurring_frequency=payload.occurring_frequency,
        user_info=payload.user_info,
        process_info=payload.process_info,
        email=payload.email,
        app_version=payload.app_version,
        files=[
            AttachedFile(
                file_name=f.file_name,
                file_path=f.file_path_on_oss,
                file_size=f.file_size,
            )
            for f in payload.files
        ],
    )
    feedback_id = store.insert_feedback(record)
    return SubmitFeedbackResponse(feedback_id=feedback_id)


@router.get("/feedback", response_model=QueryFeedbackResponse)
def list_feedback(
    page_index: int = Query(0, alias="pageIndex"),
    page_size: int = Query(MIN_PAGE_SIZE, alias="pageSize"),
    store: FeedbackStore = Depends(get_feedback_store),
):
    page = store.query_feedback(page_index, page_size)
    return QueryFeedbackResponse(
        total_size=page.total_size,
        current_page_index=page.current_page_index,
        page_data=[_to_view(record) for record in page.records],
    )


@router.post("/upload-credentials", response_model=UploadCredentialsResponse)
def request_upload_credentials(
    payload: UploadCredentialsRequest,
    issuer: UploadCredentialIssuer = Depends(get_credential_issuer),
):
    credentials = issuer.generate_upload_credentials(payload.file_names)
    return UploadCredentialsResponse(
        bucket=credentials.bucket,
        endpoint=credentials.endpoint,
        region=credentials.region,
        access_key_id=credentials.access_key_id,
        access_key_secret=credentials.access_key_secret,
        security_token=credentials.security_token,
        expiration=credentials.expiration,
        files=[
            UploadTargetView(original_path=t.original_path, storage_path=t.storage_path)
            for t in credentials.files
        ],
    )


@router.post("/feedback/delete", response_model=StatusResponse)
def delete_feedback(
    payload: DeleteFeedbackRequest,
    store: FeedbackStore = Depends(get_feedback_store),
    storage: StorageClient = Depends(get_storage_client),
):
    """
    Delete the stored objects first, then the rows. An interruption between
    the two steps leaves orphaned objects, never rows pointing at missing
    objects.
    """
    if not payload.feedback_ids:
        raise EmptyInputError("At least one feedback id is required")

    related = store.query_related_files(payload.feedback_ids)
    paths = [path for entry in related for path in entry.file_paths]
    if paths:
        delete_objects(storage, paths)
    store.delete_feedback(payload.feedback_ids)
    return StatusResponse(status="ok")
