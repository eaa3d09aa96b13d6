"""
Pydantic schemas for the feedback API.

Wire names are camelCase; identifiers use the `feedbackID` spelling the
browser pages expect.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeedbackFilePayload(CamelModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_path_on_oss: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(default=0, ge=0)


class FeedbackSubmission(CamelModel):
    impacted_module: str
    bug_description: str
    reproduce_steps: str
    occurring_frequency: int = 0
    user_info: Optional[str] = None
    process_info: Optional[str] = None
    email: Optional[str] = None
    app_version: Optional[str] = None
    files: list[FeedbackFilePayload] = Field(default_factory=list)

    @field_validator("impacted_module", "bug_description", "reproduce_steps")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class SubmitFeedbackResponse(CamelModel):
    feedback_id: int = Field(alias="feedbackID")


class FeedbackFileView(CamelModel):
    file_name: str
    file_path_on_oss: str
    file_size: int


class FeedbackView(CamelModel):
    feedback_id: int = Field(alias="feedbackID")
    impacted_module: str
    occurring_frequency: int
    bug_description: str
    reproduce_steps: str
    user_info: Optional[str] = None
    process_info: Optional[str] = None
    email: Optional[str] = None
    app_version: Optional[str] = None
    # Milliseconds since the epoch.
    time_stamp: Optional[int] = None
    files: list[FeedbackFileView]


class QueryFeedbackResponse(CamelModel):
    total_size: int
    current_page_index: int
    page_data: list[FeedbackView]


class UploadCredentialsRequest(CamelModel):
    file_names: list[str]


class UploadTargetView(CamelModel):
    original_path: str
    storage_path: str


class UploadCredentialsResponse(CamelModel):
    bucket: str
    endpoint: str
    region: str
    access_key_id: str
    access_key_secret: str
    security_token: str
    expiration: datetime
    files: list[UploadTargetView]


class DeleteFeedbackRequest(CamelModel):
    feedback_ids: list[int] = Field(alias="feedbackIDs")


class StatusResponse(BaseModel):
    status: Literal["ok"]
