"""Pydantic models for public submissions and moderation."""

from pydantic import BaseModel, Field


class BirthdaySubmissionCreate(BaseModel):
    # Length and format rules are enforced by the input validator so that
    # every error can be reported together.
    name: str
    date: str
    category: str | None = None
    notes: str | None = None
    submitter_name: str | None = None
    submitter_email: str | None = None
    relationship: str | None = None


class SubmissionAccepted(BaseModel):
    success: bool = True
    submission_id: int


class SubmissionResponse(BaseModel):
    id: int
    sharing_link_id: int
    sharing_link_description: str | None = None
    name: str
    date: str
    year: int | None = None
    month: int
    day: int
    category: str | None = None
    notes: str | None = None
    submitter_name: str | None = None
    submitter_email: str | None = None
    relationship: str | None = None
    status: str
    created_at: str
    possible_duplicate: bool = False


class PendingSubmissionsResponse(BaseModel):
    submissions: list[SubmissionResponse]
    total_count: int
    has_next_page: bool
    has_previous_page: bool
    current_page: int
    total_pages: int


class DuplicateMatch(BaseModel):
    id: int
    name: str
    date: str
    category: str | None = None
    similarity: float


class BulkSubmissionRequest(BaseModel):
    submission_ids: list[int] = Field(..., min_length=1, max_length=100)


class BulkSubmissionResponse(BaseModel):
    success: bool
    processed_count: int
    failed_count: int
    failed_ids: list[int]
    errors: list[str]


class ImportResponse(BaseModel):
    success: bool = True
    birthday_id: int
