"""Pydantic models for sharing links."""

from pydantic import BaseModel, Field


class SharingLinkCreate(BaseModel):
    description: str | None = Field(None, max_length=200)
    expiration_hours: int = Field(168, ge=1, le=24 * 30)


class SharingLinkResponse(BaseModel):
    id: int
    token: str
    url: str
    description: str | None = None
    is_active: bool
    expires_at: str
    created_at: str
    submission_count: int = 0


class SharingLinkListResponse(BaseModel):
    links: list[SharingLinkResponse]
    total: int


class SharingQuotaResponse(BaseModel):
    can_create: bool
    reason: str | None = None
    active_links_count: int
    daily_links_count: int


class PublicSharingLink(BaseModel):
    id: int
    token: str
    description: str | None = None
    expires_at: str
    owner_name: str | None = None


class SharingLinkStatus(BaseModel):
    is_valid: bool
    error: str | None = None
    message: str | None = None
    sharing_link: PublicSharingLink | None = None
