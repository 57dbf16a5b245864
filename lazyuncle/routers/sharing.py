"""Sharing routes: manage links (authenticated) + public link status and intake."""

from fastapi import APIRouter, Depends, HTTPException, Request

from lazyuncle.auth import require_user
from lazyuncle.models.sharing import (
    SharingLinkCreate,
    SharingLinkListResponse,
    SharingLinkResponse,
    SharingLinkStatus,
    SharingQuotaResponse,
)
from lazyuncle.models.submission import BirthdaySubmissionCreate, SubmissionAccepted
from lazyuncle.services import security_middleware, sharing_service, submission_service
from lazyuncle.services.security_middleware import SecurityResult

router = APIRouter(tags=["sharing"])


def _deny(result: SecurityResult) -> HTTPException:
    """Translate a denied security check into an HTTP error."""
    if result.reason == security_middleware.MSG_CHECK_FAILED:
        return HTTPException(status_code=503, detail=result.reason)
    if result.suspicious_activity is not None:
        return HTTPException(status_code=403, detail=result.reason)
    headers = {"Retry-After": str(result.retry_after)} if result.retry_after else None
    return HTTPException(status_code=429, detail=result.reason, headers=headers)


# ── Authenticated link management ────────────────────────────────────────────


@router.get("/api/sharing-links", response_model=SharingLinkListResponse)
async def list_links(active_only: bool = False, user: dict = Depends(require_user)):
    if active_only:
        links = await sharing_service.get_active_sharing_links(user["id"])
    else:
        links = await sharing_service.get_user_sharing_links(user["id"])
    return {"links": links, "total": len(links)}


@router.get("/api/sharing-links/quota", response_model=SharingQuotaResponse)
async def link_quota(user: dict = Depends(require_user)):
    return await sharing_service.can_create_sharing_link(user["id"])


@router.post("/api/sharing-links", response_model=SharingLinkResponse, status_code=201)
async def create_link(
    data: SharingLinkCreate,
    request: Request,
    user: dict = Depends(require_user),
):
    """Create a sharing link after the link-creation security checks."""
    ctx = security_middleware.extract_security_context(request)
    ctx.user_id = user["id"]

    check = await security_middleware.check_sharing_link_rate_limit(ctx)
    if not check.allowed:
        raise _deny(check)

    try:
        return await sharing_service.create_sharing_link(
            user["id"],
            description=data.description,
            expiration_hours=data.expiration_hours,
        )
    except ValueError as e:
        raise HTTPException(status_code=429, detail=str(e))


@router.delete("/api/sharing-links/{link_id}", response_model=SharingLinkResponse)
async def revoke_link(link_id: int, user: dict = Depends(require_user)):
    link = await sharing_service.revoke_sharing_link(link_id, user["id"])
    if link is None:
        raise HTTPException(status_code=404, detail="Sharing link not found")
    return link


# ── Public share page (no auth required) ─────────────────────────────────────


@router.get("/api/share/{token}", response_model=SharingLinkStatus)
async def link_status(token: str):
    """Tell the public share page whether a token can accept submissions."""
    return await sharing_service.get_sharing_link_status(token)


@router.post("/api/share/{token}/submissions", response_model=SubmissionAccepted, status_code=201)
async def submit_birthday(token: str, data: BirthdaySubmissionCreate, request: Request):
    """Public intake: security gate first, then validation and storage."""
    ctx = security_middleware.extract_security_context(request)
    ctx.token = token

    check = await security_middleware.check_submission_security(
        ctx, data.name, data.date, data.submitter_email
    )
    if not check.allowed:
        raise _deny(check)

    result = await submission_service.process_submission(
        token, data.model_dump(), submitter_ip=ctx.ip_address
    )
    if not result.success:
        if result.errors == [submission_service.MSG_INVALID_LINK]:
            raise HTTPException(status_code=404, detail=result.errors)
        if result.errors == [submission_service.MSG_LINK_RATE_LIMITED]:
            raise HTTPException(status_code=429, detail=result.errors)
        if result.errors == [submission_service.MSG_PROCESSING_FAILED]:
            raise HTTPException(status_code=500, detail=result.errors)
        raise HTTPException(status_code=400, detail=result.errors)

    return SubmissionAccepted(submission_id=result.submission_id)
