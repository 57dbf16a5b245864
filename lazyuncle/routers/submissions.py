"""Moderation routes for submissions received through sharing links."""

from fastapi import APIRouter, Depends, HTTPException

from lazyuncle.auth import require_user
from lazyuncle.models.submission import (
    BulkSubmissionRequest,
    BulkSubmissionResponse,
    DuplicateMatch,
    ImportResponse,
    PendingSubmissionsResponse,
)
from lazyuncle.services import submission_service

router = APIRouter(prefix="/api/submissions", tags=["submissions"])


def _moderation_error(message: str) -> HTTPException:
    if message == submission_service.MSG_NOT_FOUND:
        return HTTPException(status_code=404, detail=message)
    return HTTPException(status_code=500, detail=message)


@router.get("/pending", response_model=PendingSubmissionsResponse)
async def pending_submissions(page: int = 1, limit: int = 20, user: dict = Depends(require_user)):
    return await submission_service.get_pending_submissions(user["id"], page=page, limit=limit)


# ── Static path routes (must come BEFORE /{submission_id}) ──────────────────


@router.post("/bulk-import", response_model=BulkSubmissionResponse)
async def bulk_import(req: BulkSubmissionRequest, user: dict = Depends(require_user)):
    return await submission_service.bulk_import_submissions(req.submission_ids, user["id"])


@router.post("/bulk-reject", response_model=BulkSubmissionResponse)
async def bulk_reject(req: BulkSubmissionRequest, user: dict = Depends(require_user)):
    return await submission_service.bulk_reject_submissions(req.submission_ids, user["id"])


@router.get("/{submission_id}/duplicates", response_model=list[DuplicateMatch])
async def submission_duplicates(submission_id: int, user: dict = Depends(require_user)):
    try:
        return await submission_service.get_submission_duplicates(submission_id, user["id"])
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{submission_id}/import", response_model=ImportResponse)
async def import_submission(submission_id: int, user: dict = Depends(require_user)):
    result = await submission_service.import_submission(submission_id, user["id"])
    if not result.success:
        raise _moderation_error(result.errors[0])
    return ImportResponse(birthday_id=result.birthday_id)


@router.post("/{submission_id}/reject")
async def reject_submission(submission_id: int, user: dict = Depends(require_user)):
    result = await submission_service.reject_submission(submission_id, user["id"])
    if not result.success:
        raise _moderation_error(result.errors[0])
    return {"success": True}
