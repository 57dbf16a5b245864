"""Birthday management routes."""

from fastapi import APIRouter, Depends, HTTPException

from lazyuncle.auth import require_user
from lazyuncle.models.birthday import BirthdayCreate, BirthdayListResponse, BirthdayResponse
from lazyuncle.services import birthday_service
from lazyuncle.services.input_validator import sanitize_string, validate_date_components

router = APIRouter(prefix="/api/birthdays", tags=["birthdays"])


@router.get("", response_model=BirthdayListResponse)
async def list_birthdays(user: dict = Depends(require_user)):
    birthdays = await birthday_service.list_birthdays(user["id"])
    return {"birthdays": birthdays, "total": len(birthdays)}


@router.post("", response_model=BirthdayResponse, status_code=201)
async def create_birthday(data: BirthdayCreate, user: dict = Depends(require_user)):
    """Create a birthday. The year is optional."""
    errors = validate_date_components(data.year, data.month, data.day)
    if errors:
        raise HTTPException(status_code=400, detail=errors)

    name = sanitize_string(data.name)
    if not name:
        raise HTTPException(status_code=400, detail=["Name is required"])

    return await birthday_service.create_birthday(
        user_id=user["id"],
        name=name,
        year=data.year,
        month=data.month,
        day=data.day,
        category=sanitize_string(data.category) or None,
        parent=sanitize_string(data.parent) or None,
        notes=sanitize_string(data.notes) or None,
    )


@router.delete("/{birthday_id}")
async def delete_birthday(birthday_id: int, user: dict = Depends(require_user)):
    if not await birthday_service.delete_birthday(birthday_id, user["id"]):
        raise HTTPException(status_code=404, detail="Birthday not found")
    return {"message": "Birthday deleted"}
