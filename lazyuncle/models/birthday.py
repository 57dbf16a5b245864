"""Pydantic models for birthdays and notification preferences."""

from pydantic import BaseModel, Field


class BirthdayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    year: int | None = None
    month: int
    day: int
    category: str | None = Field(None, max_length=50)
    parent: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=500)


class BirthdayResponse(BaseModel):
    id: int
    name: str
    date: str
    year: int | None = None
    month: int
    day: int
    category: str | None = None
    parent: str | None = None
    notes: str | None = None
    import_source: str | None = None
    created_at: str


class BirthdayListResponse(BaseModel):
    birthdays: list[BirthdayResponse]
    total: int


class NotificationPreferences(BaseModel):
    email_notifications: bool = True
    summary_notifications: bool = False
    birthday_reminders: bool = False


class NotificationPreferencesUpdate(BaseModel):
    email_notifications: bool | None = None
    summary_notifications: bool | None = None
    birthday_reminders: bool | None = None
