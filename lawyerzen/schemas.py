"""
Pydantic schemas for the practice-management API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(..., min_length=6, max_length=128)
    role: Literal["lawyer", "assistant", "admin"] = "lawyer"
    barNumber: Optional[str] = None
    firm: Optional[str] = None


class LoginRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class Preferences(BaseModel):
    theme: Literal["light", "dark", "system"] = "system"
    language: str = "en-IN"
    timezone: str = "Asia/Kolkata"
    dateFormat: Literal["DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD"] = "DD/MM/YYYY"
    currency: str = "INR"


class PreferencesUpdate(BaseModel):
    theme: Optional[Literal["light", "dark", "system"]] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    dateFormat: Optional[Literal["DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD"]] = None
    currency: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    barNumber: Optional[str] = None
    firm: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=2000)
    preferences: Optional[PreferencesUpdate] = None


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    barNumber: Optional[str] = None
    firm: Optional[str] = None
    preferences: Preferences


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse


class OkResponse(BaseModel):
    ok: Literal[True] = True


class _Record(BaseModel):
    # Extra form fields are stored as-is.
    model_config = ConfigDict(extra="allow")


class CaseCreate(_Record):
    caseNumber: str = Field(..., min_length=1, max_length=100)
    title: Optional[str] = None
    clientId: Optional[str] = None
    clientName: Optional[str] = None
    status: str = "active"
    priority: str = "medium"


class ClientCreate(_Record):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    phone: str = Field(..., min_length=1, max_length=20)
    address: Optional[str] = None


class InvoiceCreate(_Record):
    invoiceNumber: str = Field(..., min_length=1, max_length=100)
    clientId: Optional[str] = None
    total: float = Field(..., ge=0)
    currency: str = "INR"
    status: Literal["draft", "sent", "paid", "overdue", "cancelled"] = "draft"
    dueDate: Optional[str] = None


class HearingCreate(_Record):
    caseId: str
    date: str
    time: Optional[str] = None
    court: Optional[str] = None
    hearingType: Optional[str] = None
    status: str = "scheduled"


class TimeEntryCreate(_Record):
    description: str = Field(..., min_length=1, max_length=1000)
    duration: int = Field(..., gt=0, description="Minutes")
    caseId: Optional[str] = None
    billable: bool = True


class AlertCreate(_Record):
    title: str = Field(..., min_length=1, max_length=200)
    message: Optional[str] = None
    priority: Literal["low", "medium", "high"] = "medium"
    caseId: Optional[str] = None
    isRead: bool = False


class RecordUpdate(_Record):
    """Partial update; only the fields sent are merged."""


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    parentId: Optional[str] = None
    caseId: Optional[str] = None


class FolderUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    caseId: Optional[str] = None
