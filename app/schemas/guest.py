"""
Guest-related Pydantic schemas
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator

GuestLanguage = Literal["ru", "he"]

GUEST_STATUS_FILTERS = ("invited", "not_invited", "attending", "declined", "pending")


def _strip_required(value):
    if value is None:
        return value
    value = str(value).strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class GuestCreate(BaseModel):
    """Schema for creating a guest"""
    first_name: str
    last_name: str
    phone: str
    party_size: int = Field(1, gt=0)
    language: GuestLanguage

    @field_validator("first_name", "last_name", "phone", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip_required(value)


class GuestUpdate(BaseModel):
    """Schema for updating a guest; only fields that are sent are changed"""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    party_size: Optional[int] = Field(None, ge=0)
    attending: Optional[bool] = None
    language: Optional[GuestLanguage] = None

    @field_validator("first_name", "last_name", "phone", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip_required(value)


class RsvpSubmission(BaseModel):
    """RSVP form submitted by the guest from their invite page"""
    party_size: int = Field(..., ge=0)
    attending: Optional[bool] = None

    @field_validator("attending", mode="before")
    @classmethod
    def parse_attending(cls, value):
        # "yes" / "no" from the form; anything else leaves the answer pending
        if isinstance(value, bool) or value is None:
            return value
        if str(value).strip().lower() == "yes":
            return True
        if str(value).strip().lower() == "no":
            return False
        return None


class GuestResponse(BaseModel):
    """Guest record"""
    id: str
    first_name: str
    last_name: str
    phone: str
    party_size: int
    attending: Optional[bool] = None
    language: GuestLanguage
    last_invite_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def invited(self) -> bool:
        return self.last_invite_sent_at is not None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class GuestInvite(BaseModel):
    """What a guest sees on their personal invite page"""
    id: str
    first_name: str
    last_name: str
    language: GuestLanguage
    party_size: int
    attending: Optional[bool] = None
    has_response: bool


class DirectoryStats(BaseModel):
    total: int
    invited: int
    not_invited: int
    attending: int
    attending_headcount: int
    declined: int
    pending: int
