from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from righub.core.constants import PHONE_PATTERN
from righub.core.sanitize import strip_tags


class ContactInfoBase(BaseModel):
    contact_name: str = Field(min_length=1, max_length=255)
    company_name: Optional[str] = Field(default=None, max_length=255)
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=120)
    state_province: str = Field(min_length=1, max_length=120)
    postal_code: Optional[str] = Field(default=None, max_length=32)
    country: str = Field(min_length=1, max_length=120)

    phone: str = Field(min_length=1, max_length=64, pattern=PHONE_PATTERN)
    email: EmailStr
    website: Optional[str] = Field(default=None, max_length=512)

    hear_about_us: List[str] = []
    hear_about_us_other: Optional[str] = Field(default=None, max_length=255)


class ContactInfoCreate(ContactInfoBase):
    accept_terms: bool

    @field_validator(
        "contact_name", "company_name", "address_line1", "address_line2",
        "city", "state_province", "postal_code", "country", "hear_about_us_other",
        mode="before",
    )
    @classmethod
    def _strip_tags(cls, v):
        return strip_tags(v) if isinstance(v, str) else v

    @field_validator("email", mode="before")
    @classmethod
    def _lower_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("website", mode="before")
    @classmethod
    def _blank_website(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ContactInfoRead(ContactInfoBase):
    id: int
    accept_terms: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
