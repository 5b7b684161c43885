from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from righub.core.sanitize import strip_tags
from righub.models.enums import AvailabilityStatus, ListingStatus, MediaFileType, StorageProvider

SERIAL_NUMBER_PATTERN = r"^[a-zA-Z0-9\-_]+$"

_TEXT_FIELDS = (
    "manufacturer", "model", "condition", "hours", "miles",
    "equipment_city", "equipment_state_province", "equipment_postal_code", "equipment_country",
)


# --- 미디어 ---
class MediaAttachmentCreate(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_type: MediaFileType
    mime_type: str = Field(min_length=1, max_length=100)
    file_size: int
    storage_provider: StorageProvider
    storage_path: str = Field(min_length=1, max_length=1024)
    thumbnail_url: Optional[str] = Field(default=None, max_length=1024)


class MediaAttachmentRead(BaseModel):
    id: int
    file_name: str
    file_type: MediaFileType
    mime_type: str
    file_size: int
    storage_provider: StorageProvider
    storage_path: str
    thumbnail_url: Optional[str] = None
    display_order: int
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MediaReorder(BaseModel):
    ordered_ids: List[int]


class MediaDeleted(BaseModel):
    id: int
    storage_provider: StorageProvider
    storage_path: str


# --- 상세 스펙 시트 ---
class ListingDetailsBase(BaseModel):
    general_description: Optional[str] = None
    locating_systems: Optional[str] = None
    mixing_systems: Optional[str] = None
    accessories: Optional[str] = None
    trailers: Optional[str] = None
    recent_work_modifications: Optional[str] = None
    additional_information: Optional[str] = None
    pipe: Optional[str] = None


class ListingDetailsCreate(ListingDetailsBase):
    @field_validator("*", mode="before")
    @classmethod
    def _strip_tags(cls, v):
        return strip_tags(v) if isinstance(v, str) else v


class ListingDetailsRead(ListingDetailsBase):
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttachDetails(BaseModel):
    details_id: int


# --- 리스팅 ---
class ListingBase(BaseModel):
    year: Optional[str] = Field(default=None, max_length=4)
    manufacturer: Optional[str] = Field(default=None, max_length=255)
    model: Optional[str] = Field(default=None, max_length=255)
    condition: Optional[str] = Field(default=None, max_length=50)
    serial_number: Optional[str] = Field(default=None, max_length=100, pattern=SERIAL_NUMBER_PATTERN)
    hours: Optional[str] = Field(default=None, max_length=50)
    miles: Optional[str] = Field(default=None, max_length=50)
    repossessed: bool = False

    equipment_city: Optional[str] = None
    equipment_state_province: Optional[str] = None
    equipment_postal_code: Optional[str] = None
    equipment_country: Optional[str] = None


class ListingCreate(ListingBase):
    contact_info_id: int
    asking_price: Decimal
    currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _strip_tags(cls, v):
        return strip_tags(v) if isinstance(v, str) else v


class ListingUpdate(BaseModel):
    # exclude_unset 으로 보낸 필드만 반영
    year: Optional[str] = Field(default=None, max_length=4)
    manufacturer: Optional[str] = Field(default=None, max_length=255)
    model: Optional[str] = Field(default=None, max_length=255)
    condition: Optional[str] = Field(default=None, max_length=50)
    serial_number: Optional[str] = Field(default=None, max_length=100, pattern=SERIAL_NUMBER_PATTERN)
    asking_price: Optional[Decimal] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    hours: Optional[str] = Field(default=None, max_length=50)
    miles: Optional[str] = Field(default=None, max_length=50)
    repossessed: Optional[bool] = None
    equipment_city: Optional[str] = None
    equipment_state_province: Optional[str] = None
    equipment_postal_code: Optional[str] = None
    equipment_country: Optional[str] = None

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _strip_tags(cls, v):
        return strip_tags(v) if isinstance(v, str) else v

    # 생략은 가능, null 로 비우는 건 불가 (NOT NULL 컬럼)
    @field_validator("asking_price", "currency", "repossessed", mode="before")
    @classmethod
    def _not_null(cls, v):
        if v is None:
            raise ValueError("field cannot be null")
        return v


class ReserveRequest(BaseModel):
    # 비워두면 default_reservation_hours 적용
    until: Optional[datetime] = None


class MarkSoldRequest(BaseModel):
    sold_price: Decimal
    sold_to: str = Field(min_length=1, max_length=255)
    sold_notes: Optional[str] = None


class SaleRecordAmend(BaseModel):
    sold_to: Optional[str] = Field(default=None, max_length=255)
    sold_notes: Optional[str] = None


class ListingRead(ListingBase):
    id: int
    reference_number: str
    owner_id: int
    contact_info_id: int
    listing_details_id: Optional[int] = None

    status: ListingStatus
    availability_status: AvailabilityStatus

    asking_price: Decimal
    currency: str
    sold_price: Optional[Decimal] = None

    reserved_at: Optional[datetime] = None
    reserved_until: Optional[datetime] = None
    sold_at: Optional[datetime] = None
    sold_to: Optional[str] = None
    sold_notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    thumbnail_url: Optional[str] = None

    listing_details: Optional[ListingDetailsRead] = None
    media_attachments: List[MediaAttachmentRead] = []

    model_config = ConfigDict(from_attributes=True)


class ListingPage(BaseModel):
    listings: List[ListingRead]
    total: int
    page: int
    limit: int
    total_pages: int


class ReservationSweepResult(BaseModel):
    success: bool = True
    expired_count: int
    expired_listing_ids: List[int]
    errors: List[str]
    timestamp: datetime
