from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from righub.core.database import get_db
from righub.core.security import get_current_user
from righub.models.listing import Listing
from righub.models.user import User
from righub.schemas.listing import (
    MediaAttachmentCreate,
    MediaAttachmentRead,
    MediaDeleted,
    MediaReorder,
)
from righub.services.lifecycle import ListingLifecycle
from righub.services.repositories import ListingRepository, MediaRepository

router = APIRouter(
    prefix="/listings",
    tags=["listing-media"],
)


# ---------------------------
# 공통: Listing + 소유권 확인
# ---------------------------
def _get_owned_listing_or_404(listing_id: int, user: User, db: Session) -> Listing:
    listing = ListingRepository(db).get(listing_id)
    if not listing:
        raise HTTPException(404, "Listing not found")

    if listing.owner_id != user.id:
        raise HTTPException(403, "Not authorized")

    return listing


# ---------------------------
# 첨부 등록 (POST)
#   파일은 이미 스토리지에 올라간 상태, provider/path 만 받음
# ---------------------------
@router.post(
    "/{listing_id}/media",
    response_model=MediaAttachmentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_media_attachment(
    listing_id: int,
    file_in: MediaAttachmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return ListingLifecycle(db).add_media_attachment(listing_id, file_in.model_dump())


# ---------------------------
# 갤러리 조회 (GET), display_order 순
# ---------------------------
@router.get("/{listing_id}/media", response_model=List[MediaAttachmentRead])
def list_media(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return MediaRepository(db).for_listing(listing_id)


# ---------------------------
# 순서 변경 (PUT), 전부 반영되거나 전혀 반영되지 않음
# ---------------------------
@router.put("/{listing_id}/media/order", response_model=List[MediaAttachmentRead])
def reorder_media(
    listing_id: int,
    body: MediaReorder,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return ListingLifecycle(db).reorder_media(listing_id, body.ordered_ids)


# ---------------------------
# 첨부 삭제 (DELETE)
#   스토리지 파일 삭제는 호출 측 책임 → provider/path 반환
# ---------------------------
@router.delete("/{listing_id}/media/{media_id}", response_model=MediaDeleted)
def delete_media(
    listing_id: int,
    media_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return ListingLifecycle(db).delete_media_attachment(listing_id, media_id)
