from decimal import Decimal
from math import ceil
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from righub.core.database import get_db
from righub.core.security import get_current_user, get_optional_user
from righub.models.enums import AvailabilityStatus, ListingStatus, MediaFileType
from righub.models.listing import Listing
from righub.models.user import User
from righub.schemas.listing import (
    AttachDetails,
    ListingCreate,
    ListingPage,
    ListingRead,
    ListingUpdate,
    MarkSoldRequest,
    ReserveRequest,
    SaleRecordAmend,
)
from righub.services.lifecycle import ListingLifecycle
from righub.services.repositories import ListingRepository

router = APIRouter(prefix="/listings", tags=["listings"])


def _attach_thumbnail(listing: Listing) -> ListingRead:
    """
    Convert a Listing into ListingRead and use the first image in the
    gallery as the thumbnail.
    """
    data = ListingRead.model_validate(listing)

    for media in listing.media_attachments:
        if media.file_type == MediaFileType.IMAGE:
            data.thumbnail_url = media.thumbnail_url or media.storage_path
            break

    return data


def _get_owned_listing_or_404(
    listing_id: int,
    current_user: User,
    db: Session,
) -> Listing:
    listing = ListingRepository(db).get(listing_id)
    if not listing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Listing not found",
        )
    if listing.owner_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this listing",
        )
    return listing


def _is_public(listing: Listing) -> bool:
    return (
        listing.status == ListingStatus.PUBLISHED
        and listing.availability_status == AvailabilityStatus.AVAILABLE
    )


@router.get("/", response_model=List[ListingRead])
def list_my_listings(
    status_filter: Optional[ListingStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    listings = ListingRepository(db).list_for_owner(current_user.id, status_filter)
    return [_attach_thumbnail(l) for l in listings]


@router.post("/", response_model=ListingRead, status_code=status.HTTP_201_CREATED)
def create_listing(
    listing_in: ListingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    fields = listing_in.model_dump(exclude={"contact_info_id"})
    listing = ListingLifecycle(db).create_listing(
        current_user.id, listing_in.contact_info_id, fields
    )
    return _attach_thumbnail(listing)


@router.get("/available", response_model=ListingPage)
def search_available(
    manufacturer: Optional[str] = None,
    model: Optional[str] = None,
    year: Optional[str] = None,
    condition: Optional[str] = None,
    min_price: Optional[Decimal] = Query(default=None, ge=0),
    max_price: Optional[Decimal] = Query(default=None, ge=0),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    listings, total = ListingRepository(db).search_available(
        manufacturer=manufacturer,
        model=model,
        year=year,
        condition=condition,
        min_price=min_price,
        max_price=max_price,
        page=page,
        limit=limit,
    )
    return ListingPage(
        listings=[_attach_thumbnail(l) for l in listings],
        total=total,
        page=page,
        limit=limit,
        total_pages=ceil(total / limit) if total else 0,
    )


@router.get("/sold", response_model=List[ListingRead])
def list_my_sold_listings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    listings = ListingRepository(db).list_sold_for_owner(current_user.id)
    return [_attach_thumbnail(l) for l in listings]


@router.get("/by-reference/{reference_number}", response_model=ListingRead)
def get_listing_by_reference(
    reference_number: str,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    listing = ListingRepository(db).get_by_reference(reference_number)
    is_owner = listing is not None and current_user is not None and listing.owner_id == current_user.id
    if listing is None or not (is_owner or _is_public(listing)):
        raise HTTPException(status_code=404, detail="Listing not found")
    return _attach_thumbnail(listing)


@router.get("/{listing_id}", response_model=ListingRead)
def get_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    # 공개 조회는 PUBLISHED + AVAILABLE 만, 소유자는 모든 상태 조회 가능
    listing = ListingRepository(db).get(listing_id)
    is_owner = listing is not None and current_user is not None and listing.owner_id == current_user.id
    if listing is None or not (is_owner or _is_public(listing)):
        raise HTTPException(status_code=404, detail="Listing not found")
    return _attach_thumbnail(listing)


@router.put("/{listing_id}", response_model=ListingRead)
def update_listing(
    listing_id: int,
    listing_in: ListingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)

    # exclude_unset=True: Do not touch fields that were not sent
    data = listing_in.model_dump(exclude_unset=True)
    listing = ListingLifecycle(db).update_listing(listing_id, data)
    return _attach_thumbnail(listing)


# ---------------------------
# 상태 전이
# ---------------------------
@router.post("/{listing_id}/submit", response_model=ListingRead)
def submit_for_review(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return _attach_thumbnail(ListingLifecycle(db).submit_for_review(listing_id))


@router.post("/{listing_id}/return-to-draft", response_model=ListingRead)
def return_to_draft(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return _attach_thumbnail(ListingLifecycle(db).return_to_draft(listing_id))


@router.post("/{listing_id}/publish", response_model=ListingRead)
def publish_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return _attach_thumbnail(ListingLifecycle(db).publish(listing_id))


@router.post("/{listing_id}/reserve", response_model=ListingRead)
def reserve_listing(
    listing_id: int,
    body: ReserveRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return _attach_thumbnail(ListingLifecycle(db).reserve(listing_id, body.until))


@router.post("/{listing_id}/release", response_model=ListingRead)
def release_reservation(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return _attach_thumbnail(ListingLifecycle(db).release_reservation(listing_id))


@router.post("/{listing_id}/sold", response_model=ListingRead)
def mark_sold(
    listing_id: int,
    body: MarkSoldRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    listing = ListingLifecycle(db).mark_sold(
        listing_id, body.sold_price, body.sold_to, body.sold_notes
    )
    return _attach_thumbnail(listing)


@router.put("/{listing_id}/sale-record", response_model=ListingRead)
def amend_sale_record(
    listing_id: int,
    body: SaleRecordAmend,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    listing = ListingLifecycle(db).amend_sale_record(listing_id, body.sold_to, body.sold_notes)
    return _attach_thumbnail(listing)


@router.post("/{listing_id}/archive", response_model=ListingRead)
def archive_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return _attach_thumbnail(ListingLifecycle(db).archive(listing_id))


@router.put("/{listing_id}/details", response_model=ListingRead)
def attach_details(
    listing_id: int,
    body: AttachDetails,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_owned_listing_or_404(listing_id, current_user, db)
    return _attach_thumbnail(ListingLifecycle(db).attach_details(listing_id, body.details_id))
