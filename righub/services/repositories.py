"""
SQLAlchemy-backed repositories.

ListingLifecycle talks to these instead of building queries itself, so the
state machine stays independent of the storage engine.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from righub.models.contact_info import ContactInfo
from righub.models.enums import AvailabilityStatus, ListingStatus
from righub.models.listing import Listing
from righub.models.listing_details import ListingDetails
from righub.models.media_attachment import MediaAttachment
from righub.models.user import User


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)


class ContactInfoRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, contact_info_id: int) -> Optional[ContactInfo]:
        return self.db.get(ContactInfo, contact_info_id)

    def add(self, contact: ContactInfo) -> ContactInfo:
        self.db.add(contact)
        return contact


class ListingDetailsRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, details_id: int) -> Optional[ListingDetails]:
        return self.db.get(ListingDetails, details_id)

    def add(self, details: ListingDetails) -> ListingDetails:
        self.db.add(details)
        return details


class MediaRepository:
    def __init__(self, db: Session):
        self.db = db

    def for_listing(self, listing_id: int) -> List[MediaAttachment]:
        return list(
            self.db.scalars(
                select(MediaAttachment)
                .where(MediaAttachment.listing_id == listing_id)
                .order_by(MediaAttachment.display_order.asc(), MediaAttachment.id.asc())
            )
        )

    def count(self, listing_id: int) -> int:
        return self.db.scalar(
            select(func.count(MediaAttachment.id)).where(MediaAttachment.listing_id == listing_id)
        )

    def max_display_order(self, listing_id: int) -> Optional[int]:
        return self.db.scalar(
            select(func.max(MediaAttachment.display_order)).where(
                MediaAttachment.listing_id == listing_id
            )
        )

    def add(self, media: MediaAttachment) -> MediaAttachment:
        self.db.add(media)
        return media

    def delete(self, media: MediaAttachment) -> None:
        self.db.delete(media)


class ListingRepository:
    def __init__(self, db: Session):
        self.db = db

    def _with_relations(self, stmt):
        return stmt.options(
            selectinload(Listing.media_attachments),
            selectinload(Listing.listing_details),
        )

    def get(self, listing_id: int) -> Optional[Listing]:
        return self.db.get(Listing, listing_id)

    def get_by_reference(self, reference_number: str) -> Optional[Listing]:
        return self.db.scalar(
            self._with_relations(select(Listing)).where(Listing.reference_number == reference_number)
        )

    def reference_exists(self, reference_number: str) -> bool:
        return self.db.scalar(
            select(Listing.id).where(Listing.reference_number == reference_number)
        ) is not None

    def add(self, listing: Listing) -> Listing:
        self.db.add(listing)
        return listing

    def by_details(self, details_id: int) -> Optional[Listing]:
        return self.db.scalar(select(Listing).where(Listing.listing_details_id == details_id))

    def count_for_owner(self, owner_id: int) -> int:
        return self.db.scalar(select(func.count(Listing.id)).where(Listing.owner_id == owner_id))

    def list_for_owner(self, owner_id: int, status: Optional[ListingStatus] = None) -> List[Listing]:
        stmt = self._with_relations(select(Listing)).where(Listing.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(Listing.status == status)
        return list(self.db.scalars(stmt.order_by(Listing.created_at.desc(), Listing.id.desc())))

    def list_sold_for_owner(self, owner_id: int) -> List[Listing]:
        stmt = (
            self._with_relations(select(Listing))
            .where(Listing.owner_id == owner_id, Listing.status == ListingStatus.SOLD)
            .order_by(Listing.sold_at.desc(), Listing.id.desc())
        )
        return list(self.db.scalars(stmt))

    def search_available(
        self,
        manufacturer: Optional[str] = None,
        model: Optional[str] = None,
        year: Optional[str] = None,
        condition: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Listing], int]:
        filters = [
            Listing.status == ListingStatus.PUBLISHED,
            Listing.availability_status == AvailabilityStatus.AVAILABLE,
        ]
        if manufacturer:
            filters.append(Listing.manufacturer.ilike(f"%{manufacturer}%"))
        if model:
            filters.append(Listing.model.ilike(f"%{model}%"))
        if year:
            filters.append(Listing.year == year)
        if condition:
            filters.append(Listing.condition == condition)
        if min_price is not None:
            filters.append(Listing.asking_price >= min_price)
        if max_price is not None:
            filters.append(Listing.asking_price <= max_price)

        total = self.db.scalar(select(func.count(Listing.id)).where(*filters))
        rows = self.db.scalars(
            self._with_relations(select(Listing))
            .where(*filters)
            .order_by(Listing.created_at.desc(), Listing.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(rows), total

    def expired_reservation_ids(self, now: datetime) -> List[int]:
        return list(
            self.db.scalars(
                select(Listing.id).where(
                    Listing.status == ListingStatus.RESERVED,
                    Listing.reserved_until < now,
                )
            )
        )

    def release_if_expired(self, listing_id: int, now: datetime) -> bool:
        """
        Compare-and-swap release: only flips the row if it is still RESERVED
        and past its deadline, so concurrent sweepers claim each row once.
        """
        result = self.db.execute(
            update(Listing)
            .where(
                Listing.id == listing_id,
                Listing.status == ListingStatus.RESERVED,
                Listing.reserved_until < now,
            )
            .values(
                status=ListingStatus.PUBLISHED,
                availability_status=AvailabilityStatus.AVAILABLE,
                reserved_at=None,
                reserved_until=None,
                version=Listing.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
