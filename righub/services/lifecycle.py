"""
Listing lifecycle: the publication state machine and the relational rules
around a listing (owner, contact snapshot, details sheet, media gallery).

Status axis:

    DRAFT -> PENDING_REVIEW -> PUBLISHED -> RESERVED -> SOLD
    (PENDING_REVIEW -> DRAFT, RESERVED -> PUBLISHED)
    any non-archived status -> ARCHIVED

availability_status is never set directly; it is derived from status on
every transition (see AVAILABILITY_BY_STATUS).
"""
import logging
import re
import secrets
import string
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, Iterable, List, Optional
from urllib.parse import urlparse

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from righub.core.clock import to_naive_utc, utcnow
from righub.core.config import Settings, get_settings
from righub.core.constants import PHONE_PATTERN, REFERENCE_PREFIX
from righub.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from righub.core.sanitize import strip_tags
from righub.models.contact_info import ContactInfo
from righub.models.enums import AvailabilityStatus, ListingStatus, MediaFileType, StorageProvider
from righub.models.listing import Listing
from righub.models.listing_details import ListingDetails
from righub.models.media_attachment import MediaAttachment
from righub.services.media import validate_media_file
from righub.services.repositories import (
    ContactInfoRepository,
    ListingDetailsRepository,
    ListingRepository,
    MediaRepository,
    UserRepository,
)

logger = logging.getLogger("righub.lifecycle")

AVAILABILITY_BY_STATUS = {
    ListingStatus.DRAFT: AvailabilityStatus.UNAVAILABLE,
    ListingStatus.PENDING_REVIEW: AvailabilityStatus.UNAVAILABLE,
    ListingStatus.PUBLISHED: AvailabilityStatus.AVAILABLE,
    ListingStatus.RESERVED: AvailabilityStatus.RESERVED,
    ListingStatus.SOLD: AvailabilityStatus.SOLD,
    ListingStatus.ARCHIVED: AvailabilityStatus.UNAVAILABLE,
}

ALLOWED_TRANSITIONS = {
    ListingStatus.DRAFT: {ListingStatus.PENDING_REVIEW, ListingStatus.ARCHIVED},
    ListingStatus.PENDING_REVIEW: {
        ListingStatus.PUBLISHED,
        ListingStatus.DRAFT,
        ListingStatus.ARCHIVED,
    },
    ListingStatus.PUBLISHED: {
        ListingStatus.RESERVED,
        ListingStatus.SOLD,
        ListingStatus.ARCHIVED,
    },
    ListingStatus.RESERVED: {
        ListingStatus.PUBLISHED,
        ListingStatus.SOLD,
        ListingStatus.ARCHIVED,
    },
    ListingStatus.SOLD: {ListingStatus.ARCHIVED},
    ListingStatus.ARCHIVED: set(),
}

EDITABLE_STATUSES = {
    ListingStatus.DRAFT,
    ListingStatus.PENDING_REVIEW,
    ListingStatus.PUBLISHED,
    ListingStatus.RESERVED,
}

LISTING_FIELDS = (
    "asking_price", "currency", "year", "manufacturer", "model", "condition",
    "serial_number", "hours", "miles", "repossessed",
    "equipment_city", "equipment_state_province", "equipment_postal_code", "equipment_country",
)

# listing columns that are NOT NULL
NON_NULLABLE_FIELDS = ("asking_price", "currency", "repossessed")

CONTACT_FIELDS = (
    "contact_name", "company_name", "address_line1", "address_line2", "city",
    "state_province", "postal_code", "country", "phone", "email", "website",
    "hear_about_us", "hear_about_us_other", "accept_terms",
)

CONTACT_TEXT_FIELDS = (
    "contact_name", "company_name", "address_line1", "address_line2", "city",
    "state_province", "postal_code", "country", "hear_about_us_other",
)

CONTACT_REQUIRED_FIELDS = (
    "contact_name", "address_line1", "city", "state_province", "country", "phone", "email",
)

DETAILS_FIELDS = (
    "general_description", "locating_systems", "mixing_systems", "accessories",
    "trailers", "recent_work_modifications", "additional_information", "pipe",
)

CENTS = Decimal("0.01")


def derive_availability(status: ListingStatus) -> AvailabilityStatus:
    return AVAILABILITY_BY_STATUS[status]


def parse_money(value, field: str) -> Decimal:
    """Non-negative, finite decimal rounded to cents."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a non-negative decimal")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a non-negative decimal")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a non-negative decimal")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def generate_reference_number(now: datetime) -> str:
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(4))
    return f"{REFERENCE_PREFIX}-{now:%Y%m%d%H%M%S}-{suffix}"


def _pick(data: dict, allowed: Iterable[str]) -> dict:
    return {k: v for k, v in data.items() if k in allowed}


class ListingLifecycle:
    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock

        self.users = UserRepository(db)
        self.contacts = ContactInfoRepository(db)
        self.details = ListingDetailsRepository(db)
        self.listings = ListingRepository(db)
        self.media = MediaRepository(db)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def get_listing(self, listing_id: int) -> Listing:
        listing = self.listings.get(listing_id)
        if listing is None:
            raise NotFoundError(f"Listing {listing_id} not found")
        return listing

    def commit(self, listing_id: Optional[int], action: str) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning("lifecycle: lost race on listing %s during %s", listing_id, action)
            target = f"Listing {listing_id}" if listing_id is not None else "A listing"
            raise ConflictError(f"{target} was modified concurrently; {action} was not applied")
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("lifecycle: integrity error on listing %s during %s: %s", listing_id, action, e.orig)
            raise ConflictError(f"{action} conflicts with existing data")

    def _transition(self, listing: Listing, target: ListingStatus) -> ListingStatus:
        current = listing.status
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Cannot transition listing {listing.id} from {current.value} to {target.value}"
            )
        listing.status = target
        listing.availability_status = derive_availability(target)
        return current

    def _apply(self, listing: Listing, target: ListingStatus, action: str) -> Listing:
        listing_id = listing.id
        previous = self._transition(listing, target)
        self.commit(listing_id, action)
        self.db.refresh(listing)
        logger.info(
            "lifecycle: listing %s %s -> %s (%s)",
            listing_id, previous.value, target.value, action,
        )
        return listing

    def _touch(self, listing: Listing) -> None:
        # gallery edits must bump the listing version so concurrent edits collide
        listing.updated_at = self.clock()
        flag_modified(listing, "updated_at")

    # ------------------------------------------------------------------
    # supporting records
    # ------------------------------------------------------------------
    def create_contact_info(self, data: dict) -> ContactInfo:
        if data.get("accept_terms") is not True:
            raise ValidationError("You must accept the terms")

        values = _pick(data, CONTACT_FIELDS)
        for field in CONTACT_TEXT_FIELDS:
            if isinstance(values.get(field), str):
                values[field] = strip_tags(values[field])

        missing = [f for f in CONTACT_REQUIRED_FIELDS if not values.get(f)]
        if missing:
            raise ValidationError(f"Missing contact fields: {', '.join(missing)}")

        values["phone"] = str(values["phone"]).strip()
        if not re.fullmatch(PHONE_PATTERN, values["phone"]):
            raise ValidationError("Phone number may only contain digits, spaces and + - ( ) .")
        values["email"] = str(values["email"]).strip().lower()

        website = (values.get("website") or "").strip()
        if website:
            parsed = urlparse(website)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValidationError("Website must be an http or https URL")
        values["website"] = website or None

        contact = ContactInfo(**values)
        if contact.hear_about_us is None:
            contact.hear_about_us = []
        self.contacts.add(contact)
        self.db.commit()
        self.db.refresh(contact)
        return contact

    def create_details(self, data: dict) -> ListingDetails:
        values = {
            k: strip_tags(v) if isinstance(v, str) else v
            for k, v in _pick(data, DETAILS_FIELDS).items()
        }
        details = ListingDetails(**values)
        self.details.add(details)
        self.db.commit()
        self.db.refresh(details)
        return details

    # ------------------------------------------------------------------
    # creation / edits
    # ------------------------------------------------------------------
    def create_listing(self, owner_id: int, contact_info_id: int, fields: dict) -> Listing:
        asking_price = parse_money(fields.get("asking_price"), "asking_price")

        owner = self.users.get(owner_id)
        if owner is None or owner.deleted_at is not None:
            raise NotFoundError(f"User {owner_id} not found")
        if self.contacts.get(contact_info_id) is None:
            raise NotFoundError(f"Contact info {contact_info_id} not found")

        values = _pick(fields, LISTING_FIELDS)
        values["asking_price"] = asking_price
        values["currency"] = (values.get("currency") or "USD").upper()

        listing = Listing(
            **values,
            owner_id=owner_id,
            contact_info_id=contact_info_id,
            reference_number=self._unique_reference(),
            status=ListingStatus.DRAFT,
            availability_status=derive_availability(ListingStatus.DRAFT),
        )
        self.listings.add(listing)
        self.commit(None, "create")
        self.db.refresh(listing)
        logger.info("lifecycle: listing %s created by user %s", listing.id, owner_id)
        return listing

    def _unique_reference(self) -> str:
        for _ in range(10):
            reference = generate_reference_number(self.clock())
            if not self.listings.reference_exists(reference):
                return reference
        # fall back to a longer suffix
        return generate_reference_number(self.clock()) + "-" + secrets.token_hex(2).upper()

    def update_listing(self, listing_id: int, changes: dict) -> Listing:
        listing = self.get_listing(listing_id)
        if listing.status not in EDITABLE_STATUSES:
            raise InvalidTransitionError(
                f"Listing {listing_id} is {listing.status.value} and can no longer be edited"
            )

        unknown = set(changes) - set(LISTING_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        for field in NON_NULLABLE_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be cleared")

        if "asking_price" in changes:
            changes = {**changes, "asking_price": parse_money(changes["asking_price"], "asking_price")}
        if "currency" in changes:
            currency = str(changes["currency"]).strip()
            if len(currency) != 3:
                raise ValidationError("currency must be a 3-letter code")
            changes = {**changes, "currency": currency.upper()}

        for field, value in changes.items():
            setattr(listing, field, value)

        self.commit(listing_id, "update")
        self.db.refresh(listing)
        return listing

    # ------------------------------------------------------------------
    # status transitions
    # ------------------------------------------------------------------
    def submit_for_review(self, listing_id: int) -> Listing:
        listing = self.get_listing(listing_id)
        if listing.status != ListingStatus.DRAFT:
            raise InvalidTransitionError(
                f"Only DRAFT listings can be submitted for review (listing {listing_id} is {listing.status.value})"
            )
        return self._apply(listing, ListingStatus.PENDING_REVIEW, "submit_for_review")

    def return_to_draft(self, listing_id: int) -> Listing:
        listing = self.get_listing(listing_id)
        if listing.status != ListingStatus.PENDING_REVIEW:
            raise InvalidTransitionError(
                f"Only PENDING_REVIEW listings can return to draft (listing {listing_id} is {listing.status.value})"
            )
        return self._apply(listing, ListingStatus.DRAFT, "return_to_draft")

    def publish(self, listing_id: int) -> Listing:
        listing = self.get_listing(listing_id)
        if listing.status != ListingStatus.PENDING_REVIEW:
            raise InvalidTransitionError(
                f"Only PENDING_REVIEW listings can be published (listing {listing_id} is {listing.status.value})"
            )
        return self._apply(listing, ListingStatus.PUBLISHED, "publish")

    def reserve(self, listing_id: int, until: Optional[datetime] = None) -> Listing:
        now = self.clock()
        if until is None:
            until = now + timedelta(hours=self.settings.default_reservation_hours)
        until = to_naive_utc(until)
        if until <= now:
            raise ValidationError("Reservation deadline must be in the future")

        listing = self.get_listing(listing_id)
        if listing.status != ListingStatus.PUBLISHED:
            raise InvalidTransitionError(
                f"Only PUBLISHED listings can be reserved (listing {listing_id} is {listing.status.value})"
            )

        listing.reserved_at = now
        listing.reserved_until = until
        return self._apply(listing, ListingStatus.RESERVED, "reserve")

    def release_reservation(self, listing_id: int) -> Listing:
        listing = self.get_listing(listing_id)
        if listing.status != ListingStatus.RESERVED:
            raise InvalidTransitionError(
                f"Listing {listing_id} is not reserved ({listing.status.value})"
            )

        listing.reserved_at = None
        listing.reserved_until = None
        return self._apply(listing, ListingStatus.PUBLISHED, "release_reservation")

    def release_expired_reservation(self, listing_id: int, now: Optional[datetime] = None) -> bool:
        """
        Sweep-side release. Returns False when the row was no longer RESERVED
        past its deadline (sold, released, or claimed by another worker).
        """
        claimed = self.listings.release_if_expired(listing_id, now or self.clock())
        self.db.commit()
        return claimed

    def mark_sold(
        self,
        listing_id: int,
        sold_price,
        sold_to: str,
        sold_notes: Optional[str] = None,
    ) -> Listing:
        price = parse_money(sold_price, "sold_price")
        if not sold_to or not sold_to.strip():
            raise ValidationError("sold_to is required")

        listing = self.get_listing(listing_id)
        if listing.status not in (ListingStatus.PUBLISHED, ListingStatus.RESERVED):
            raise InvalidTransitionError(
                f"Listing must be PUBLISHED or RESERVED to be sold (listing {listing_id} is {listing.status.value})"
            )

        listing.sold_price = price
        listing.sold_to = sold_to.strip()
        listing.sold_notes = sold_notes
        listing.sold_at = self.clock()
        # the reservation window ends with the sale
        listing.reserved_at = None
        listing.reserved_until = None
        return self._apply(listing, ListingStatus.SOLD, "mark_sold")

    def stage_archive(self, listing: Listing) -> ListingStatus:
        """Archive in the session only; the caller commits (or rolls back) the unit of work."""
        if listing.status == ListingStatus.ARCHIVED:
            raise InvalidTransitionError(f"Listing {listing.id} is already archived")

        listing.reserved_at = None
        listing.reserved_until = None
        return self._transition(listing, ListingStatus.ARCHIVED)

    def archive(self, listing_id: int) -> Listing:
        listing = self.get_listing(listing_id)
        previous = self.stage_archive(listing)
        self.commit(listing_id, "archive")
        self.db.refresh(listing)
        logger.info("lifecycle: listing %s %s -> ARCHIVED (archive)", listing_id, previous.value)
        return listing

    def amend_sale_record(
        self,
        listing_id: int,
        sold_to: Optional[str] = None,
        sold_notes: Optional[str] = None,
    ) -> Listing:
        """Fill in missing sale audit fields. Values already recorded are never overwritten."""
        listing = self.get_listing(listing_id)
        if listing.status != ListingStatus.SOLD:
            raise InvalidTransitionError(f"Listing {listing_id} has not been sold")

        for field, value in (("sold_to", sold_to), ("sold_notes", sold_notes)):
            if value is None:
                continue
            if getattr(listing, field):
                raise ConflictError(f"{field} is already recorded for listing {listing_id}")
            setattr(listing, field, value)

        self.commit(listing_id, "amend_sale_record")
        self.db.refresh(listing)
        return listing

    # ------------------------------------------------------------------
    # details sheet
    # ------------------------------------------------------------------
    def attach_details(self, listing_id: int, details_id: int) -> Listing:
        listing = self.get_listing(listing_id)
        if listing.status == ListingStatus.ARCHIVED:
            raise InvalidTransitionError(f"Listing {listing_id} is archived")
        if self.details.get(details_id) is None:
            raise NotFoundError(f"Listing details {details_id} not found")

        holder = self.listings.by_details(details_id)
        if holder is not None and holder.id != listing.id:
            raise ConflictError(
                f"Listing details {details_id} already belong to listing {holder.id}"
            )
        if listing.listing_details_id == details_id:
            return listing

        listing.listing_details_id = details_id
        self.commit(listing_id, "attach_details")
        self.db.refresh(listing)
        return listing

    # ------------------------------------------------------------------
    # media gallery
    # ------------------------------------------------------------------
    def add_media_attachment(self, listing_id: int, file: dict) -> MediaAttachment:
        listing = self.get_listing(listing_id)
        if listing.status == ListingStatus.ARCHIVED:
            raise InvalidTransitionError(f"Listing {listing_id} is archived")

        validate_media_file(file, self.settings)

        if self.media.count(listing_id) >= self.settings.max_media_per_listing:
            raise ValidationError(
                f"Listing {listing_id} already has the maximum of "
                f"{self.settings.max_media_per_listing} attachments"
            )

        current_max = self.media.max_display_order(listing_id)
        media = MediaAttachment(
            listing_id=listing_id,
            file_name=file["file_name"],
            file_type=MediaFileType(file["file_type"]),
            mime_type=file["mime_type"].lower(),
            file_size=file["file_size"],
            storage_provider=StorageProvider(file["storage_provider"]),
            storage_path=file["storage_path"],
            thumbnail_url=file.get("thumbnail_url"),
            display_order=0 if current_max is None else current_max + 1,
            uploaded_at=self.clock(),
        )
        self.media.add(media)
        self._touch(listing)
        self.commit(listing_id, "add_media_attachment")
        self.db.refresh(media)
        return media

    def reorder_media(self, listing_id: int, ordered_ids: List[int]) -> List[MediaAttachment]:
        listing = self.get_listing(listing_id)
        attachments = self.media.for_listing(listing_id)

        existing = {m.id for m in attachments}
        if len(ordered_ids) != len(existing) or set(ordered_ids) != existing:
            raise ValidationError(
                "ordered_ids must list every attachment of the listing exactly once"
            )

        by_id = {m.id: m for m in attachments}
        for position, media_id in enumerate(ordered_ids):
            by_id[media_id].display_order = position
        self._touch(listing)
        # one commit for every row; a failure rolls all of them back
        self.commit(listing_id, "reorder_media")

        return self.media.for_listing(listing_id)

    def delete_media_attachment(self, listing_id: int, media_id: int) -> dict:
        """
        Removes the row and re-packs display_order. The caller is responsible
        for deleting the stored file at the returned provider/path.
        """
        listing = self.get_listing(listing_id)
        attachments = self.media.for_listing(listing_id)
        target = next((m for m in attachments if m.id == media_id), None)
        if target is None:
            raise NotFoundError(f"Media attachment {media_id} not found on listing {listing_id}")

        removed = {
            "id": target.id,
            "storage_provider": target.storage_provider,
            "storage_path": target.storage_path,
        }
        self.media.delete(target)
        remaining = [m for m in attachments if m.id != media_id]
        for position, media in enumerate(remaining):
            media.display_order = position
        self._touch(listing)
        self.commit(listing_id, "delete_media_attachment")

        logger.info(
            "lifecycle: media %s removed from listing %s; storage cleanup pending at %s:%s",
            media_id, listing_id, removed["storage_provider"].value, removed["storage_path"],
        )
        return removed
