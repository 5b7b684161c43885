import re
from datetime import timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from righub.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from righub.models.enums import AvailabilityStatus, ListingStatus
from righub.models.listing import Listing
from tests.conftest import CONTACT


# ---------------------------------------------------------------------------
# creation
# ---------------------------------------------------------------------------
def test_create_listing_starts_as_draft(make_listing, owner, contact):
    listing = make_listing()

    assert listing.status == ListingStatus.DRAFT
    assert listing.availability_status == AvailabilityStatus.UNAVAILABLE
    assert listing.owner_id == owner.id
    assert listing.contact_info_id == contact.id
    assert listing.asking_price == Decimal("10000.00")
    assert listing.version == 1
    assert re.fullmatch(r"REF-\d{14}-[A-Z0-9]{4}", listing.reference_number)


def test_create_listing_quantizes_price_and_uppercases_currency(make_listing):
    listing = make_listing(asking_price="1234.567", currency="usd")

    assert listing.asking_price == Decimal("1234.57")
    assert listing.currency == "USD"


@pytest.mark.parametrize("price", [Decimal("-1"), "-0.01", "abc", "NaN", "Infinity", None, True])
def test_create_listing_rejects_bad_asking_price(make_listing, price):
    with pytest.raises(ValidationError):
        make_listing(asking_price=price)


def test_create_listing_requires_existing_owner(lifecycle, contact):
    with pytest.raises(NotFoundError):
        lifecycle.create_listing(9999, contact.id, {"asking_price": Decimal("1")})


def test_create_listing_requires_existing_contact(lifecycle, owner):
    with pytest.raises(NotFoundError):
        lifecycle.create_listing(owner.id, 9999, {"asking_price": Decimal("1")})


def test_reference_numbers_are_unique(make_listing):
    refs = {make_listing().reference_number for _ in range(5)}
    assert len(refs) == 5


def test_contact_info_requires_accepted_terms(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.create_contact_info({**CONTACT, "accept_terms": False})


def test_contact_info_rejects_non_http_website(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.create_contact_info({**CONTACT, "website": "javascript:alert(1)"})


@pytest.mark.parametrize("phone", ["call me", "555-0100 ext. <b>2</b>", "+1 918 555 0100;DROP"])
def test_contact_info_rejects_malformed_phone(lifecycle, phone):
    with pytest.raises(ValidationError):
        lifecycle.create_contact_info({**CONTACT, "phone": phone})


def test_contact_info_requires_core_fields(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.create_contact_info({**CONTACT, "city": "<i></i>"})


def test_contact_info_is_cleaned_by_the_service(lifecycle):
    contact = lifecycle.create_contact_info({
        **CONTACT,
        "company_name": "<script>alert(1)</script>Bore Right",
        "address_line2": "<br/>",
        "email": "  Dana@BoreRight.COM ",
        "website": "   ",
    })

    assert contact.company_name == "alert(1)Bore Right"
    assert contact.address_line2 is None
    assert contact.email == "dana@boreright.com"
    assert contact.website is None
    assert contact.phone == "+1 (918) 555-0100"


def test_details_sheet_text_is_stripped(lifecycle):
    details = lifecycle.create_details({"general_description": "<p>Ready</p> to bore", "pipe": "<hr>"})

    assert details.general_description == "Ready to bore"
    assert details.pipe is None


def test_contact_info_is_shared_between_listings(make_listing, contact):
    first = make_listing()
    second = make_listing()

    assert first.contact_info_id == second.contact_info_id == contact.id
    assert {l.id for l in contact.listings} == {first.id, second.id}


# ---------------------------------------------------------------------------
# workflow transitions
# ---------------------------------------------------------------------------
def test_submit_for_review_only_from_draft(lifecycle, make_listing):
    listing = make_listing()
    lifecycle.submit_for_review(listing.id)

    assert listing.status == ListingStatus.PENDING_REVIEW
    with pytest.raises(InvalidTransitionError):
        lifecycle.submit_for_review(listing.id)


def test_publish_requires_pending_review(lifecycle, make_listing):
    listing = make_listing()

    with pytest.raises(InvalidTransitionError):
        lifecycle.publish(listing.id)

    lifecycle.submit_for_review(listing.id)
    lifecycle.publish(listing.id)
    assert listing.status == ListingStatus.PUBLISHED
    assert listing.availability_status == AvailabilityStatus.AVAILABLE


def test_return_to_draft(lifecycle, make_listing):
    listing = make_listing()
    lifecycle.submit_for_review(listing.id)
    lifecycle.return_to_draft(listing.id)

    assert listing.status == ListingStatus.DRAFT
    with pytest.raises(InvalidTransitionError):
        lifecycle.return_to_draft(listing.id)


def test_transition_on_missing_listing(lifecycle):
    with pytest.raises(NotFoundError):
        lifecycle.publish(424242)


def test_each_transition_bumps_version(lifecycle, make_listing):
    listing = make_listing()
    lifecycle.submit_for_review(listing.id)
    lifecycle.publish(listing.id)

    assert listing.version == 3


# ---------------------------------------------------------------------------
# reservations
# ---------------------------------------------------------------------------
def test_reserve_sets_window(lifecycle, published_listing, clock):
    until = clock.now + timedelta(days=2)
    listing = lifecycle.reserve(published_listing.id, until)

    assert listing.status == ListingStatus.RESERVED
    assert listing.availability_status == AvailabilityStatus.RESERVED
    assert listing.reserved_at == clock.now
    assert listing.reserved_until == until


@pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=-1), timedelta(days=-3)])
def test_reserve_rejects_deadline_not_in_future(lifecycle, published_listing, clock, offset):
    with pytest.raises(ValidationError):
        lifecycle.reserve(published_listing.id, clock.now + offset)

    assert published_listing.status == ListingStatus.PUBLISHED


def test_reserve_requires_published(lifecycle, make_listing, clock):
    listing = make_listing()
    with pytest.raises(InvalidTransitionError):
        lifecycle.reserve(listing.id, clock.now + timedelta(days=1))


def test_reserve_twice_fails(lifecycle, published_listing, clock):
    lifecycle.reserve(published_listing.id, clock.now + timedelta(days=1))
    with pytest.raises(InvalidTransitionError):
        lifecycle.reserve(published_listing.id, clock.now + timedelta(days=2))


def test_reserve_defaults_window_from_settings(lifecycle, published_listing, clock, settings):
    listing = lifecycle.reserve(published_listing.id)

    assert listing.reserved_until == clock.now + timedelta(hours=settings.default_reservation_hours)


def test_reserve_accepts_aware_datetimes(lifecycle, published_listing, clock):
    aware = (clock.now + timedelta(hours=5)).replace(tzinfo=timezone.utc)
    listing = lifecycle.reserve(published_listing.id, aware)

    assert listing.reserved_until == clock.now + timedelta(hours=5)


def test_reserve_then_release_round_trip(lifecycle, published_listing, clock):
    lifecycle.reserve(published_listing.id, clock.now + timedelta(days=2))
    listing = lifecycle.release_reservation(published_listing.id)

    assert listing.status == ListingStatus.PUBLISHED
    assert listing.availability_status == AvailabilityStatus.AVAILABLE
    assert listing.reserved_at is None
    assert listing.reserved_until is None


def test_release_requires_reserved(lifecycle, published_listing):
    with pytest.raises(InvalidTransitionError):
        lifecycle.release_reservation(published_listing.id)


# ---------------------------------------------------------------------------
# sale
# ---------------------------------------------------------------------------
def test_full_sale_scenario(lifecycle, make_listing, clock):
    listing = make_listing(asking_price=Decimal("10000"), currency="USD")
    lifecycle.submit_for_review(listing.id)
    lifecycle.publish(listing.id)
    lifecycle.reserve(listing.id, clock.now + timedelta(days=2))
    clock.advance(hours=3)
    listing = lifecycle.mark_sold(listing.id, Decimal("9500"), "Acme Co")

    assert listing.status == ListingStatus.SOLD
    assert listing.availability_status == AvailabilityStatus.SOLD
    assert listing.sold_price == Decimal("9500.00")
    assert listing.sold_to == "Acme Co"
    assert listing.sold_at == clock.now
    assert listing.reserved_until is None


def test_mark_sold_directly_from_published(lifecycle, published_listing):
    listing = lifecycle.mark_sold(published_listing.id, "12000.50", "Buyer Inc", "cash")

    assert listing.status == ListingStatus.SOLD
    assert listing.sold_price == Decimal("12000.50")
    assert listing.sold_notes == "cash"


@pytest.mark.parametrize("path", [[], ["submit_for_review"]])
def test_mark_sold_rejected_before_publication(lifecycle, make_listing, path):
    listing = make_listing()
    for step in path:
        getattr(lifecycle, step)(listing.id)

    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_sold(listing.id, Decimal("1"), "Acme Co")


def test_mark_sold_rejected_after_sale_or_archive(lifecycle, published_listing, make_listing):
    lifecycle.mark_sold(published_listing.id, Decimal("1"), "Acme Co")
    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_sold(published_listing.id, Decimal("1"), "Acme Co")

    archived = make_listing()
    lifecycle.archive(archived.id)
    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_sold(archived.id, Decimal("1"), "Acme Co")


def test_mark_sold_rejects_negative_price(lifecycle, published_listing):
    with pytest.raises(ValidationError):
        lifecycle.mark_sold(published_listing.id, Decimal("-5"), "Acme Co")

    assert published_listing.status == ListingStatus.PUBLISHED


def test_mark_sold_requires_buyer(lifecycle, published_listing):
    with pytest.raises(ValidationError):
        lifecycle.mark_sold(published_listing.id, Decimal("5"), "  ")


def test_sale_record_is_append_only(lifecycle, published_listing):
    lifecycle.mark_sold(published_listing.id, Decimal("100"), "Acme Co")

    listing = lifecycle.amend_sale_record(published_listing.id, sold_notes="wire transfer")
    assert listing.sold_notes == "wire transfer"

    with pytest.raises(ConflictError):
        lifecycle.amend_sale_record(published_listing.id, sold_to="Someone Else")
    with pytest.raises(ConflictError):
        lifecycle.amend_sale_record(published_listing.id, sold_notes="changed my mind")


def test_sale_record_amend_requires_sold(lifecycle, published_listing):
    with pytest.raises(InvalidTransitionError):
        lifecycle.amend_sale_record(published_listing.id, sold_notes="x")


# ---------------------------------------------------------------------------
# archive
# ---------------------------------------------------------------------------
def test_archive_twice_is_not_idempotent(lifecycle, make_listing):
    listing = make_listing()
    lifecycle.archive(listing.id)

    assert listing.status == ListingStatus.ARCHIVED
    assert listing.availability_status == AvailabilityStatus.UNAVAILABLE
    with pytest.raises(InvalidTransitionError):
        lifecycle.archive(listing.id)


def test_archive_reserved_listing_clears_window(lifecycle, published_listing, clock):
    lifecycle.reserve(published_listing.id, clock.now + timedelta(days=1))
    listing = lifecycle.archive(published_listing.id)

    assert listing.reserved_at is None
    assert listing.reserved_until is None


def test_archive_sold_listing_keeps_sale_record(lifecycle, published_listing):
    lifecycle.mark_sold(published_listing.id, Decimal("750"), "Acme Co")
    listing = lifecycle.archive(published_listing.id)

    assert listing.status == ListingStatus.ARCHIVED
    assert listing.sold_price == Decimal("750.00")
    assert listing.sold_to == "Acme Co"


def test_archived_listing_cannot_be_revived(lifecycle, make_listing):
    listing = make_listing()
    lifecycle.archive(listing.id)

    for op in ("submit_for_review", "publish", "release_reservation", "return_to_draft"):
        with pytest.raises(InvalidTransitionError):
            getattr(lifecycle, op)(listing.id)


# ---------------------------------------------------------------------------
# availability is derived from status
# ---------------------------------------------------------------------------
@pytest.mark.parametrize(
    "steps, expected_status, expected_availability",
    [
        ([], ListingStatus.DRAFT, AvailabilityStatus.UNAVAILABLE),
        (["submit_for_review"], ListingStatus.PENDING_REVIEW, AvailabilityStatus.UNAVAILABLE),
        (["submit_for_review", "publish"], ListingStatus.PUBLISHED, AvailabilityStatus.AVAILABLE),
        (["submit_for_review", "publish", "reserve"], ListingStatus.RESERVED, AvailabilityStatus.RESERVED),
        (["submit_for_review", "publish", "sell"], ListingStatus.SOLD, AvailabilityStatus.SOLD),
        (["archive"], ListingStatus.ARCHIVED, AvailabilityStatus.UNAVAILABLE),
        (["submit_for_review", "archive"], ListingStatus.ARCHIVED, AvailabilityStatus.UNAVAILABLE),
        (["submit_for_review", "publish", "archive"], ListingStatus.ARCHIVED, AvailabilityStatus.UNAVAILABLE),
    ],
)
def test_availability_follows_status(lifecycle, make_listing, clock, steps, expected_status, expected_availability):
    listing = make_listing()
    for step in steps:
        if step == "reserve":
            lifecycle.reserve(listing.id, clock.now + timedelta(days=1))
        elif step == "sell":
            lifecycle.mark_sold(listing.id, Decimal("1"), "Acme Co")
        else:
            getattr(lifecycle, step)(listing.id)

    assert listing.status == expected_status
    assert listing.availability_status == expected_availability


# ---------------------------------------------------------------------------
# edits
# ---------------------------------------------------------------------------
def test_update_listing_fields(lifecycle, published_listing):
    listing = lifecycle.update_listing(
        published_listing.id, {"asking_price": "9999.999", "hours": "3300"}
    )

    assert listing.asking_price == Decimal("10000.00")
    assert listing.hours == "3300"


def test_update_listing_rejects_status_changes(lifecycle, make_listing):
    listing = make_listing()
    with pytest.raises(ValidationError):
        lifecycle.update_listing(listing.id, {"status": ListingStatus.PUBLISHED})
    with pytest.raises(ValidationError):
        lifecycle.update_listing(listing.id, {"availability_status": AvailabilityStatus.SOLD})


def test_update_listing_rejects_negative_price(lifecycle, make_listing):
    listing = make_listing()
    with pytest.raises(ValidationError):
        lifecycle.update_listing(listing.id, {"asking_price": "-1"})


@pytest.mark.parametrize("field", ["asking_price", "currency", "repossessed"])
def test_update_listing_cannot_clear_required_fields(lifecycle, make_listing, field):
    listing = make_listing()

    with pytest.raises(ValidationError):
        lifecycle.update_listing(listing.id, {field: None})

    listing = lifecycle.get_listing(listing.id)
    assert listing.asking_price == Decimal("10000.00")
    assert listing.currency == "USD"
    assert listing.repossessed is False
    assert listing.version == 1


@pytest.mark.parametrize("currency", ["", "  ", "EURO"])
def test_update_listing_rejects_bad_currency(lifecycle, make_listing, currency):
    listing = make_listing()
    with pytest.raises(ValidationError):
        lifecycle.update_listing(listing.id, {"currency": currency})


def test_sold_listing_cannot_be_edited(lifecycle, published_listing):
    lifecycle.mark_sold(published_listing.id, Decimal("100"), "Acme Co")
    with pytest.raises(InvalidTransitionError):
        lifecycle.update_listing(published_listing.id, {"hours": "1"})


# ---------------------------------------------------------------------------
# details sheet (one-to-one)
# ---------------------------------------------------------------------------
def test_attach_details(lifecycle, make_listing):
    listing = make_listing()
    details = lifecycle.create_details({"general_description": "Ready to bore", "pipe": "300 rods"})

    listing = lifecycle.attach_details(listing.id, details.id)
    assert listing.listing_details_id == details.id
    assert listing.listing_details.pipe == "300 rods"

    # attaching the same sheet again is a no-op
    assert lifecycle.attach_details(listing.id, details.id).listing_details_id == details.id


def test_details_cannot_back_two_listings(lifecycle, make_listing):
    first = make_listing()
    second = make_listing()
    details = lifecycle.create_details({"general_description": "One owner"})
    lifecycle.attach_details(first.id, details.id)

    with pytest.raises(ConflictError):
        lifecycle.attach_details(second.id, details.id)
    assert second.listing_details_id is None


def test_attach_missing_details(lifecycle, make_listing):
    listing = make_listing()
    with pytest.raises(NotFoundError):
        lifecycle.attach_details(listing.id, 12345)


def test_attach_details_to_archived_listing(lifecycle, make_listing):
    listing = make_listing()
    details = lifecycle.create_details({})
    lifecycle.archive(listing.id)

    with pytest.raises(InvalidTransitionError):
        lifecycle.attach_details(listing.id, details.id)


def test_details_uniqueness_enforced_by_database(db, lifecycle, make_listing):
    first = make_listing()
    second = make_listing()
    details = lifecycle.create_details({})
    lifecycle.attach_details(first.id, details.id)

    listing = db.get(Listing, second.id)
    listing.listing_details_id = details.id
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_unattached_details_sheet_is_allowed(lifecycle):
    details = lifecycle.create_details({"accessories": "Tracker"})

    assert details.id is not None
    assert details.listing is None
