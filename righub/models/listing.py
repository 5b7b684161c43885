from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from righub.core.clock import utcnow
from righub.core.database import Base
from righub.models.contact_info import ContactInfo
from righub.models.enums import AvailabilityStatus, ListingStatus
from righub.models.listing_details import ListingDetails
from righub.models.media_attachment import MediaAttachment


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    reference_number = Column(String(40), unique=True, nullable=False, index=True)

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    contact_info_id = Column(Integer, ForeignKey("contact_infos.id"), nullable=False, index=True)
    # one details sheet serves at most one listing
    listing_details_id = Column(Integer, ForeignKey("listing_details.id"), nullable=True, unique=True)

    status = Column(
        Enum(ListingStatus, native_enum=False, length=20),
        nullable=False,
        default=ListingStatus.DRAFT,
        index=True,
    )
    # derived from status, written only by ListingLifecycle
    availability_status = Column(
        Enum(AvailabilityStatus, native_enum=False, length=20),
        nullable=False,
        default=AvailabilityStatus.UNAVAILABLE,
        index=True,
    )

    asking_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    sold_price = Column(Numeric(12, 2), nullable=True)

    # equipment info, stored as entered
    year = Column(String(4), nullable=True)
    manufacturer = Column(String(255), nullable=True)
    model = Column(String(255), nullable=True)
    condition = Column(String(50), nullable=True)
    serial_number = Column(String(100), nullable=True)
    hours = Column(String(50), nullable=True)
    miles = Column(String(50), nullable=True)
    repossessed = Column(Boolean, nullable=False, default=False)

    equipment_city = Column(String(120), nullable=True)
    equipment_state_province = Column(String(120), nullable=True)
    equipment_postal_code = Column(String(32), nullable=True)
    equipment_country = Column(String(120), nullable=True)

    reserved_at = Column(DateTime, nullable=True)
    reserved_until = Column(DateTime, nullable=True, index=True)

    sold_at = Column(DateTime, nullable=True)
    sold_to = Column(String(255), nullable=True)
    sold_notes = Column(Text, nullable=True)

    # optimistic lock: every UPDATE is "WHERE version = <seen>"
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    owner = relationship("User", back_populates="listings")
    contact_info = relationship(ContactInfo, back_populates="listings")
    listing_details = relationship(ListingDetails, back_populates="listing")

    media_attachments = relationship(
        MediaAttachment,
        back_populates="listing",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=MediaAttachment.display_order,
    )
