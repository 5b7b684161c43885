from sqlalchemy import Column, DateTime, Integer, Text
from sqlalchemy.orm import relationship

from righub.core.clock import utcnow
from righub.core.database import Base


class ListingDetails(Base):
    __tablename__ = "listing_details"

    id = Column(Integer, primary_key=True, index=True)

    general_description = Column(Text, nullable=True)
    locating_systems = Column(Text, nullable=True)
    mixing_systems = Column(Text, nullable=True)
    accessories = Column(Text, nullable=True)
    trailers = Column(Text, nullable=True)
    recent_work_modifications = Column(Text, nullable=True)
    additional_information = Column(Text, nullable=True)
    pipe = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # FK lives on listings.listing_details_id (unique); a sheet may be unattached
    listing = relationship("Listing", back_populates="listing_details", uselist=False)
