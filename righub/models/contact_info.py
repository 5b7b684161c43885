from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import relationship

from righub.core.clock import utcnow
from righub.core.database import Base


class ContactInfo(Base):
    """Seller contact snapshot taken when a listing is submitted; shared by many listings."""
    __tablename__ = "contact_infos"

    id = Column(Integer, primary_key=True, index=True)

    contact_name = Column(String(255), nullable=False)
    company_name = Column(String(255), nullable=True)
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(120), nullable=False)
    state_province = Column(String(120), nullable=False)
    postal_code = Column(String(32), nullable=True)
    country = Column(String(120), nullable=False)

    phone = Column(String(64), nullable=False)
    email = Column(String(255), nullable=False)
    website = Column(String(512), nullable=True)

    # "how did you hear about us" tags
    hear_about_us = Column(JSON, nullable=False, default=list)
    hear_about_us_other = Column(String(255), nullable=True)
    accept_terms = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    listings = relationship("Listing", back_populates="contact_info")
