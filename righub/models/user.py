from sqlalchemy import Boolean, Column, Integer, String, DateTime

from sqlalchemy.orm import relationship

from righub.core.clock import utcnow
from righub.core.database import Base
from righub.models.auth import Account, AuthSession
from righub.models.listing import Listing
from righub.models.post import Post


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    email_verified = Column(Boolean, nullable=False, default=False)
    image = Column(String(512), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    # soft_delete 정책일 때만 채워짐
    deleted_at = Column(DateTime, nullable=True)

    listings = relationship(
        Listing,
        back_populates="owner",
        cascade="all, delete-orphan",
    )

    sessions = relationship(
        AuthSession,
        back_populates="user",
        cascade="all, delete-orphan",
    )

    accounts = relationship(
        Account,
        back_populates="user",
        cascade="all, delete-orphan",
    )

    posts = relationship(
        Post,
        back_populates="created_by",
        cascade="all, delete-orphan",
    )
