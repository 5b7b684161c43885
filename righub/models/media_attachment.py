from sqlalchemy import Column, Enum, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship

from righub.core.clock import utcnow
from righub.core.database import Base
from righub.models.enums import MediaFileType, StorageProvider


class MediaAttachment(Base):
    __tablename__ = "media_attachments"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), index=True, nullable=False)

    file_name = Column(String(255), nullable=False)
    file_type = Column(Enum(MediaFileType, native_enum=False, length=20), nullable=False)
    mime_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False)  # bytes

    # 업로드 자체는 외부 스토리지가 담당, 여기엔 위치만 기록
    storage_provider = Column(Enum(StorageProvider, native_enum=False, length=20), nullable=False)
    storage_path = Column(String(1024), nullable=False)
    thumbnail_url = Column(String(1024), nullable=True)

    display_order = Column(Integer, nullable=False, default=0)

    uploaded_at = Column(DateTime, default=utcnow, nullable=False)

    listing = relationship("Listing", back_populates="media_attachments")
