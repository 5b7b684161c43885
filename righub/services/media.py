"""
Media attachment checks.

The storage collaborator has already put the file somewhere; we only get
{provider, path} plus metadata and decide whether the row is acceptable.
"""
import os

from righub.core.config import Settings
from righub.core.constants import (
    ALLOWED_DOCUMENT_MIME_TYPES,
    ALLOWED_IMAGE_MIME_TYPES,
    ALLOWED_VIDEO_MIME_TYPES,
    EXECUTABLE_EXTENSIONS,
    EXTENSION_MIME_TYPES,
)
from righub.core.errors import ValidationError
from righub.models.enums import MediaFileType, StorageProvider

MIME_TYPES_BY_FILE_TYPE = {
    MediaFileType.IMAGE: ALLOWED_IMAGE_MIME_TYPES,
    MediaFileType.VIDEO: ALLOWED_VIDEO_MIME_TYPES,
    MediaFileType.DOCUMENT: ALLOWED_DOCUMENT_MIME_TYPES,
}


def max_size_for(file_type: MediaFileType, settings: Settings) -> int:
    return {
        MediaFileType.IMAGE: settings.image_max_bytes,
        MediaFileType.VIDEO: settings.video_max_bytes,
        MediaFileType.DOCUMENT: settings.document_max_bytes,
    }[file_type]


def _extension(file_name: str) -> str:
    return os.path.splitext(file_name)[1].lstrip(".").lower()


def validate_media_file(file: dict, settings: Settings) -> None:
    file_name = file.get("file_name") or ""
    mime_type = (file.get("mime_type") or "").lower()
    file_size = file.get("file_size")

    try:
        file_type = MediaFileType(file.get("file_type"))
    except ValueError:
        raise ValidationError(f"Unsupported file type: {file.get('file_type')}")
    try:
        StorageProvider(file.get("storage_provider"))
    except ValueError:
        raise ValidationError(f"Unsupported storage provider: {file.get('storage_provider')}")
    if not file.get("storage_path"):
        raise ValidationError("storage_path is required")

    if not isinstance(file_size, int) or isinstance(file_size, bool) or file_size <= 0:
        raise ValidationError("file_size must be a positive number of bytes")

    if mime_type not in MIME_TYPES_BY_FILE_TYPE[file_type]:
        raise ValidationError(
            f"MIME type {mime_type or '(none)'} does not match file type {file_type.value}"
        )

    ext = _extension(file_name)
    if ext in EXECUTABLE_EXTENSIONS:
        raise ValidationError(f"File {file_name} has an executable extension and is not allowed")
    if mime_type not in EXTENSION_MIME_TYPES.get(ext, ()):
        raise ValidationError(f"File extension .{ext} does not match MIME type {mime_type}")

    limit = max_size_for(file_type, settings)
    if file_size > limit:
        raise ValidationError(
            f"{file_type.value.lower()} files must not exceed {limit // (1024 * 1024)}MB"
        )
