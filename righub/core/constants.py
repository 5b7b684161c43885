"""
Application-wide constants
"""

ALLOWED_IMAGE_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")
ALLOWED_VIDEO_MIME_TYPES = ("video/mp4", "video/webm", "video/quicktime")
ALLOWED_DOCUMENT_MIME_TYPES = ("application/pdf",)

# file extension -> accepted MIME types
EXTENSION_MIME_TYPES = {
    "jpg": ("image/jpeg",),
    "jpeg": ("image/jpeg",),
    "png": ("image/png",),
    "webp": ("image/webp",),
    "mp4": ("video/mp4",),
    "webm": ("video/webm",),
    "mov": ("video/quicktime",),
    "pdf": ("application/pdf",),
}

EXECUTABLE_EXTENSIONS = frozenset({
    "exe", "bat", "sh", "js", "php", "py", "rb", "jar", "com",
    "scr", "vbs", "cmd", "ps1", "msi", "dll", "so", "dylib",
})

REFERENCE_PREFIX = "REF"

PHONE_PATTERN = r"^[\d\s\-\+\(\)\.]+$"
