import re
from typing import Optional

_TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(value: Optional[str]) -> Optional[str]:
    """Drop HTML tags and surrounding whitespace; empty results become None."""
    if value is None:
        return None
    cleaned = _TAG_RE.sub("", value).strip()
    return cleaned or None
