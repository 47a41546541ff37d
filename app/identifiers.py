"""
Stable identifiers and slugs.

Every entity gets a 24-character hex id (4-byte big-endian creation
timestamp followed by 8 random bytes).  Lookup keys that match the id shape
are treated as ids; anything else is treated as a slug.
"""
import re
import secrets
import time

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def new_id() -> str:
    """Return a fresh 24-character lowercase hex identifier."""
    return f"{int(time.time()) & 0xFFFFFFFF:08x}{secrets.token_hex(8)}"


def is_object_id(key: str) -> bool:
    return bool(_OBJECT_ID_RE.match(key))


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")
