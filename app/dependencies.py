from typing import get_args

from fastapi import Header, Query

from app.config import settings
from app.exceptions import AuthenticationRequired
from app.schemas import Actor, Role


def _positive_int(raw: str | None, default: int) -> int:
    """Parse *raw* as an integer >= 1, falling back to *default* otherwise."""
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value >= 1 else default


class PaginationParams:
    """
    Reusable FastAPI dependency that parses pagination query parameters.

    Unlike a strict ``Query(ge=1)`` declaration, malformed values never
    reject the request: anything non-numeric or below 1 silently falls back
    to the default.

    Attributes
    ----------
    page:
        1-based page number.
    limit:
        Number of items per page, clamped to ``settings.MAX_PAGE_LIMIT``.
    """

    def __init__(
        self,
        page: str | None = Query(None, description="Page number (1-based)."),
        limit: str | None = Query(None, description="Items per page."),
    ) -> None:
        self.page = _positive_int(page, 1)
        self.limit = min(
            _positive_int(limit, settings.DEFAULT_PAGE_LIMIT), settings.MAX_PAGE_LIMIT
        )


def parse_published(
    published: str | None = Query(
        None,
        description="'true' for published posts, any other value for drafts. "
        "Omitted means published only.",
    ),
) -> bool | None:
    if published is None:
        return None
    return published.strip().lower() == "true"


# ---------------------------------------------------------------------------
# Identity context
#
# Authentication happens upstream; the verified principal arrives in the
# X-User-Id / X-User-Role headers and is trusted as-is.
# ---------------------------------------------------------------------------

_ROLES = frozenset(get_args(Role))


def get_optional_actor(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Actor | None:
    if not x_user_id:
        return None
    role = (x_user_role or "author").strip().lower()
    if role not in _ROLES:
        raise AuthenticationRequired(f"Unknown role '{x_user_role}'")
    return Actor(id=x_user_id.strip(), role=role)


def get_current_actor(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Actor:
    actor = get_optional_actor(x_user_id, x_user_role)
    if actor is None:
        raise AuthenticationRequired("Not authorized to access this route")
    return actor
