"""
Authorization guard for mutating operations.

Posts are owned by their author: the owner and any admin may change them.
Categories have no owner, so every write requires the admin role.  A denied
decision always raises ``Forbidden``; nothing is silently filtered.
"""
import logging

from app.exceptions import Forbidden
from app.schemas import Actor

logger = logging.getLogger(__name__)


def is_allowed(actor: Actor, owner_id: str) -> bool:
    return actor.id == owner_id or actor.is_admin


def ensure_can_modify(actor: Actor, owner_id: str, action: str) -> None:
    """Raise Forbidden unless *actor* owns the resource or is an admin."""
    if not is_allowed(actor, owner_id):
        logger.warning("Denied %s for user=%s (owner=%s)", action, actor.id, owner_id)
        raise Forbidden(f"Not authorized to {action}")


def ensure_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        logger.warning("Denied %s for non-admin user=%s", action, actor.id)
        raise Forbidden(f"Not authorized to {action}")
