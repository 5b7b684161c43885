import logging
from typing import Optional

from sqlalchemy.orm import Session

from righub.core.clock import utcnow
from righub.core.config import get_settings
from righub.core.errors import ConflictError, NotFoundError, ValidationError
from righub.models.enums import ListingStatus
from righub.services.lifecycle import ListingLifecycle

logger = logging.getLogger("righub.accounts")

DELETE_POLICIES = ("restrict", "cascade", "soft_delete")


def delete_user(db: Session, user_id: int, policy: Optional[str] = None) -> None:
    """
    Deletes a user according to the configured policy.

    restrict    -- refuse while the user still owns listings
    cascade     -- remove the user with listings, media, sessions, accounts, posts
    soft_delete -- stamp deleted_at, archive open listings, keep every row
    """
    policy = policy or get_settings().user_delete_policy
    if policy not in DELETE_POLICIES:
        raise ValidationError(f"Unknown delete policy: {policy}")

    lifecycle = ListingLifecycle(db)
    user = lifecycle.users.get(user_id)
    if user is None or user.deleted_at is not None:
        raise NotFoundError(f"User {user_id} not found")

    if policy == "restrict":
        owned = lifecycle.listings.count_for_owner(user_id)
        if owned:
            raise ConflictError(f"User {user_id} still owns {owned} listing(s)")
        db.delete(user)
        db.commit()

    elif policy == "cascade":
        db.delete(user)
        db.commit()

    else:
        # one unit of work: every listing archived and the user stamped, or nothing
        try:
            for listing in lifecycle.listings.list_for_owner(user_id):
                if listing.status != ListingStatus.ARCHIVED:
                    lifecycle.stage_archive(listing)
            user.deleted_at = utcnow()
        except Exception:
            db.rollback()
            raise
        lifecycle.commit(None, f"soft delete of user {user_id}")

    logger.info("accounts: user %s deleted (%s)", user_id, policy)
