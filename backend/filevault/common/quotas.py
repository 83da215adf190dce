from __future__ import annotations

from sqlalchemy import case, func, update

from ..extensions import db
from ..models import File, QuotaHistory, User
from .errors import APIError


def reserve_storage(user: User, size: int) -> None:
    """Add ``size`` to the user's usage only if it still fits the quota.

    The check and the increment are one conditional UPDATE, so concurrent
    uploads for the same user cannot both pass a stale check.
    """
    result = db.session.execute(
        update(User)
        .where(
            User.id == user.id,
            User.used_storage_bytes + size <= User.storage_quota_bytes,
        )
        .values(used_storage_bytes=User.used_storage_bytes + size)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(user, ["used_storage_bytes"])
    if result.rowcount != 1:
        raise APIError(400, "QUOTA_EXCEEDED", "Storage quota exceeded.")


def release_storage(user_id: int, size: int) -> None:
    db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            used_storage_bytes=case(
                (User.used_storage_bytes >= size, User.used_storage_bytes - size),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )
    user = db.session.get(User, user_id)
    if user is not None:
        db.session.expire(user, ["used_storage_bytes"])


def fits_quota(user: User, size: int) -> bool:
    return int(user.used_storage_bytes or 0) + size <= int(user.storage_quota_bytes or 0)


def actual_usage(user_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(File.size), 0))
        .filter(File.owner_id == user_id, File.deleted_at.is_(None))
        .scalar()
    )
    return int(total or 0)


def change_quota(user: User, new_quota: int, actor: User, reason: str | None) -> QuotaHistory | None:
    previous = int(user.storage_quota_bytes or 0)
    if previous == new_quota:
        return None

    user.storage_quota_bytes = new_quota
    entry = QuotaHistory(
        user_id=user.id,
        previous_quota=previous,
        new_quota=new_quota,
        changed_by_id=actor.id,
        reason=reason or "Updated by administrator",
    )
    db.session.add(entry)
    return entry
