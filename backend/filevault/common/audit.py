from __future__ import annotations

from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog, User
from .request_utils import client_ip, client_user_agent


def audit(
    action: str,
    actor: User | None = None,
    target_type: str | None = None,
    target_id: str | int | None = None,
    payload: dict[str, Any] | None = None,
) -> AuditLog | None:
    entry = AuditLog(
        actor_id=actor.id if actor else None,
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        payload=payload or {},
        ip=client_ip(),
        user_agent=client_user_agent(),
    )
    # Audit must never break the primary action.
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except SQLAlchemyError:
        current_app.logger.warning("Audit entry %s could not be written", action, exc_info=True)
        return None

    return entry
