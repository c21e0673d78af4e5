"""
Notifications API for the signed-in reader (X-User-Id).

Supports: list inbox/archive (paginated), unread badge count, mark one read, archive one,
archive all, read/update preferences. Another user's notification id answers 404, same as a missing one.
"""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from butternovel.api.deps import current_user_id
from butternovel.core.constants import NOTIFICATIONS_DEFAULT_LIMIT
from butternovel.core.errors import ValidationError
from butternovel.core.rate_limit import rate_limit_dependency
from butternovel.db.session import get_db
from butternovel.services.notifications.preferences import (
    get_user_preferences,
    serialize_preferences,
    update_user_preferences,
)
from butternovel.services.notifications.service import (
    archive_all,
    get_notifications,
    get_unread_count,
    mark_as_archived,
    mark_as_read,
    serialize_notification,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _notification_id(raw: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid notification id")
    if value < 1:
        raise ValidationError("Invalid notification id")
    return value


# --- List ---


@router.get("/notifications")
def list_notifications(
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
    archived: bool = Query(False),
    page: int = Query(1),
    limit: int = Query(NOTIFICATIONS_DEFAULT_LIMIT),
) -> dict[str, Any]:
    """Inbox (archived=false) or archive, most recent activity first. page/limit are clamped, not rejected."""
    result = get_notifications(db, user_id, is_archived=archived, page=page, limit=limit)
    return {
        "notifications": [serialize_notification(r) for r in result.items],
        "pagination": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "hasMore": result.has_more,
        },
    }


@router.get("/notifications/unread-count")
def unread_count(
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, int]:
    return {"count": get_unread_count(db, user_id)}


# --- Preferences ---


@router.get("/notifications/preferences")
def read_preferences(
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    return serialize_preferences(get_user_preferences(db, user_id))


@router.put("/notifications/preferences")
def write_preferences(
    updates: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
    _rate_limit=Depends(rate_limit_dependency("api")),
) -> dict[str, Any]:
    """Partial update: only known boolean fields (snake_case or camelCase) are applied."""
    return serialize_preferences(update_user_preferences(db, user_id, updates))


# --- Lifecycle ---


@router.post("/notifications/archive-all")
def archive_all_notifications(
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
    _rate_limit=Depends(rate_limit_dependency("api")),
) -> dict[str, int]:
    """Archive every inbox notification ('Clear all' in the UI). Second call archives 0."""
    return {"count": archive_all(db, user_id)}


@router.post("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    row = mark_as_read(db, _notification_id(notification_id), user_id)
    return serialize_notification(row)


@router.post("/notifications/{notification_id}/archive")
def archive_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
) -> dict[str, Any]:
    row = mark_as_archived(db, _notification_id(notification_id), user_id)
    return serialize_notification(row)
