"""
Per-user notification preferences: lazy read-or-create, whitelisted partial update, and the delivery checks.
"""
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from butternovel.core.errors import NotFoundError
from butternovel.db.retry import db_retry
from butternovel.models.notification import NotificationType
from butternovel.models.notification_preference import NotificationPreference
from butternovel.models.user import User
from butternovel.services.notifications.rules import email_toggle, in_app_toggle

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: dict[str, bool] = {
    "email_notifications": False,
    "enable_rating_notifications": True,
    "enable_comment_notifications": True,
    "enable_follow_notifications": True,
    "enable_author_notifications": True,
    "email_rating_notifications": False,
    "email_comment_notifications": False,
    "email_follow_notifications": False,
    "email_author_notifications": False,
    "aggregation_enabled": True,
}

PREFERENCE_FIELDS = tuple(DEFAULT_PREFERENCES)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


# Accepted update keys: snake_case column names and their camelCase spelling
_FIELD_ALIASES: dict[str, str] = {**{f: f for f in PREFERENCE_FIELDS}, **{_camel(f): f for f in PREFERENCE_FIELDS}}


def ensure_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _load_or_create(db: Session, user_id: str, *, for_update: bool = False) -> NotificationPreference:
    q = db.query(NotificationPreference).filter(NotificationPreference.user_id == user_id)
    if for_update:
        q = q.with_for_update()
    prefs = q.first()
    if prefs:
        return prefs
    prefs = NotificationPreference(user_id=user_id, **DEFAULT_PREFERENCES)
    db.add(prefs)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the row first
        db.rollback()
        q = db.query(NotificationPreference).filter(NotificationPreference.user_id == user_id)
        if for_update:
            q = q.with_for_update()
        return q.one()
    if for_update:
        return (
            db.query(NotificationPreference)
            .filter(NotificationPreference.user_id == user_id)
            .with_for_update()
            .one()
        )
    db.refresh(prefs)
    return prefs


def lock_user_preferences(db: Session, user_id: str) -> NotificationPreference:
    """Load (creating if needed) the recipient's preference row under a row lock for this transaction."""
    return _load_or_create(db, user_id, for_update=True)


@db_retry("get_user_preferences")
def get_user_preferences(db: Session, user_id: str) -> NotificationPreference:
    """Return the user's preferences, creating the defaults on first read."""
    ensure_user(db, user_id)
    return _load_or_create(db, user_id)


@db_retry("update_user_preferences")
def update_user_preferences(db: Session, user_id: str, updates: dict[str, Any]) -> NotificationPreference:
    """
    Apply recognized boolean fields from `updates` (snake_case or camelCase).
    Unknown keys and non-boolean values are ignored.
    """
    ensure_user(db, user_id)
    prefs = _load_or_create(db, user_id)
    applied: dict[str, bool] = {}
    ignored: list[str] = []
    for key, value in (updates or {}).items():
        field = _FIELD_ALIASES.get(key)
        if field is None or not isinstance(value, bool):
            ignored.append(key)
            continue
        applied[field] = value
    if ignored:
        logger.debug("Ignored preference keys for user %s: %s", user_id, ignored)
    if not applied:
        return prefs
    for field, value in applied.items():
        setattr(prefs, field, value)
    prefs.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(prefs)
    return prefs


def should_receive_in_app(prefs: NotificationPreference, notification_type: NotificationType) -> bool:
    toggle = in_app_toggle(notification_type)
    return True if toggle is None else bool(getattr(prefs, toggle))


def should_send_email(prefs: NotificationPreference, notification_type: NotificationType) -> bool:
    """Master email switch on, and the category's email toggle on (system types need only the master)."""
    if not prefs.email_notifications:
        return False
    toggle = email_toggle(notification_type)
    return True if toggle is None else bool(getattr(prefs, toggle))


def serialize_preferences(prefs: NotificationPreference) -> dict[str, Any]:
    """camelCase JSON shape used by the HTTP layer."""
    out: dict[str, Any] = {"userId": prefs.user_id}
    for field in PREFERENCE_FIELDS:
        out[_camel(field)] = bool(getattr(prefs, field))
    return out
