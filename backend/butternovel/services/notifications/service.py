"""
Notification engine: create (with preference gating and aggregation), list, read/archive lifecycle, unlike.

create_notification holds the recipient's preference row lock for the whole check-aggregate-write unit,
so two events for the same (user, aggregation_key) cannot both insert a row on PostgreSQL.
Email goes out after the row is committed; SMTP failures are logged and never undo the write.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from butternovel.core.constants import (
    NOTIFICATION_AGGREGATION_WINDOW,
    NOTIFICATION_MAX_ACTORS,
    NOTIFICATIONS_DEFAULT_LIMIT,
    NOTIFICATIONS_MAX_LIMIT,
    NOTIFICATIONS_RETENTION_DAYS,
)
from butternovel.core.errors import NotFoundError, UpstreamServiceError, ValidationError
from butternovel.db.retry import db_retry
from butternovel.models.notification import Notification, NotificationType
from butternovel.models.user import User
from butternovel.services.email_notify import send_notification_email
from butternovel.services.notifications.payloads import ActorRef, NotificationPayload, parse_payload
from butternovel.services.notifications.preferences import (
    ensure_user,
    lock_user_preferences,
    should_receive_in_app,
    should_send_email,
)
from butternovel.services.notifications.rules import (
    AGGREGATION_TARGETS,
    LIKE_TYPES,
    aggregation_key,
    notification_priority,
    render_content,
    render_link,
    render_title,
)

logger = logging.getLogger(__name__)

EmailSender = Callable[[str, str, dict[str, Any]], Any]


@dataclass
class NotificationPage:
    items: list[Notification]
    total: int
    page: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _coerce_type(notification_type: NotificationType | str) -> NotificationType:
    try:
        return NotificationType(notification_type)
    except ValueError as e:
        raise ValidationError(f"Unknown notification type: {notification_type}") from e


def _actor_ref(db: Session, actor_id: str) -> ActorRef:
    actor = db.query(User).filter(User.id == actor_id).first()
    if not actor:
        return ActorRef(id=actor_id)
    return ActorRef(id=actor.id, name=actor.name, avatar_url=actor.avatar_url)


def _merge_actors(existing: list[ActorRef], incoming: list[ActorRef], count: int) -> tuple[list[ActorRef], int]:
    """Newest first, one entry per actor id, bounded. count grows only for actors not already listed."""
    actors = list(existing)
    for actor in reversed(incoming):
        known = next((a for a in actors if a.id == actor.id), None)
        if known is not None:
            actors.remove(known)
        else:
            count += 1
        actors.insert(0, actor)
    return actors[:NOTIFICATION_MAX_ACTORS], count


def load_payload(row: Notification) -> NotificationPayload:
    """Typed view of a stored payload; malformed rows render with an empty payload instead of failing the list."""
    try:
        return parse_payload(NotificationType(row.type), row.payload)
    except (ValueError, PydanticValidationError) as e:
        logger.warning("Notification %s has an unreadable payload: %s", row.id, e)
        return NotificationPayload()


def _find_aggregation_target(db: Session, user_id: str, key: str, now: datetime) -> Notification | None:
    return (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.aggregation_key == key,
            Notification.is_read.is_(False),
            Notification.is_archived.is_(False),
            Notification.created_at >= now - NOTIFICATION_AGGREGATION_WINDOW,
        )
        .order_by(Notification.created_at.desc())
        .first()
    )


@db_retry("create_notification")
def _write_notification(
    db: Session,
    user_id: str,
    notification_type: NotificationType,
    actor_id: str | None,
    payload: NotificationPayload,
    now: datetime,
) -> tuple[Notification | None, bool]:
    """Returns (row or None when muted, whether an email should follow)."""
    ensure_user(db, user_id)
    prefs = lock_user_preferences(db, user_id)
    if not should_receive_in_app(prefs, notification_type):
        db.rollback()
        logger.debug("Muted %s for user %s", notification_type.value, user_id)
        return None, False
    wants_email = should_send_email(prefs, notification_type)

    incoming = list(payload.actors)
    if actor_id and not any(a.id == actor_id for a in incoming):
        incoming.insert(0, _actor_ref(db, actor_id))

    key = aggregation_key(notification_type, payload) if prefs.aggregation_enabled else None
    if key:
        existing = _find_aggregation_target(db, user_id, key, now)
        if existing is not None:
            current = load_payload(existing)
            actors, count = _merge_actors(current.actors, incoming, max(current.actor_count, len(current.actors)))
            merged = payload.model_copy(update={"actors": actors, "actor_count": count})
            existing.payload = merged.model_dump(mode="json")
            existing.actor_id = actor_id or existing.actor_id
            existing.updated_at = now
            db.commit()
            db.refresh(existing)
            logger.debug("Merged %s into notification %s (actors=%s)", notification_type.value, existing.id, count)
            return existing, False

    actors = incoming[:NOTIFICATION_MAX_ACTORS]
    stored = payload.model_copy(update={"actors": actors, "actor_count": max(payload.actor_count, len(incoming))})
    row = Notification(
        user_id=user_id,
        type=notification_type.value,
        priority=notification_priority(notification_type).value,
        actor_id=actor_id,
        aggregation_key=key,
        payload=stored.model_dump(mode="json"),
        is_read=False,
        is_archived=False,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row, wants_email


def _dispatch_email(db: Session, row: Notification, email_sender: EmailSender) -> None:
    try:
        recipient = db.query(User).filter(User.id == row.user_id).first()
        if not recipient or not recipient.email:
            return
        payload = load_payload(row)
        notification_type = NotificationType(row.type)
        template_data = {
            "title": render_title(notification_type, payload),
            "content": render_content(notification_type, payload),
            "link": render_link(notification_type, payload),
            "notification_id": row.id,
        }
        email_sender(recipient.email, notification_type.value, template_data)
    except UpstreamServiceError as e:
        logger.warning("Notification email for %s failed: %s", row.id, e)
    except Exception as e:
        logger.exception("Notification email for %s could not be prepared: %s", row.id, e)


def create_notification(
    db: Session,
    user_id: str,
    notification_type: NotificationType | str,
    actor_id: str | None = None,
    data: dict[str, Any] | NotificationPayload | None = None,
    *,
    now: datetime | None = None,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    """
    Deliver one domain event to user_id. Returns the created or merged row, or None when suppressed
    (actor is the recipient, or the recipient muted the category).
    Raises NotFoundError for an unknown recipient, ValidationError for an unknown type or bad payload.
    """
    notification_type = _coerce_type(notification_type)
    if actor_id and actor_id == user_id:
        return None
    try:
        payload = parse_payload(notification_type, data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {notification_type.value} payload: {e.error_count()} error(s)") from e
    now = _as_utc(now) or _utcnow()

    row, wants_email = _write_notification(db, user_id, notification_type, actor_id, payload, now)
    if row is not None and wants_email:
        _dispatch_email(db, row, email_sender or send_notification_email)
    return row


@db_retry("get_notifications")
def get_notifications(
    db: Session,
    user_id: str,
    is_archived: bool = False,
    page: int = 1,
    limit: int = NOTIFICATIONS_DEFAULT_LIMIT,
) -> NotificationPage:
    """One page of the inbox (or archive), most recent activity first. page >= 1, limit in [1, 100]."""
    page = 1 if page is None else max(1, int(page))
    limit = NOTIFICATIONS_DEFAULT_LIMIT if limit is None else min(NOTIFICATIONS_MAX_LIMIT, max(1, int(limit)))
    q = db.query(Notification).filter(Notification.user_id == user_id, Notification.is_archived.is_(is_archived))
    total = q.count()
    rows = (
        q.order_by(Notification.updated_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return NotificationPage(items=rows, total=total, page=page, limit=limit)


def _owned(db: Session, notification_id: int, user_id: str) -> Notification:
    row = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not row:
        raise NotFoundError("Notification not found")
    return row


@db_retry("mark_as_read")
def mark_as_read(db: Session, notification_id: int, user_id: str, now: datetime | None = None) -> Notification:
    row = _owned(db, notification_id, user_id)
    if not row.is_read:
        row.is_read = True
        row.read_at = _as_utc(now) or _utcnow()
        db.commit()
        db.refresh(row)
    return row


@db_retry("mark_as_archived")
def mark_as_archived(db: Session, notification_id: int, user_id: str, now: datetime | None = None) -> Notification:
    """Archive one notification. Read state is left as is; archived rows never return to the inbox."""
    row = _owned(db, notification_id, user_id)
    if not row.is_archived:
        row.is_archived = True
        row.archived_at = _as_utc(now) or _utcnow()
        db.commit()
        db.refresh(row)
    return row


@db_retry("archive_all")
def archive_all(db: Session, user_id: str, now: datetime | None = None) -> int:
    now = _as_utc(now) or _utcnow()
    archived = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_archived.is_(False))
        .update({Notification.is_archived: True, Notification.archived_at: now}, synchronize_session=False)
    )
    db.commit()
    return archived


@db_retry("get_unread_count")
def get_unread_count(db: Session, user_id: str) -> int:
    return (
        db.query(Notification.id)
        .filter(
            Notification.user_id == user_id,
            Notification.is_archived.is_(False),
            Notification.is_read.is_(False),
        )
        .count()
    )


@db_retry("remove_like_notification")
def remove_like_notification(
    db: Session,
    user_id: str,
    actor_id: str,
    notification_type: NotificationType | str,
    target_id: str | int,
) -> bool:
    """
    Undo a like: drop actor_id from the recipient's live like notification on target_id.
    The row is deleted once no actor remains. Returns True if a notification changed.
    """
    notification_type = _coerce_type(notification_type)
    if notification_type not in LIKE_TYPES:
        raise ValidationError(f"{notification_type.value} is not a like notification")
    target_attr = AGGREGATION_TARGETS[notification_type]
    key = f"{notification_type.value}:{target_id}"
    rows = (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.type == notification_type.value,
            Notification.is_archived.is_(False),
            or_(
                Notification.aggregation_key == key,
                Notification.aggregation_key.is_(None) & (Notification.actor_id == actor_id),
            ),
        )
        .order_by(Notification.created_at.desc())
        .all()
    )
    for row in rows:
        payload = load_payload(row)
        if str(getattr(payload, target_attr, "")) != str(target_id):
            continue
        listed = any(a.id == actor_id for a in payload.actors)
        count = max(payload.actor_count, len(payload.actors))
        # an actor pushed out of the bounded list still counts toward actor_count
        if not listed and count <= len(payload.actors):
            continue
        remaining = [a for a in payload.actors if a.id != actor_id]
        count -= 1
        if count <= 0 or not remaining:
            db.delete(row)
        else:
            row.payload = payload.model_copy(update={"actors": remaining, "actor_count": count}).model_dump(mode="json")
            if row.actor_id == actor_id:
                row.actor_id = remaining[0].id
        db.commit()
        return True
    return False


def prune_archived_notifications(db: Session, now: datetime | None = None, retention_days: int | None = None) -> int:
    """Delete archived notifications older than the retention window. Returns rows deleted."""
    now = _as_utc(now) or _utcnow()
    cutoff = now - timedelta(days=retention_days or NOTIFICATIONS_RETENTION_DAYS)
    deleted = (
        db.query(Notification)
        .filter(Notification.is_archived.is_(True), Notification.archived_at <= cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def _iso(value: datetime | None) -> str | None:
    value = _as_utc(value)
    return value.isoformat() if value else None


def serialize_notification(row: Notification) -> dict[str, Any]:
    """camelCase JSON shape with title/content/link rendered from the current payload."""
    notification_type = NotificationType(row.type)
    payload = load_payload(row)
    actor_count = max(payload.actor_count, len(payload.actors))
    return {
        "id": row.id,
        "type": row.type,
        "priority": row.priority,
        "actorId": row.actor_id,
        "title": render_title(notification_type, payload),
        "content": render_content(notification_type, payload),
        "link": render_link(notification_type, payload),
        "data": row.payload or {},
        "actorCount": actor_count,
        "isAggregated": actor_count > 1,
        "isRead": bool(row.is_read),
        "isArchived": bool(row.is_archived),
        "readAt": _iso(row.read_at),
        "archivedAt": _iso(row.archived_at),
        "createdAt": _iso(row.created_at),
        "updatedAt": _iso(row.updated_at),
    }
