"""
Domain-event helpers: one call per thing that happened on the site.

Each helper resolves the recipient(s) and the novel reference, builds the typed payload and hands it to
create_notification. Fan-out helpers skip recipients that no longer exist.
"""
import logging
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from butternovel.core.errors import NotFoundError
from butternovel.models.notification import Notification, NotificationType
from butternovel.models.novel import Novel
from butternovel.services.notifications.payloads import (
    AnnouncementPayload,
    ChapterPayload,
    CommentPayload,
    FollowPayload,
    LevelUpPayload,
    NewNovelPayload,
    RatingPayload,
)
from butternovel.services.notifications.service import create_notification

logger = logging.getLogger(__name__)


def _novel(db: Session, novel_id: int) -> Novel:
    novel = db.query(Novel).filter(Novel.id == novel_id, Novel.deleted_at.is_(None)).first()
    if not novel:
        raise NotFoundError("Novel not found")
    return novel


def _novel_ref(novel: Novel) -> dict:
    return {"novel_id": novel.id, "novel_slug": novel.slug, "novel_title": novel.title}


def _fan_out(
    db: Session,
    user_ids: Iterable[str],
    notification_type: NotificationType,
    actor_id: str | None,
    payload,
    now: datetime | None,
) -> list[Notification]:
    created: list[Notification] = []
    for user_id in dict.fromkeys(user_ids):
        try:
            row = create_notification(db, user_id, notification_type, actor_id, payload, now=now)
        except NotFoundError:
            logger.info("Skipping %s for missing user %s", notification_type.value, user_id)
            continue
        if row is not None:
            created.append(row)
    return created


# --- Social ---


def notify_new_follower(db: Session, user_id: str, follower_id: str, now: datetime | None = None) -> Notification | None:
    return create_notification(db, user_id, NotificationType.NEW_FOLLOWER, follower_id, FollowPayload(), now=now)


# --- Comments ---


def notify_novel_comment(
    db: Session,
    novel_id: int,
    commenter_id: str,
    comment_id: str,
    *,
    chapter_id: int | None = None,
    chapter_number: int | None = None,
    content: str | None = None,
    now: datetime | None = None,
) -> Notification | None:
    """Tell the novel's author someone commented on it."""
    novel = _novel(db, novel_id)
    payload = CommentPayload(
        **_novel_ref(novel),
        comment_id=comment_id,
        chapter_id=chapter_id,
        chapter_number=chapter_number,
        comment_content=content,
    )
    return create_notification(db, novel.author_id, NotificationType.NOVEL_COMMENT, commenter_id, payload, now=now)


def notify_comment_reply(
    db: Session,
    comment_author_id: str,
    replier_id: str,
    novel_id: int,
    comment_id: str,
    *,
    chapter_id: int | None = None,
    chapter_number: int | None = None,
    reply_content: str | None = None,
    now: datetime | None = None,
) -> Notification | None:
    payload = CommentPayload(
        **_novel_ref(_novel(db, novel_id)),
        comment_id=comment_id,
        chapter_id=chapter_id,
        chapter_number=chapter_number,
        reply_content=reply_content,
    )
    return create_notification(db, comment_author_id, NotificationType.COMMENT_REPLY, replier_id, payload, now=now)


def notify_comment_like(
    db: Session,
    comment_author_id: str,
    liker_id: str,
    novel_id: int,
    comment_id: str,
    *,
    chapter_number: int | None = None,
    now: datetime | None = None,
) -> Notification | None:
    payload = CommentPayload(**_novel_ref(_novel(db, novel_id)), comment_id=comment_id, chapter_number=chapter_number)
    return create_notification(db, comment_author_id, NotificationType.COMMENT_LIKE, liker_id, payload, now=now)


# --- Ratings ---


def notify_novel_rating(
    db: Session,
    novel_id: int,
    rater_id: str,
    rating_id: str,
    score: int,
    now: datetime | None = None,
) -> Notification | None:
    """Tell the novel's author about a new rating (score on the 0-10 scale)."""
    novel = _novel(db, novel_id)
    payload = RatingPayload(**_novel_ref(novel), rating_id=rating_id, score=score)
    return create_notification(db, novel.author_id, NotificationType.NOVEL_RATING, rater_id, payload, now=now)


def notify_rating_reply(
    db: Session,
    rating_author_id: str,
    replier_id: str,
    novel_id: int,
    rating_id: str,
    reply_content: str | None = None,
    now: datetime | None = None,
) -> Notification | None:
    payload = RatingPayload(**_novel_ref(_novel(db, novel_id)), rating_id=rating_id, reply_content=reply_content)
    return create_notification(db, rating_author_id, NotificationType.RATING_REPLY, replier_id, payload, now=now)


def notify_rating_like(
    db: Session,
    rating_author_id: str,
    liker_id: str,
    novel_id: int,
    rating_id: str,
    now: datetime | None = None,
) -> Notification | None:
    payload = RatingPayload(**_novel_ref(_novel(db, novel_id)), rating_id=rating_id)
    return create_notification(db, rating_author_id, NotificationType.RATING_LIKE, liker_id, payload, now=now)


# --- Author updates (fan-out to followers / library readers) ---


def notify_new_chapter(
    db: Session,
    recipient_ids: Iterable[str],
    novel_id: int,
    chapter_id: int,
    chapter_number: int,
    chapter_title: str | None = None,
    *,
    to_library_readers: bool = False,
    now: datetime | None = None,
) -> list[Notification]:
    """
    Announce a published chapter. Followers of the author get author_new_chapter;
    readers who shelved the novel (to_library_readers=True) get novel_update.
    """
    novel = _novel(db, novel_id)
    notification_type = NotificationType.NOVEL_UPDATE if to_library_readers else NotificationType.AUTHOR_NEW_CHAPTER
    payload = ChapterPayload(
        **_novel_ref(novel),
        chapter_id=chapter_id,
        chapter_number=chapter_number,
        chapter_title=chapter_title,
    )
    return _fan_out(db, recipient_ids, notification_type, novel.author_id, payload, now)


def notify_new_novel(
    db: Session,
    follower_ids: Iterable[str],
    novel_id: int,
    now: datetime | None = None,
) -> list[Notification]:
    novel = _novel(db, novel_id)
    payload = NewNovelPayload(**_novel_ref(novel))
    return _fan_out(db, follower_ids, NotificationType.AUTHOR_NEW_NOVEL, novel.author_id, payload, now)


# --- System ---


def notify_level_up(db: Session, user_id: str, level: int, now: datetime | None = None) -> Notification | None:
    return create_notification(db, user_id, NotificationType.LEVEL_UP, None, LevelUpPayload(level=level), now=now)


def notify_system_announcement(
    db: Session,
    user_ids: Iterable[str],
    title: str,
    content: str | None = None,
    link: str | None = None,
    now: datetime | None = None,
) -> list[Notification]:
    payload = AnnouncementPayload(title=(title or "").strip() or "System Notification", content=content, link=link)
    return _fan_out(db, user_ids, NotificationType.SYSTEM_ANNOUNCEMENT, None, payload, now)
