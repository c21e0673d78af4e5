"""
Notification rules: categories, aggregation keys, priorities, and read-time rendering.

Title/body/link are derived from (type, payload, actor_count) when a notification is read,
so merging actors into an aggregated row never leaves stale text behind.
"""
from butternovel.core.constants import NOTIFICATION_NAMES_SHOWN
from butternovel.models.notification import NotificationPriority, NotificationType
from butternovel.services.notifications.payloads import (
    ActorRef,
    AnnouncementPayload,
    ChapterPayload,
    CommentPayload,
    LevelUpPayload,
    NotificationPayload,
    NovelRef,
    RatingPayload,
)

T = NotificationType

# ---------------------------------------------------------------------------
# Categories: one in-app toggle and one email toggle per category
# ---------------------------------------------------------------------------

CATEGORY_RATING = "rating"
CATEGORY_COMMENT = "comment"
CATEGORY_FOLLOW = "follow"
CATEGORY_AUTHOR = "author"
CATEGORY_SYSTEM = "system"  # no toggles: always in-app

NOTIFICATION_CATEGORIES: dict[NotificationType, str] = {
    T.RATING_REPLY: CATEGORY_RATING,
    T.RATING_LIKE: CATEGORY_RATING,
    T.NOVEL_RATING: CATEGORY_RATING,
    T.COMMENT_REPLY: CATEGORY_COMMENT,
    T.COMMENT_LIKE: CATEGORY_COMMENT,
    T.NOVEL_COMMENT: CATEGORY_COMMENT,
    T.NEW_FOLLOWER: CATEGORY_FOLLOW,
    T.AUTHOR_NEW_NOVEL: CATEGORY_AUTHOR,
    T.AUTHOR_NEW_CHAPTER: CATEGORY_AUTHOR,
    T.NOVEL_UPDATE: CATEGORY_AUTHOR,
    T.SYSTEM_ANNOUNCEMENT: CATEGORY_SYSTEM,
    T.LEVEL_UP: CATEGORY_SYSTEM,
}


def in_app_toggle(notification_type: NotificationType) -> str | None:
    """Preference column gating in-app delivery, or None when the type cannot be muted."""
    category = NOTIFICATION_CATEGORIES[notification_type]
    return None if category == CATEGORY_SYSTEM else f"enable_{category}_notifications"


def email_toggle(notification_type: NotificationType) -> str | None:
    """Preference column gating email for the type's category (None: master switch only)."""
    category = NOTIFICATION_CATEGORIES[notification_type]
    return None if category == CATEGORY_SYSTEM else f"email_{category}_notifications"


# ---------------------------------------------------------------------------
# Aggregation: repeatable events on one target merge into one notification
# ---------------------------------------------------------------------------

# type -> payload attribute naming the target; None = one bucket per recipient (followers)
AGGREGATION_TARGETS: dict[NotificationType, str | None] = {
    T.RATING_LIKE: "rating_id",
    T.RATING_REPLY: "rating_id",
    T.COMMENT_LIKE: "comment_id",
    T.COMMENT_REPLY: "comment_id",
    T.NOVEL_COMMENT: "novel_id",
    T.NOVEL_RATING: "novel_id",
    T.NEW_FOLLOWER: None,
}

LIKE_TYPES = frozenset({T.RATING_LIKE, T.COMMENT_LIKE})


def is_aggregable(notification_type: NotificationType) -> bool:
    return notification_type in AGGREGATION_TARGETS


def aggregation_key(notification_type: NotificationType, payload: NotificationPayload) -> str | None:
    """'<type>:<target id>' for aggregable types, '<type>' for per-recipient buckets, else None."""
    if not is_aggregable(notification_type):
        return None
    attr = AGGREGATION_TARGETS[notification_type]
    if attr is None:
        return notification_type.value
    target = getattr(payload, attr, None)
    if target is None or target == "":
        return None
    return f"{notification_type.value}:{target}"


# ---------------------------------------------------------------------------
# Priority: sort/display weight only
# ---------------------------------------------------------------------------

_HIGH_PRIORITY = frozenset({T.SYSTEM_ANNOUNCEMENT, T.RATING_REPLY, T.COMMENT_REPLY})
_LOW_PRIORITY = frozenset({T.RATING_LIKE, T.COMMENT_LIKE})


def notification_priority(notification_type: NotificationType) -> NotificationPriority:
    if notification_type in _HIGH_PRIORITY:
        return NotificationPriority.HIGH
    if notification_type in _LOW_PRIORITY:
        return NotificationPriority.LOW
    return NotificationPriority.NORMAL


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

DEFAULT_ACTOR_NAME = "Someone"

_ACTION_PHRASES: dict[NotificationType, str] = {
    T.RATING_REPLY: "replied to your rating",
    T.RATING_LIKE: "liked your rating",
    T.COMMENT_REPLY: "replied to your comment",
    T.COMMENT_LIKE: "liked your comment",
    T.NOVEL_RATING: 'rated your novel "{novel_title}"',
    T.NOVEL_COMMENT: 'commented on your novel "{novel_title}"',
    T.NEW_FOLLOWER: "followed you",
    T.AUTHOR_NEW_NOVEL: "published a new novel",
    T.AUTHOR_NEW_CHAPTER: 'updated "{novel_title}"',
}


def _actor_name(actor: ActorRef) -> str:
    return (actor.name or "").strip() or DEFAULT_ACTOR_NAME


def format_actor_names(actors: list[ActorRef], total_count: int) -> str:
    """'Alice', 'Alice and Bob', 'Alice, Bob and 3 others' (names from the newest actors)."""
    names = [_actor_name(a) for a in actors[:NOTIFICATION_NAMES_SHOWN]] or [DEFAULT_ACTOR_NAME]
    total_count = max(total_count, len(names))
    if total_count == 1:
        return names[0]
    if total_count == len(names):
        return f"{', '.join(names[:-1])} and {names[-1]}"
    others = total_count - len(names)
    return f"{', '.join(names)} and {others} other{'s' if others != 1 else ''}"


def render_title(notification_type: NotificationType, payload: NotificationPayload) -> str:
    if isinstance(payload, AnnouncementPayload):
        return payload.title
    if isinstance(payload, LevelUpPayload):
        return f"Congratulations! You've reached Lv.{payload.level}"
    if notification_type == T.NOVEL_UPDATE:
        return f'"{getattr(payload, "novel_title", None) or "A novel you follow"}" has been updated'
    phrase = _ACTION_PHRASES.get(notification_type)
    if phrase is None:
        return "New notification"
    phrase = phrase.format(novel_title=getattr(payload, "novel_title", None) or "your novel")
    count = max(payload.actor_count, 1)
    if count > 1:
        return f"{count} people {phrase}"
    subject = _actor_name(payload.actors[0]) if payload.actors else DEFAULT_ACTOR_NAME
    return f"{subject} {phrase}"


def render_content(notification_type: NotificationType, payload: NotificationPayload) -> str | None:
    if payload.actor_count > 1:
        return format_actor_names(payload.actors, payload.actor_count)
    if isinstance(payload, AnnouncementPayload):
        return payload.content
    if isinstance(payload, RatingPayload):
        if notification_type == T.RATING_REPLY:
            return payload.reply_content
        if notification_type == T.NOVEL_RATING and payload.score:
            return "★" * max(1, payload.score // 2)
        return None
    if isinstance(payload, CommentPayload):
        if notification_type == T.COMMENT_REPLY:
            return payload.reply_content
        if notification_type == T.NOVEL_COMMENT:
            return payload.comment_content
        return None
    if isinstance(payload, ChapterPayload):
        return payload.chapter_title
    return None


def render_link(notification_type: NotificationType, payload: NotificationPayload) -> str | None:
    if isinstance(payload, AnnouncementPayload):
        return payload.link
    if notification_type == T.NEW_FOLLOWER:
        return f"/profile/{payload.actors[0].id}" if payload.actors else None
    if not isinstance(payload, NovelRef) or not payload.novel_slug:
        return None
    base = f"/novels/{payload.novel_slug}"
    if isinstance(payload, RatingPayload):
        if notification_type in (T.RATING_REPLY, T.RATING_LIKE) and payload.rating_id:
            return f"{base}?openRating={payload.rating_id}"
        return f"{base}?openRatings=true"
    if isinstance(payload, CommentPayload):
        if payload.chapter_number and payload.comment_id:
            return f"{base}/chapters/{payload.chapter_number}?openComment={payload.comment_id}"
        return base
    if isinstance(payload, ChapterPayload) and payload.chapter_number:
        return f"{base}/chapters/{payload.chapter_number}"
    return base
