"""
Typed notification payloads: one pydantic model per notification type.

Stored as JSON in notifications.data. Every payload carries the actors list (bounded, newest
first) and actor_count so aggregation can merge without knowing the type's other fields.
Unknown keys are dropped; long text is cut to a short excerpt.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from butternovel.core.constants import PAYLOAD_EXCERPT_MAX_CHARS
from butternovel.models.notification import NotificationType


def _excerpt(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if len(value) <= PAYLOAD_EXCERPT_MAX_CHARS:
        return value or None
    return value[: PAYLOAD_EXCERPT_MAX_CHARS - 1].rstrip() + "…"


class ActorRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str | None = None
    avatar_url: str | None = None


class NotificationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    actors: list[ActorRef] = Field(default_factory=list)
    actor_count: int = 0


class NovelRef(NotificationPayload):
    novel_id: int
    novel_slug: str | None = None
    novel_title: str | None = None


class RatingPayload(NovelRef):
    """rating_reply, rating_like, novel_rating."""
    rating_id: str | None = None
    score: int | None = Field(default=None, ge=0, le=10)
    reply_content: str | None = None

    @field_validator("reply_content")
    @classmethod
    def excerpt_text(cls, v: str | None) -> str | None:
        return _excerpt(v)


class CommentPayload(NovelRef):
    """comment_reply, comment_like, novel_comment."""
    comment_id: str | None = None
    chapter_id: int | None = None
    chapter_number: int | None = None
    comment_content: str | None = None
    reply_content: str | None = None

    @field_validator("comment_content", "reply_content")
    @classmethod
    def excerpt_text(cls, v: str | None) -> str | None:
        return _excerpt(v)


class ChapterPayload(NovelRef):
    """author_new_chapter, novel_update."""
    chapter_id: int | None = None
    chapter_number: int | None = None
    chapter_title: str | None = None


class NewNovelPayload(NovelRef):
    """author_new_novel."""


class FollowPayload(NotificationPayload):
    """new_follower: the actors are the followers."""


class LevelUpPayload(NotificationPayload):
    level: int = Field(ge=1)


class AnnouncementPayload(NotificationPayload):
    title: str = Field(min_length=1, max_length=200)
    content: str | None = None
    link: str | None = None

    @field_validator("content")
    @classmethod
    def excerpt_text(cls, v: str | None) -> str | None:
        return _excerpt(v)


PAYLOAD_MODELS: dict[NotificationType, type[NotificationPayload]] = {
    NotificationType.RATING_REPLY: RatingPayload,
    NotificationType.RATING_LIKE: RatingPayload,
    NotificationType.NOVEL_RATING: RatingPayload,
    NotificationType.COMMENT_REPLY: CommentPayload,
    NotificationType.COMMENT_LIKE: CommentPayload,
    NotificationType.NOVEL_COMMENT: CommentPayload,
    NotificationType.AUTHOR_NEW_CHAPTER: ChapterPayload,
    NotificationType.NOVEL_UPDATE: ChapterPayload,
    NotificationType.AUTHOR_NEW_NOVEL: NewNovelPayload,
    NotificationType.NEW_FOLLOWER: FollowPayload,
    NotificationType.LEVEL_UP: LevelUpPayload,
    NotificationType.SYSTEM_ANNOUNCEMENT: AnnouncementPayload,
}


def parse_payload(notification_type: NotificationType, data: dict[str, Any] | BaseModel | None) -> NotificationPayload:
    """Validate raw data (or an already-built model) into the payload model for this type."""
    model = PAYLOAD_MODELS[notification_type]
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return model.model_validate(data or {})
