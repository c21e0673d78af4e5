"""User notification: one user-visible alert, possibly aggregating several actors.

user_id: recipient (owner). actor_id: who triggered it (weak reference, NULL for system events).
aggregation_key: '<type>:<target>' for aggregable types; NULL otherwise or when the user disabled aggregation.
payload: type-specific data (novel/comment/rating ids, actors list, actor_count); column name 'data' in DB.
Lifecycle: unread+inbox -> read+inbox -> read+archived, or unread+inbox -> unread+archived. Never un-archived.
"""
import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from butternovel.db.base import Base


class NotificationType(str, enum.Enum):
    RATING_REPLY = "rating_reply"
    RATING_LIKE = "rating_like"
    COMMENT_REPLY = "comment_reply"
    COMMENT_LIKE = "comment_like"
    AUTHOR_NEW_NOVEL = "author_new_novel"
    AUTHOR_NEW_CHAPTER = "author_new_chapter"
    NOVEL_UPDATE = "novel_update"
    NOVEL_RATING = "novel_rating"
    NOVEL_COMMENT = "novel_comment"
    NEW_FOLLOWER = "new_follower"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
    LEVEL_UP = "level_up"


class NotificationPriority(str, enum.Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(32), nullable=False)
    priority = Column(String(8), nullable=False, default=NotificationPriority.NORMAL.value)
    actor_id = Column(String(64), nullable=True)
    aggregation_key = Column(String(128), nullable=True)
    payload = Column("data", JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # inbox/archive listing, newest activity first
        Index("ix_notifications_user_archived_updated", "user_id", "is_archived", "updated_at"),
        # unread badge count
        Index("ix_notifications_user_unread", "user_id", "is_archived", "is_read"),
        # aggregation lookup
        Index("ix_notifications_user_aggregation_key", "user_id", "aggregation_key"),
    )
