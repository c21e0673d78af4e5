"""Per-user notification settings. One row per user, created lazily with defaults on first read.

enable_*: in-app delivery per category. email_*: email per category, gated by the email_notifications master switch.
System announcements and level-ups have no toggle: always in-app, emailed only when the master switch is on.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from butternovel.db.base import Base


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    email_notifications = Column(Boolean, nullable=False, default=False)
    enable_rating_notifications = Column(Boolean, nullable=False, default=True)
    enable_comment_notifications = Column(Boolean, nullable=False, default=True)
    enable_follow_notifications = Column(Boolean, nullable=False, default=True)
    enable_author_notifications = Column(Boolean, nullable=False, default=True)
    email_rating_notifications = Column(Boolean, nullable=False, default=False)
    email_comment_notifications = Column(Boolean, nullable=False, default=False)
    email_follow_notifications = Column(Boolean, nullable=False, default=False)
    email_author_notifications = Column(Boolean, nullable=False, default=False)
    aggregation_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
