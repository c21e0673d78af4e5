from butternovel.services.notifications.preferences import get_user_preferences, update_user_preferences
from butternovel.services.notifications.service import (
    archive_all,
    create_notification,
    get_notifications,
    get_unread_count,
    mark_as_archived,
    mark_as_read,
    prune_archived_notifications,
    remove_like_notification,
    serialize_notification,
)

__all__ = [
    "archive_all",
    "create_notification",
    "get_notifications",
    "get_unread_count",
    "get_user_preferences",
    "mark_as_archived",
    "mark_as_read",
    "prune_archived_notifications",
    "remove_like_notification",
    "serialize_notification",
    "update_user_preferences",
]
